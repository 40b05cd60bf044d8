# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_session

"""
AuthStateStore component: the single owner of the current session.
"""

import threading
from collections.abc import Callable

from pydantic import ValidationError

from coreason_session.exceptions import CorruptPersistedStateError
from coreason_session.models import STATE_RECORD_VERSION, AuthState, StoredStateRecord
from coreason_session.storage import KeyValueStorage
from coreason_session.utils.logger import logger, token_fingerprint

StateObserver = Callable[[AuthState | None], None]
ErrorObserver = Callable[[AuthState | None, Exception], None]


class AuthStateStore:
    """
    Holds the current AuthState in a single slot and mirrors every change to storage.

    All mutations go through set_state. Reads and writes are guarded by one re-entrant
    lock so completions from worker threads and readers on the main context see a
    consistent slot.

    Attributes:
        storage (KeyValueStorage): The durable key-value store.
        key (str): Storage key of the session record.
    """

    def __init__(self, storage: KeyValueStorage, key: str = "authState") -> None:
        self.storage = storage
        self.key = key
        self._lock = threading.RLock()
        self._state: AuthState | None = None
        self._sequence = 0
        self._persisted_sequence = -1
        self._on_state_change: StateObserver | None = None
        self._on_authorization_error: ErrorObserver | None = None

    @property
    def state(self) -> AuthState | None:
        with self._lock:
            return self._state

    @property
    def sequence(self) -> int:
        """Monotonic version of the current state; increments on every committed change."""
        with self._lock:
            return self._sequence

    def on_state_change(self, observer: StateObserver | None) -> None:
        """Registers the state-change observer, replacing any previous one. None unregisters."""
        with self._lock:
            self._on_state_change = observer

    def on_authorization_error(self, observer: ErrorObserver | None) -> None:
        """Registers the authorization-error observer, replacing any previous one. None unregisters."""
        with self._lock:
            self._on_authorization_error = observer

    def set_state(self, new_state: AuthState | None) -> bool:
        """
        Replaces the current state, persists it, and notifies the observer.

        Args:
            new_state: The new session, or None to sign out.

        Returns:
            bool: False if new_state equals the current state (nothing written, nobody notified).
        """
        with self._lock:
            if new_state == self._state:
                return False
            self._state = new_state
            self._sequence += 1
            self.persist()
            observer = self._on_state_change

        logger.debug("Authorization state change event.")
        self._notify(observer, new_state)
        return True

    def clear(self) -> bool:
        """Signs out locally. Equivalent to set_state(None)."""
        return self.set_state(None)

    def persist(self) -> None:
        """
        Writes the current state (or a tombstone when signed out) to storage.

        Writes are ordered by sequence number; a write for a superseded state is skipped.
        A storage failure is logged and leaves the in-memory state authoritative. A failed
        tombstone write falls back to deleting the record so signed-out tokens do not survive.
        """
        with self._lock:
            if self._sequence <= self._persisted_sequence:
                logger.debug(f"Skipping persistence of superseded state #{self._sequence}")
                return
            record = StoredStateRecord(version=STATE_RECORD_VERSION, sequence=self._sequence, state=self._state)
            try:
                self.storage.set(self.key, record.model_dump_json().encode("utf-8"))
            except OSError as e:
                logger.error(f"Failed to save authorization state: {e}")
                if self._state is None:
                    self._delete_record()
                return
            self._persisted_sequence = self._sequence

        logger.info("Authorization state has been saved.")
        self.show_state()

    def _delete_record(self) -> None:
        try:
            self.storage.delete(self.key)
        except OSError as e:
            logger.error(f"Failed to remove persisted authorization state: {e}")
            return
        logger.info("Persisted authorization state has been removed.")

    def restore(self) -> AuthState | None:
        """
        Loads the persisted state and makes it current.

        A missing record means signed out. A record that cannot be read or decoded is logged
        and treated as signed out; a corrupt one is also replaced with a tombstone.

        Returns:
            AuthState | None: The restored session.
        """
        try:
            raw = self.storage.get(self.key)
        except OSError as e:
            logger.warning(f"Cannot read persisted authorization state: {e}")
            self.set_state(None)
            return None

        if raw is None:
            return self.state

        try:
            record = self._decode(raw)
        except CorruptPersistedStateError as e:
            logger.warning(f"Discarding persisted authorization state: {e}")
            with self._lock:
                previous = self._state
                self._state = None
                self._sequence += 1
                self.persist()
                observer = self._on_state_change
            if previous is not None:
                self._notify(observer, None)
            return None

        with self._lock:
            # Continue the sequence of the process that wrote the record
            self._sequence = max(self._sequence, record.sequence)
        if record.state is not None:
            logger.info("Authorization state has been loaded.")

        # Through the setter, so the observer sees a restored state like any other change
        self.set_state(record.state)
        return record.state

    @staticmethod
    def _decode(raw: bytes) -> StoredStateRecord:
        try:
            record = StoredStateRecord.model_validate_json(raw)
        except (ValidationError, ValueError) as e:
            raise CorruptPersistedStateError(f"Malformed session record: {e.__class__.__name__}") from e
        if record.version > STATE_RECORD_VERSION:
            raise CorruptPersistedStateError(f"Unsupported session record version {record.version}")
        return record

    def record_error(self, error: Exception) -> None:
        """
        Stores the error in the current state's error slot and notifies the error observer.
        Tokens are kept; clearing the session is the caller's decision.
        """
        logger.warning(f"Received authorization error: {error}")
        with self._lock:
            current = self._state
            observer = self._on_authorization_error
        if current is not None:
            self.set_state(current.model_copy(update={"last_error": str(error)}))
        self._notify_error(observer, self.state, error)

    def show_state(self) -> None:
        """Logs selected information from the current authorization data."""
        state = self.state
        if state is None:
            logger.debug("Current authorization state: signed out")
            return
        logger.debug(
            f"Current authorization state: access_token={token_fingerprint(state.access_token)} "
            f"id_token={token_fingerprint(state.id_token)} expires_at={state.expires_at}"
        )

    @staticmethod
    def _notify(observer: StateObserver | None, state: AuthState | None) -> None:
        if observer is None:
            return
        try:
            observer(state)
        except Exception:
            logger.exception("State change observer failed")

    @staticmethod
    def _notify_error(observer: ErrorObserver | None, state: AuthState | None, error: Exception) -> None:
        if observer is None:
            return
        try:
            observer(state, error)
        except Exception:
            logger.exception("Authorization error observer failed")
