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
Process-durable key-value storage for the session record.
"""

import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Protocol

from coreason_session.utils.logger import logger

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")


class KeyValueStorage(Protocol):
    """Protocol for the preferences store holding the persisted session."""

    def get(self, key: str) -> bytes | None:
        """Returns the stored value, or None if the key is absent."""
        ...

    def set(self, key: str, value: bytes) -> None:
        """Stores a value. Implementations must never leave a half-written value behind."""
        ...

    def delete(self, key: str) -> None:
        """Removes a key. Removing an absent key is not an error."""
        ...


class MemoryKeyValueStorage:
    """
    In-memory implementation of KeyValueStorage.
    Survives only as long as the process; useful for tests and ephemeral sessions.
    """

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class FileKeyValueStorage:
    """
    File-backed implementation of KeyValueStorage: one file per key inside a directory.

    Writes go to a temporary file in the same directory, are fsynced, and then atomically
    renamed over the target, so readers see either the old or the new value.

    Attributes:
        directory (Path): Directory holding one `<key>.json` file per key.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.directory)
            try:
                with os.fdopen(fd, "wb") as tmp:
                    tmp.write(value)
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, path)
            except BaseException:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug(f"Could not remove temporary file {tmp_name}")
                raise

    def delete(self, key: str) -> None:
        path = self._path(key)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
