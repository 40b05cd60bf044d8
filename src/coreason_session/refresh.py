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
TokenRefreshGuard component: on-demand access token refresh in front of authenticated calls.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

import anyio
from opentelemetry import trace

from coreason_session.exceptions import NotSignedInError, TokenExchangeFailedError, TokenRefreshFailedError
from coreason_session.models import AuthState
from coreason_session.state_store import AuthStateStore
from coreason_session.token_client import TokenEndpointClient
from coreason_session.utils.logger import logger, token_fingerprint

tracer = trace.get_tracer(__name__)

T = TypeVar("T")


class _PendingRefresh:
    """Outcome slot shared by every caller waiting on the same refresh."""

    def __init__(self) -> None:
        self.done = anyio.Event()
        self.state: AuthState | None = None
        self.error: TokenRefreshFailedError | None = None

    async def result(self) -> AuthState:
        await self.done.wait()
        if self.error is not None:
            raise self.error
        if self.state is None:
            raise TokenRefreshFailedError("Token refresh was abandoned")
        return self.state


class TokenRefreshGuard:
    """
    Ensures a non-expired access token before running an authenticated action.

    Refresh happens strictly on demand. Concurrent callers that find the token stale share
    one in-flight refresh instead of each spending the refresh token.

    Attributes:
        leeway (float): Seconds before expiry at which a token is already treated as stale.
        consecutive_failures (int): Refresh failures since the last success.
    """

    def __init__(self, store: AuthStateStore, token_client: TokenEndpointClient, leeway: float = 60.0) -> None:
        self.store = store
        self.token_client = token_client
        self.leeway = leeway
        self.consecutive_failures = 0
        self._pending: _PendingRefresh | None = None

    async def with_fresh_token(self, action: Callable[[str], Awaitable[T]]) -> T:
        """
        Runs `action` with a valid access token, refreshing it first if needed.

        Args:
            action: Coroutine function receiving the access token.

        Returns:
            Whatever `action` returns.

        Raises:
            NotSignedInError: If there is no session.
            TokenRefreshFailedError: If a needed refresh failed; `action` is not called.
        """
        state = self.store.state
        if state is None:
            raise NotSignedInError("Not signed in")

        if not state.is_expired(self.leeway):
            logger.debug(f"Access token was fresh and not updated ({token_fingerprint(state.access_token)})")
            return await action(state.access_token)

        refreshed = await self.refresh(state)
        logger.info(
            f"Access token was refreshed automatically "
            f"({token_fingerprint(state.access_token)} to {token_fingerprint(refreshed.access_token)})"
        )
        return await action(refreshed.access_token)

    async def refresh(self, state: AuthState) -> AuthState:
        """
        Refreshes `state`, joining an in-flight refresh if one is running.

        Returns:
            AuthState: The refreshed and already persisted session.

        Raises:
            TokenRefreshFailedError: If the refresh failed.
        """
        if self._pending is not None:
            logger.debug("Joining in-flight token refresh")
            return await self._pending.result()

        pending = _PendingRefresh()
        self._pending = pending
        try:
            pending.state = await self._refresh(state)
            return pending.state
        except TokenRefreshFailedError as e:
            pending.error = e
            raise
        finally:
            self._pending = None
            pending.done.set()

    async def _refresh(self, state: AuthState) -> AuthState:
        if not state.refresh_token:
            error = TokenRefreshFailedError("Access token expired and no refresh token is available")
            self._fail(error)
            raise error

        with tracer.start_as_current_span("oidc.refresh"):
            try:
                token_response = await self.token_client.refresh(
                    token_endpoint=state.authorization.token_endpoint,
                    refresh_token=state.refresh_token,
                    client_id=state.authorization.client_id,
                )
            except TokenExchangeFailedError as e:
                logger.error(f"Error fetching fresh tokens: {e}")
                error = TokenRefreshFailedError(f"Token refresh failed: {e}")
                self._fail(error)
                raise error from e

        current = self.store.state
        if current is None or current.refresh_token != state.refresh_token:
            # Signed out (or re-authorized) while the refresh was in flight
            raise TokenRefreshFailedError("Session changed while the token was being refreshed")

        refreshed = current.with_refreshed_tokens(token_response)
        self.store.set_state(refreshed)
        self.consecutive_failures = 0
        return refreshed

    def _fail(self, error: TokenRefreshFailedError) -> None:
        self.consecutive_failures += 1
        self.store.record_error(error)
