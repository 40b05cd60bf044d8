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
SessionManager component for orchestrating sign-in, authenticated calls and sign-out.
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from coreason_session.authorization import AuthorizationFlowDriver
from coreason_session.config import CoreasonSessionConfig
from coreason_session.discovery import DiscoveryClient
from coreason_session.exceptions import CoreasonSessionError, FlowAlreadyInProgressError
from coreason_session.logout import ResponseCache, SessionTerminator, default_end_session_endpoint
from coreason_session.models import AuthState
from coreason_session.presenter import RedirectPresenter
from coreason_session.refresh import TokenRefreshGuard
from coreason_session.state_store import AuthStateStore
from coreason_session.storage import FileKeyValueStorage, KeyValueStorage
from coreason_session.token_client import TokenEndpointClient
from coreason_session.utils.logger import logger

T = TypeVar("T")


class SessionManager:
    """
    The single session of the process.

    Construct one at start-up and pass it to every component that needs authentication;
    use it as an async context manager so the HTTP client it owns is closed at shutdown.
    The persisted session is restored during construction.
    """

    def __init__(
        self,
        config: CoreasonSessionConfig,
        storage: KeyValueStorage | None = None,
        client: httpx.AsyncClient | None = None,
        response_cache: ResponseCache | None = None,
    ) -> None:
        """
        Initialize the SessionManager.

        Args:
            config: The configuration object.
            storage: Durable key-value store. Defaults to files under `config.state_dir`.
            client: External async client (optional). If not provided, one is created with `config.http_timeout`.
            response_cache: Local HTTP response cache to purge on sign-out (optional).
        """
        self.config = config
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.http_timeout)

        # Instrument the client for distributed tracing
        HTTPXClientInstrumentor().instrument_client(self._client)

        self.store = AuthStateStore(storage or FileKeyValueStorage(config.state_dir), key=config.auth_state_key)
        self.discovery = DiscoveryClient(self._client)
        self.token_client = TokenEndpointClient(self._client)
        self.flow_driver = AuthorizationFlowDriver(self.token_client)
        self.refresh_guard = TokenRefreshGuard(self.store, self.token_client, leeway=config.clock_skew_leeway)
        self.terminator = SessionTerminator(
            self.store,
            self._client,
            response_cache=response_cache,
            fallback_end_session_endpoint=(
                config.end_session_endpoint or default_end_session_endpoint(config.issuer_url)
            ),
        )

        self.store.restore()

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._internal_client:
            await self._client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    @property
    def state(self) -> AuthState | None:
        return self.store.state

    def is_logged_in(self) -> bool:
        return self.store.state is not None

    async def login(self, presenter: RedirectPresenter, force: bool = False) -> AuthState:
        """
        Signs in through discovery and the interactive authorization code flow.

        Args:
            presenter: The interactive surface that shows the provider's sign-in page.
            force: Re-authorize even when a session exists (e.g. after repeated refresh failures).

        Returns:
            AuthState: The current session.

        Raises:
            FlowAlreadyInProgressError: If another sign-in is pending; the current session is kept.
            InvalidIssuerUrlError: If the configured issuer URL is invalid.
            DiscoveryFailedError: If the provider configuration cannot be fetched.
            AuthorizationFailedError: If authorization or code exchange failed.
        """
        current = self.store.state
        if current is not None and not force:
            return current

        try:
            provider = await self.discovery.discover(self.config.issuer_url)
            state = await self.flow_driver.authorize(
                provider,
                client_id=self.config.client_id,
                redirect_uri=self.config.redirect_uri,
                scopes=self.config.scopes,
                presenter=presenter,
            )
        except FlowAlreadyInProgressError:
            raise
        except CoreasonSessionError as e:
            # A failed (re-)authorization invalidates trust in any prior session
            self.store.record_error(e)
            self.store.clear()
            raise

        self.store.set_state(state)
        logger.info("Signed in.")
        return state

    async def sign_out(self) -> None:
        """Signs out remotely (best effort) and locally (always)."""
        await self.terminator.sign_out()

    async def with_fresh_token(self, action: Callable[[str], Awaitable[T]]) -> T:
        """
        Runs `action` with a valid access token. See TokenRefreshGuard.with_fresh_token.
        """
        return await self.refresh_guard.with_fresh_token(action)
