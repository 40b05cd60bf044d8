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
SessionTerminator component for RP-initiated logout.
"""

from typing import Protocol

import httpx
from opentelemetry import trace

from coreason_session.exceptions import LogoutRemoteFailedError, OversizedResponseError
from coreason_session.state_store import AuthStateStore
from coreason_session.transport import is_success, safe_fetch
from coreason_session.utils.logger import logger

tracer = trace.get_tracer(__name__)

# IdentityServer's end-session path, relative to the issuer
DEFAULT_END_SESSION_PATH = "/connect/endsession"


def default_end_session_endpoint(issuer_url: str) -> str:
    """Last-resort end-session endpoint for providers whose discovery document omits one."""
    return issuer_url.strip().rstrip("/") + DEFAULT_END_SESSION_PATH


class ResponseCache(Protocol):
    """Protocol for a local HTTP response cache that may hold authenticated responses."""

    def purge(self) -> None:
        """Removes every cached response."""
        ...

    def disable(self) -> None:
        """Stops caching further responses."""
        ...


class SessionTerminator:
    """
    Ends the session: best-effort remote logout, authoritative local clear.

    Attributes:
        store (AuthStateStore): The session owner.
        fallback_end_session_endpoint (str | None): Used when the session carries no discovered endpoint.
    """

    def __init__(
        self,
        store: AuthStateStore,
        client: httpx.AsyncClient,
        response_cache: ResponseCache | None = None,
        fallback_end_session_endpoint: str | None = None,
    ) -> None:
        self.store = store
        self.client = client
        self.response_cache = response_cache
        self.fallback_end_session_endpoint = fallback_end_session_endpoint
        self.last_remote_error: LogoutRemoteFailedError | None = None

    async def sign_out(self, end_session_endpoint: str | None = None, id_token: str | None = None) -> None:
        """
        Signs out.

        The remote end-session request is advisory: its failure is logged and never prevents
        clearing the local session and purging the response cache.

        Args:
            end_session_endpoint: Overrides the endpoint from the session or configuration.
            id_token: Overrides the ID token sent as id_token_hint.
        """
        state = self.store.state
        if state is not None:
            end_session_endpoint = end_session_endpoint or state.authorization.end_session_endpoint
            id_token = id_token or state.id_token
        end_session_endpoint = end_session_endpoint or self.fallback_end_session_endpoint

        self.last_remote_error = None
        try:
            if id_token and end_session_endpoint:
                self.last_remote_error = await self._remote_logout(end_session_endpoint, id_token)
            elif state is not None:
                logger.info("Skipping RP-initiated logout: no ID token or end-session endpoint available")
        finally:
            try:
                self.store.clear()
            finally:
                if self.response_cache is not None:
                    self.response_cache.purge()
                    self.response_cache.disable()
                logger.info("Signed out.")

    async def _remote_logout(self, end_session_endpoint: str, id_token: str) -> LogoutRemoteFailedError | None:
        with tracer.start_as_current_span("oidc.end_session") as span:
            try:
                url = str(httpx.URL(end_session_endpoint).copy_merge_params({"id_token_hint": id_token}))
                status_code, content = await safe_fetch(self.client, url)
            except (httpx.HTTPError, OversizedResponseError) as e:
                span.record_exception(e)
                error = LogoutRemoteFailedError(f"RP-initiated logout request failed: {e}")
                logger.warning(str(error))
                return error

            span.set_attribute("http.status_code", status_code)
            if not is_success(status_code):
                error = LogoutRemoteFailedError(f"RP-initiated logout HTTP response code: {status_code}")
                logger.warning(str(error))
                if content:
                    logger.debug(f"RP-initiated logout response: {content[:512].decode('utf-8', errors='replace')}")
                return error

            logger.info("RP-initiated logout succeeded.")
            return None
