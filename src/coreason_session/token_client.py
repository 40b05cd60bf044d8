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
TokenEndpointClient component for the authorization_code and refresh_token grants.
"""

import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from coreason_session.exceptions import OversizedResponseError, TokenExchangeFailedError
from coreason_session.models import TokenResponse
from coreason_session.transport import is_success, parse_json, safe_fetch
from coreason_session.utils.logger import logger

tracer = trace.get_tracer(__name__)


class TokenEndpointClient:
    """
    Performs token endpoint requests for a public client (no client secret).
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        """
        Initialize the TokenEndpointClient.

        Args:
            client: The async HTTP client to use for requests. Its timeout bounds every call.
        """
        self.client = client

    async def exchange_code(
        self,
        token_endpoint: str,
        code: str,
        code_verifier: str,
        redirect_uri: str,
        client_id: str,
    ) -> TokenResponse:
        """
        Exchanges an authorization code for tokens.

        Args:
            token_endpoint: The provider's token endpoint.
            code: The authorization code from the redirect.
            code_verifier: The PKCE verifier whose challenge was sent with the authorization request.
            redirect_uri: The redirect URI used in the authorization request.
            client_id: The OAuth 2 client ID.

        Returns:
            TokenResponse: The issued tokens.

        Raises:
            TokenExchangeFailedError: If the request fails or the provider rejects it.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "code_verifier": code_verifier,
            "redirect_uri": redirect_uri,
            "client_id": client_id,
        }
        return await self._request("authorization_code", token_endpoint, data)

    async def refresh(self, token_endpoint: str, refresh_token: str, client_id: str) -> TokenResponse:
        """
        Exchanges a refresh token for a new access token.

        Raises:
            TokenExchangeFailedError: If the request fails or the provider rejects it.
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
        }
        return await self._request("refresh_token", token_endpoint, data)

    async def _request(self, grant_type: str, token_endpoint: str, data: dict[str, str]) -> TokenResponse:
        with tracer.start_as_current_span("oidc.token") as span:
            span.set_attribute("oauth.grant_type", grant_type)
            try:
                status_code, content = await safe_fetch(
                    self.client,
                    token_endpoint,
                    method="POST",
                    data=data,
                    headers={"Accept": "application/json"},
                )
            except (httpx.HTTPError, OversizedResponseError) as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, "transport"))
                logger.warning(f"Token request ({grant_type}) failed in transport: {e}")
                raise TokenExchangeFailedError(
                    f"Token request ({grant_type}) to {token_endpoint} failed: {e}", transient=True
                ) from e

            span.set_attribute("http.status_code", status_code)

            if not is_success(status_code):
                error, description = _oauth_error(content)
                span.set_status(Status(StatusCode.ERROR, error or f"HTTP {status_code}"))
                logger.warning(f"Token endpoint rejected {grant_type} grant: HTTP {status_code} {error or ''}")
                raise TokenExchangeFailedError(
                    f"Token endpoint returned HTTP {status_code}"
                    + (f": {error}" if error else "")
                    + (f" ({description})" if description else ""),
                    status_code=status_code,
                    error=error,
                    error_description=description,
                )

            try:
                token_response = TokenResponse.model_validate(parse_json(content))
            except (ValueError, ValidationError) as e:
                span.set_status(Status(StatusCode.ERROR, "invalid response"))
                raise TokenExchangeFailedError(
                    f"Invalid token response from {token_endpoint}: {e}", status_code=status_code
                ) from e

            return token_response


def _oauth_error(content: bytes) -> tuple[str | None, str | None]:
    """Extracts (error, error_description) from an RFC 6749 error body, if it is one."""
    try:
        body = parse_json(content)
    except ValueError:
        return None, None
    if not isinstance(body, dict):
        return None, None
    error = body.get("error")
    description = body.get("error_description")
    return (
        error if isinstance(error, str) else None,
        description if isinstance(description, str) else None,
    )
