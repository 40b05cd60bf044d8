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
AuthorizationFlowDriver component for the authorization code grant with PKCE.
"""

from collections.abc import Sequence
from urllib.parse import parse_qs, urlparse

from coreason_session.exceptions import (
    AuthorizationFailedError,
    AuthorizationFailureReason,
    FlowAlreadyInProgressError,
    TokenExchangeFailedError,
)
from coreason_session.models import (
    AuthorizationMetadata,
    AuthorizationRequest,
    AuthorizationResponse,
    AuthState,
    CoreasonScope,
    ProviderConfiguration,
)
from coreason_session.pkce import generate_nonce, generate_pkce, generate_state
from coreason_session.presenter import RedirectPresenter
from coreason_session.token_client import TokenEndpointClient
from coreason_session.utils.logger import logger

REQUIRED_SCOPES = (CoreasonScope.OPENID.value, CoreasonScope.PROFILE.value)


def merge_scopes(scopes: Sequence[str]) -> list[str]:
    """Caller scopes followed by openid and profile, without duplicates."""
    merged: list[str] = []
    for scope in [*scopes, *REQUIRED_SCOPES]:
        if scope not in merged:
            merged.append(scope)
    return merged


def parse_redirect(redirect_url: str, request: AuthorizationRequest) -> AuthorizationResponse:
    """
    Parses the captured redirect into an AuthorizationResponse.

    Raises:
        AuthorizationFailedError: If the redirect targets another URI, carries an OAuth error,
            has a mismatching state, or has no code.
    """
    expected = urlparse(request.redirect_uri)
    actual = urlparse(redirect_url.strip())
    if (actual.scheme.lower(), actual.netloc, actual.path) != (expected.scheme.lower(), expected.netloc, expected.path):
        raise AuthorizationFailedError(
            "Redirect does not target the registered redirect URI", AuthorizationFailureReason.REJECTED
        )

    params = {k: v[0] for k, v in parse_qs(actual.query).items() if v}
    # Some providers return the response in the fragment
    if not params and actual.fragment:
        params = {k: v[0] for k, v in parse_qs(actual.fragment).items() if v}

    if "error" in params:
        description = params.get("error_description")
        reason = (
            AuthorizationFailureReason.CANCELLED
            if params["error"] == "access_denied"
            else AuthorizationFailureReason.REJECTED
        )
        raise AuthorizationFailedError(
            f"Authorization rejected: {params['error']}" + (f" ({description})" if description else ""), reason
        )

    if params.get("state") != request.state:
        raise AuthorizationFailedError(
            "Authorization response state does not match the request", AuthorizationFailureReason.REJECTED
        )

    code = params.get("code")
    if not code:
        raise AuthorizationFailedError(
            "Authorization response does not contain a code", AuthorizationFailureReason.REJECTED
        )

    return AuthorizationResponse(code=code, state=params.get("state"))


class AuthorizationFlowDriver:
    """
    Drives one interactive authorization at a time.

    A second authorize() while a flow is pending is rejected with FlowAlreadyInProgressError;
    the pending flow is left untouched.
    """

    def __init__(self, token_client: TokenEndpointClient) -> None:
        self.token_client = token_client
        self._in_flight = False

    @property
    def in_progress(self) -> bool:
        return self._in_flight

    def build_request(
        self,
        provider_config: ProviderConfiguration,
        client_id: str,
        redirect_uri: str,
        scopes: Sequence[str],
    ) -> AuthorizationRequest:
        """
        Builds an authorization request with fresh PKCE parameters, state and nonce.
        prompt=login is always set so an existing browser session cannot silently re-issue a code.
        """
        if provider_config.response_types_supported and "code" not in provider_config.response_types_supported:
            logger.warning("Provider does not advertise response_type=code; attempting anyway")
        if (
            provider_config.code_challenge_methods_supported
            and "S256" not in provider_config.code_challenge_methods_supported
        ):
            logger.warning("Provider does not advertise the S256 code challenge method; attempting anyway")

        return AuthorizationRequest(
            provider=provider_config,
            client_id=client_id,
            redirect_uri=redirect_uri,
            scopes=merge_scopes(scopes),
            response_type="code",
            pkce=generate_pkce(),
            state=generate_state(),
            nonce=generate_nonce(),
            additional_parameters={"prompt": "login"},
        )

    async def exchange_code(self, request: AuthorizationRequest, response: AuthorizationResponse) -> AuthState:
        """
        Exchanges the authorization code using the request's retained code verifier.

        Raises:
            AuthorizationFailedError: If the token endpoint rejects the exchange or is unreachable.
        """
        try:
            token_response = await self.token_client.exchange_code(
                token_endpoint=request.provider.token_endpoint,
                code=response.code,
                code_verifier=request.pkce.code_verifier,
                redirect_uri=request.redirect_uri,
                client_id=request.client_id,
            )
        except TokenExchangeFailedError as e:
            reason = AuthorizationFailureReason.TRANSPORT if e.transient else AuthorizationFailureReason.REJECTED
            raise AuthorizationFailedError(f"Code exchange failed: {e}", reason) from e

        return AuthState.from_token_response(token_response, AuthorizationMetadata.from_request(request))

    async def authorize(
        self,
        provider_config: ProviderConfiguration,
        client_id: str,
        redirect_uri: str,
        scopes: Sequence[str],
        presenter: RedirectPresenter,
    ) -> AuthState:
        """
        Performs the authorization code flow with automatic code exchange.

        Args:
            provider_config: Endpoints from discovery.
            client_id: The OAuth 2 client ID.
            redirect_uri: The registered custom-scheme redirect URI.
            scopes: Caller scopes; openid and profile are always added.
            presenter: The interactive surface that captures the redirect.

        Returns:
            AuthState: The new session.

        Raises:
            FlowAlreadyInProgressError: If another flow is pending.
            AuthorizationFailedError: On cancellation, transport failure, or rejection.
        """
        if self._in_flight:
            raise FlowAlreadyInProgressError("An authorization flow is already in progress")

        self._in_flight = True
        try:
            request = self.build_request(provider_config, client_id, redirect_uri, scopes)
            logger.info(f"Initiating authorization request with scopes: {request.scope}")

            try:
                redirect_url = await presenter.present(request.to_url(), request.redirect_uri)
            except AuthorizationFailedError:
                raise
            except Exception as e:
                raise AuthorizationFailedError(
                    f"Authorization presenter failed: {e}", AuthorizationFailureReason.TRANSPORT
                ) from e

            if redirect_url is None:
                raise AuthorizationFailedError("Authorization cancelled by the user", AuthorizationFailureReason.CANCELLED)

            response = parse_redirect(redirect_url, request)
            state = await self.exchange_code(request, response)
            logger.info("Successful authorization.")
            return state
        except AuthorizationFailedError as e:
            logger.error(f"Authorization error ({e.reason}): {e}")
            raise
        finally:
            self._in_flight = False
