# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_session

import httpx
import pytest
from conftest import make_state
from pydantic import ValidationError

from coreason_session.models import (
    AuthorizationRequest,
    AuthState,
    PKCEParameters,
    ProviderConfiguration,
    TokenResponse,
)
from coreason_session.pkce import generate_pkce


def test_auth_state_requires_access_token_and_expiry() -> None:
    authorization = make_state().authorization
    with pytest.raises(ValidationError):
        AuthState(access_token="T1", authorization=authorization)  # type: ignore[call-arg]
    with pytest.raises(ValidationError):
        AuthState(access_token="", expires_at=1.0, authorization=authorization)


def test_auth_state_is_immutable() -> None:
    state = make_state()
    with pytest.raises(ValidationError):
        state.access_token = "other"  # type: ignore[misc]


def test_from_token_response_computes_expiry() -> None:
    response = TokenResponse(access_token="T1", expires_in=3600, refresh_token="R1", id_token="ID1")
    state = AuthState.from_token_response(response, make_state().authorization, now=1000.0)
    assert state.expires_at == 4600.0
    assert state.refresh_token == "R1"
    assert state.last_error is None


def test_with_refreshed_tokens_merges() -> None:
    state = make_state().model_copy(update={"last_error": "invalid_grant", "scope": "openid profile"})

    refreshed = state.with_refreshed_tokens(TokenResponse(access_token="T2", expires_in=60), now=2000.0)

    assert refreshed.access_token == "T2"
    assert refreshed.expires_at == 2060.0
    assert refreshed.refresh_token == "R1"
    assert refreshed.id_token == "ID1"
    assert refreshed.scope == "openid profile"
    assert refreshed.last_error is None
    assert refreshed.authorization == state.authorization
    # The original is untouched
    assert state.access_token == "T1"


def test_is_expired_with_leeway() -> None:
    state = make_state().model_copy(update={"expires_at": 1000.0})
    assert state.is_expired(now=999.0) is False
    assert state.is_expired(now=1000.0) is True
    assert state.is_expired(leeway=60, now=950.0) is True
    assert state.is_expired(leeway=60, now=939.0) is False


def test_auth_state_repr_hides_tokens() -> None:
    state = make_state("secret-access", refresh_token="secret-refresh", id_token="secret-id")
    for text in (repr(state), str(state), f"{state}"):
        assert "secret" not in text
        assert "<REDACTED>" in text


def test_authorization_request_url(provider_config: ProviderConfiguration) -> None:
    request = AuthorizationRequest(
        provider=provider_config,
        client_id="ios",
        redirect_uri="io.identityserver.demo:/oauthredirect",
        scopes=["openid", "profile"],
        pkce=generate_pkce(),
        state="s1",
    )
    url = httpx.URL(request.to_url())
    assert url.params["scope"] == "openid profile"
    assert url.params["state"] == "s1"
    assert "nonce" not in url.params
    assert request.pkce.code_verifier not in str(url)


def test_pkce_verifier_charset() -> None:
    with pytest.raises(ValidationError):
        PKCEParameters(code_verifier="a" * 42 + "!", code_challenge="c" * 43)


def test_token_response_rejects_missing_expiry() -> None:
    with pytest.raises(ValidationError):
        TokenResponse.model_validate({"access_token": "T1"})
    with pytest.raises(ValidationError):
        TokenResponse.model_validate({"access_token": "T1", "expires_in": -1})
