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
Data models for the coreason-session package.
"""

import time
from enum import StrEnum
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field


class CoreasonScope(StrEnum):
    OPENID = "openid"
    PROFILE = "profile"


# Current layout of StoredStateRecord. Records with a higher version are unreadable.
STATE_RECORD_VERSION = 1


class ProviderConfiguration(BaseModel):
    """
    Provider metadata from .well-known/openid-configuration.

    Fetched once per issuer and never persisted.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    issuer: str | None = Field(default=None, description="The OIDC issuer URL.")
    authorization_endpoint: str = Field(..., min_length=1, description="The authorization endpoint URL.")
    token_endpoint: str = Field(..., min_length=1, description="The token endpoint URL.")
    end_session_endpoint: str | None = Field(default=None, description="The RP-initiated logout endpoint URL.")
    response_types_supported: list[str] = Field(default_factory=list)
    scopes_supported: list[str] = Field(default_factory=list)
    code_challenge_methods_supported: list[str] = Field(default_factory=list)


class PKCEParameters(BaseModel):
    """
    Proof Key for Code Exchange (RFC 7636) parameters for a single authorization attempt.

    Attributes:
        code_verifier (str): High-entropy secret retained by the client.
        code_challenge (str): BASE64URL(SHA256(code_verifier)) sent with the authorization request.
        code_challenge_method (str): Always "S256".
    """

    model_config = ConfigDict(frozen=True)

    code_verifier: str = Field(..., min_length=43, max_length=128, pattern=r"^[A-Za-z0-9\-._~]+$")
    code_challenge: str = Field(..., min_length=43, max_length=128)
    code_challenge_method: str = "S256"

    def __repr__(self) -> str:
        return f"PKCEParameters(code_verifier='<REDACTED>', code_challenge={self.code_challenge!r})"

    def __str__(self) -> str:
        return self.__repr__()


class AuthorizationRequest(BaseModel):
    """
    A single sign-in attempt. Transient: lives only as long as the flow that created it.
    """

    model_config = ConfigDict(frozen=True)

    provider: ProviderConfiguration
    client_id: str = Field(..., min_length=1)
    redirect_uri: str = Field(..., min_length=1)
    scopes: list[str]
    response_type: str = "code"
    pkce: PKCEParameters
    state: str = Field(..., min_length=1)
    nonce: str | None = None
    additional_parameters: dict[str, str] = Field(default_factory=dict)

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    def to_url(self) -> str:
        """
        Renders the URL that the redirect presenter opens.
        Existing query parameters of the authorization endpoint are preserved.
        """
        params: dict[str, Any] = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": self.response_type,
            "scope": self.scope,
            "state": self.state,
            "code_challenge": self.pkce.code_challenge,
            "code_challenge_method": self.pkce.code_challenge_method,
        }
        if self.nonce:
            params["nonce"] = self.nonce
        params.update(self.additional_parameters)
        return str(httpx.URL(self.provider.authorization_endpoint).copy_merge_params(params))


class AuthorizationResponse(BaseModel):
    """
    The (code, state) pair captured from the authorization redirect.
    """

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., min_length=1)
    state: str | None = None


class TokenResponse(BaseModel):
    """
    Response from the token endpoint.

    Attributes:
        access_token (str): The access token issued by the authorization server.
        token_type (str): The type of the token (e.g. "Bearer").
        expires_in (int): The lifetime in seconds of the access token.
        refresh_token (str | None): The refresh token, if issued.
        id_token (str | None): The ID token, if issued.
        scope (str | None): The granted scopes, if different from the requested ones.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    token_type: str = "Bearer"
    expires_in: int = Field(..., ge=0)
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None


class AuthorizationMetadata(BaseModel):
    """
    Non-secret facts about the request that produced an AuthState.

    Persisted with the session so that refresh and logout work after a restart without
    repeating discovery. Never contains PKCE material.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    issuer: str | None = None
    client_id: str
    redirect_uri: str
    scopes: list[str] = Field(default_factory=list)
    token_endpoint: str
    end_session_endpoint: str | None = None

    @classmethod
    def from_request(cls, request: AuthorizationRequest) -> "AuthorizationMetadata":
        return cls(
            issuer=request.provider.issuer,
            client_id=request.client_id,
            redirect_uri=request.redirect_uri,
            scopes=list(request.scopes),
            token_endpoint=request.provider.token_endpoint,
            end_session_endpoint=request.provider.end_session_endpoint,
        )


class AuthState(BaseModel):
    """
    The durable session record.

    A session is either absent (signed out) or carries at least an access token and its
    expiry; partially populated states cannot be constructed. Instances are frozen and
    compared by value; mutate only through AuthStateStore.set_state.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = Field(..., min_length=1)
    expires_at: float = Field(..., description="Access token expiry as a UNIX timestamp.")
    token_type: str = "Bearer"
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None
    authorization: AuthorizationMetadata
    last_error: str | None = None

    @classmethod
    def from_token_response(
        cls,
        response: TokenResponse,
        authorization: AuthorizationMetadata,
        now: float | None = None,
    ) -> "AuthState":
        issued_at = time.time() if now is None else now
        return cls(
            access_token=response.access_token,
            expires_at=issued_at + response.expires_in,
            token_type=response.token_type,
            refresh_token=response.refresh_token,
            id_token=response.id_token,
            scope=response.scope,
            authorization=authorization,
        )

    def with_refreshed_tokens(self, response: TokenResponse, now: float | None = None) -> "AuthState":
        """
        Merges a refresh response into this state.
        Providers may omit refresh_token or id_token on refresh; the previous values are kept.
        """
        issued_at = time.time() if now is None else now
        return self.model_copy(
            update={
                "access_token": response.access_token,
                "expires_at": issued_at + response.expires_in,
                "token_type": response.token_type,
                "refresh_token": response.refresh_token or self.refresh_token,
                "id_token": response.id_token or self.id_token,
                "scope": response.scope or self.scope,
                "last_error": None,
            }
        )

    def is_expired(self, leeway: float = 0.0, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current >= self.expires_at - leeway

    def __repr__(self) -> str:
        # Tokens MUST NOT appear in reprs
        return (
            f"AuthState(access_token='<REDACTED>', expires_at={self.expires_at!r}, "
            f"refresh_token={'<REDACTED>' if self.refresh_token else None}, "
            f"id_token={'<REDACTED>' if self.id_token else None}, "
            f"last_error={self.last_error!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


class StoredStateRecord(BaseModel):
    """
    Serialized form of AuthState under the fixed storage key. A null state is the
    signed-out tombstone.
    """

    model_config = ConfigDict(extra="ignore")

    version: int = STATE_RECORD_VERSION
    sequence: int = 0
    saved_at: float = Field(default_factory=time.time)
    state: AuthState | None = None
