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
Configuration for the coreason-session package.
"""

from pathlib import Path

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoreasonSessionConfig(BaseSettings):
    """
    Configuration settings for coreason-session.

    Attributes:
        issuer_url (str): The OpenID Connect issuer URL used for discovery.
        client_id (str): The public OAuth 2 client ID. Dynamic registration is not supported.
        redirect_uri_scheme (str): Custom application scheme used in the redirection URI.
        redirect_uri_endpoint (str): Remainder of the redirection URI after the scheme.
        scopes (list[str]): Extra scopes to request. "openid" and "profile" are always added.
        http_timeout (float): Timeout in seconds for every IdP network operation.
        clock_skew_leeway (int): Seconds before expiry at which an access token is treated as stale.
        auth_state_key (str): Storage key of the persisted session record.
        state_dir (Path): Directory of the file-backed key-value storage.
        end_session_endpoint (str | None): Logout endpoint used when discovery does not advertise one.
        api_url (str | None): Backend URL that receives scanned payloads.
        device_id (str | None): Optional identifier sent alongside each payload.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_SESSION_",
        case_sensitive=False,
    )

    unsafe_local_dev: bool = False
    issuer_url: str
    client_id: str
    redirect_uri_scheme: str = "io.identityserver.demo"
    redirect_uri_endpoint: str = ":/oauthredirect"
    scopes: list[str] = Field(default_factory=list)
    http_timeout: float = Field(default=30.0, gt=0, description="Timeout in seconds for all IdP network operations.")
    clock_skew_leeway: int = Field(default=60, ge=0)
    auth_state_key: str = "authState"
    state_dir: Path = Path(".coreason_session")
    end_session_endpoint: str | None = None
    api_url: str | None = None
    device_id: str | None = None

    @property
    def redirect_uri(self) -> str:
        return self.redirect_uri_scheme + self.redirect_uri_endpoint

    @field_validator("issuer_url", "end_session_endpoint", mode="after")
    @classmethod
    def validate_https(cls, v: str | None, info: ValidationInfo) -> str | None:
        """
        Ensures that IdP URLs use HTTPS, unless strictly opted out for local dev.
        """
        if v and v.startswith("http://") and not info.data.get("unsafe_local_dev", False):
            raise ValueError("HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing.")
        return v

    @field_validator("scopes")
    @classmethod
    def validate_scopes(cls, v: list[str]) -> list[str]:
        """
        Scopes are joined with spaces on the wire, so a single scope may not contain whitespace.
        """
        for scope in v:
            if not scope or any(ch.isspace() for ch in scope):
                raise ValueError(f"Invalid scope {scope!r}: scopes must be non-empty and contain no whitespace")
        return v

    @field_validator("api_url", "device_id", mode="before")
    @classmethod
    def empty_as_unset(cls, v: str | None) -> str | None:
        # Blank settings mean "not configured".
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("redirect_uri_scheme")
    @classmethod
    def validate_redirect_scheme(cls, v: str) -> str:
        """
        The redirect URI only receives the authorization redirect and must not be a network endpoint.
        """
        v = v.strip()
        if not v:
            raise ValueError("redirect_uri_scheme must not be empty")
        if v.lower() in ("http", "https"):
            raise ValueError("redirect_uri_scheme must be a custom application scheme, not http(s)")
        return v
