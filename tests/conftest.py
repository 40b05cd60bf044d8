# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_session

import json
import time
from collections.abc import AsyncGenerator
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import pytest_asyncio

from coreason_session.config import CoreasonSessionConfig
from coreason_session.models import AuthorizationMetadata, AuthState, ProviderConfiguration
from coreason_session.pkce import verify_code_challenge
from coreason_session.storage import MemoryKeyValueStorage

ISSUER = "https://idp.example/"
REDIRECT_URI = "io.identityserver.demo:/oauthredirect"

DISCOVERY_DOCUMENT = {
    "issuer": "https://idp.example",
    "authorization_endpoint": "https://idp.example/authorize",
    "token_endpoint": "https://idp.example/token",
    "end_session_endpoint": "https://idp.example/connect/endsession",
    "jwks_uri": "https://idp.example/jwks",
    "response_types_supported": ["code"],
    "code_challenge_methods_supported": ["S256"],
}


class FakeIdP:
    """
    In-process identity provider served through httpx.MockTransport.

    Verifies PKCE like a real provider: a code is bound to the challenge of the
    authorization URL it was issued for.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.discovery_document: dict[str, Any] = dict(DISCOVERY_DOCUMENT)
        self.discovery_status = 200
        self.next_code = "abc123"
        self.codes: dict[str, str] = {}
        self.code_response: dict[str, Any] = {
            "access_token": "T1",
            "token_type": "Bearer",
            "expires_in": 3600,
            "refresh_token": "R1",
            "id_token": "ID1",
        }
        self.refresh_response: dict[str, Any] = {"access_token": "T2", "token_type": "Bearer", "expires_in": 3600}
        self.valid_refresh_tokens = {"R1"}
        self.token_error: httpx.Response | Exception | None = None
        self.end_session_status = 200
        self.end_session_error: Exception | None = None
        self.api_status = 200

    def issue_code(self, authorization_url: str) -> tuple[str, str]:
        params = parse_qs(urlparse(authorization_url).query)
        code = self.next_code
        self.codes[code] = params["code_challenge"][0]
        return code, params["state"][0]

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def token_forms(self) -> list[dict[str, str]]:
        return [{k: v[0] for k, v in parse_qs(r.content.decode()).items()} for r in self.requests_to("/token")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/.well-known/openid-configuration":
            return httpx.Response(self.discovery_status, json=self.discovery_document)

        if path == "/token":
            if isinstance(self.token_error, Exception):
                raise self.token_error
            if self.token_error is not None:
                return self.token_error
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            return self._token(form)

        if path == "/connect/endsession":
            if self.end_session_error is not None:
                raise self.end_session_error
            return httpx.Response(self.end_session_status, text="" if self.end_session_status < 300 else "error")

        if path == "/api/scan":
            return httpx.Response(self.api_status, json={"ok": self.api_status == 200})

        return httpx.Response(404)

    def _token(self, form: dict[str, str]) -> httpx.Response:
        grant_type = form.get("grant_type")
        if grant_type == "authorization_code":
            challenge = self.codes.pop(form.get("code", ""), None)
            if challenge is None or not verify_code_challenge(form.get("code_verifier", ""), challenge):
                return httpx.Response(400, json={"error": "invalid_grant", "error_description": "PKCE mismatch"})
            return httpx.Response(200, json=self.code_response)
        if grant_type == "refresh_token":
            if form.get("refresh_token") not in self.valid_refresh_tokens:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json=self.refresh_response)
        return httpx.Response(400, json={"error": "unsupported_grant_type"})


class FakePresenter:
    """Redirect presenter that "signs in" at the FakeIdP without user interaction."""

    def __init__(self, idp: FakeIdP, cancel: bool = False, redirect: str | None = None) -> None:
        self.idp = idp
        self.cancel = cancel
        self.redirect = redirect
        self.presented: list[str] = []

    async def present(self, authorization_url: str, redirect_uri: str) -> str | None:
        self.presented.append(authorization_url)
        if self.cancel:
            return None
        if self.redirect is not None:
            return self.redirect
        code, state = self.idp.issue_code(authorization_url)
        return f"{redirect_uri}?code={code}&state={state}"


class FlakyStorage(MemoryKeyValueStorage):
    """Memory storage whose reads, writes or deletes can be made to fail like a broken disk."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_reads = False
        self.fail_writes = False
        self.fail_deletes = False

    def get(self, key: str) -> bytes | None:
        if self.fail_reads:
            raise PermissionError(13, "Permission denied", key)
        return super().get(key)

    def set(self, key: str, value: bytes) -> None:
        if self.fail_writes:
            raise OSError(28, "No space left on device")
        super().set(key, value)

    def delete(self, key: str) -> None:
        if self.fail_deletes:
            raise OSError(30, "Read-only file system")
        super().delete(key)


def make_state(
    access_token: str = "T1",
    expires_in: float = 3600,
    refresh_token: str | None = "R1",
    id_token: str | None = "ID1",
) -> AuthState:
    return AuthState(
        access_token=access_token,
        expires_at=time.time() + expires_in,
        refresh_token=refresh_token,
        id_token=id_token,
        authorization=AuthorizationMetadata(
            issuer="https://idp.example",
            client_id="ios",
            redirect_uri=REDIRECT_URI,
            scopes=["openid", "profile"],
            token_endpoint="https://idp.example/token",
            end_session_endpoint="https://idp.example/connect/endsession",
        ),
    )


def stored_json(storage: MemoryKeyValueStorage, key: str = "authState") -> Any:
    raw = storage.get(key)
    return None if raw is None else json.loads(raw)


@pytest.fixture
def idp() -> FakeIdP:
    return FakeIdP()


@pytest.fixture
def presenter(idp: FakeIdP) -> FakePresenter:
    return FakePresenter(idp)


@pytest.fixture
def provider_config() -> ProviderConfiguration:
    return ProviderConfiguration.model_validate(DISCOVERY_DOCUMENT)


@pytest.fixture
def storage() -> MemoryKeyValueStorage:
    return MemoryKeyValueStorage()


@pytest.fixture
def config() -> CoreasonSessionConfig:
    return CoreasonSessionConfig(
        issuer_url=ISSUER,
        client_id="ios",
        api_url="https://idp.example/api/scan",
        device_id="scanner-7",
    )


@pytest_asyncio.fixture
async def http_client(idp: FakeIdP) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(idp.handler), timeout=30.0) as client:
        yield client
