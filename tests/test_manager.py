# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_session

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from conftest import FakeIdP, FakePresenter, make_state, stored_json

from coreason_session.config import CoreasonSessionConfig
from coreason_session.exceptions import AuthorizationFailedError, DiscoveryFailedError
from coreason_session.manager import SessionManager
from coreason_session.models import StoredStateRecord
from coreason_session.storage import FileKeyValueStorage, MemoryKeyValueStorage


@pytest.fixture
def manager(
    config: CoreasonSessionConfig, storage: MemoryKeyValueStorage, http_client: httpx.AsyncClient
) -> SessionManager:
    return SessionManager(config, storage=storage, client=http_client)


@pytest.mark.asyncio
async def test_login_end_to_end(
    manager: SessionManager, presenter: FakePresenter, storage: MemoryKeyValueStorage, idp: FakeIdP
) -> None:
    assert manager.is_logged_in() is False

    state = await manager.login(presenter)

    assert state.access_token == "T1"
    assert manager.is_logged_in() is True
    assert manager.state == state
    assert stored_json(storage)["state"]["access_token"] == "T1"
    assert [r.url.path for r in idp.requests] == ["/.well-known/openid-configuration", "/token"]


@pytest.mark.asyncio
async def test_login_keeps_existing_session(manager: SessionManager, presenter: FakePresenter, idp: FakeIdP) -> None:
    manager.store.set_state(make_state("T0"))

    state = await manager.login(presenter)

    assert state.access_token == "T0"
    assert idp.requests == []
    assert presenter.presented == []


@pytest.mark.asyncio
async def test_forced_login_replaces_session(manager: SessionManager, presenter: FakePresenter) -> None:
    manager.store.set_state(make_state("T0"))

    state = await manager.login(presenter, force=True)

    assert state.access_token == "T1"
    assert manager.state == state


@pytest.mark.asyncio
async def test_failed_reauthorization_clears_session(
    manager: SessionManager, presenter: FakePresenter, idp: FakeIdP
) -> None:
    manager.store.set_state(make_state("T0"))
    error_observer = MagicMock()
    manager.store.on_authorization_error(error_observer)
    idp.discovery_status = 503

    with pytest.raises(DiscoveryFailedError):
        await manager.login(presenter, force=True)

    assert manager.state is None
    error_observer.assert_called_once()
    assert presenter.presented == []


@pytest.mark.asyncio
async def test_cancelled_login_stays_signed_out(manager: SessionManager, idp: FakeIdP) -> None:
    with pytest.raises(AuthorizationFailedError, match="cancelled"):
        await manager.login(FakePresenter(idp, cancel=True))
    assert manager.is_logged_in() is False


@pytest.mark.asyncio
async def test_presenter_crash_during_forced_login_clears_session(manager: SessionManager, idp: FakeIdP) -> None:
    manager.store.set_state(make_state("T0"))

    class BrokenPresenter(FakePresenter):
        async def present(self, authorization_url: str, redirect_uri: str) -> str | None:
            raise RuntimeError("display unavailable")

    with pytest.raises(AuthorizationFailedError, match="display unavailable"):
        await manager.login(BrokenPresenter(idp), force=True)

    assert manager.state is None
    assert manager.flow_driver.in_progress is False


def test_session_restored_at_construction(config: CoreasonSessionConfig, tmp_path: Path) -> None:
    storage = FileKeyValueStorage(tmp_path)
    state = make_state()
    storage.set("authState", StoredStateRecord(state=state, sequence=5).model_dump_json().encode())

    manager = SessionManager(config, storage=storage, client=httpx.AsyncClient())

    assert manager.is_logged_in() is True
    assert manager.state == state


def test_default_storage_uses_state_dir(tmp_path: Path) -> None:
    config = CoreasonSessionConfig(issuer_url="https://idp.example/", client_id="ios", state_dir=tmp_path / "prefs")
    manager = SessionManager(config, client=httpx.AsyncClient())
    manager.store.set_state(make_state())
    assert (tmp_path / "prefs" / "authState.json").exists()


@pytest.mark.asyncio
async def test_sign_out(manager: SessionManager, presenter: FakePresenter, idp: FakeIdP) -> None:
    await manager.login(presenter)

    await manager.sign_out()

    assert manager.is_logged_in() is False
    assert idp.requests_to("/connect/endsession")[0].url.params["id_token_hint"] == "ID1"


@pytest.mark.asyncio
async def test_with_fresh_token(manager: SessionManager, idp: FakeIdP) -> None:
    manager.store.set_state(make_state(expires_in=-10))
    action = AsyncMock(return_value=42)

    assert await manager.with_fresh_token(action) == 42
    action.assert_awaited_once_with("T2")


@pytest.mark.asyncio
async def test_manager_lifecycle_closes_internal_client(config: CoreasonSessionConfig) -> None:
    manager = SessionManager(config, storage=MemoryKeyValueStorage())
    assert manager._internal_client is True

    with patch.object(manager.client, "aclose", new_callable=AsyncMock) as mock_close:
        async with manager as entered:
            assert entered is manager
        mock_close.assert_awaited_once()


@pytest.mark.asyncio
async def test_manager_keeps_external_client_open(config: CoreasonSessionConfig) -> None:
    client = httpx.AsyncClient()
    manager = SessionManager(config, storage=MemoryKeyValueStorage(), client=client)
    assert manager._internal_client is False
    assert manager.client is client

    with patch.object(client, "aclose", new_callable=AsyncMock) as mock_close:
        async with manager:
            pass
        mock_close.assert_not_called()
    await client.aclose()


def test_unreadable_persisted_session_starts_signed_out(config: CoreasonSessionConfig, tmp_path: Path) -> None:
    (tmp_path / "authState.json").mkdir()

    manager = SessionManager(config, storage=FileKeyValueStorage(tmp_path), client=httpx.AsyncClient())

    assert manager.is_logged_in() is False


@pytest.mark.asyncio
async def test_sign_out_derives_end_session_endpoint_from_issuer(
    manager: SessionManager, idp: FakeIdP, storage: MemoryKeyValueStorage
) -> None:
    assert manager.config.end_session_endpoint is None
    state = make_state()
    manager.store.set_state(
        state.model_copy(update={"authorization": state.authorization.model_copy(update={"end_session_endpoint": None})})
    )

    await manager.sign_out()

    request = idp.requests_to("/connect/endsession")[0]
    assert str(request.url).startswith("https://idp.example/connect/endsession?")
    assert request.url.params["id_token_hint"] == "ID1"
    assert stored_json(storage)["state"] is None
