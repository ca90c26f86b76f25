from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import FAMILY_PASSWORD

from recipe_box.cloudsync import SyncConfig, SyncEngine, SyncManager, SyncManagerError
from recipe_box.const import CONF_BASE_URL, CONF_REQUEST_TIMEOUT, CONF_STORE_PATH, CONF_SYNC_INTERVAL


def test_config_from_options_normalises_values() -> None:
    config = SyncConfig.from_options(
        {
            CONF_BASE_URL: " https://recipes.example/ ",
            CONF_STORE_PATH: "",
            CONF_SYNC_INTERVAL: 3,
            CONF_REQUEST_TIMEOUT: "bad",
        }
    )
    assert config.base_url == "https://recipes.example"
    assert config.store_path == "recipe_box.db"
    assert config.interval == 15
    assert config.request_timeout == 30
    assert config.ready is True
    assert SyncConfig.from_options({}).ready is False


@pytest.mark.asyncio
async def test_start_requires_base_url(engine: SyncEngine) -> None:
    manager = SyncManager(SyncConfig(), engine=engine)
    with pytest.raises(SyncManagerError) as exc:
        await manager.async_start()
    assert exc.value.reason == "not_configured"


@pytest.mark.asyncio
async def test_sync_now_runs_cycle(engine: SyncEngine) -> None:
    manager = SyncManager(SyncConfig(base_url="https://recipes.example"), engine=engine)
    await engine.authenticate(FAMILY_PASSWORD)
    engine.save_settings({"autoSync": False})
    await engine.upsert_recipe({"id": "r1", "shareToFamily": True})

    result = await manager.async_sync_now()

    assert result["pushed"] == 1
    assert result["status"]["unsynced"] == 0
    assert manager.last_cycle == {"pulled": 0, "pushed": 1, "unsynced": 0, "cursor": 0}


@pytest.mark.asyncio
async def test_sync_now_rejects_empty_request(engine: SyncEngine) -> None:
    manager = SyncManager(SyncConfig(base_url="https://recipes.example"), engine=engine)
    with pytest.raises(SyncManagerError):
        await manager.async_sync_now(push=False, pull=False)


@pytest.mark.asyncio
async def test_reconnect_triggers_cycle() -> None:
    engine = MagicMock()
    engine.online = False
    engine.sync = AsyncMock(return_value={"pulled": 0, "pushed": 0, "unsynced": 0, "cursor": 0})
    engine.status = MagicMock(return_value={})
    manager = SyncManager(SyncConfig(base_url="https://recipes.example"), engine=engine)

    assert await manager.async_set_online(False) is None
    await manager.async_set_online(True)

    engine.sync.assert_awaited_once_with(pull=True, push=True)
    assert engine.online is True


@pytest.mark.asyncio
async def test_background_task_runs_until_stopped() -> None:
    engine = MagicMock()
    engine.online = True
    engine.auto_sync_enabled = MagicMock(return_value=True)
    engine.sync = AsyncMock(return_value={"pulled": 0, "pushed": 0, "unsynced": 0, "cursor": 0})
    engine.async_close = AsyncMock()
    manager = SyncManager(SyncConfig(base_url="https://recipes.example", interval=15), engine=engine)

    with patch("recipe_box.cloudsync.manager.asyncio.sleep", AsyncMock(side_effect=[None, asyncio.CancelledError()])):
        await manager.async_start()
        assert manager.running is True
        await asyncio.gather(manager._task, return_exceptions=True)

    assert engine.sync.await_count == 2
    await manager.async_close()
    assert manager.running is False
    engine.async_close.assert_awaited_once()


@pytest.mark.asyncio
async def test_background_task_skips_when_auto_sync_off() -> None:
    engine = MagicMock()
    engine.online = True
    engine.auto_sync_enabled = MagicMock(return_value=False)
    engine.sync = AsyncMock()
    manager = SyncManager(SyncConfig(base_url="https://recipes.example"), engine=engine)

    with patch("recipe_box.cloudsync.manager.asyncio.sleep", AsyncMock(side_effect=asyncio.CancelledError())):
        await manager.async_start()
        await asyncio.gather(manager._task, return_exceptions=True)

    engine.sync.assert_not_awaited()
