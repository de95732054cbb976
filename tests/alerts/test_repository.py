"""Tests for alert state persistence."""

import json
import logging
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from photo_alerts.alerts.models import AlertConfig, AlertStatus, ConditionSnapshot, NotificationRecord
from photo_alerts.alerts.repository import (
    ALERTS_KEY,
    CONFIG_KEY,
    RULES_KEY,
    AlertStateRepository,
    FileStateStore,
    MemoryStateStore,
    RedisStateStore,
    StateStore,
)


class BrokenStore(StateStore):
    """Store whose reads and writes always fail."""

    async def get(self, key):
        raise ConnectionError("store offline")

    async def set(self, key, value):
        raise ConnectionError("store offline")


@pytest.fixture
def store():
    return MemoryStateStore()


@pytest.fixture
def repo(store):
    return AlertStateRepository(store)


class TestAlerts:
    """Round-trip and fallback of the alert list."""

    @pytest.mark.asyncio
    async def test_round_trip_keeps_timestamps_and_history(self, repo, alert_factory, clock):
        alert = alert_factory(
            status="acknowledged",
            acknowledged_at=clock() + timedelta(minutes=5),
            acknowledged_by="alice",
            details=[
                ConditionSnapshot(
                    metric="storage.quota_percentage",
                    current_value=85,
                    threshold=80,
                    operator="gte",
                )
            ],
            notifications_sent=[
                NotificationRecord(channel="slack", target="#alerts", sent_at=clock(), success=False, error="boom")
            ],
        )

        await repo.save_alerts([alert])
        (loaded,) = await repo.load_alerts()

        assert loaded == alert
        assert loaded.status == AlertStatus.ACKNOWLEDGED
        assert loaded.triggered_at.tzinfo is not None
        assert loaded.acknowledged_at == clock() + timedelta(minutes=5)
        assert loaded.notifications_sent[0].error == "boom"

    @pytest.mark.asyncio
    async def test_missing_is_empty(self, repo):
        assert await repo.load_alerts() == []

    @pytest.mark.asyncio
    async def test_corrupt_is_empty(self, store, repo, caplog):
        store.data[ALERTS_KEY] = "{not json"

        with caplog.at_level(logging.WARNING):
            assert await repo.load_alerts() == []

        assert "corrupt" in caplog.text

    @pytest.mark.asyncio
    async def test_unreadable_store_is_empty(self):
        assert await AlertStateRepository(BrokenStore()).load_alerts() == []


class TestRules:
    """Seeding and round-trip of rules."""

    @pytest.mark.asyncio
    async def test_missing_seeds_and_saves_defaults(self, store, repo):
        rules = await repo.load_rules()

        assert len(rules) == 8
        stored = json.loads(store.data[RULES_KEY])
        assert [r["id"] for r in stored] == [r.id for r in rules]

    @pytest.mark.asyncio
    async def test_seeded_ids_are_stable_across_loads(self, repo):
        first = await repo.load_rules()
        second = await repo.load_rules()
        assert [r.id for r in first] == [r.id for r in second]

    @pytest.mark.asyncio
    async def test_stored_empty_list_respected(self, store, repo):
        store.data[RULES_KEY] = "[]"
        assert await repo.load_rules() == []

    @pytest.mark.asyncio
    async def test_corrupt_resets_to_defaults(self, store, repo):
        store.data[RULES_KEY] = json.dumps([{"name": "no type"}])
        assert len(await repo.load_rules()) == 8

    @pytest.mark.asyncio
    async def test_seed_save_failure_still_returns_defaults(self, caplog):
        repo = AlertStateRepository(BrokenStore())

        with caplog.at_level(logging.ERROR):
            rules = await repo.load_rules()

        assert len(rules) == 8
        assert "Failed to save seeded default rules" in caplog.text

    @pytest.mark.asyncio
    async def test_round_trip(self, repo, rule_factory):
        rule = rule_factory(cooldown_minutes=5)
        await repo.save_rules([rule])
        assert await repo.load_rules() == [rule]


class TestConfig:
    """Loading and merging of the alert config."""

    @pytest.mark.asyncio
    async def test_missing_is_default(self, repo):
        assert await repo.load_config() == AlertConfig()

    @pytest.mark.asyncio
    async def test_partial_document_merged_over_defaults(self, store, repo):
        store.data[CONFIG_KEY] = json.dumps({"enabled": False})

        config = await repo.load_config()

        assert config.enabled is False
        assert config.escalation_settings == AlertConfig().escalation_settings

    @pytest.mark.asyncio
    async def test_round_trip(self, repo, clock):
        config = AlertConfig().merged(
            {"maintenance_mode": {"enabled": True, "suppress_all": True, "until": clock().isoformat()}}
        )

        await repo.save_config(config)

        assert await repo.load_config() == config

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["[1, 2]", "{oops", json.dumps({"colour": "red"})])
    async def test_corrupt_is_default(self, store, repo, raw):
        store.data[CONFIG_KEY] = raw
        assert await repo.load_config() == AlertConfig()


class TestFileStateStore:
    """Tests for FileStateStore."""

    @pytest.mark.asyncio
    async def test_missing_key(self, tmp_path):
        assert await FileStateStore(tmp_path / "state").get("alerts") is None

    @pytest.mark.asyncio
    async def test_write_creates_directory(self, tmp_path):
        store = FileStateStore(tmp_path / "state")

        await store.set("alerts", "[]")
        await store.set("alerts", '[{"x": 1}]')

        assert await store.get("alerts") == '[{"x": 1}]'
        assert sorted(p.name for p in (tmp_path / "state").iterdir()) == ["alerts.json"]


class TestRedisStateStore:
    """Tests for RedisStateStore."""

    @pytest.fixture
    def redis(self):
        client = MagicMock()
        client.get = AsyncMock(return_value=b'{"enabled": true}')
        client.set = AsyncMock()
        client.aclose = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_keys_are_prefixed(self, redis):
        store = RedisStateStore(redis, prefix="test")

        await store.set("alert_config", "{}")
        value = await store.get("alert_config")

        redis.set.assert_awaited_once_with("test:alert_config", "{}")
        redis.get.assert_awaited_once_with("test:alert_config")
        assert value == '{"enabled": true}'

    @pytest.mark.asyncio
    async def test_missing_key(self, redis):
        redis.get.return_value = None
        assert await RedisStateStore(redis).get("alerts") is None

    @pytest.mark.asyncio
    async def test_close(self, redis):
        await RedisStateStore(redis).close()
        redis.aclose.assert_awaited_once()
