"""Persistence of alerts, rules and alert configuration.

State is kept as three JSON documents in a key-value StateStore:

    alerts        -> list[Alert]
    alert_rules   -> list[AlertRule]
    alert_config  -> AlertConfig

Timestamps are serialized as ISO-8601 strings by pydantic and parsed back to
timezone-aware datetimes on load.

Usage:
    from photo_alerts.alerts.repository import AlertStateRepository, FileStateStore

    repo = AlertStateRepository(FileStateStore("data/alert-state"))
    rules = await repo.load_rules()
    await repo.save_alerts(alerts)
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

from photo_alerts.alerts.factory import seed_default_rules
from photo_alerts.alerts.models import Alert, AlertConfig, AlertRule

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

ALERTS_KEY = "alerts"
RULES_KEY = "alert_rules"
CONFIG_KEY = "alert_config"

_alerts_adapter = TypeAdapter(list[Alert])
_rules_adapter = TypeAdapter(list[AlertRule])


class StateStore(ABC):
    """Minimal async key-value store holding serialized documents."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored document, or None if the key was never written."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a document, replacing any previous value."""
        pass

    async def close(self) -> None:
        """Release any connection held by the store."""
        return None


class MemoryStateStore(StateStore):
    """Process-local store; state is lost on exit."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value


class FileStateStore(StateStore):
    """One ``{key}.json`` file per key in a directory.

    Writes go to a temporary file in the same directory which then replaces
    the target, so a crash mid-write never leaves a truncated document.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, self.path_for(key))

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, self.path_for(key), value)

    @staticmethod
    def _read(path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _write(self, path: Path, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class RedisStateStore(StateStore):
    """Redis-backed store. All keys are namespaced under ``prefix``.

    Args:
        redis: Async Redis client instance
        prefix: Key namespace (default: "photo_alerts")
    """

    def __init__(self, redis: Redis, prefix: str = "photo_alerts") -> None:
        self.redis = redis
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def get(self, key: str) -> str | None:
        data = await self.redis.get(self._key(key))
        if data is None:
            return None
        if isinstance(data, bytes):
            return data.decode("utf-8")
        return data

    async def set(self, key: str, value: str) -> None:
        await self.redis.set(self._key(key), value)

    async def close(self) -> None:
        await self.redis.aclose()


class AlertStateRepository:
    """Typed load/save of the alert system's persisted state.

    Loads never raise: missing or corrupt documents fall back to an empty
    alert list, the seeded default rules, or the default config. Saves
    propagate store errors to the caller.
    """

    def __init__(self, store: StateStore) -> None:
        self.store = store

    async def load_alerts(self) -> list[Alert]:
        raw = await self._read(ALERTS_KEY)
        if raw is None:
            return []
        try:
            return _alerts_adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning("Stored alerts are corrupt, starting with none: %s", e)
            return []

    async def load_rules(self) -> list[AlertRule]:
        """Load rules, seeding (and saving) the defaults when none are stored.

        An explicitly stored empty list is respected.
        """
        raw = await self._read(RULES_KEY)
        if raw is not None:
            try:
                return _rules_adapter.validate_json(raw)
            except ValidationError as e:
                logger.warning("Stored alert rules are corrupt, resetting to defaults: %s", e)

        rules = seed_default_rules()
        try:
            await self.save_rules(rules)
        except Exception as e:
            logger.error("Failed to save seeded default rules: %s", e)
        return rules

    async def load_config(self) -> AlertConfig:
        """Load the config; stored sections replace the defaults' sections."""
        raw = await self._read(CONFIG_KEY)
        if raw is None:
            return AlertConfig()
        try:
            stored: Any = json.loads(raw)
            if not isinstance(stored, dict):
                raise ValueError(f"expected an object, got {type(stored).__name__}")
            return AlertConfig().merged(stored)
        except (ValueError, ValidationError) as e:
            logger.warning("Stored alert config is corrupt, using defaults: %s", e)
            return AlertConfig()

    async def save_alerts(self, alerts: list[Alert]) -> None:
        await self.store.set(ALERTS_KEY, _alerts_adapter.dump_json(alerts).decode("utf-8"))

    async def save_rules(self, rules: list[AlertRule]) -> None:
        await self.store.set(RULES_KEY, _rules_adapter.dump_json(rules).decode("utf-8"))

    async def save_config(self, config: AlertConfig) -> None:
        await self.store.set(CONFIG_KEY, config.model_dump_json())

    async def _read(self, key: str) -> str | None:
        try:
            return await self.store.get(key)
        except Exception as e:
            logger.warning("Failed to read %s from state store: %s", key, e)
            return None
