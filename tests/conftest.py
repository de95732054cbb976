from datetime import datetime, timedelta, timezone

import pytest
from photo_alerts.alerts.lifecycle import AlertLifecycle
from photo_alerts.alerts.models import Alert, AlertRule, AlertSeverity, AlertStatus, AlertType
from photo_alerts.metrics.models import MetricData
from photo_alerts.metrics.store import MetricStore

START = datetime(2026, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Mutable clock; tests move time with advance() instead of sleeping."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metric_store(clock):
    return MetricStore(clock=clock)


@pytest.fixture
def lifecycle(clock):
    return AlertLifecycle(clock=clock)


@pytest.fixture
def feed(metric_store, clock):
    """Add a sample stamped with the fake clock's current time."""

    def _feed(name: str, value: float, **tags: str) -> MetricData:
        sample = MetricData(name=name, value=value, timestamp=clock(), tags=tags)
        metric_store.add_metric(sample)
        return sample

    return _feed


def make_rule(**overrides) -> AlertRule:
    """Storage quota rule (gte 80, medium, 60 minute cooldown) with overrides."""
    data = {
        "id": "quota-80",
        "name": "Storage Quota Warning (80%)",
        "description": "Alert when storage usage exceeds 80% of quota",
        "type": AlertType.STORAGE_QUOTA,
        "severity": AlertSeverity.MEDIUM,
        "conditions": [{"metric": "storage.quota_percentage", "operator": "gte", "threshold": 80}],
        "actions": [
            {"channel": "in_app", "target": "dashboard"},
            {"channel": "browser", "target": "user"},
        ],
        "cooldown_minutes": 60,
        "created_at": START,
        "updated_at": START,
    }
    data.update(overrides)
    return AlertRule.model_validate(data)


def make_alert(**overrides) -> Alert:
    data = {
        "rule_id": "quota-80",
        "rule_name": "Storage Quota Warning (80%)",
        "type": AlertType.STORAGE_QUOTA,
        "severity": AlertSeverity.MEDIUM,
        "status": AlertStatus.ACTIVE,
        "title": "Storage Quota Warning (80%)",
        "message": "Alert when storage usage exceeds 80% of quota",
        "triggered_at": START,
    }
    data.update(overrides)
    return Alert.model_validate(data)


@pytest.fixture
def rule_factory():
    return make_rule


@pytest.fixture
def alert_factory():
    return make_alert
