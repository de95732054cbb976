"""Tests for the in-app alert event bus."""

import logging

import pytest
from photo_alerts.alerts.events import AlertEventBus, AlertFired


class TestAlertFired:
    def test_level_from_severity(self, alert_factory):
        assert AlertFired.for_alert(alert_factory(severity="low")).level == "success"
        assert AlertFired.for_alert(alert_factory(severity="medium")).level == "warning"
        assert AlertFired.for_alert(alert_factory(severity="critical")).level == "error"


class TestAlertEventBus:
    """Tests for subscribe/publish."""

    @pytest.mark.asyncio
    async def test_delivers_in_subscription_order(self, alert_factory):
        bus = AlertEventBus()
        calls = []

        async def first(event):
            calls.append("first")

        async def second(event):
            calls.append("second")

        bus.subscribe(first)
        bus.subscribe(second)

        delivered = await bus.publish(AlertFired.for_alert(alert_factory()))

        assert delivered == 2
        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, alert_factory, caplog):
        bus = AlertEventBus()
        received = []

        async def broken(event):
            raise RuntimeError("render failed")

        async def working(event):
            received.append(event)

        bus.subscribe(broken)
        bus.subscribe(working)

        with caplog.at_level(logging.ERROR):
            delivered = await bus.publish(AlertFired.for_alert(alert_factory()))

        assert delivered == 1
        assert len(received) == 1
        assert "render failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unsubscribe(self, alert_factory):
        bus = AlertEventBus()
        received = []

        async def handler(event):
            received.append(event)

        unsubscribe = bus.subscribe(handler)
        assert bus.subscriber_count == 1

        unsubscribe()
        unsubscribe()

        assert bus.subscriber_count == 0
        assert await bus.publish(AlertFired.for_alert(alert_factory())) == 0
        assert received == []
