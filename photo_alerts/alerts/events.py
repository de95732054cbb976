"""In-process publish/subscribe for in-app alert notifications.

The dispatcher's in-app sender publishes an AlertFired event for each alert;
the presentation layer subscribes to render toasts and banners.

Usage:
    from photo_alerts.alerts.events import AlertEventBus

    bus = AlertEventBus()

    async def show_toast(event: AlertFired) -> None:
        ...

    unsubscribe = bus.subscribe(show_toast)
    await bus.publish(AlertFired.for_alert(alert))
    unsubscribe()
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from photo_alerts.alerts.formatting import notification_level
from photo_alerts.alerts.models import Alert

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlertFired:
    """An alert to surface in-app.

    Attributes:
        alert: The alert that fired (or was raised manually)
        level: Toast level: "error", "warning" or "success"
    """

    alert: Alert
    level: str

    @classmethod
    def for_alert(cls, alert: Alert) -> AlertFired:
        return cls(alert=alert, level=notification_level(alert.severity))


class AlertFiredHandler(Protocol):
    """Protocol for in-app notification subscribers."""

    async def __call__(self, event: AlertFired) -> None:
        """Handle an AlertFired event."""
        ...


class AlertEventBus:
    """Delivers AlertFired events to every subscriber, in subscription order.

    Errors in individual handlers are logged but do not prevent the other
    handlers from receiving the event.
    """

    def __init__(self) -> None:
        self._subscribers: list[AlertFiredHandler] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, handler: AlertFiredHandler) -> Callable[[], None]:
        """Register a handler.

        Returns:
            A callable that removes the handler again (safe to call twice)
        """
        self._subscribers.append(handler)

        def unsubscribe() -> None:
            if handler in self._subscribers:
                self._subscribers.remove(handler)

        return unsubscribe

    async def publish(self, event: AlertFired) -> int:
        """Deliver an event to all current subscribers.

        Returns:
            Number of handlers that completed without raising
        """
        delivered = 0
        for handler in list(self._subscribers):
            try:
                await handler(event)
                delivered += 1
            except Exception as e:
                logger.exception("Error in alert event handler for alert %s: %s", event.alert.id, e)
        return delivered
