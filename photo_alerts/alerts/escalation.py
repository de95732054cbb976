"""Escalation ladder for alerts nobody has acknowledged.

Levels are numbered from 1 in ladder order. An alert's ``escalation_level``
is the highest level already dispatched (0: none).
"""

from dataclasses import dataclass
from datetime import datetime

from photo_alerts.alerts.models import (
    Alert,
    AlertStatus,
    EscalationLevel,
    EscalationSettings,
    minutes,
)


@dataclass(frozen=True)
class DueEscalation:
    """A ladder level that should be dispatched for an alert."""

    number: int
    level: EscalationLevel


class EscalationPolicy:
    """Decides which escalation levels are due for an alert."""

    def due_levels(
        self,
        alert: Alert,
        settings: EscalationSettings,
        now: datetime,
    ) -> list[DueEscalation]:
        """Levels above the alert's current level whose delay has elapsed.

        Only ACTIVE alerts escalate: acknowledged, resolved and suppressed
        alerts return an empty list.
        """
        if not settings.enabled or alert.status != AlertStatus.ACTIVE:
            return []

        elapsed = now - alert.triggered_at
        return [
            DueEscalation(number=number, level=level)
            for number, level in enumerate(settings.levels, start=1)
            if number > alert.escalation_level and elapsed >= minutes(level.after_minutes)
        ]
