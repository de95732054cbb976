"""Alert lifecycle state machine and working set.

Transitions:
    active       -> acknowledged   (acknowledge)
    active       -> resolved       (resolve)
    acknowledged -> resolved       (resolve)
    suppressed   -> resolved       (resolve)
    active       -> suppressed     (maintenance mode starts)
    suppressed   -> active         (maintenance mode ends)

``resolved`` is terminal. ``dismiss`` is not a transition: it drops the
alert from the working set whatever its status.
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from photo_alerts.alerts.models import (
    Alert,
    AlertStatus,
    MaintenanceMode,
    NotificationRecord,
)
from photo_alerts.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class AlertLifecycle:
    """Owns the alert working set and every status change applied to it."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._alerts: dict[str, Alert] = {}

    @property
    def alerts(self) -> list[Alert]:
        """All alerts in the working set, oldest first."""
        return list(self._alerts.values())

    def active_alerts(self) -> list[Alert]:
        return [a for a in self._alerts.values() if a.status == AlertStatus.ACTIVE]

    def get(self, alert_id: str) -> Alert | None:
        return self._alerts.get(alert_id)

    def has_open_alert(self, rule_id: str) -> bool:
        """Whether an active or suppressed alert exists for ``rule_id``."""
        return any(a.rule_id == rule_id and a.is_open for a in self._alerts.values())

    def register(self, alert: Alert) -> None:
        self._alerts[alert.id] = alert

    def replace_all(self, alerts: Iterable[Alert]) -> None:
        self._alerts = {alert.id: alert for alert in alerts}

    def acknowledge(self, alert_id: str, actor: str) -> bool:
        """Mark an active alert as acknowledged.

        Returns:
            True if the alert moved to acknowledged; False if it does not
            exist or is not active (state left unchanged)
        """
        alert = self._alerts.get(alert_id)
        if alert is None or alert.status != AlertStatus.ACTIVE:
            return False

        alert.status = AlertStatus.ACKNOWLEDGED
        alert.acknowledged_at = self._clock()
        alert.acknowledged_by = actor
        logger.info("Alert %s acknowledged by %s", alert_id, actor)
        return True

    def resolve(self, alert_id: str, actor: str) -> bool:
        """Resolve any non-terminal alert.

        Returns:
            True if the alert moved to resolved; False if it does not exist
            or is already resolved
        """
        alert = self._alerts.get(alert_id)
        if alert is None or alert.status == AlertStatus.RESOLVED:
            return False

        alert.status = AlertStatus.RESOLVED
        alert.resolved_at = self._clock()
        alert.resolved_by = actor
        logger.info("Alert %s resolved by %s", alert_id, actor)
        return True

    def dismiss(self, alert_id: str) -> bool:
        """Drop an alert from the working set."""
        return self._alerts.pop(alert_id, None) is not None

    def attach_records(self, alert_id: str, records: list[NotificationRecord]) -> None:
        alert = self._alerts.get(alert_id)
        if alert is None:
            # Dismissed while its notifications were in flight
            return
        alert.notifications_sent.extend(records)

    def set_escalation_level(self, alert_id: str, level: int) -> None:
        alert = self._alerts.get(alert_id)
        if alert is not None and level > alert.escalation_level:
            alert.escalation_level = level

    def apply_maintenance(self, maintenance: MaintenanceMode, now: datetime | None = None) -> list[Alert]:
        """Move active alerts that maintenance mode suppresses to SUPPRESSED.

        Returns:
            The alerts that were suppressed by this call
        """
        now = now or self._clock()
        suppressed = []
        for alert in self._alerts.values():
            if alert.status == AlertStatus.ACTIVE and maintenance.suppresses(alert.type, now):
                alert.status = AlertStatus.SUPPRESSED
                suppressed.append(alert)

        if suppressed:
            logger.info("Maintenance mode suppressed %d active alerts", len(suppressed))
        return suppressed

    def release_suppressed(self, maintenance: MaintenanceMode, now: datetime | None = None) -> list[Alert]:
        """Return suppressed alerts to ACTIVE once maintenance no longer covers them.

        Returns:
            The alerts that were released by this call
        """
        now = now or self._clock()
        released = []
        for alert in self._alerts.values():
            if alert.status == AlertStatus.SUPPRESSED and not maintenance.suppresses(alert.type, now):
                alert.status = AlertStatus.ACTIVE
                released.append(alert)

        if released:
            logger.info("Released %d suppressed alerts", len(released))
        return released
