"""AlertService module: the consumer-facing alert API.

This module provides the AlertService class, the explicitly constructed
context object that owns the metric store, rule engine, alert working set,
notification dispatcher and persisted configuration. The dashboard, the
scheduler and the metric producers all go through it.

Usage:
    from photo_alerts.alerts.setup import create_alert_service

    service = await create_alert_service(settings)

    service.add_metric({"name": "storage.quota_percentage", "value": 85})
    new_alerts = await service.run_evaluation_cycle()

    await service.acknowledge_alert(new_alerts[0].id, actor="alice")
    await service.close()
"""

import asyncio
import logging
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from photo_alerts.alerts.errors import AlertNotFoundError, RuleNotFoundError
from photo_alerts.alerts.escalation import EscalationPolicy
from photo_alerts.alerts.events import AlertEventBus, AlertFired
from photo_alerts.alerts.factory import apply_rule_patch, create_manual_alert, create_rule
from photo_alerts.alerts.models import (
    Alert,
    AlertAction,
    AlertConfig,
    AlertRule,
    AlertSeverity,
    AlertStats,
    AlertStatus,
    AlertType,
    NotificationChannel,
    sort_by_severity,
)
from photo_alerts.alerts.repository import ALERTS_KEY, CONFIG_KEY, RULES_KEY
from photo_alerts.clock import Clock, utc_now
from photo_alerts.metrics.models import MetricData

if TYPE_CHECKING:
    from photo_alerts.alerts.channels import BrowserBridge
    from photo_alerts.alerts.dispatcher import NotificationDispatcher
    from photo_alerts.alerts.engine import RuleEngine
    from photo_alerts.alerts.lifecycle import AlertLifecycle
    from photo_alerts.alerts.repository import AlertStateRepository
    from photo_alerts.metrics.store import MetricStore

logger = logging.getLogger(__name__)


class AlertService:
    """Alert system context object.

    Features:
    - Periodic evaluation cycle: maintenance sync, rule evaluation,
      notification dispatch, escalation, persistence
    - Alert actions (manual alerts, acknowledge, resolve, dismiss)
    - Rule management with validation at authoring time
    - Persists on every mutation; a failed save is logged and retried on
      the next mutation instead of raising

    Example:
        service = AlertService(
            metric_store=store,
            engine=engine,
            lifecycle=lifecycle,
            dispatcher=dispatcher,
            repository=repository,
        )
        await service.load()
    """

    def __init__(
        self,
        metric_store: "MetricStore",
        engine: "RuleEngine",
        lifecycle: "AlertLifecycle",
        dispatcher: "NotificationDispatcher",
        repository: "AlertStateRepository",
        config: AlertConfig | None = None,
        events: AlertEventBus | None = None,
        escalation: EscalationPolicy | None = None,
        browser: "BrowserBridge | None" = None,
        clock: Clock = utc_now,
    ):
        """Initialize AlertService.

        Args:
            metric_store: Metric samples the rules are evaluated against
            engine: Rule registry and evaluator
            lifecycle: Alert working set
            dispatcher: Notification fan-out
            repository: Persistence of alerts, rules and config
            config: Initial alert configuration (defaults until load())
            events: In-app event bus (a private one is created if omitted)
            escalation: Escalation policy
            browser: Browser bridge used for permission requests
            clock: Time source
        """
        self.metric_store = metric_store
        self.engine = engine
        self.lifecycle = lifecycle
        self.dispatcher = dispatcher
        self.repository = repository
        self.events = events or AlertEventBus()
        self.escalation = escalation or EscalationPolicy()
        self.browser = browser
        self._clock = clock
        self._config = config or AlertConfig()
        self.dispatcher.config = self._config
        self._last_evaluation_time: datetime | None = None
        self._dirty: set[str] = set()
        self._cycle_lock = asyncio.Lock()

    # Reads

    @property
    def alerts(self) -> list[Alert]:
        return self.lifecycle.alerts

    @property
    def rules(self) -> list[AlertRule]:
        return self.engine.rules

    @property
    def config(self) -> AlertConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def last_evaluation_time(self) -> datetime | None:
        return self._last_evaluation_time

    @property
    def pending_saves(self) -> frozenset[str]:
        """State keys whose last save failed and will be retried."""
        return frozenset(self._dirty)

    def get_active_alerts(self) -> list[Alert]:
        """Active alerts, critical first."""
        return sort_by_severity(self.lifecycle.active_alerts())

    def get_alert(self, alert_id: str) -> Alert | None:
        return self.lifecycle.get(alert_id)

    def require_alert(self, alert_id: str) -> Alert:
        alert = self.lifecycle.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return alert

    def get_alert_stats(self) -> AlertStats:
        stats = AlertStats()
        for alert in self.lifecycle.alerts:
            stats.total += 1
            if alert.status == AlertStatus.ACTIVE:
                stats.active += 1
            elif alert.status == AlertStatus.ACKNOWLEDGED:
                stats.acknowledged += 1
            elif alert.status == AlertStatus.RESOLVED:
                stats.resolved += 1
            elif alert.status == AlertStatus.SUPPRESSED:
                stats.suppressed += 1
            stats.by_type[alert.type] += 1
            stats.by_severity[alert.severity] += 1
        return stats

    def get_metric_history(self, name: str, hours: float = 24) -> list[MetricData]:
        return self.metric_store.get_history(name, hours)

    # Metrics

    def add_metric(self, metric: MetricData | Mapping[str, Any]) -> MetricData:
        """Record a metric sample.

        Args:
            metric: A MetricData, or a mapping with at least ``name`` and
                ``value`` (timestamp defaults to now, tags to none)

        Returns:
            The stored sample

        Raises:
            pydantic.ValidationError: If the mapping is not a valid sample
        """
        if not isinstance(metric, MetricData):
            data = dict(metric)
            data.setdefault("timestamp", self._clock())
            metric = MetricData.model_validate(data)
        self.metric_store.add_metric(metric)
        return metric

    # Alert actions

    async def create_alert(
        self,
        type: AlertType | str,
        severity: AlertSeverity | str,
        title: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> Alert:
        """Raise a manual alert.

        The alert is always shown in-app, and sent as a browser notification
        when the browser channel is enabled.

        Raises:
            ValueError: If type or severity is unknown, or context is not
                JSON-serializable (nothing is registered in that case)
        """
        alert = create_manual_alert(
            type, severity, title, message, context=context, now=self._clock()
        )
        self.lifecycle.register(alert)
        logger.info("Manual alert %s created (severity=%s)", alert.id, alert.severity.value)

        await self.events.publish(AlertFired.for_alert(alert))

        if self._config.channel_enabled(NotificationChannel.BROWSER):
            records = await self.dispatcher.send_notifications(
                alert, [AlertAction(channel=NotificationChannel.BROWSER, target="user")]
            )
            self.lifecycle.attach_records(alert.id, records)

        await self._persist(ALERTS_KEY)
        return alert

    async def acknowledge_alert(self, alert_id: str, actor: str = "user") -> bool:
        changed = self.lifecycle.acknowledge(alert_id, actor)
        if changed:
            await self._persist(ALERTS_KEY)
        return changed

    async def resolve_alert(self, alert_id: str, actor: str = "user") -> bool:
        changed = self.lifecycle.resolve(alert_id, actor)
        if changed:
            await self._persist(ALERTS_KEY)
        return changed

    async def dismiss_alert(self, alert_id: str) -> bool:
        changed = self.lifecycle.dismiss(alert_id)
        if changed:
            await self._persist(ALERTS_KEY)
        return changed

    # Rule actions

    async def create_rule(self, **fields: Any) -> AlertRule:
        """Create and register a rule.

        Raises:
            RuleValidationError: If the rule is invalid or its id is taken
        """
        rule = create_rule(now=self._clock(), **fields)
        self.engine.add_rule(rule)
        logger.info("Alert rule %s created (%s)", rule.id, rule.name)
        await self._persist(RULES_KEY)
        return rule

    async def update_rule(self, rule_id: str, patch: Mapping[str, Any]) -> AlertRule:
        """Apply a partial update to a rule.

        Raises:
            RuleNotFoundError: If no rule has this id
            RuleValidationError: If the patched rule is invalid
        """
        rule = self.engine.get_rule(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)

        updated = apply_rule_patch(rule, dict(patch), now=self._clock())
        self.engine.replace_rule(updated)
        await self._persist(RULES_KEY)
        return updated

    async def delete_rule(self, rule_id: str) -> AlertRule:
        """Remove a rule. Alerts it already produced stay in the working set.

        Raises:
            RuleNotFoundError: If no rule has this id
        """
        rule = self.engine.remove_rule(rule_id)
        logger.info("Alert rule %s deleted (%s)", rule.id, rule.name)
        await self._persist(RULES_KEY)
        return rule

    async def toggle_rule(self, rule_id: str, enabled: bool) -> AlertRule:
        return await self.update_rule(rule_id, {"enabled": enabled})

    # Configuration

    async def update_config(self, patch: Mapping[str, Any]) -> AlertConfig:
        """Replace top-level config sections.

        Raises:
            pydantic.ValidationError: If the patch has unknown sections or bad values
        """
        self._set_config(self._config.merged(dict(patch)))
        await self._persist(CONFIG_KEY)
        return self._config

    async def request_notification_permission(self) -> bool:
        """Ask for browser notification permission if not decided yet.

        Returns:
            Whether browser notifications are permitted
        """
        if self.browser is None:
            return False
        permission = self.browser.permission
        if permission == "granted":
            return True
        if permission == "denied":
            return False
        return await self.browser.request_permission() == "granted"

    # Lifecycle

    async def load(self) -> None:
        """Replace in-memory state with the persisted state."""
        config = await self.repository.load_config()
        rules = await self.repository.load_rules()
        alerts = await self.repository.load_alerts()

        self._set_config(config)
        self.engine.set_rules(rules)
        self.lifecycle.replace_all(alerts)
        self.engine.prime_cooldowns(alerts)
        logger.info("Loaded %d alert rules and %d alerts", len(rules), len(alerts))

    async def run_evaluation_cycle(self) -> list[Alert]:
        """Run one scheduler tick.

        Returns:
            Alerts created by this tick (including suppressed ones); an empty
            list when alerting is globally disabled
        """
        if not self._config.enabled:
            return []

        async with self._cycle_lock:
            now = self._clock()
            maintenance = self._config.maintenance_mode

            suppressed = self.lifecycle.apply_maintenance(maintenance, now)
            released = self.lifecycle.release_suppressed(maintenance, now)
            new_alerts = self.engine.evaluate(now=now, maintenance=maintenance)
            self._last_evaluation_time = now

            to_notify = list(released)
            for alert in new_alerts:
                if alert.status == AlertStatus.SUPPRESSED:
                    logger.info(
                        "Alert %s (%s) suppressed by maintenance mode", alert.id, alert.rule_name
                    )
                else:
                    to_notify.append(alert)

            if to_notify:
                await asyncio.gather(*(self._notify(alert) for alert in to_notify))

            escalated = await self._escalate(now)

            if suppressed or released or new_alerts or escalated:
                await self._persist(ALERTS_KEY)

            return new_alerts

    async def close(self) -> None:
        """Retry pending saves and release the state store."""
        if self._dirty:
            await self._persist()
        await self.repository.store.close()

    # Internals

    def _set_config(self, config: AlertConfig) -> None:
        self._config = config
        self.dispatcher.config = config

    async def _notify(self, alert: Alert) -> None:
        rule = self.engine.get_rule(alert.rule_id)
        if rule is None:
            logger.debug("Rule %s no longer exists, not notifying alert %s", alert.rule_id, alert.id)
            return
        records = await self.dispatcher.send_notifications(alert, rule.actions)
        self.lifecycle.attach_records(alert.id, records)

    async def _escalate(self, now: datetime) -> bool:
        escalated = False
        for alert in self.lifecycle.active_alerts():
            due = self.escalation.due_levels(alert, self._config.escalation_settings, now)
            if not due:
                continue

            pairs = [pair for step in due for pair in step.level.pairs()]
            records = await self.dispatcher.dispatch_to(alert, pairs)
            self.lifecycle.attach_records(alert.id, records)

            level = max(step.number for step in due)
            self.lifecycle.set_escalation_level(alert.id, level)
            escalated = True
            logger.info("Alert %s escalated to level %d", alert.id, level)
        return escalated

    async def _persist(self, *keys: str) -> None:
        self._dirty.update(keys)
        for key in sorted(self._dirty):
            try:
                await self._save(key)
            except Exception as e:
                logger.error("Failed to save %s, will retry on next change: %s", key, e)
            else:
                self._dirty.discard(key)

    async def _save(self, key: str) -> None:
        if key == ALERTS_KEY:
            await self.repository.save_alerts(self.lifecycle.alerts)
        elif key == RULES_KEY:
            await self.repository.save_rules(self.engine.rules)
        elif key == CONFIG_KEY:
            await self.repository.save_config(self._config)
        else:
            raise ValueError(f"Unknown state key: {key}")
