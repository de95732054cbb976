"""Rule engine: turns metric samples into new alerts.

Usage:
    from photo_alerts.alerts.engine import RuleEngine

    engine = RuleEngine(store=metric_store, lifecycle=lifecycle, rules=rules)
    new_alerts = engine.evaluate()

``evaluate`` is synchronous and never awaits, so a tick always sees one
consistent snapshot of the metric store, and alert creation and the
cooldown update for a rule happen together.
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from photo_alerts.alerts.conditions import ConditionEvaluator
from photo_alerts.alerts.errors import RuleNotFoundError, RuleValidationError
from photo_alerts.alerts.factory import create_alert_from_rule
from photo_alerts.alerts.lifecycle import AlertLifecycle
from photo_alerts.alerts.models import (
    Alert,
    AlertRule,
    AlertStatus,
    ConditionSnapshot,
    MaintenanceMode,
    minutes,
)
from photo_alerts.clock import Clock, utc_now
from photo_alerts.metrics.store import MetricStore

logger = logging.getLogger(__name__)


class RuleEngine:
    """Evaluates enabled rules and materializes alerts for new matches.

    Per rule, a match produces an alert only when:
    - the rule's cooldown has elapsed since it last fired, and
    - no open (active or suppressed) alert exists for the rule.

    Attributes:
        store: Metric samples read during evaluation
        lifecycle: Alert working set; new alerts are registered here
    """

    def __init__(
        self,
        store: MetricStore,
        lifecycle: AlertLifecycle,
        rules: Iterable[AlertRule] = (),
        evaluator: ConditionEvaluator | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.lifecycle = lifecycle
        self._clock = clock
        self._evaluator = evaluator or ConditionEvaluator(clock=clock)
        self._rules: dict[str, AlertRule] = {}
        self._last_fired: dict[str, datetime] = {}
        self.set_rules(rules)

    @property
    def rules(self) -> list[AlertRule]:
        return list(self._rules.values())

    def get_rule(self, rule_id: str) -> AlertRule | None:
        return self._rules.get(rule_id)

    def set_rules(self, rules: Iterable[AlertRule]) -> None:
        """Replace the whole rule set. Cooldowns of rules that remain are kept."""
        self._rules = {rule.id: rule for rule in rules}
        self._last_fired = {
            rule_id: fired_at
            for rule_id, fired_at in self._last_fired.items()
            if rule_id in self._rules
        }

    def add_rule(self, rule: AlertRule) -> None:
        if rule.id in self._rules:
            raise RuleValidationError(f"Duplicate rule id: {rule.id}", rule.id)
        self._rules[rule.id] = rule

    def replace_rule(self, rule: AlertRule) -> None:
        if rule.id not in self._rules:
            raise RuleNotFoundError(rule.id)
        self._rules[rule.id] = rule

    def remove_rule(self, rule_id: str) -> AlertRule:
        rule = self._rules.pop(rule_id, None)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        self._last_fired.pop(rule_id, None)
        return rule

    def last_fired(self, rule_id: str) -> datetime | None:
        return self._last_fired.get(rule_id)

    def prime_cooldowns(self, alerts: Iterable[Alert]) -> None:
        """Restart cooldowns from previously fired alerts (e.g. after a reload)."""
        for alert in alerts:
            if alert.rule_id not in self._rules:
                continue
            current = self._last_fired.get(alert.rule_id)
            if current is None or alert.triggered_at > current:
                self._last_fired[alert.rule_id] = alert.triggered_at

    def evaluate(
        self,
        now: datetime | None = None,
        maintenance: MaintenanceMode | None = None,
    ) -> list[Alert]:
        """Run one evaluation pass over every enabled rule.

        Args:
            now: Evaluation instant (defaults to the clock); used for every
                rule in the pass
            maintenance: Maintenance-mode policy; matches it suppresses are
                created in SUPPRESSED state

        Returns:
            Alerts created by this pass, in rule order
        """
        now = now or self._clock()
        new_alerts: list[Alert] = []

        for rule in self._rules.values():
            if not rule.enabled:
                continue

            if not self._cooldown_elapsed(rule, now):
                continue

            if not self._matches(rule, now):
                continue

            if self.lifecycle.has_open_alert(rule.id):
                continue

            status = AlertStatus.ACTIVE
            if maintenance is not None and maintenance.suppresses(rule.type, now):
                status = AlertStatus.SUPPRESSED

            alert = create_alert_from_rule(rule, self._snapshot(rule, now), now=now, status=status)
            self.lifecycle.register(alert)
            self._last_fired[rule.id] = now
            new_alerts.append(alert)

            logger.info(
                "Rule %s fired (alert=%s, severity=%s, status=%s)",
                rule.name,
                alert.id,
                alert.severity.value,
                alert.status.value,
            )

        return new_alerts

    def _cooldown_elapsed(self, rule: AlertRule, now: datetime) -> bool:
        last = self._last_fired.get(rule.id)
        if last is None:
            return True
        return now - last >= minutes(rule.cooldown_minutes)

    def _matches(self, rule: AlertRule, now: datetime) -> bool:
        # Rules are validated to carry at least one condition; an empty list
        # reaching this point never fires.
        if not rule.conditions:
            return False
        return all(
            self._evaluator.evaluate(condition, self.store, now) for condition in rule.conditions
        )

    def _snapshot(self, rule: AlertRule, now: datetime) -> list[ConditionSnapshot]:
        return [
            ConditionSnapshot(
                metric=condition.metric,
                current_value=self._evaluator.reduce(condition, self.store, now),
                threshold=condition.threshold,
                operator=condition.operator,
            )
            for condition in rule.conditions
        ]
