"""Tests for RuleEngine firing, cooldown and registry behavior."""

import pytest
from photo_alerts.alerts.engine import RuleEngine
from photo_alerts.alerts.errors import RuleNotFoundError, RuleValidationError
from photo_alerts.alerts.models import AlertRule, AlertSeverity, AlertStatus, MaintenanceMode

QUOTA = "storage.quota_percentage"


@pytest.fixture
def engine(metric_store, lifecycle, clock, rule_factory):
    return RuleEngine(store=metric_store, lifecycle=lifecycle, rules=[rule_factory()], clock=clock)


class TestFiring:
    """Tests for evaluate()."""

    def test_quota_warning_scenario(self, engine, feed):
        """85% against gte 80 produces exactly one medium, active alert."""
        feed(QUOTA, 85)

        alerts = engine.evaluate()

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.severity == AlertSeverity.MEDIUM
        assert alert.status == AlertStatus.ACTIVE
        assert alert.rule_id == "quota-80"
        assert alert.escalation_level == 0
        assert alert.notifications_sent == []
        assert engine.lifecycle.get(alert.id) is alert

    def test_details_snapshot(self, engine, feed):
        feed(QUOTA, 85)

        alert = engine.evaluate()[0]

        assert len(alert.details) == 1
        snapshot = alert.details[0]
        assert snapshot.metric == QUOTA
        assert snapshot.current_value == 85
        assert snapshot.threshold == 80
        assert snapshot.operator.value == "gte"

    def test_no_data_no_alert(self, engine):
        assert engine.evaluate() == []

    def test_below_threshold_no_alert(self, engine, feed):
        feed(QUOTA, 79.9)
        assert engine.evaluate() == []

    def test_disabled_rule_skipped(self, metric_store, lifecycle, clock, rule_factory, feed):
        engine = RuleEngine(
            store=metric_store,
            lifecycle=lifecycle,
            rules=[rule_factory(enabled=False)],
            clock=clock,
        )
        feed(QUOTA, 99)
        assert engine.evaluate() == []

    def test_all_conditions_must_hold(self, metric_store, lifecycle, clock, rule_factory, feed):
        rule = rule_factory(
            conditions=[
                {"metric": QUOTA, "operator": "gte", "threshold": 80},
                {"metric": "storage.total_gb", "operator": "gt", "threshold": 9},
            ]
        )
        engine = RuleEngine(store=metric_store, lifecycle=lifecycle, rules=[rule], clock=clock)
        feed(QUOTA, 85)
        feed("storage.total_gb", 8.5)

        assert engine.evaluate() == []

        feed("storage.total_gb", 9.5)
        assert len(engine.evaluate()) == 1

    def test_empty_condition_list_never_fires(self, metric_store, lifecycle, clock, rule_factory):
        """A rule that bypassed validation with no conditions does not fire."""
        data = rule_factory().model_dump()
        data["conditions"] = []
        rule = AlertRule.model_construct(**data)
        engine = RuleEngine(store=metric_store, lifecycle=lifecycle, rules=[rule], clock=clock)

        assert engine.evaluate() == []

    def test_rule_evaluation_is_deterministic(self, metric_store, lifecycle, clock, rule_factory, feed):
        rules = [rule_factory(id=f"r{i}", name=f"Rule {i}") for i in range(3)]
        engine = RuleEngine(store=metric_store, lifecycle=lifecycle, rules=rules, clock=clock)
        feed(QUOTA, 90)

        assert [a.rule_id for a in engine.evaluate()] == ["r0", "r1", "r2"]


class TestCooldown:
    """Cooldown and at-most-one-open-alert behavior."""

    def test_no_double_fire_within_cooldown(self, engine, feed, clock):
        feed(QUOTA, 85)
        assert len(engine.evaluate()) == 1

        clock.advance(minutes=1)
        feed(QUOTA, 85)
        assert engine.evaluate() == []

        assert len(engine.lifecycle.alerts) == 1

    def test_open_alert_blocks_after_cooldown(self, engine, feed, clock):
        """Cooldown elapsed but the first alert is still active: no second alert."""
        feed(QUOTA, 85)
        engine.evaluate()

        clock.advance(minutes=61)
        feed(QUOTA, 85)

        assert engine.evaluate() == []
        active = [a for a in engine.lifecycle.alerts if a.status == AlertStatus.ACTIVE]
        assert len(active) == 1

    def test_refires_after_resolve_and_cooldown(self, engine, feed, clock):
        feed(QUOTA, 85)
        first = engine.evaluate()[0]
        engine.lifecycle.resolve(first.id, "ops")

        clock.advance(minutes=30)
        feed(QUOTA, 85)
        assert engine.evaluate() == []

        clock.advance(minutes=30)
        feed(QUOTA, 85)
        second = engine.evaluate()
        assert len(second) == 1
        assert second[0].id != first.id

    def test_acknowledged_alert_does_not_block(self, engine, feed, clock):
        feed(QUOTA, 85)
        first = engine.evaluate()[0]
        engine.lifecycle.acknowledge(first.id, "ops")

        clock.advance(minutes=60)
        feed(QUOTA, 85)

        assert len(engine.evaluate()) == 1

    def test_last_fired_recorded(self, engine, feed, clock):
        assert engine.last_fired("quota-80") is None
        feed(QUOTA, 85)
        engine.evaluate()
        assert engine.last_fired("quota-80") == clock()

    def test_not_matching_does_not_start_cooldown(self, engine, feed, clock):
        feed(QUOTA, 10)
        engine.evaluate()
        assert engine.last_fired("quota-80") is None

    def test_prime_cooldowns_from_loaded_alerts(self, engine, feed, clock, alert_factory):
        previous = alert_factory(status="resolved", triggered_at=clock())
        engine.prime_cooldowns([previous])

        clock.advance(minutes=10)
        feed(QUOTA, 85)

        assert engine.evaluate() == []
        assert engine.last_fired("quota-80") == previous.triggered_at


class TestMaintenance:
    """Maintenance-mode policy hook."""

    def test_suppressed_alert_created(self, engine, feed, clock):
        feed(QUOTA, 85)
        maintenance = MaintenanceMode(enabled=True, suppress_all=True)

        alerts = engine.evaluate(maintenance=maintenance)

        assert len(alerts) == 1
        assert alerts[0].status == AlertStatus.SUPPRESSED
        assert engine.last_fired("quota-80") == clock()

    def test_allowed_type_not_suppressed(self, engine, feed):
        feed(QUOTA, 85)
        maintenance = MaintenanceMode(
            enabled=True, suppress_all=True, allowed_types=["storage_quota"]
        )

        assert engine.evaluate(maintenance=maintenance)[0].status == AlertStatus.ACTIVE

    def test_suppressed_alert_blocks_new_alert(self, engine, feed, clock):
        feed(QUOTA, 85)
        engine.evaluate(maintenance=MaintenanceMode(enabled=True, suppress_all=True))

        clock.advance(minutes=61)
        feed(QUOTA, 85)

        assert engine.evaluate() == []


class TestRegistry:
    """Tests for the rule registry."""

    def test_add_and_get(self, engine, rule_factory):
        rule = rule_factory(id="other")
        engine.add_rule(rule)
        assert engine.get_rule("other") is rule
        assert [r.id for r in engine.rules] == ["quota-80", "other"]

    def test_add_duplicate_rejected(self, engine, rule_factory):
        with pytest.raises(RuleValidationError):
            engine.add_rule(rule_factory())

    def test_replace_unknown_rejected(self, engine, rule_factory):
        with pytest.raises(RuleNotFoundError):
            engine.replace_rule(rule_factory(id="ghost"))

    def test_remove_clears_cooldown(self, engine, feed):
        feed(QUOTA, 85)
        engine.evaluate()

        removed = engine.remove_rule("quota-80")

        assert removed.id == "quota-80"
        assert engine.last_fired("quota-80") is None
        assert engine.get_rule("quota-80") is None

    def test_remove_unknown_rejected(self, engine):
        with pytest.raises(RuleNotFoundError):
            engine.remove_rule("ghost")

    def test_set_rules_keeps_cooldowns_of_remaining_rules(self, engine, feed, rule_factory, clock):
        feed(QUOTA, 85)
        engine.evaluate()

        engine.set_rules([rule_factory(), rule_factory(id="new")])

        assert engine.last_fired("quota-80") == clock()
        assert engine.last_fired("new") is None
