"""Tests for the escalation policy."""

from datetime import timedelta

import pytest
from photo_alerts.alerts.escalation import EscalationPolicy
from photo_alerts.alerts.models import AlertConfig, EscalationSettings


@pytest.fixture
def ladder():
    return AlertConfig().escalation_settings.model_copy(update={"enabled": True})


class TestEscalationPolicy:
    """Tests for EscalationPolicy.due_levels."""

    def test_disabled_settings(self, alert_factory, clock):
        settings = EscalationSettings(enabled=False, levels=AlertConfig().escalation_settings.levels)
        alert = alert_factory(triggered_at=clock() - timedelta(hours=2))

        assert EscalationPolicy().due_levels(alert, settings, clock()) == []

    def test_nothing_due_before_first_level(self, ladder, alert_factory, clock):
        alert = alert_factory(triggered_at=clock() - timedelta(minutes=14))
        assert EscalationPolicy().due_levels(alert, ladder, clock()) == []

    def test_first_level_due(self, ladder, alert_factory, clock):
        alert = alert_factory(triggered_at=clock() - timedelta(minutes=15))

        due = EscalationPolicy().due_levels(alert, ladder, clock())

        assert [step.number for step in due] == [1]
        assert due[0].level.after_minutes == 15

    def test_already_escalated_levels_skipped(self, ladder, alert_factory, clock):
        alert = alert_factory(triggered_at=clock() - timedelta(minutes=90), escalation_level=1)

        due = EscalationPolicy().due_levels(alert, ladder, clock())

        assert [step.number for step in due] == [2]

    def test_multiple_levels_due_at_once(self, ladder, alert_factory, clock):
        alert = alert_factory(triggered_at=clock() - timedelta(minutes=90))
        assert [s.number for s in EscalationPolicy().due_levels(alert, ladder, clock())] == [1, 2]

    @pytest.mark.parametrize("status", ["acknowledged", "resolved", "suppressed"])
    def test_only_active_alerts_escalate(self, ladder, alert_factory, clock, status):
        alert = alert_factory(status=status, triggered_at=clock() - timedelta(hours=2))
        assert EscalationPolicy().due_levels(alert, ladder, clock()) == []
