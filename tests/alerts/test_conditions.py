"""Tests for condition evaluation."""

import logging

import pytest
from photo_alerts.alerts.conditions import ConditionEvaluator, aggregate, compare, format_number
from photo_alerts.alerts.models import Aggregation, AlertCondition, ConditionOperator


def _condition(**overrides) -> AlertCondition:
    data = {"metric": "m", "operator": "gte", "threshold": 80}
    data.update(overrides)
    return AlertCondition.model_validate(data)


class TestAggregate:
    """Window reductions over [10, 20, 30]."""

    @pytest.mark.parametrize(
        "aggregation,expected",
        [
            (Aggregation.AVG, 20),
            (Aggregation.SUM, 60),
            (Aggregation.MIN, 10),
            (Aggregation.MAX, 30),
            (Aggregation.COUNT, 3),
        ],
    )
    def test_reductions(self, aggregation, expected):
        assert aggregate([10, 20, 30], aggregation) == expected

    def test_count_ignores_values(self):
        assert aggregate([0, 0, 0, 0], Aggregation.COUNT) == 4


class TestCompare:
    """Tests for threshold comparison."""

    @pytest.mark.parametrize(
        "operator,value,expected",
        [
            (ConditionOperator.GT, 80, False),
            (ConditionOperator.GT, 81, True),
            (ConditionOperator.GTE, 80, True),
            (ConditionOperator.LT, 79, True),
            (ConditionOperator.LTE, 81, False),
            (ConditionOperator.EQ, 80, True),
            (ConditionOperator.NEQ, 80, False),
        ],
    )
    def test_numeric(self, operator, value, expected):
        assert compare(value, operator, 80) is expected

    def test_numeric_string_threshold_is_coerced(self):
        assert compare(85.0, ConditionOperator.GTE, "80") is True

    def test_contains_uses_string_forms(self):
        """85.0 renders as "85", so it contains "8" and does not contain ".0"."""
        assert compare(85.0, ConditionOperator.CONTAINS, "8") is True
        assert compare(85.0, ConditionOperator.CONTAINS, ".0") is False
        assert compare(85.0, ConditionOperator.NOT_CONTAINS, "9") is True

    def test_non_numeric_threshold_raises(self):
        with pytest.raises(ValueError):
            compare(1.0, ConditionOperator.GT, "lots")

    def test_format_number(self):
        assert format_number(85.0) == "85"
        assert format_number(0.15) == "0.15"
        assert format_number("abc") == "abc"


class TestConditionEvaluator:
    """Tests for ConditionEvaluator against a MetricStore."""

    def test_no_samples_is_false(self, metric_store, clock):
        evaluator = ConditionEvaluator(clock=clock)
        assert evaluator.evaluate(_condition(operator="lt", threshold=1e9), metric_store) is False
        assert evaluator.reduce(_condition(), metric_store) is None

    def test_latest_sample_used_without_window(self, metric_store, feed, clock):
        feed("m", 90)
        feed("m", 50)
        evaluator = ConditionEvaluator(clock=clock)

        assert evaluator.reduce(_condition(), metric_store) == 50
        assert evaluator.evaluate(_condition(), metric_store) is False

    def test_window_aggregation(self, metric_store, feed, clock):
        for value in (10, 20, 30):
            feed("m", value)
            clock.advance(minutes=1)
        evaluator = ConditionEvaluator(clock=clock)

        condition = _condition(threshold=20, time_window=60, aggregation="avg")

        assert evaluator.reduce(condition, metric_store) == 20
        assert evaluator.evaluate(condition, metric_store) is True

    def test_empty_window_is_false(self, metric_store, feed, clock):
        """Samples exist but none inside the window: false regardless of operator."""
        feed("m", 100)
        clock.advance(minutes=61)
        evaluator = ConditionEvaluator(clock=clock)

        for operator in ("gt", "lt", "eq", "neq"):
            condition = _condition(operator=operator, threshold=0, time_window=60, aggregation="count")
            assert evaluator.evaluate(condition, metric_store) is False

    def test_count_window(self, metric_store, feed, clock):
        for _ in range(5):
            feed("security.failed_logins", 1)
            clock.advance(minutes=2)
        evaluator = ConditionEvaluator(clock=clock)

        condition = _condition(
            metric="security.failed_logins", threshold=5, time_window=15, aggregation="count"
        )
        assert evaluator.evaluate(condition, metric_store) is True

    def test_malformed_condition_fails_closed(self, metric_store, feed, clock, caplog):
        """A non-numeric threshold that bypassed validation evaluates to False."""
        feed("m", 100)
        condition = AlertCondition.model_construct(
            metric="m",
            operator=ConditionOperator.GT,
            threshold="lots",
            time_window=None,
            aggregation=None,
        )
        evaluator = ConditionEvaluator(clock=clock)

        with caplog.at_level(logging.WARNING):
            assert evaluator.evaluate(condition, metric_store) is False

        assert "failed closed" in caplog.text
