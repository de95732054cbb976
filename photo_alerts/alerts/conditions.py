"""Condition evaluation against the metric store.

A condition is checked either against the latest sample of its metric or,
when it carries a time window and aggregation, against the reduction of the
samples inside that window. Absent data never fires a condition, and a
condition that cannot be compared fails closed instead of raising, so one
bad rule cannot stop the evaluation of the others.
"""

import logging
from datetime import datetime

from photo_alerts.alerts.models import (
    Aggregation,
    AlertCondition,
    ConditionOperator,
    coerce_threshold,
)
from photo_alerts.clock import Clock, utc_now
from photo_alerts.metrics.store import MetricStore

logger = logging.getLogger(__name__)


def aggregate(values: list[float], aggregation: Aggregation) -> float:
    """Reduce window values. ``count`` measures frequency and ignores values."""
    if aggregation == Aggregation.AVG:
        return sum(values) / len(values)
    if aggregation == Aggregation.SUM:
        return float(sum(values))
    if aggregation == Aggregation.MIN:
        return min(values)
    if aggregation == Aggregation.MAX:
        return max(values)
    if aggregation == Aggregation.COUNT:
        return float(len(values))
    raise ValueError(f"Unknown aggregation: {aggregation}")


def format_number(value: float | str) -> str:
    """Render a value the way the dashboard displays it: 85.0 -> "85"."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def compare(value: float, operator: ConditionOperator, threshold: float | str) -> bool:
    """Compare a reduced value against a threshold.

    Numeric operators coerce the threshold to a number; ``contains`` and
    ``not_contains`` test substring containment on the string forms.

    Raises:
        ValueError: If a numeric operator gets a non-numeric threshold
    """
    if operator == ConditionOperator.CONTAINS:
        return format_number(threshold) in format_number(value)
    if operator == ConditionOperator.NOT_CONTAINS:
        return format_number(threshold) not in format_number(value)

    number = coerce_threshold(threshold)
    if number is None:
        raise ValueError(f"Threshold {threshold!r} is not numeric")

    if operator == ConditionOperator.GT:
        return value > number
    if operator == ConditionOperator.GTE:
        return value >= number
    if operator == ConditionOperator.LT:
        return value < number
    if operator == ConditionOperator.LTE:
        return value <= number
    if operator == ConditionOperator.EQ:
        return value == number
    if operator == ConditionOperator.NEQ:
        return value != number
    raise ValueError(f"Unknown operator: {operator}")


class ConditionEvaluator:
    """Evaluates single conditions against a MetricStore.

    Pure with respect to the store: it only reads samples.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock

    def reduce(
        self,
        condition: AlertCondition,
        store: MetricStore,
        now: datetime | None = None,
    ) -> float | None:
        """Compute the value a condition compares against.

        Args:
            condition: The condition to reduce
            store: Metric samples
            now: Evaluation instant (defaults to the clock)

        Returns:
            The latest sample value, the window reduction, or None when the
            metric has no samples or the window is empty
        """
        if not store.has_samples(condition.metric):
            return None

        if condition.is_windowed:
            if now is None:
                now = self._clock()
            samples = store.window(condition.metric, condition.time_window, now=now)
            if not samples:
                return None
            return aggregate([s.value for s in samples], condition.aggregation)

        latest = store.latest(condition.metric)
        return latest.value if latest is not None else None

    def evaluate(
        self,
        condition: AlertCondition,
        store: MetricStore,
        now: datetime | None = None,
    ) -> bool:
        """Whether the condition currently holds.

        Returns:
            False when data is absent or the comparison cannot be made
        """
        try:
            value = self.reduce(condition, store, now)
            if value is None:
                return False
            return compare(value, condition.operator, condition.threshold)
        except (TypeError, ValueError) as e:
            logger.warning(
                "Condition on %s failed closed (operator=%s, threshold=%r): %s",
                condition.metric,
                getattr(condition.operator, "value", condition.operator),
                condition.threshold,
                e,
            )
            return False
