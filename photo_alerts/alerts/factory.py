"""Alert and rule factory module.

This module provides functions for:
- Seeding the default rule set on first run
- Creating and patching AlertRule instances with validation at authoring time
- Creating Alert instances from fired rules and from manual user actions

Usage:
    from photo_alerts.alerts.factory import create_rule, apply_rule_patch

    rule = create_rule(
        name="Storage Quota Warning (80%)",
        type=AlertType.STORAGE_QUOTA,
        severity=AlertSeverity.MEDIUM,
        conditions=[{"metric": "storage.quota_percentage", "operator": "gte", "threshold": 80}],
        cooldown_minutes=60,
    )
    rule = apply_rule_patch(rule, {"enabled": False})  # Raises RuleValidationError if invalid
"""

from datetime import datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError

from photo_alerts.alerts.errors import RuleValidationError
from photo_alerts.alerts.models import (
    Alert,
    AlertRule,
    AlertSeverity,
    AlertStatus,
    AlertType,
    ConditionSnapshot,
    new_id,
)
from photo_alerts.clock import utc_now

MANUAL_RULE_ID = "manual"
MANUAL_RULE_NAME = "Manual Alert"

MAX_TITLE_LENGTH = 255

_context_adapter = TypeAdapter(dict[str, Any])

# Fields a patch may never change
IMMUTABLE_RULE_FIELDS = frozenset({"id", "created_at"})

_DASHBOARD = {"type": "notification", "channel": "in_app", "target": "dashboard", "enabled": True}
_BROWSER = {"type": "notification", "channel": "browser", "target": "user", "enabled": True}

# Rules seeded on first run (ids and timestamps are assigned at seeding time)
DEFAULT_ALERT_RULES: list[dict[str, Any]] = [
    {
        "name": "Storage Quota Warning (80%)",
        "description": "Alert when storage usage exceeds 80% of quota",
        "type": "storage_quota",
        "severity": "medium",
        "conditions": [{"metric": "storage.quota_percentage", "operator": "gte", "threshold": 80}],
        "actions": [_DASHBOARD, _BROWSER],
        "cooldown_minutes": 60,
    },
    {
        "name": "Storage Quota Critical (95%)",
        "description": "Critical alert when storage usage exceeds 95% of quota",
        "type": "storage_quota",
        "severity": "critical",
        "conditions": [{"metric": "storage.quota_percentage", "operator": "gte", "threshold": 95}],
        "actions": [
            _DASHBOARD,
            _BROWSER,
            # Email needs to be configured before it is switched on
            {"type": "notification", "channel": "email", "target": "user", "enabled": False},
        ],
        "cooldown_minutes": 30,
    },
    {
        "name": "Monthly Cost Budget Warning (80%)",
        "description": "Alert when monthly costs exceed 80% of budget",
        "type": "cost_budget",
        "severity": "medium",
        "conditions": [
            {"metric": "cost.monthly_budget_percentage", "operator": "gte", "threshold": 80}
        ],
        "actions": [_DASHBOARD],
        "cooldown_minutes": 1440,
    },
    {
        "name": "Monthly Cost Budget Exceeded",
        "description": "Critical alert when monthly costs exceed budget",
        "type": "cost_budget",
        "severity": "high",
        "conditions": [
            {"metric": "cost.monthly_budget_percentage", "operator": "gte", "threshold": 100}
        ],
        "actions": [_DASHBOARD, _BROWSER],
        "cooldown_minutes": 180,
    },
    {
        "name": "Multiple Failed Login Attempts",
        "description": "Alert on suspicious login activity",
        "type": "security_breach",
        "severity": "high",
        "conditions": [
            {
                "metric": "security.failed_logins",
                "operator": "gte",
                "threshold": 5,
                "time_window": 15,
                "aggregation": "count",
            }
        ],
        "actions": [_DASHBOARD, _BROWSER],
        "cooldown_minutes": 60,
    },
    {
        "name": "Large Download Volume",
        "description": "Alert on unusually large download volumes",
        "type": "security_breach",
        "severity": "medium",
        "conditions": [
            {
                "metric": "security.download_volume_gb",
                "operator": "gte",
                "threshold": 10,
                "time_window": 60,
                "aggregation": "sum",
            }
        ],
        "actions": [_DASHBOARD],
        "cooldown_minutes": 120,
    },
    {
        "name": "Upload Failure Rate High",
        "description": "Alert when upload failure rate exceeds threshold",
        "type": "system_error",
        "severity": "high",
        "conditions": [
            {
                "metric": "system.upload_failure_rate",
                "operator": "gte",
                "threshold": 0.1,
                "time_window": 30,
                "aggregation": "avg",
            }
        ],
        "actions": [_DASHBOARD],
        "cooldown_minutes": 30,
    },
    {
        "name": "API Response Time High",
        "description": "Alert when API response time is consistently high",
        "type": "performance",
        "severity": "medium",
        "conditions": [
            {
                "metric": "performance.api_response_time_ms",
                "operator": "gte",
                "threshold": 5000,
                "time_window": 15,
                "aggregation": "avg",
            }
        ],
        "actions": [_DASHBOARD],
        "cooldown_minutes": 15,
    },
]


def seed_default_rules(now: datetime | None = None) -> list[AlertRule]:
    """Materialize DEFAULT_ALERT_RULES with fresh ids and timestamps."""
    now = now or utc_now()
    return [
        AlertRule.model_validate({**template, "id": new_id(), "created_at": now, "updated_at": now})
        for template in DEFAULT_ALERT_RULES
    ]


def create_rule(*, now: datetime | None = None, **fields: Any) -> AlertRule:
    """Create a validated AlertRule.

    Args:
        now: Creation time (defaults to now in UTC)
        **fields: AlertRule fields; ``id`` is generated when not provided

    Returns:
        The new rule with created_at == updated_at == now

    Raises:
        RuleValidationError: If any field or condition is invalid
    """
    now = now or utc_now()
    data = {**fields, "id": fields.get("id") or new_id(), "created_at": now, "updated_at": now}
    return _validated_rule(data, data["id"])


def apply_rule_patch(
    rule: AlertRule,
    patch: dict[str, Any],
    now: datetime | None = None,
) -> AlertRule:
    """Return a copy of ``rule`` with ``patch`` applied and updated_at refreshed.

    Raises:
        RuleValidationError: If the patch touches immutable fields or
            produces an invalid rule
    """
    forbidden = IMMUTABLE_RULE_FIELDS.intersection(patch)
    if forbidden:
        raise RuleValidationError(
            f"Cannot change {', '.join(sorted(forbidden))} of an existing rule", rule.id
        )

    data = rule.model_dump()
    data.update(patch)
    data["updated_at"] = now or utc_now()
    return _validated_rule(data, rule.id)


def create_alert_from_rule(
    rule: AlertRule,
    details: list[ConditionSnapshot],
    *,
    now: datetime | None = None,
    status: AlertStatus = AlertStatus.ACTIVE,
) -> Alert:
    """Build the Alert a rule match produces."""
    return Alert(
        rule_id=rule.id,
        rule_name=rule.name,
        type=rule.type,
        severity=rule.severity,
        status=status,
        title=_truncate_title(rule.name),
        message=rule.description,
        details=details,
        triggered_at=now or utc_now(),
        tags=[rule.type.value, rule.severity.value],
    )


def create_manual_alert(
    type: AlertType | str,
    severity: AlertSeverity | str,
    title: str,
    message: str,
    *,
    context: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Alert:
    """Create an alert raised directly by a user or an external producer.

    ``context`` is stored in its JSON form so the alert can always be
    persisted.

    Raises:
        ValueError: If type or severity is unknown, or context holds a value
            that cannot be serialized to JSON
    """
    type = AlertType(type)
    severity = AlertSeverity(severity)
    try:
        context = _context_adapter.dump_python(context or {}, mode="json")
    except ValueError as e:
        raise ValueError(f"Alert context is not JSON-serializable: {e}") from e

    return Alert(
        rule_id=MANUAL_RULE_ID,
        rule_name=MANUAL_RULE_NAME,
        type=type,
        severity=severity,
        title=_truncate_title(title),
        message=message,
        context=context,
        triggered_at=now or utc_now(),
        tags=[type.value, severity.value, MANUAL_RULE_ID],
    )


def _validated_rule(data: dict[str, Any], rule_id: str | None) -> AlertRule:
    try:
        return AlertRule.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'rule'}: {error['msg']}"
            for error in e.errors()
        )
        raise RuleValidationError(f"Invalid alert rule: {problems}", rule_id) from e


def _truncate_title(title: str) -> str:
    """Truncate to 255 chars, adding '...' if truncated."""
    if len(title) <= MAX_TITLE_LENGTH:
        return title
    return title[: MAX_TITLE_LENGTH - 3] + "..."
