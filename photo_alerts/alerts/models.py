"""Pydantic models for alert rules, alerts and the runtime alert configuration.

This module defines the declarative rule language (conditions and actions),
the Alert record and its notification history, and the user-editable
AlertConfig that controls channels, escalation and maintenance mode.

Classes:
    AlertBaseModel: Base model with strict validation for all alert records
    AlertType / AlertSeverity / AlertStatus / NotificationChannel: Enumerations
    ConditionOperator / Aggregation / ActionType: Rule language enumerations
    AlertCondition: One threshold check against a metric
    AlertAction: One notification (or other) action embedded in a rule
    AlertRule: A named, typed set of AND-combined conditions plus actions
    ConditionSnapshot: Value of one condition at the moment an alert fired
    NotificationRecord: Outcome of one delivery attempt on one channel
    Alert: A fired alert and its lifecycle state
    AlertConfig: Process-wide alert configuration
    AlertStats: Aggregate counts over the working set
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, Any
from uuid import uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from photo_alerts.clock import normalize_timestamp, utc_now

UtcDatetime = Annotated[datetime, AfterValidator(normalize_timestamp)]


def new_id() -> str:
    """Generate a new opaque record id."""
    return uuid4().hex


def minutes(value: float) -> timedelta:
    """Timedelta for a rule or escalation delay given in minutes."""
    return timedelta(minutes=value)


class AlertBaseModel(BaseModel):
    """Base model for all alert records.

    Uses extra='forbid' so misspelled fields in persisted state or in rule
    patches are rejected instead of silently ignored.
    """

    model_config = ConfigDict(extra="forbid")


class AlertType(str, Enum):
    """What part of the archive an alert is about."""

    STORAGE_QUOTA = "storage_quota"
    COST_BUDGET = "cost_budget"
    SECURITY_BREACH = "security_breach"
    SYSTEM_ERROR = "system_error"
    PERFORMANCE = "performance"
    MAINTENANCE = "maintenance"


class AlertSeverity(str, Enum):
    """Alert severity levels, ordered critical > high > medium > low."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, Enum):
    """Lifecycle states of an alert.

    ACTIVE: Fired and awaiting attention
    ACKNOWLEDGED: Someone has seen it; it no longer escalates
    RESOLVED: Terminal
    SUPPRESSED: Fired during maintenance mode; released to ACTIVE afterwards
    """

    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    SUPPRESSED = "suppressed"


class NotificationChannel(str, Enum):
    """Delivery channels for alert notifications."""

    BROWSER = "browser"
    EMAIL = "email"
    SLACK = "slack"
    IN_APP = "in_app"
    SMS = "sms"


class ConditionOperator(str, Enum):
    """Comparison operators for conditions."""

    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EQ = "eq"
    NEQ = "neq"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"


NUMERIC_OPERATORS: frozenset[ConditionOperator] = frozenset(
    {
        ConditionOperator.GT,
        ConditionOperator.GTE,
        ConditionOperator.LT,
        ConditionOperator.LTE,
        ConditionOperator.EQ,
        ConditionOperator.NEQ,
    }
)


class Aggregation(str, Enum):
    """Reductions applied to the samples inside a condition's time window."""

    AVG = "avg"
    SUM = "sum"
    MIN = "min"
    MAX = "max"
    COUNT = "count"


class ActionType(str, Enum):
    """Kinds of rule actions. Only NOTIFICATION is dispatched by the engine."""

    NOTIFICATION = "notification"
    WEBHOOK = "webhook"
    AUTO_ACTION = "auto_action"


SEVERITY_RANK: dict[AlertSeverity, int] = {
    AlertSeverity.LOW: 1,
    AlertSeverity.MEDIUM: 2,
    AlertSeverity.HIGH: 3,
    AlertSeverity.CRITICAL: 4,
}

OPEN_STATUSES: frozenset[AlertStatus] = frozenset({AlertStatus.ACTIVE, AlertStatus.SUPPRESSED})


def coerce_threshold(threshold: float | str) -> float | None:
    """Coerce a condition threshold to a number.

    Returns:
        The numeric threshold, or None if it cannot be read as a number
    """
    if isinstance(threshold, bool):
        return None
    if isinstance(threshold, (int, float)):
        return float(threshold)
    try:
        return float(str(threshold).strip())
    except ValueError:
        return None


class AlertCondition(AlertBaseModel):
    """A single threshold check against a metric.

    Without ``time_window``/``aggregation`` the condition is evaluated
    against the most recent sample. With both set, the samples inside the
    window are reduced first.

    Attributes:
        metric: Metric name (e.g. "storage.quota_percentage")
        operator: Comparison operator
        threshold: Number for numeric operators, any string for contains
        time_window: Lookback window in minutes
        aggregation: Reduction over the window
    """

    metric: str = Field(min_length=1)
    operator: ConditionOperator
    threshold: float | str
    time_window: float | None = Field(default=None, gt=0)
    aggregation: Aggregation | None = None

    @model_validator(mode="after")
    def _check_consistency(self) -> "AlertCondition":
        if (self.time_window is None) != (self.aggregation is None):
            raise ValueError("time_window and aggregation must be set together")
        if self.operator in NUMERIC_OPERATORS and coerce_threshold(self.threshold) is None:
            raise ValueError(
                f"operator '{self.operator.value}' requires a numeric threshold, "
                f"got {self.threshold!r}"
            )
        return self

    @property
    def is_windowed(self) -> bool:
        return self.time_window is not None and self.aggregation is not None


class AlertAction(AlertBaseModel):
    """An action to run when a rule fires.

    Attributes:
        type: Action kind
        channel: Notification channel (required for notification actions)
        target: Channel-specific destination (email, webhook URL, phone, ...)
        template: Optional message template ($title, $message, ... placeholders)
        enabled: Disabled actions are skipped by the dispatcher
    """

    type: ActionType = ActionType.NOTIFICATION
    channel: NotificationChannel | None = None
    target: str
    template: str | None = None
    enabled: bool = True

    @model_validator(mode="after")
    def _check_channel(self) -> "AlertAction":
        if self.type == ActionType.NOTIFICATION and self.channel is None:
            raise ValueError("notification actions require a channel")
        return self


class AlertRule(AlertBaseModel):
    """A declarative alert rule.

    All conditions must hold (AND) for the rule to fire. Once fired, the rule
    is not evaluated again until ``cooldown_minutes`` have elapsed.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1)
    description: str = ""
    type: AlertType
    severity: AlertSeverity
    enabled: bool = True
    conditions: list[AlertCondition] = Field(min_length=1)
    actions: list[AlertAction] = Field(default_factory=list)
    cooldown_minutes: float = Field(default=60, ge=0)
    created_at: UtcDatetime = Field(default_factory=utc_now)
    updated_at: UtcDatetime = Field(default_factory=utc_now)


class ConditionSnapshot(AlertBaseModel):
    """Value of one condition at the moment its rule fired."""

    metric: str
    current_value: float | None
    threshold: float | str
    operator: ConditionOperator


class NotificationRecord(AlertBaseModel):
    """Outcome of one notification attempt.

    Attributes:
        channel: Channel the attempt went through
        target: Destination used
        sent_at: When the attempt started
        success: Whether the sender reported success
        error: Failure reason (sender error, exception text, or timeout)
        retry_count: Reserved for a future retry policy; always 0 today
    """

    id: str = Field(default_factory=new_id)
    channel: NotificationChannel
    target: str
    sent_at: UtcDatetime = Field(default_factory=utc_now)
    success: bool
    error: str | None = None
    retry_count: int = 0


class Alert(AlertBaseModel):
    """A fired alert.

    Status changes go through AlertLifecycle; notifications_sent is
    append-only.
    """

    id: str = Field(default_factory=new_id)
    rule_id: str
    rule_name: str
    type: AlertType
    severity: AlertSeverity
    status: AlertStatus = AlertStatus.ACTIVE
    title: str
    message: str = ""
    details: list[ConditionSnapshot] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)
    triggered_at: UtcDatetime = Field(default_factory=utc_now)
    acknowledged_at: UtcDatetime | None = None
    acknowledged_by: str | None = None
    resolved_at: UtcDatetime | None = None
    resolved_by: str | None = None
    escalation_level: int = Field(default=0, ge=0)
    notifications_sent: list[NotificationRecord] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @property
    def is_open(self) -> bool:
        """Active or suppressed: blocks a second alert for the same rule."""
        return self.status in OPEN_STATUSES


def sort_by_severity(alerts: list[Alert]) -> list[Alert]:
    """Sort alerts for display: critical first, newest first within a severity."""
    return sorted(
        alerts,
        key=lambda a: (-SEVERITY_RANK[a.severity], -a.triggered_at.timestamp()),
    )


class ChannelSettings(AlertBaseModel):
    """Enablement and free-form settings for one notification channel."""

    enabled: bool = False
    config: dict[str, Any] = Field(default_factory=dict)


class EscalationLevel(AlertBaseModel):
    """One rung of the escalation ladder.

    Channels and targets pair by position. A single target is shared by
    every channel of the level.
    """

    after_minutes: float = Field(ge=0)
    channels: list[NotificationChannel] = Field(min_length=1)
    targets: list[str] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_targets(self) -> "EscalationLevel":
        if len(self.targets) not in (1, len(self.channels)):
            raise ValueError(
                "escalation targets must be a single target or one per channel "
                f"({len(self.channels)} channels, {len(self.targets)} targets)"
            )
        return self

    def pairs(self) -> list[tuple[NotificationChannel, str]]:
        if len(self.targets) == 1:
            return [(channel, self.targets[0]) for channel in self.channels]
        return list(zip(self.channels, self.targets))


class EscalationSettings(AlertBaseModel):
    enabled: bool = False
    levels: list[EscalationLevel] = Field(default_factory=list)


class MaintenanceMode(AlertBaseModel):
    """Maintenance-mode override.

    While active with suppress_all, alerts of types outside allowed_types are
    created in SUPPRESSED state and not notified.
    """

    enabled: bool = False
    until: UtcDatetime | None = None
    suppress_all: bool = False
    allowed_types: list[AlertType] = Field(default_factory=list)

    @field_validator("allowed_types")
    @classmethod
    def _dedupe_types(cls, value: list[AlertType]) -> list[AlertType]:
        return list(dict.fromkeys(value))

    def is_active(self, now: datetime) -> bool:
        if not self.enabled:
            return False
        return self.until is None or now < self.until

    def suppresses(self, alert_type: AlertType, now: datetime) -> bool:
        return self.is_active(now) and self.suppress_all and alert_type not in self.allowed_types


def _default_severity_thresholds() -> dict[AlertType, dict[AlertSeverity, float]]:
    def ladder(low: float, medium: float, high: float, critical: float):
        return {
            AlertSeverity.LOW: low,
            AlertSeverity.MEDIUM: medium,
            AlertSeverity.HIGH: high,
            AlertSeverity.CRITICAL: critical,
        }

    return {
        AlertType.STORAGE_QUOTA: ladder(70, 80, 90, 95),
        AlertType.COST_BUDGET: ladder(60, 80, 100, 120),
        AlertType.SECURITY_BREACH: ladder(3, 5, 10, 20),
        AlertType.SYSTEM_ERROR: ladder(0.05, 0.1, 0.2, 0.5),
        AlertType.PERFORMANCE: ladder(2000, 5000, 10000, 30000),
        AlertType.MAINTENANCE: ladder(1, 2, 3, 4),
    }


def _default_notification_settings() -> dict[NotificationChannel, ChannelSettings]:
    return {
        NotificationChannel.BROWSER: ChannelSettings(
            enabled=True, config={"auto_close": True, "require_interaction": False}
        ),
        NotificationChannel.IN_APP: ChannelSettings(
            enabled=True, config={"position": "top-right", "auto_close_ms": 10000}
        ),
        NotificationChannel.EMAIL: ChannelSettings(enabled=False, config={"template": "default"}),
        NotificationChannel.SLACK: ChannelSettings(
            enabled=False, config={"channel": "#alerts", "username": "AlertBot"}
        ),
        NotificationChannel.SMS: ChannelSettings(enabled=False),
    }


def _default_escalation_settings() -> EscalationSettings:
    return EscalationSettings(
        enabled=False,
        levels=[
            EscalationLevel(
                after_minutes=15,
                channels=[NotificationChannel.EMAIL],
                targets=["admin@example.com"],
            ),
            EscalationLevel(
                after_minutes=60,
                channels=[NotificationChannel.SLACK, NotificationChannel.SMS],
                targets=["#critical-alerts", "+1234567890"],
            ),
        ],
    )


class AlertConfig(AlertBaseModel):
    """Process-wide alert configuration (user-editable, persisted).

    Attributes:
        enabled: Global switch; when False no evaluation ticks run
        default_severity_thresholds: Reference thresholds per type and severity
        notification_settings: Per-channel enablement and settings
        escalation_settings: Escalation ladder for unacknowledged alerts
        maintenance_mode: Maintenance-mode override
    """

    enabled: bool = True
    default_severity_thresholds: dict[AlertType, dict[AlertSeverity, float]] = Field(
        default_factory=_default_severity_thresholds
    )
    notification_settings: dict[NotificationChannel, ChannelSettings] = Field(
        default_factory=_default_notification_settings
    )
    escalation_settings: EscalationSettings = Field(default_factory=_default_escalation_settings)
    maintenance_mode: MaintenanceMode = Field(default_factory=MaintenanceMode)

    def channel_enabled(self, channel: NotificationChannel) -> bool:
        settings = self.notification_settings.get(channel)
        return settings is not None and settings.enabled

    def default_threshold(self, alert_type: AlertType, severity: AlertSeverity) -> float | None:
        return self.default_severity_thresholds.get(alert_type, {}).get(severity)

    def classify(self, alert_type: AlertType, value: float) -> AlertSeverity | None:
        """Highest severity whose default threshold ``value`` reaches.

        Returns:
            The matching severity, or None if the value is below every threshold
        """
        ladder = self.default_severity_thresholds.get(alert_type, {})
        for severity in sorted(ladder, key=SEVERITY_RANK.__getitem__, reverse=True):
            if value >= ladder[severity]:
                return severity
        return None

    def merged(self, patch: dict[str, Any]) -> "AlertConfig":
        """Return a new config with the top-level sections in ``patch`` replaced.

        Raises:
            pydantic.ValidationError: If the patch has unknown keys or bad values
        """
        data = self.model_dump()
        for key, value in patch.items():
            data[key] = value.model_dump() if isinstance(value, BaseModel) else value
        return AlertConfig.model_validate(data)


class AlertStats(AlertBaseModel):
    """Aggregate counts over the alert working set."""

    total: int = 0
    active: int = 0
    acknowledged: int = 0
    resolved: int = 0
    suppressed: int = 0
    by_type: dict[AlertType, int] = Field(
        default_factory=lambda: {alert_type: 0 for alert_type in AlertType}
    )
    by_severity: dict[AlertSeverity, int] = Field(
        default_factory=lambda: {severity: 0 for severity in AlertSeverity}
    )
