"""Alert system package.

This package provides the photo archive's alert engine, including:
- Rule, alert and configuration models
- Condition evaluation over windowed metrics
- Rule factory and validation, default rules
- RuleEngine with cooldown tracking
- Alert lifecycle and maintenance-mode suppression
- Notification senders (Browser, In-app, Email, Slack, SMS)
- Concurrent delivery with NotificationDispatcher, escalation ladder
- Persistence of alerts, rules and config
- AlertService as the main entry point
"""

from photo_alerts.alerts.channels import (
    BrowserBridge,
    BrowserNotification,
    BrowserSender,
    DeliveryResult,
    EmailSender,
    InAppSender,
    NotificationSender,
    SlackSender,
    SmsSender,
)
from photo_alerts.alerts.conditions import ConditionEvaluator, aggregate, compare
from photo_alerts.alerts.dispatcher import NotificationDispatcher
from photo_alerts.alerts.engine import RuleEngine
from photo_alerts.alerts.errors import (
    AlertError,
    AlertNotFoundError,
    RuleNotFoundError,
    RuleValidationError,
)
from photo_alerts.alerts.escalation import DueEscalation, EscalationPolicy
from photo_alerts.alerts.events import AlertEventBus, AlertFired
from photo_alerts.alerts.factory import (
    DEFAULT_ALERT_RULES,
    MANUAL_RULE_ID,
    apply_rule_patch,
    create_alert_from_rule,
    create_manual_alert,
    create_rule,
    seed_default_rules,
)
from photo_alerts.alerts.formatting import (
    format_alert_message,
    get_alert_color,
    get_alert_icon,
    notification_level,
    render_template,
)
from photo_alerts.alerts.lifecycle import AlertLifecycle
from photo_alerts.alerts.models import (
    SEVERITY_RANK,
    ActionType,
    Aggregation,
    Alert,
    AlertAction,
    AlertCondition,
    AlertConfig,
    AlertRule,
    AlertSeverity,
    AlertStats,
    AlertStatus,
    AlertType,
    ChannelSettings,
    ConditionOperator,
    ConditionSnapshot,
    EscalationLevel,
    EscalationSettings,
    MaintenanceMode,
    NotificationChannel,
    NotificationRecord,
    sort_by_severity,
)
from photo_alerts.alerts.repository import (
    AlertStateRepository,
    FileStateStore,
    MemoryStateStore,
    RedisStateStore,
    StateStore,
)
from photo_alerts.alerts.service import AlertService
from photo_alerts.alerts.setup import (
    configure_logging,
    create_alert_service,
    create_metric_sources,
)

__all__ = [
    # Models
    "ActionType",
    "Aggregation",
    "Alert",
    "AlertAction",
    "AlertCondition",
    "AlertConfig",
    "AlertRule",
    "AlertSeverity",
    "AlertStats",
    "AlertStatus",
    "AlertType",
    "ChannelSettings",
    "ConditionOperator",
    "ConditionSnapshot",
    "EscalationLevel",
    "EscalationSettings",
    "MaintenanceMode",
    "NotificationChannel",
    "NotificationRecord",
    "SEVERITY_RANK",
    "sort_by_severity",
    # Errors
    "AlertError",
    "AlertNotFoundError",
    "RuleNotFoundError",
    "RuleValidationError",
    # Factory
    "DEFAULT_ALERT_RULES",
    "MANUAL_RULE_ID",
    "apply_rule_patch",
    "create_alert_from_rule",
    "create_manual_alert",
    "create_rule",
    "seed_default_rules",
    # Evaluation
    "ConditionEvaluator",
    "RuleEngine",
    "aggregate",
    "compare",
    # Lifecycle
    "AlertLifecycle",
    # Channels
    "BrowserBridge",
    "BrowserNotification",
    "BrowserSender",
    "DeliveryResult",
    "EmailSender",
    "InAppSender",
    "NotificationSender",
    "SlackSender",
    "SmsSender",
    # Delivery
    "AlertEventBus",
    "AlertFired",
    "DueEscalation",
    "EscalationPolicy",
    "NotificationDispatcher",
    # Formatting
    "format_alert_message",
    "get_alert_color",
    "get_alert_icon",
    "notification_level",
    "render_template",
    # Persistence
    "AlertStateRepository",
    "FileStateStore",
    "MemoryStateStore",
    "RedisStateStore",
    "StateStore",
    # Service
    "AlertService",
    "configure_logging",
    "create_alert_service",
    "create_metric_sources",
]
