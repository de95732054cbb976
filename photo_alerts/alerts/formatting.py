"""Presentation helpers shared by the notification senders and the dashboard."""

from string import Template

from photo_alerts.alerts.models import Alert, AlertSeverity, AlertType

DEFAULT_ICON = "\U0001f514"  # bell
DEFAULT_COLOR = "gray"

ALERT_ICONS: dict[AlertType, str] = {
    AlertType.STORAGE_QUOTA: "\U0001f4be",
    AlertType.COST_BUDGET: "\U0001f4b0",
    AlertType.SECURITY_BREACH: "\U0001f512",
    AlertType.SYSTEM_ERROR: "⚠️",
    AlertType.PERFORMANCE: "⚡",
    AlertType.MAINTENANCE: "\U0001f527",
}

ALERT_COLORS: dict[AlertSeverity, str] = {
    AlertSeverity.LOW: "blue",
    AlertSeverity.MEDIUM: "yellow",
    AlertSeverity.HIGH: "orange",
    AlertSeverity.CRITICAL: "red",
}

# In-app toast levels
NOTIFICATION_LEVELS: dict[AlertSeverity, str] = {
    AlertSeverity.LOW: "success",
    AlertSeverity.MEDIUM: "warning",
    AlertSeverity.HIGH: "error",
    AlertSeverity.CRITICAL: "error",
}

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


def format_alert_message(alert: Alert) -> str:
    """Plain-text rendering used by email and SMS bodies.

    Example:
        [MEDIUM] Storage Quota Warning (80%)
        Alert when storage usage exceeds 80% of quota
        Triggered: 2024-01-15 10:30:00 UTC
    """
    return (
        f"[{alert.severity.value.upper()}] {alert.title}\n"
        f"{alert.message}\n"
        f"Triggered: {alert.triggered_at.strftime(TIMESTAMP_FORMAT)}"
    )


def get_alert_icon(alert_type: AlertType) -> str:
    return ALERT_ICONS.get(alert_type, DEFAULT_ICON)


def get_alert_color(severity: AlertSeverity) -> str:
    return ALERT_COLORS.get(severity, DEFAULT_COLOR)


def notification_level(severity: AlertSeverity) -> str:
    return NOTIFICATION_LEVELS.get(severity, "info")


def render_template(template: str, alert: Alert) -> str:
    """Fill an action template.

    Supported placeholders: $title, $message, $severity, $type,
    $triggered_at, $alert_id. Unknown placeholders are left as they are.
    """
    return Template(template).safe_substitute(
        title=alert.title,
        message=alert.message,
        severity=alert.severity.value,
        type=alert.type.value,
        triggered_at=alert.triggered_at.isoformat(),
        alert_id=alert.id,
    )
