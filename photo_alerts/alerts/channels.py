"""Notification sender implementations for the alert system.

This module provides:
- DeliveryResult: Result dataclass for notification delivery
- NotificationSender: Abstract base class for notification senders
- BrowserSender: Desktop notifications through a BrowserBridge
- InAppSender: In-process AlertFired events for the dashboard
- EmailSender: SMTP-based email notifications
- SlackSender: Slack incoming-webhook notifications
- SmsSender: SMS through an HTTP gateway
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Literal, Protocol

import aiosmtplib
import httpx

from photo_alerts.alerts.events import AlertEventBus, AlertFired
from photo_alerts.alerts.formatting import (
    format_alert_message,
    get_alert_icon,
    render_template,
)
from photo_alerts.alerts.models import Alert, AlertSeverity

PermissionState = Literal["default", "granted", "denied"]


@dataclass
class DeliveryResult:
    """Result of a notification delivery attempt.

    Attributes:
        success: Whether the delivery succeeded
        response_code: HTTP status code or SMTP response code (if applicable)
        error_message: Error message if delivery failed
    """

    success: bool
    response_code: int | None = None
    error_message: str | None = None


class NotificationSender(ABC):
    """Abstract base class for notification senders.

    All senders must implement the send() method. Senders report transport
    failures through DeliveryResult; the dispatcher also turns anything they
    raise into a failed record.
    """

    @abstractmethod
    async def send(self, alert: Alert, target: str, template: str | None = None) -> DeliveryResult:
        """Send a notification for the given alert.

        Args:
            alert: The alert to notify about
            target: Channel-specific destination (email address, Slack channel, phone, ...)
            template: Optional message template overriding the default body

        Returns:
            DeliveryResult indicating success or failure
        """
        pass


def _body(alert: Alert, template: str | None) -> str:
    return render_template(template, alert) if template else format_alert_message(alert)


@dataclass
class BrowserNotification:
    """A desktop notification as handed to the browser.

    Attributes:
        title: Notification title
        body: Notification text
        tag: Replaces an earlier notification with the same tag
        icon: Icon URL
        require_interaction: Stay on screen until the user dismisses it
        auto_close_seconds: Close automatically after this delay (None: never)
    """

    title: str
    body: str
    tag: str
    icon: str = "/favicon.ico"
    require_interaction: bool = False
    auto_close_seconds: float | None = None


class BrowserBridge(Protocol):
    """What the browser sender needs from the presentation layer."""

    @property
    def permission(self) -> PermissionState:
        """Current notification permission."""
        ...

    async def request_permission(self) -> PermissionState:
        """Ask the user for permission; returns the resulting state."""
        ...

    async def show(self, notification: BrowserNotification) -> None:
        """Display a notification."""
        ...


class BrowserSender(NotificationSender):
    """Desktop notifications.

    Asks for permission on first use. Critical alerts stay on screen until
    dismissed; everything else closes after ``auto_close_seconds``.
    """

    def __init__(self, bridge: BrowserBridge | None, auto_close_seconds: float = 10.0):
        self.bridge = bridge
        self.auto_close_seconds = auto_close_seconds

    async def send(self, alert: Alert, target: str, template: str | None = None) -> DeliveryResult:
        if self.bridge is None:
            return DeliveryResult(success=False, error_message="Browser notifications not supported")

        permission = self.bridge.permission
        if permission == "default":
            permission = await self.bridge.request_permission()

        if permission != "granted":
            return DeliveryResult(
                success=False, error_message="Browser notification permission denied"
            )

        critical = alert.severity == AlertSeverity.CRITICAL
        await self.bridge.show(
            BrowserNotification(
                title=alert.title,
                body=render_template(template, alert) if template else alert.message,
                tag=alert.id,
                require_interaction=critical,
                auto_close_seconds=None if critical else self.auto_close_seconds,
            )
        )
        return DeliveryResult(success=True)


class InAppSender(NotificationSender):
    """Publishes AlertFired to the in-app event bus. Always succeeds."""

    def __init__(self, events: AlertEventBus):
        self.events = events

    async def send(self, alert: Alert, target: str, template: str | None = None) -> DeliveryResult:
        await self.events.publish(AlertFired.for_alert(alert))
        return DeliveryResult(success=True)


class EmailSender(NotificationSender):
    """SMTP-based email notification sender.

    Sends email notifications with subject format "[{SEVERITY}] {title}".
    """

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
    ):
        """Initialize the email sender.

        Args:
            smtp_host: SMTP server hostname
            smtp_port: SMTP server port
            sender: Sender email address
            username: SMTP authentication username (optional)
            password: SMTP authentication password (optional)
            use_tls: Whether to use STARTTLS (default: True)
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls

    def build_message(self, alert: Alert, target: str, template: str | None = None) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = f"[{alert.severity.value.upper()}] {alert.title}"
        message["From"] = self.sender
        message["To"] = target

        body_lines = [_body(alert, template), "", f"Type: {alert.type.value}", f"Alert ID: {alert.id}"]

        if alert.details:
            body_lines.append("\nDetails:")
            for snapshot in alert.details:
                body_lines.append(
                    f"  {snapshot.metric}: {snapshot.current_value} "
                    f"({snapshot.operator.value} {snapshot.threshold})"
                )

        message.set_content("\n".join(body_lines))
        return message

    async def send(self, alert: Alert, target: str, template: str | None = None) -> DeliveryResult:
        """Send an email notification.

        Args:
            alert: The alert to notify about
            target: Recipient email address
            template: Optional body template

        Returns:
            DeliveryResult with success=True and response_code=250 on success,
            or success=False with error_message on failure
        """
        message = self.build_message(alert, target, template)

        try:
            await aiosmtplib.send(
                message,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.username,
                password=self.password,
                start_tls=self.use_tls,
            )
            return DeliveryResult(success=True, response_code=250)
        except aiosmtplib.SMTPException as e:
            return DeliveryResult(success=False, error_message=str(e))


async def _post_json(
    url: str,
    payload: dict[str, Any],
    timeout_seconds: float,
    headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DeliveryResult:
    try:
        async with httpx.AsyncClient(timeout=timeout_seconds, transport=transport) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return DeliveryResult(success=True, response_code=response.status_code)
    except httpx.TimeoutException:
        return DeliveryResult(
            success=False,
            error_message="Request timed out",
        )
    except httpx.HTTPStatusError as e:
        return DeliveryResult(
            success=False,
            response_code=e.response.status_code,
            error_message=str(e),
        )
    except httpx.RequestError as e:
        return DeliveryResult(
            success=False,
            error_message=str(e),
        )


class SlackSender(NotificationSender):
    """Slack incoming-webhook sender.

    The target is either a webhook URL, or a channel name ("#critical-alerts")
    posted through the configured default webhook.
    """

    SEVERITY_EMOJI = {
        AlertSeverity.CRITICAL: ":rotating_light:",
        AlertSeverity.HIGH: ":fire:",
        AlertSeverity.MEDIUM: ":warning:",
        AlertSeverity.LOW: ":information_source:",
    }

    SEVERITY_COLOR = {
        AlertSeverity.CRITICAL: "#ff0000",
        AlertSeverity.HIGH: "#ff8800",
        AlertSeverity.MEDIUM: "#ffcc00",
        AlertSeverity.LOW: "#3b82f6",
    }

    def __init__(
        self,
        webhook_url: str | None = None,
        username: str = "AlertBot",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the Slack sender.

        Args:
            webhook_url: Default incoming-webhook URL for channel-name targets
            username: Bot display name
            timeout_seconds: HTTP request timeout (default: 10.0 seconds)
            transport: Optional httpx transport (tests)
        """
        self.webhook_url = webhook_url
        self.username = username
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    def build_payload(self, alert: Alert, template: str | None = None) -> dict[str, Any]:
        emoji = self.SEVERITY_EMOJI.get(alert.severity, "")
        text = (
            render_template(template, alert)
            if template
            else f"{emoji} [{alert.severity.value.upper()}] {alert.title}"
        )
        return {
            "username": self.username,
            "icon_emoji": get_alert_icon(alert.type),
            "text": text,
            "attachments": [
                {
                    "color": self.SEVERITY_COLOR.get(alert.severity, "#cccccc"),
                    "text": alert.message,
                    "fields": [
                        {"title": "Type", "value": alert.type.value, "short": True},
                        {"title": "Time", "value": alert.triggered_at.isoformat(), "short": True},
                    ],
                }
            ],
        }

    async def send(self, alert: Alert, target: str, template: str | None = None) -> DeliveryResult:
        payload = self.build_payload(alert, template)

        if target.startswith(("http://", "https://")):
            url = target
        elif self.webhook_url:
            url = self.webhook_url
            payload["channel"] = target
        else:
            return DeliveryResult(success=False, error_message="No Slack webhook configured")

        return await _post_json(url, payload, self.timeout_seconds, transport=self.transport)


class SmsSender(NotificationSender):
    """SMS through an HTTP gateway accepting JSON {to, from, body}."""

    MAX_LENGTH = 160

    def __init__(
        self,
        gateway_url: str,
        api_key: str | None = None,
        from_number: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.gateway_url = gateway_url
        self.api_key = api_key
        self.from_number = from_number
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    def build_text(self, alert: Alert, template: str | None = None) -> str:
        if template:
            text = render_template(template, alert)
        else:
            text = f"[{alert.severity.value.upper()}] {alert.title}: {alert.message}"
        if len(text) > self.MAX_LENGTH:
            text = text[: self.MAX_LENGTH - 3] + "..."
        return text

    async def send(self, alert: Alert, target: str, template: str | None = None) -> DeliveryResult:
        payload: dict[str, Any] = {"to": target, "body": self.build_text(alert, template)}
        if self.from_number:
            payload["from"] = self.from_number

        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        return await _post_json(
            self.gateway_url, payload, self.timeout_seconds, headers=headers, transport=self.transport
        )
