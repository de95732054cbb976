"""NotificationDispatcher for concurrent, per-channel-isolated alert delivery.

This module provides the NotificationDispatcher class which handles:
- Selecting the notification actions of a rule that should run
- Issuing every send for one alert concurrently
- Bounding each send with a timeout
- Turning every outcome (success, sender error, exception, timeout) into a
  NotificationRecord, so one channel's failure never affects another

Usage:
    from photo_alerts.alerts.dispatcher import NotificationDispatcher

    dispatcher = NotificationDispatcher(
        senders={NotificationChannel.IN_APP: in_app_sender, NotificationChannel.EMAIL: email_sender},
        config=alert_config,
        timeout_seconds=5.0,
    )
    records = await dispatcher.send_notifications(alert, rule.actions)
"""

import asyncio
import logging
from collections.abc import Iterable

from photo_alerts.alerts.channels import NotificationSender
from photo_alerts.alerts.models import (
    ActionType,
    Alert,
    AlertAction,
    AlertConfig,
    NotificationChannel,
    NotificationRecord,
)
from photo_alerts.clock import Clock, utc_now

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Fans an alert out to its notification channels.

    No retries: a failed or timed-out send is recorded once with
    retry_count=0.
    """

    def __init__(
        self,
        senders: dict[NotificationChannel, NotificationSender],
        config: AlertConfig | None = None,
        timeout_seconds: float = 5.0,
        clock: Clock = utc_now,
    ):
        """Initialize the NotificationDispatcher.

        Args:
            senders: Sender per channel; channels without one fail their sends
            config: Alert configuration deciding which channels are enabled
            timeout_seconds: Upper bound for a single send (default: 5.0)
            clock: Time source for NotificationRecord.sent_at
        """
        self.senders = senders
        self.config = config or AlertConfig()
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    def select_actions(self, actions: Iterable[AlertAction]) -> list[AlertAction]:
        """Enabled notification actions whose channel is enabled in the config."""
        return [
            action
            for action in actions
            if action.type == ActionType.NOTIFICATION
            and action.enabled
            and action.channel is not None
            and self.config.channel_enabled(action.channel)
        ]

    async def send_notifications(
        self, alert: Alert, actions: Iterable[AlertAction]
    ) -> list[NotificationRecord]:
        """Run a rule's notification actions for one alert.

        Args:
            alert: The alert to notify about
            actions: The rule's actions; non-notification, disabled and
                channel-disabled actions are skipped

        Returns:
            One NotificationRecord per action run, in action order. Never raises
            for channel failures.
        """
        selected = self.select_actions(actions)
        if not selected:
            return []

        return list(
            await asyncio.gather(
                *(
                    self._deliver(alert, action.channel, action.target, action.template)
                    for action in selected
                )
            )
        )

    async def dispatch_to(
        self,
        alert: Alert,
        channel_targets: Iterable[tuple[NotificationChannel, str]],
    ) -> list[NotificationRecord]:
        """Send an alert to explicit (channel, target) pairs, e.g. an escalation level.

        Pairs whose channel is disabled in the config are skipped.
        """
        pairs = [
            (channel, target)
            for channel, target in channel_targets
            if self.config.channel_enabled(channel)
        ]
        if not pairs:
            return []

        return list(
            await asyncio.gather(*(self._deliver(alert, channel, target) for channel, target in pairs))
        )

    async def _deliver(
        self,
        alert: Alert,
        channel: NotificationChannel,
        target: str,
        template: str | None = None,
    ) -> NotificationRecord:
        """Deliver to a single channel and record the outcome."""
        sent_at = self._clock()
        sender = self.senders.get(channel)

        if sender is None:
            logger.warning(
                "No sender registered for channel '%s' (alert %s)", channel.value, alert.id
            )
            return NotificationRecord(
                channel=channel,
                target=target,
                sent_at=sent_at,
                success=False,
                error="No sender registered",
            )

        error: str | None = None
        try:
            result = await asyncio.wait_for(
                sender.send(alert, target, template), timeout=self.timeout_seconds
            )
            if not result.success:
                error = result.error_message or "Unknown error"
        except TimeoutError:
            error = f"timed out after {self.timeout_seconds}s"
        except Exception as e:
            error = str(e) or type(e).__name__

        if error is None:
            logger.debug("Alert %s delivered via %s to %s", alert.id, channel.value, target)
        else:
            logger.warning(
                "Alert %s delivery failed via %s to %s: %s",
                alert.id,
                channel.value,
                target,
                error,
            )

        return NotificationRecord(
            channel=channel,
            target=target,
            sent_at=sent_at,
            success=error is None,
            error=error,
        )
