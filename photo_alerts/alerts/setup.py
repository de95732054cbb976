"""Alert system initialization.

This module builds the AlertService and its collaborators from Settings.
Nothing is kept at module level: the caller owns the returned objects and
tears them down.

Usage:
    from photo_alerts.alerts.setup import configure_logging, create_alert_service, create_metric_sources
    from photo_alerts.config import Settings
    from photo_alerts.workers.scheduler import EvaluationScheduler

    settings = Settings()
    configure_logging(settings.log_level)

    service = await create_alert_service(settings)
    scheduler = EvaluationScheduler(
        service,
        sources=create_metric_sources(settings),
        evaluation_interval_seconds=settings.evaluation_interval_seconds,
    )
    await scheduler.start()
    ...
    await scheduler.shutdown()
    await service.close()
"""

import logging

from redis.asyncio import Redis

from photo_alerts.alerts.channels import (
    BrowserBridge,
    BrowserSender,
    EmailSender,
    InAppSender,
    NotificationSender,
    SlackSender,
    SmsSender,
)
from photo_alerts.alerts.dispatcher import NotificationDispatcher
from photo_alerts.alerts.engine import RuleEngine
from photo_alerts.alerts.events import AlertEventBus
from photo_alerts.alerts.lifecycle import AlertLifecycle
from photo_alerts.alerts.models import NotificationChannel
from photo_alerts.alerts.repository import (
    AlertStateRepository,
    FileStateStore,
    MemoryStateStore,
    RedisStateStore,
    StateStore,
)
from photo_alerts.alerts.service import AlertService
from photo_alerts.clock import Clock, utc_now
from photo_alerts.config import Settings
from photo_alerts.metrics.sources import (
    ArchiveStatsClient,
    CostMetricSource,
    MetricSource,
    StorageMetricSource,
)
from photo_alerts.metrics.store import MetricStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def create_state_store(settings: Settings) -> StateStore:
    """Build the StateStore selected by ``settings.state_backend``."""
    if settings.state_backend == "file":
        logger.info("Alert state stored in %s", settings.state_dir)
        return FileStateStore(settings.state_dir)
    if settings.state_backend == "redis":
        logger.info("Alert state stored in Redis (prefix=%s)", settings.redis_key_prefix)
        return RedisStateStore(Redis.from_url(settings.redis_url), prefix=settings.redis_key_prefix)
    logger.info("Alert state kept in memory only")
    return MemoryStateStore()


def create_senders(
    settings: Settings,
    events: AlertEventBus,
    browser: BrowserBridge | None = None,
) -> dict[NotificationChannel, NotificationSender]:
    """Create the notification senders.

    In-app and Slack are always available; email when ``smtp_host`` is set,
    SMS when ``sms_gateway_url`` is set, browser when a bridge is given.
    """
    senders: dict[NotificationChannel, NotificationSender] = {
        NotificationChannel.IN_APP: InAppSender(events),
        NotificationChannel.SLACK: SlackSender(webhook_url=settings.slack_webhook_url),
    }

    if browser is not None:
        senders[NotificationChannel.BROWSER] = BrowserSender(browser)
        logger.info("Browser sender configured")

    if settings.smtp_host:
        senders[NotificationChannel.EMAIL] = EmailSender(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            sender=settings.smtp_sender,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
        )
        logger.info("Email sender configured")

    if settings.sms_gateway_url:
        senders[NotificationChannel.SMS] = SmsSender(
            gateway_url=settings.sms_gateway_url,
            api_key=settings.sms_api_key,
            from_number=settings.sms_from_number,
        )
        logger.info("SMS sender configured")

    return senders


async def create_alert_service(
    settings: Settings,
    browser: BrowserBridge | None = None,
    events: AlertEventBus | None = None,
    store: StateStore | None = None,
    clock: Clock = utc_now,
) -> AlertService:
    """Build an AlertService and load its persisted state.

    Args:
        settings: Deployment settings
        browser: Bridge for desktop notifications (optional)
        events: In-app event bus to publish to (a new one if omitted)
        store: State store overriding ``settings.state_backend``
        clock: Time source shared by every component

    Returns:
        A loaded AlertService
    """
    events = events or AlertEventBus()
    metric_store = MetricStore(retention_hours=settings.metric_retention_hours, clock=clock)
    lifecycle = AlertLifecycle(clock=clock)
    engine = RuleEngine(store=metric_store, lifecycle=lifecycle, clock=clock)
    dispatcher = NotificationDispatcher(
        senders=create_senders(settings, events, browser),
        timeout_seconds=settings.notification_timeout_seconds,
        clock=clock,
    )
    repository = AlertStateRepository(store or create_state_store(settings))

    service = AlertService(
        metric_store=metric_store,
        engine=engine,
        lifecycle=lifecycle,
        dispatcher=dispatcher,
        repository=repository,
        events=events,
        browser=browser,
        clock=clock,
    )
    await service.load()
    logger.info("AlertService initialized")
    return service


def create_metric_sources(settings: Settings, clock: Clock = utc_now) -> list[MetricSource]:
    """Storage and cost sources backed by the archive stats API, if configured."""
    if not settings.archive_api_url:
        return []

    client = ArchiveStatsClient(settings.archive_api_url, token=settings.archive_api_token)
    return [
        StorageMetricSource(client, clock=clock),
        CostMetricSource(client, monthly_budget_usd=settings.monthly_budget_usd, clock=clock),
    ]
