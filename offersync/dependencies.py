from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from offersync.core.config import Settings, get_settings
from offersync.database import async_session
from offersync.integrations.base import MarketplaceClient
from offersync.services.marketplace import HttpMarketplaceClient
from offersync.services.notification_service import EmailNotificationService, NotificationSink
from offersync.services.sync import SyncOrchestrator
from offersync.services.webhooks import WebhookEventProcessor


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory; services open one session per unit of work."""
    return async_session


def get_marketplace_client(settings: Settings = Depends(get_settings)) -> MarketplaceClient:
    return HttpMarketplaceClient(settings)


def get_notifier(settings: Settings = Depends(get_settings)) -> NotificationSink:
    return EmailNotificationService(settings)


def get_sync_orchestrator(
    client: MarketplaceClient = Depends(get_marketplace_client),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> SyncOrchestrator:
    return SyncOrchestrator(client, session_factory, settings)


def get_webhook_processor(
    client: MarketplaceClient = Depends(get_marketplace_client),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
    notifier: NotificationSink = Depends(get_notifier),
) -> WebhookEventProcessor:
    return WebhookEventProcessor(session_factory, client, settings, notifier=notifier)
