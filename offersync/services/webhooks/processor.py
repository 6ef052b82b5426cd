"""
Webhook event processing.

Every delivery is stored before it is handled, deduplicated on its external
event id, and dispatched to the handler for its type. A dispatch first claims
the row with a conditional ``processed`` update, so concurrent deliveries or
retries of one event run its handler once. Handler writes and the claim
commit in one transaction; a failing handler rolls both back and the error
is recorded in a fresh transaction, leaving the event retryable. Nothing
raised by a handler reaches the caller.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from offersync.core.config import Settings
from offersync.core.enums import WEBHOOK_SOURCE_MARKETPLACE, WebhookEventState
from offersync.core.exceptions import WebhookEventAlreadyProcessedError, WebhookEventNotFoundError
from offersync.integrations.base import MarketplaceClient
from offersync.models.webhook import WebhookEvent
from offersync.repositories.catalog_repository import CatalogRepository
from offersync.repositories.webhook_repository import WebhookEventRepository
from offersync.schemas.webhook import (
    UnknownEventPayload,
    WebhookProcessingResult,
    extract_external_event_id,
    parse_webhook_payload,
)
from offersync.services.notification_service import NotificationSink
from offersync.services.webhooks.handlers import HandlerContext, WebhookHandler, default_handlers

logger = logging.getLogger(__name__)


class WebhookEventProcessor:
    """Idempotent ingestion of marketplace webhook events."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: MarketplaceClient,
        settings: Settings,
        notifier: Optional[NotificationSink] = None,
        handlers: Optional[Dict[str, WebhookHandler]] = None,
    ):
        self.session_factory = session_factory
        self.client = client
        self.settings = settings
        self.notifier = notifier
        self.handlers = handlers if handlers is not None else default_handlers()

    async def process_event(
        self,
        event_type: str,
        payload: Optional[Dict[str, Any]],
        external_event_id: Optional[str] = None,
        source: str = WEBHOOK_SOURCE_MARKETPLACE,
        delivery_id: Optional[str] = None,
    ) -> WebhookProcessingResult:
        """
        Store, deduplicate and handle one delivery.

        Args:
            event_type: Marketplace event type, e.g. "order.created"
            payload: Raw event payload
            external_event_id: Idempotency key; derived from the payload when omitted
            source: Event source label
            delivery_id: Transport delivery id, used as the key when the payload has no event id

        Returns:
            WebhookProcessingResult. ``accepted`` is False only when the event
            could not be stored at all.
        """
        payload = payload or {}
        external_event_id = external_event_id or extract_external_event_id(event_type, payload, delivery_id)
        logger.info(f"Webhook received: {event_type} ({external_event_id})")

        try:
            event = await self._store(event_type, payload, external_event_id, source)
        except Exception as e:
            logger.exception(f"Webhook {external_event_id} could not be stored")
            return WebhookProcessingResult(
                accepted=False,
                external_event_id=external_event_id,
                event_type=event_type,
                error=str(e),
            )

        if event.processed:
            logger.info(f"Duplicate webhook {external_event_id} (event {event.id}) suppressed")
            return self._result(event, duplicate=True)

        return await self._dispatch(event.id)

    async def retry_event(self, event_id: int) -> WebhookProcessingResult:
        """
        Re-run the handler of a stored, unprocessed event.

        Raises:
            WebhookEventNotFoundError: If no event has this id
            WebhookEventAlreadyProcessedError: If the event is already processed (handler not invoked)
        """
        async with self.session_factory() as session:
            event = await WebhookEventRepository(session).get(event_id)
            if event is None:
                raise WebhookEventNotFoundError(f"Webhook event {event_id} not found")
            if event.processed:
                raise WebhookEventAlreadyProcessedError(f"Webhook event {event_id} is already processed")

        logger.info(f"Retrying webhook event {event_id} (attempt {event.retry_count + 1})")
        return await self._dispatch(event_id)

    async def retry_failed_events(self, max_attempts: Optional[int] = None, limit: int = 50) -> List[WebhookProcessingResult]:
        """Retry failed events still under ``max_attempts`` (WEBHOOK_RETRY_MAX_ATTEMPTS by default)."""
        max_attempts = max_attempts or self.settings.WEBHOOK_RETRY_MAX_ATTEMPTS
        async with self.session_factory() as session:
            events = await WebhookEventRepository(session).retryable(max_attempts, limit=limit)
            event_ids = [event.id for event in events]

        results = []
        for event_id in event_ids:
            results.append(await self._dispatch(event_id))
        if event_ids:
            succeeded = sum(1 for r in results if r.processed)
            logger.info(f"Webhook retry sweep: {succeeded}/{len(event_ids)} event(s) processed")
        return results

    async def get_event(self, event_id: int) -> WebhookEvent:
        async with self.session_factory() as session:
            event = await WebhookEventRepository(session).get(event_id)
            if event is None:
                raise WebhookEventNotFoundError(f"Webhook event {event_id} not found")
            return event

    async def list_events(
        self,
        page: int = 1,
        limit: int = 20,
        event_type: Optional[str] = None,
        processed: Optional[bool] = None,
    ) -> Dict[str, Any]:
        async with self.session_factory() as session:
            return await WebhookEventRepository(session).list_events(
                page=page, limit=limit, event_type=event_type, processed=processed
            )

    # Internals

    async def _store(self, event_type: str, payload: Dict[str, Any], external_event_id: str, source: str) -> WebhookEvent:
        """Return the stored event for this key, creating and committing it first if new."""
        async with self.session_factory() as session:
            repo = WebhookEventRepository(session)
            event = await repo.get_by_external_id(external_event_id)
            if event is not None:
                return event
            try:
                event = await repo.create(external_event_id, event_type, payload, source=source)
                await session.commit()
                return event
            except IntegrityError:
                # A concurrent delivery of the same event stored it first
                await session.rollback()
                return await repo.get_by_external_id(external_event_id)

    async def _dispatch(self, event_id: int) -> WebhookProcessingResult:
        after_commit: List[Callable] = []
        async with self.session_factory() as session:
            repo = WebhookEventRepository(session)
            if not await repo.claim(event_id):
                # Already processed, or another worker holds it
                await session.rollback()
                event = await repo.get(event_id)
                logger.info(f"Webhook event {event_id} claimed elsewhere; handler not run")
                return self._result(event, duplicate=True)

            event = await repo.get(event_id)
            event_type = event.event_type
            external_event_id = event.external_event_id
            ctx = HandlerContext(
                session=session,
                catalog=CatalogRepository(session),
                client=self.client,
                settings=self.settings,
                notifier=self.notifier,
                after_commit=after_commit,
            )
            try:
                handler_result = await self._handle(event_type, event.payload, ctx)
                repo.mark_processed(event, handler_result)
                await session.commit()
                result = self._result(event)
            except Exception as e:
                await session.rollback()
                error = f"{e.__class__.__name__}: {e}"
                logger.error(f"Webhook event {event_id} ({event_type}) failed: {error}")
                result = None

        if result is None:
            retry_count = await self._record_failure(event_id, error)
            return WebhookProcessingResult(
                accepted=True,
                event_id=event_id,
                external_event_id=external_event_id,
                event_type=event_type,
                processed=False,
                state=WebhookEventState.FAILED_RETRYABLE,
                error=error,
                result={"retry_count": retry_count},
            )

        await self._run_after_commit(after_commit)
        return result

    async def _handle(self, event_type: str, payload: Dict[str, Any], ctx: HandlerContext) -> Dict[str, Any]:
        parsed = parse_webhook_payload(event_type, payload)
        handler = self.handlers.get(event_type)
        if isinstance(parsed, UnknownEventPayload) or handler is None:
            logger.warning(f"Unknown webhook event type {event_type!r}; marked processed without side effects")
            return {"ignored": True, "reason": "unknown event type"}
        return await handler.handle(parsed, ctx)

    async def _record_failure(self, event_id: int, error: str) -> int:
        async with self.session_factory() as session:
            repo = WebhookEventRepository(session)
            await repo.record_failure(event_id, error)
            await session.commit()
            event = await repo.get(event_id)
            return event.retry_count

    @staticmethod
    async def _run_after_commit(callbacks: List[Callable]) -> None:
        for callback in callbacks:
            try:
                await callback()
            except Exception as e:
                logger.warning(f"After-commit callback failed: {e}")

    @staticmethod
    def _result(event: WebhookEvent, duplicate: bool = False) -> WebhookProcessingResult:
        return WebhookProcessingResult(
            accepted=True,
            event_id=event.id,
            external_event_id=event.external_event_id,
            event_type=event.event_type,
            processed=event.processed,
            duplicate=duplicate,
            state=event.state,
            error=event.processing_error,
            result=event.result,
        )
