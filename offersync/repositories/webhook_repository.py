import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from offersync.core.enums import WEBHOOK_SOURCE_MARKETPLACE
from offersync.core.utils import paginate_query, utcnow
from offersync.models.webhook import WebhookEvent

logger = logging.getLogger(__name__)


class WebhookEventRepository:
    """Repository for stored webhook events (the idempotency table)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, event_id: int) -> Optional[WebhookEvent]:
        return await self.session.get(WebhookEvent, event_id)

    async def get_by_external_id(self, external_event_id: str) -> Optional[WebhookEvent]:
        result = await self.session.execute(
            select(WebhookEvent).where(WebhookEvent.external_event_id == external_event_id)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        external_event_id: str,
        event_type: str,
        payload: Dict[str, Any],
        source: str = WEBHOOK_SOURCE_MARKETPLACE,
    ) -> WebhookEvent:
        event = WebhookEvent(
            external_event_id=external_event_id,
            event_type=event_type,
            source=source,
            payload=payload,
            processed=False,
            retry_count=0,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def claim(self, event_id: int) -> bool:
        """
        Mark an unprocessed event processed inside the current transaction.

        The row stays locked until commit or rollback, so only one worker can
        hold the claim; a loser sees zero rows and must not run the handler.
        """
        result = await self.session.execute(
            update(WebhookEvent)
            .where(WebhookEvent.id == event_id, WebhookEvent.processed.is_(False))
            .values(processed=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def mark_processed(event: WebhookEvent, result: Optional[Dict[str, Any]]) -> None:
        event.processed = True
        event.processed_at = utcnow()
        event.processing_error = None
        event.result = result

    async def record_failure(self, event_id: int, error: str) -> None:
        """Store the handler error and bump retry_count in one statement."""
        await self.session.execute(
            update(WebhookEvent)
            .where(WebhookEvent.id == event_id)
            .values(processing_error=error[:4000], retry_count=WebhookEvent.retry_count + 1)
            .execution_options(synchronize_session=False)
        )

    async def list_events(
        self,
        page: int = 1,
        limit: int = 20,
        event_type: Optional[str] = None,
        processed: Optional[bool] = None,
    ) -> Dict[str, Any]:
        stmt = select(WebhookEvent)
        if event_type:
            stmt = stmt.where(WebhookEvent.event_type == event_type)
        if processed is not None:
            stmt = stmt.where(WebhookEvent.processed == processed)
        stmt = stmt.order_by(WebhookEvent.created_at.desc(), WebhookEvent.id.desc())
        return await paginate_query(stmt, self.session, page=page, page_size=limit)

    async def retryable(self, max_attempts: int, limit: int = 50) -> List[WebhookEvent]:
        """Unprocessed events that failed at least once and are under the attempt cap, oldest first."""
        result = await self.session.execute(
            select(WebhookEvent)
            .where(
                WebhookEvent.processed.is_(False),
                WebhookEvent.retry_count > 0,
                WebhookEvent.retry_count < max_attempts,
            )
            .order_by(WebhookEvent.id)
            .limit(limit)
        )
        return list(result.scalars().all())
