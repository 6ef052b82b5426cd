from sqlalchemy import Column, Integer, String, DateTime, JSON, Boolean, Text

from offersync.database import Base
from offersync.core.enums import WebhookEventState, WEBHOOK_SOURCE_MARKETPLACE
from offersync.core.utils import utcnow


class WebhookEvent(Base):
    """
    Durable record of one inbound marketplace notification.

    ``external_event_id`` is the idempotency key: a second delivery with the
    same key never re-applies side effects once ``processed`` is set.
    """
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True)
    external_event_id = Column(String(255), unique=True, nullable=False, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    source = Column(String(50), nullable=False, default=WEBHOOK_SOURCE_MARKETPLACE)
    payload = Column(JSON, nullable=False)

    processed = Column(Boolean, nullable=False, default=False, index=True)
    processed_at = Column(DateTime, nullable=True)
    processing_error = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    result = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def state(self) -> WebhookEventState:
        if self.processed:
            return WebhookEventState.PROCESSED
        if self.retry_count:
            return WebhookEventState.FAILED_RETRYABLE
        return WebhookEventState.RECEIVED

    def __repr__(self) -> str:
        return (f"<WebhookEvent(id={self.id}, external_event_id={self.external_event_id}, "
                f"type={self.event_type}, processed={self.processed})>")
