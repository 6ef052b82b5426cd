"""
Shared enums and constants used across the application.
"""

from enum import Enum


class SyncJobType(str, Enum):
    """Which strategy a sync job runs"""
    DB_TO_MARKET = "DB_TO_MARKET"
    MARKET_TO_DB = "MARKET_TO_DB"
    BIDIRECTIONAL = "BIDIRECTIONAL"

    @property
    def slug(self):
        return self.value.lower().replace('_', '-')

    @classmethod
    def from_slug(cls, value: str) -> "SyncJobType":
        normalised = value.strip().upper().replace('-', '_')
        return cls(normalised)

    @property
    def direction(self) -> "SyncDirection":
        return {
            SyncJobType.DB_TO_MARKET: SyncDirection.TO_MARKET,
            SyncJobType.MARKET_TO_DB: SyncDirection.FROM_MARKET,
            SyncJobType.BIDIRECTIONAL: SyncDirection.BIDIRECTIONAL,
        }[self]


class SyncDirection(str, Enum):
    TO_MARKET = "TO_MARKET"
    FROM_MARKET = "FROM_MARKET"
    BIDIRECTIONAL = "BIDIRECTIONAL"


class SyncJobStatus(str, Enum):
    """Sync job lifecycle. Transitions only move forward."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncJobStatus.COMPLETED, SyncJobStatus.FAILED)


# Allowed forward moves for SyncJob.status
SYNC_JOB_TRANSITIONS = {
    SyncJobStatus.PENDING: {SyncJobStatus.RUNNING, SyncJobStatus.FAILED},
    SyncJobStatus.RUNNING: {SyncJobStatus.COMPLETED, SyncJobStatus.FAILED},
    SyncJobStatus.COMPLETED: set(),
    SyncJobStatus.FAILED: set(),
}


class Resolution(str, Enum):
    """Outcome of comparing a local and a remote version of one offer"""
    LOCAL_WINS = "LOCAL_WINS"
    REMOTE_WINS = "REMOTE_WINS"
    MANUAL = "MANUAL"
    IN_SYNC = "IN_SYNC"


class ProductStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class PublicationStatus(str, Enum):
    """Publication state of a listing on the marketplace"""
    INACTIVE = "INACTIVE"
    ACTIVATING = "ACTIVATING"
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"


class SyncStatus(str, Enum):
    """Per-mirror sync state"""
    PENDING = "PENDING"
    SYNCED = "SYNCED"
    ERROR = "ERROR"
    CONFLICT = "CONFLICT"


class OrderStatus(str, Enum):
    NEW = "NEW"
    PROCESSING = "PROCESSING"
    SENT = "SENT"
    PICKED_UP = "PICKED_UP"
    CANCELLED = "CANCELLED"

    @classmethod
    def from_remote(cls, value) -> "OrderStatus":
        if not value:
            return cls.NEW
        normalised = str(value).strip().upper().replace(' ', '_')
        aliases = {
            "BOUGHT": cls.NEW,
            "FILLED_IN": cls.NEW,
            "READY_FOR_PROCESSING": cls.PROCESSING,
            "READY_FOR_SHIPMENT": cls.PROCESSING,
            "CANCELED": cls.CANCELLED,
        }
        if normalised in aliases:
            return aliases[normalised]
        try:
            return cls(normalised)
        except ValueError:
            return cls.PROCESSING


class WebhookEventState(str, Enum):
    """Derived processing state of a stored webhook event"""
    RECEIVED = "RECEIVED"
    PROCESSED = "PROCESSED"
    FAILED_RETRYABLE = "FAILED_RETRYABLE"


class WebhookEventType(str, Enum):
    ORDER_CREATED = "order.created"
    ORDER_UPDATED = "order.updated"
    OFFER_UPDATED = "offer.updated"
    INVENTORY_UPDATED = "inventory.updated"
    OFFER_INVENTORY_UPDATED = "offer.inventory.updated"


WEBHOOK_SOURCE_MARKETPLACE = "MARKETPLACE"
