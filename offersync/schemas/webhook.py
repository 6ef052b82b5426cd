"""
Schemas for inbound marketplace webhooks.

Each known event type maps to one payload variant; anything else becomes
``UnknownEventPayload``. Payloads are validated here, before they reach a
handler.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional, Type, Union

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from offersync.core.enums import WebhookEventType, WebhookEventState
from offersync.core.exceptions import WebhookPayloadError
from offersync.core.utils import compute_payload_hash, to_naive_utc
from offersync.schemas.base import BaseSchema
from offersync.schemas.marketplace import RemoteOffer, RemoteOrder


class OrderEventPayload(BaseSchema):
    """order.created / order.updated"""
    id: Optional[str] = None
    order: RemoteOrder

    @model_validator(mode='before')
    @classmethod
    def wrap_bare_order(cls, data: Any) -> Any:
        # Some deliveries send the order itself as the payload
        if isinstance(data, dict) and is_bare_order(data):
            return {'order': data}
        return data


class OfferUpdatedPayload(BaseSchema):
    """offer.updated"""
    id: Optional[str] = None
    offer: RemoteOffer


class InventoryUpdatedPayload(BaseSchema):
    """inventory.updated / offer.inventory.updated"""
    id: Optional[str] = None
    offer_id: str
    available: int
    occurred_at: Optional[datetime] = Field(default=None, alias="occurredAt")

    @model_validator(mode='before')
    @classmethod
    def normalise_shapes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        offer = data.get('offer')
        if 'offer_id' not in data and 'offerId' not in data and isinstance(offer, dict):
            data['offer_id'] = offer.get('id')
        elif 'offerId' in data:
            data['offer_id'] = data['offerId']

        if 'available' not in data:
            stock = data.get('stock')
            if stock is None and isinstance(offer, dict):
                stock = offer.get('stock')
            if isinstance(stock, dict):
                data['available'] = stock.get('available')
            elif stock is not None:
                data['available'] = stock
            elif data.get('quantity') is not None:
                data['available'] = data['quantity']
        return data

    @field_validator('offer_id', mode='before')
    @classmethod
    def coerce_offer_id(cls, v):
        return None if v is None else str(v)

    @field_validator('available')
    @classmethod
    def validate_available(cls, v: int) -> int:
        if v < 0:
            raise ValueError('Available stock cannot be negative')
        return v

    @field_validator('occurred_at')
    @classmethod
    def normalise_occurred_at(cls, v):
        return to_naive_utc(v)


class UnknownEventPayload(BaseSchema):
    event_type: str
    raw: Dict[str, Any] = Field(default_factory=dict)


WebhookPayload = Union[OrderEventPayload, OfferUpdatedPayload, InventoryUpdatedPayload, UnknownEventPayload]

PAYLOAD_MODELS: Dict[str, Type[BaseSchema]] = {
    WebhookEventType.ORDER_CREATED.value: OrderEventPayload,
    WebhookEventType.ORDER_UPDATED.value: OrderEventPayload,
    WebhookEventType.OFFER_UPDATED.value: OfferUpdatedPayload,
    WebhookEventType.INVENTORY_UPDATED.value: InventoryUpdatedPayload,
    WebhookEventType.OFFER_INVENTORY_UPDATED.value: InventoryUpdatedPayload,
}


def parse_webhook_payload(event_type: str, payload: Dict[str, Any]) -> WebhookPayload:
    """Validate a raw payload into its event-type variant."""
    model = PAYLOAD_MODELS.get(event_type)
    if model is None:
        return UnknownEventPayload(event_type=event_type, raw=payload or {})
    try:
        return model.model_validate(payload or {})
    except PydanticValidationError as e:
        raise WebhookPayloadError(f"Invalid {event_type} payload: {e.errors(include_url=False)}") from e


# Payload fields that tell two deliveries of the same content apart
DELIVERY_TIME_KEYS = ('occurredAt', 'occurred_at', 'publishedAt', 'updatedAt', 'updated_at')


def is_bare_order(payload: Dict[str, Any]) -> bool:
    """An order sent as the payload itself; its ``id`` is the order id, not an event id."""
    return 'order' not in payload and 'lineItems' in payload


def has_delivery_time(payload: Dict[str, Any]) -> bool:
    if any(payload.get(key) for key in DELIVERY_TIME_KEYS):
        return True
    for nested in ('order', 'offer'):
        entity = payload.get(nested)
        if isinstance(entity, dict) and any(entity.get(key) for key in DELIVERY_TIME_KEYS):
            return True
    return False


def extract_external_event_id(event_type: str, payload: Dict[str, Any], delivery_id: Optional[str] = None) -> str:
    """
    Idempotency key for one delivery.

    In order of preference: the marketplace's event id, the transport's
    delivery id, a content hash when the payload carries a timestamp that
    distinguishes deliveries, and otherwise a fresh key, so identical bodies
    without any of these are never merged into one event.
    """
    payload = payload or {}
    keys = ('eventId', 'event_id') if is_bare_order(payload) else ('eventId', 'event_id', 'id')
    for key in keys:
        value = payload.get(key)
        if value not in (None, ''):
            return str(value)
    if delivery_id:
        return f"{event_type}:delivery:{delivery_id}"
    if has_delivery_time(payload):
        return f"{event_type}:{compute_payload_hash(payload)[:48]}"
    return f"{event_type}:{uuid.uuid4().hex}"


class WebhookEnvelope(BaseModel):
    """Body posted to the webhook endpoint"""
    event_type: Optional[str] = Field(default=None, alias="eventType")
    type: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    secret: Optional[str] = None

    model_config = {"populate_by_name": True, "extra": "allow"}

    @property
    def resolved_type(self) -> Optional[str]:
        return self.type or self.event_type

    def resolved_payload(self) -> Dict[str, Any]:
        if self.payload is not None:
            return self.payload
        # Envelope without a payload key: the body itself is the payload
        return self.model_dump(exclude={'secret', 'type', 'event_type', 'payload'})


class WebhookEventRead(BaseSchema):
    id: int
    external_event_id: str
    event_type: str
    source: str
    payload: Dict[str, Any]
    processed: bool
    processed_at: Optional[datetime] = None
    processing_error: Optional[str] = None
    retry_count: int
    state: WebhookEventState
    created_at: datetime


class WebhookProcessingResult(BaseModel):
    """What process_event / retry_event report back to the transport layer"""
    accepted: bool
    event_id: Optional[int] = None
    external_event_id: Optional[str] = None
    event_type: Optional[str] = None
    processed: bool = False
    duplicate: bool = False
    state: Optional[WebhookEventState] = None
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
