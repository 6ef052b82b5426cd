import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError as PydanticValidationError

from offersync.core.config import Settings, get_settings
from offersync.core.exceptions import WebhookEventAlreadyProcessedError, WebhookEventNotFoundError
from offersync.core.security import verify_webhook_request
from offersync.dependencies import get_webhook_processor
from offersync.schemas.base import Page, Pagination
from offersync.schemas.webhook import WebhookEnvelope, WebhookEventRead, WebhookProcessingResult
from offersync.services.webhooks import WebhookEventProcessor

logger = logging.getLogger(__name__)

# Delivery endpoint: authenticated by shared secret, not operator auth
router = APIRouter(prefix="/webhooks", tags=["webhooks"])
events_router = APIRouter(prefix="/webhooks/events", tags=["webhooks"])

SIGNATURE_HEADER = "X-Marketplace-Signature"
DELIVERY_ID_HEADER = "X-Marketplace-Delivery-Id"


async def verified_envelope(request: Request, settings: Settings = Depends(get_settings)) -> WebhookEnvelope:
    """Parse the delivery body and check its signature or inline secret"""
    body = await request.body()
    try:
        data = json.loads(body or b"{}")
        if not isinstance(data, dict):
            raise ValueError("body must be a JSON object")
        envelope = WebhookEnvelope.model_validate(data)
    except (ValueError, PydanticValidationError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid webhook body: {e}")

    if not verify_webhook_request(
        settings.WEBHOOK_SECRET,
        body,
        signature=request.headers.get(SIGNATURE_HEADER),
        inline_secret=envelope.secret,
    ):
        logger.warning("Webhook rejected: invalid signature or secret")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")
    return envelope


@router.post("/marketplace", response_model=WebhookProcessingResult)
async def marketplace_webhook(
    request: Request,
    envelope: WebhookEnvelope = Depends(verified_envelope),
    processor: WebhookEventProcessor = Depends(get_webhook_processor),
):
    """Endpoint to receive marketplace event notifications"""
    event_type = envelope.resolved_type
    if not event_type:
        return WebhookProcessingResult(accepted=False, error="Missing event type")
    return await processor.process_event(
        event_type,
        envelope.resolved_payload(),
        delivery_id=request.headers.get(DELIVERY_ID_HEADER),
    )


@events_router.get("", response_model=Page[WebhookEventRead])
async def list_webhook_events(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    event_type: Optional[str] = None,
    processed: Optional[bool] = None,
    processor: WebhookEventProcessor = Depends(get_webhook_processor),
):
    data = await processor.list_events(page=page, limit=limit, event_type=event_type, processed=processed)
    return Page[WebhookEventRead](
        items=[WebhookEventRead.from_orm_model(event) for event in data["items"]],
        pagination=Pagination(
            page=data["page"],
            limit=data["page_size"],
            total=data["total"],
            total_pages=data["total_pages"],
        ),
    )


@events_router.get("/{event_id}", response_model=WebhookEventRead)
async def get_webhook_event(event_id: int, processor: WebhookEventProcessor = Depends(get_webhook_processor)):
    try:
        event = await processor.get_event(event_id)
    except WebhookEventNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return WebhookEventRead.from_orm_model(event)


@events_router.post("/{event_id}/retry", response_model=WebhookProcessingResult)
async def retry_webhook_event(event_id: int, processor: WebhookEventProcessor = Depends(get_webhook_processor)):
    """Manually replay a failed event"""
    try:
        return await processor.retry_event(event_id)
    except WebhookEventNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except WebhookEventAlreadyProcessedError as e:
        raise HTTPException(status_code=409, detail=str(e))
