import logging
from typing import Any, Dict

from offersync.core.enums import WebhookEventType
from offersync.models.offer import OfferMirror
from offersync.schemas.webhook import InventoryUpdatedPayload
from offersync.services.webhooks.handlers.base import HandlerContext, WebhookHandler

logger = logging.getLogger(__name__)


class InventoryUpdatedHandler(WebhookHandler):
    """Remote available stock, applied as a delta to the mirror and its product."""

    event_types = (
        WebhookEventType.INVENTORY_UPDATED.value,
        WebhookEventType.OFFER_INVENTORY_UPDATED.value,
    )

    async def handle(self, payload: InventoryUpdatedPayload, ctx: HandlerContext) -> Dict[str, Any]:
        mirror = await ctx.catalog.get_mirror_by_external_id(payload.offer_id)
        if mirror is None:
            logger.warning(f"Inventory update for unknown offer {payload.offer_id}; recording unlinked mirror")
            mirror = OfferMirror(external_offer_id=payload.offer_id, stock_quantity=payload.available)
            ctx.session.add(mirror)
            await ctx.catalog.save()
            return {"offer_id": payload.offer_id, "created_mirror": True, "stock": payload.available}

        delta = payload.available - mirror.stock_quantity
        if delta:
            mirror = await ctx.catalog.adjust_offer_stock(mirror, delta, compare_version=True)
        return {"offer_id": payload.offer_id, "stock_delta": delta, "stock": mirror.stock_quantity}
