import logging
from typing import Any, Dict

from offersync.core.enums import WebhookEventType
from offersync.core.utils import utcnow
from offersync.models.offer import OfferMirror
from offersync.schemas.marketplace import RemoteOffer
from offersync.schemas.webhook import OfferUpdatedPayload
from offersync.services.webhooks.handlers.base import HandlerContext, WebhookHandler

logger = logging.getLogger(__name__)


def is_newer(remote: RemoteOffer, mirror: OfferMirror) -> bool:
    """Compare-and-set guard: does ``remote`` carry a later version than the mirror holds?"""
    if remote.updated_at is not None and mirror.remote_updated_at is not None:
        return remote.updated_at > mirror.remote_updated_at
    if remote.revision is not None and mirror.remote_revision is not None:
        return remote.revision != mirror.remote_revision
    return True


class OfferUpdatedHandler(WebhookHandler):
    """
    Remote listing changes for one offer.

    Stock is applied as the delta between the remote and mirrored stock, so a
    concurrent order decrement is never overwritten. Listing fields reach the
    product only when it has no unpushed local edits; otherwise the version
    markers are left alone so the next bidirectional run sees both sides
    changed and resolves it.
    """

    event_types = (WebhookEventType.OFFER_UPDATED.value,)

    async def handle(self, payload: OfferUpdatedPayload, ctx: HandlerContext) -> Dict[str, Any]:
        remote = payload.offer
        catalog = ctx.catalog
        mirror = await catalog.get_mirror_by_external_id(remote.id)

        if mirror is None:
            return await self._create_mirror(ctx, remote)

        if not is_newer(remote, mirror):
            logger.info(
                f"Offer {remote.id}: event version {remote.version_marker} is not newer than "
                f"{mirror.version_marker}; ignored"
            )
            return {"offer_id": remote.id, "applied": False, "reason": "stale version"}

        product = mirror.product
        local_pending = product is not None and (
            mirror.last_synced_at is None or product.updated_at > mirror.last_synced_at
        )
        delta = remote.stock_quantity - mirror.stock_quantity

        catalog.apply_remote_fields(mirror, remote, update_markers=not local_pending)
        if product is not None and not local_pending:
            synced_at = utcnow()
            if remote.name is not None:
                product.title = remote.name
            if remote.amount is not None:
                product.price = remote.amount
            if remote.currency:
                product.currency = remote.currency
            product.updated_at = synced_at
            mirror.last_synced_at = synced_at
        await catalog.save()

        if delta:
            await catalog.adjust_offer_stock(mirror, delta, compare_version=True)

        return {
            "offer_id": remote.id,
            "applied": True,
            "stock_delta": delta,
            "product_updated": product is not None and not local_pending,
        }

    async def _create_mirror(self, ctx: HandlerContext, remote: RemoteOffer) -> Dict[str, Any]:
        product = None
        if remote.external_id:
            candidate = await ctx.catalog.get_product_by_sku(remote.external_id)
            if candidate is not None and await ctx.catalog.get_mirror_for_product(candidate.id) is None:
                product = candidate

        mirror = await ctx.catalog.upsert_mirror(remote, product=product)
        delta = 0
        if product is not None:
            delta = remote.stock_quantity - product.stock_quantity
            if delta:
                await ctx.catalog.adjust_product_stock(product.id, delta, expected_version=product.version)

        logger.info(f"Offer {remote.id}: created mirror {mirror.id} (product {mirror.product_id})")
        return {
            "offer_id": remote.id,
            "applied": True,
            "created_mirror": True,
            "product_id": mirror.product_id,
            "stock_delta": delta,
        }
