import logging
from typing import Any, Dict

from offersync.core.enums import OrderStatus, WebhookEventType
from offersync.schemas.webhook import OrderEventPayload
from offersync.services.webhooks.handlers.base import HandlerContext, WebhookHandler, apply_order_lines
from offersync.services.webhooks.handlers.order_created import record_order

logger = logging.getLogger(__name__)


class OrderUpdatedHandler(WebhookHandler):
    """
    Status and buyer changes of an order.

    Unknown orders are fetched from the marketplace and recorded as if newly
    created. Cancelling an order whose stock was applied gives the stock back
    once.
    """

    event_types = (WebhookEventType.ORDER_UPDATED.value,)

    async def handle(self, payload: OrderEventPayload, ctx: HandlerContext) -> Dict[str, Any]:
        remote = payload.order
        order = await ctx.catalog.get_order_by_external_id(remote.id)
        if order is None:
            logger.info(f"Order {remote.id} not recorded yet; fetching it from the marketplace")
            fetched = await ctx.client.get_order(remote.id)
            summary = await record_order(ctx, fetched)
            summary["fetched"] = True
            return summary

        previous_status = order.status
        if remote.status:
            order.status = OrderStatus.from_remote(remote.status).value
        if remote.buyer is not None:
            order.buyer_email = remote.buyer.email or order.buyer_email
            order.buyer_login = remote.buyer.login or order.buyer_login

        summary: Dict[str, Any] = {
            "order_id": remote.id,
            "previous_status": previous_status,
            "status": order.status,
            "stock_restored": False,
        }

        if order.status == OrderStatus.CANCELLED.value and order.stock_applied:
            summary["adjustments"] = await apply_order_lines(ctx, order, sign=1)
            order.stock_applied = False
            summary["stock_restored"] = True
            logger.info(f"Order {remote.id} cancelled; stock restored")

        await ctx.session.flush()
        return summary
