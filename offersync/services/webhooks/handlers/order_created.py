import logging
from typing import Any, Dict

from offersync.core.enums import OrderStatus, WebhookEventType
from offersync.schemas.marketplace import RemoteOrder
from offersync.schemas.webhook import OrderEventPayload
from offersync.services.webhooks.handlers.base import HandlerContext, WebhookHandler, apply_order_lines

logger = logging.getLogger(__name__)


async def record_order(ctx: HandlerContext, remote: RemoteOrder) -> Dict[str, Any]:
    """
    Record an order and decrement stock for its lines, once per order.

    ``stock_applied`` on the order row is the second guard after event
    deduplication: a different event for an already-applied order is a no-op.
    """
    order = await ctx.catalog.get_order_by_external_id(remote.id)
    created = order is None
    if created:
        order = await ctx.catalog.create_order(remote)

    summary: Dict[str, Any] = {"order_id": remote.id, "created": created, "stock_applied": False}
    if order.stock_applied:
        logger.info(f"Order {remote.id} already applied to stock; nothing to do")
        summary["reason"] = "stock already applied"
        return summary
    if order.status == OrderStatus.CANCELLED.value:
        summary["reason"] = "order cancelled"
        return summary

    summary["adjustments"] = await apply_order_lines(ctx, order, sign=-1)
    order.stock_applied = True
    await ctx.session.flush()
    summary["stock_applied"] = True

    if created and ctx.settings.NOTIFY_ON_ORDER_CREATED and ctx.notifier is not None:
        notifier = ctx.notifier
        ctx.after_commit.append(lambda: notifier.send_order_notification(order))

    logger.info(f"Order {remote.id}: stock decremented for {len(order.lines)} line(s)")
    return summary


class OrderCreatedHandler(WebhookHandler):
    event_types = (WebhookEventType.ORDER_CREATED.value,)

    async def handle(self, payload: OrderEventPayload, ctx: HandlerContext) -> Dict[str, Any]:
        return await record_order(ctx, payload.order)
