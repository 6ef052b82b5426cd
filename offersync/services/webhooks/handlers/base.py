import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from offersync.core.config import Settings
from offersync.integrations.base import MarketplaceClient
from offersync.models.order import MarketplaceOrder
from offersync.repositories.catalog_repository import CatalogRepository
from offersync.services.notification_service import NotificationSink

logger = logging.getLogger(__name__)

AfterCommit = Callable[[], Awaitable[Any]]


@dataclass
class HandlerContext:
    """
    Everything a handler may touch while processing one event.

    All writes go through ``session``; the processor commits them together
    with the event's processed mark. ``after_commit`` callbacks run only once
    that commit succeeded.
    """
    session: AsyncSession
    catalog: CatalogRepository
    client: MarketplaceClient
    settings: Settings
    notifier: Optional[NotificationSink] = None
    after_commit: List[AfterCommit] = field(default_factory=list)


class WebhookHandler(ABC):
    event_types: Tuple[str, ...] = ()

    @abstractmethod
    async def handle(self, payload, ctx: HandlerContext) -> Dict[str, Any]:
        """Apply the event; return a JSON-serialisable summary stored on the event"""
        pass


async def apply_order_lines(ctx: HandlerContext, order: MarketplaceOrder, sign: int) -> List[Dict[str, Any]]:
    """
    Move stock for every line of ``order`` by ``sign * quantity`` on the mirror
    and its linked product. Lines for offers with no local mirror are reported
    and skipped.
    """
    adjustments = []
    for line in order.lines:
        mirror = await ctx.catalog.get_mirror_by_external_id(line.external_offer_id)
        if mirror is None:
            logger.warning(
                f"Order {order.external_order_id}: no local mirror for offer {line.external_offer_id}"
            )
            adjustments.append({"offer_id": line.external_offer_id, "delta": 0, "matched": False})
            continue
        delta = sign * line.quantity
        refreshed = await ctx.catalog.adjust_offer_stock(mirror, delta)
        adjustments.append({
            "offer_id": line.external_offer_id,
            "delta": delta,
            "matched": True,
            "stock": refreshed.stock_quantity if refreshed else None,
        })
    return adjustments
