from typing import Dict

from .base import HandlerContext, WebhookHandler
from .inventory_updated import InventoryUpdatedHandler
from .offer_updated import OfferUpdatedHandler
from .order_created import OrderCreatedHandler
from .order_updated import OrderUpdatedHandler


def default_handlers() -> Dict[str, WebhookHandler]:
    """Handler registry keyed by event type"""
    registry: Dict[str, WebhookHandler] = {}
    for handler in (OrderCreatedHandler(), OrderUpdatedHandler(), OfferUpdatedHandler(), InventoryUpdatedHandler()):
        for event_type in handler.event_types:
            registry[event_type] = handler
    return registry


__all__ = [
    'HandlerContext',
    'InventoryUpdatedHandler',
    'OfferUpdatedHandler',
    'OrderCreatedHandler',
    'OrderUpdatedHandler',
    'WebhookHandler',
    'default_handlers',
]
