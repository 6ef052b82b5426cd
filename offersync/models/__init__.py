from .product import Product
from .offer import OfferMirror
from .order import MarketplaceOrder, MarketplaceOrderLine
from .sync_job import SyncJob
from .sync_cursor import SyncCursor
from .webhook import WebhookEvent

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'Product',
    'OfferMirror',
    'MarketplaceOrder',
    'MarketplaceOrderLine',
    'SyncJob',
    'SyncCursor',
    'WebhookEvent',
]
