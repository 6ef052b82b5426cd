from .client import HttpMarketplaceClient

__all__ = ['HttpMarketplaceClient']
