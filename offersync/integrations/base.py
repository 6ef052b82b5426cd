from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from offersync.schemas.marketplace import RemoteOffer, RemoteOfferPage, RemoteOrder


class MarketplaceClient(ABC):
    """
    Authenticated read/write access to the remote marketplace.

    Implementations raise MarketplaceAPIError (or a subclass) on failure.
    MarketplaceAuthError means the credentials themselves are invalid and is
    treated as fatal by sync jobs; every other error is an item failure.
    """

    @abstractmethod
    async def get_offer(self, offer_id: str) -> RemoteOffer:
        """Fetch one offer by its remote id"""
        pass

    @abstractmethod
    async def list_offers(self, cursor: Optional[str] = None, limit: int = 100) -> RemoteOfferPage:
        """Fetch one page of offers in the marketplace's stable order"""
        pass

    @abstractmethod
    async def create_offer(self, data: Dict[str, Any]) -> RemoteOffer:
        """Create an offer and return it as stored remotely"""
        pass

    @abstractmethod
    async def update_offer(self, offer_id: str, data: Dict[str, Any]) -> RemoteOffer:
        """Update an offer and return it as stored remotely"""
        pass

    @abstractmethod
    async def get_order(self, order_id: str) -> RemoteOrder:
        """Fetch one order by its remote id"""
        pass
