from datetime import timedelta
from typing import Any, Dict, List, Optional

from offersync.core.exceptions import MarketplaceAuthError, MarketplaceNotFoundError
from offersync.core.utils import utcnow
from offersync.integrations.base import MarketplaceClient
from offersync.schemas.marketplace import RemoteOffer, RemoteOfferPage, RemoteOrder


class MockMarketplace(MarketplaceClient):
    """In-memory marketplace. Offers keep insertion order, which is the stable list order."""

    def __init__(self):
        self.offers: Dict[str, RemoteOffer] = {}
        self.orders: Dict[str, RemoteOrder] = {}
        self.calls: List[Dict[str, Any]] = []  # Track calls for testing
        self.fail_for: Dict[str, Exception] = {}  # offer id or SKU -> exception to raise
        self.auth_failure = False  # Toggle to simulate revoked credentials
        self._next_id = 1000
        self._revision = 0

    # Test helpers

    def _bump_revision(self) -> str:
        self._revision += 1
        return f"rev-{self._revision}"

    def add_offer(
        self,
        offer_id: Optional[str] = None,
        name: str = "Remote offer",
        amount: str = "100.00",
        currency: str = "PLN",
        stock: int = 5,
        external_id: Optional[str] = None,
        updated_at=None,
        revision: Optional[str] = None,
    ) -> RemoteOffer:
        if offer_id is None:
            offer_id = str(self._next_id)
            self._next_id += 1
        offer = RemoteOffer(
            id=offer_id,
            name=name,
            price={"amount": amount, "currency": currency},
            stock={"available": stock},
            publication_status="ACTIVE",
            external_id=external_id,
            updated_at=updated_at or utcnow(),
            revision=revision or self._bump_revision(),
        )
        self.offers[offer_id] = offer
        return offer

    def touch_offer(self, offer_id: str, **changes) -> RemoteOffer:
        """Simulate a seller edit on the marketplace side: new revision, later timestamp."""
        current = self.offers[offer_id]
        data = current.model_dump()
        if "stock" in changes:
            data["stock"] = {"available": changes.pop("stock")}
        if "amount" in changes or "currency" in changes:
            data["price"] = {
                "amount": changes.pop("amount", current.amount),
                "currency": changes.pop("currency", current.currency),
            }
        data.update(changes)
        data["revision"] = self._bump_revision()
        data["updated_at"] = changes.get("updated_at") or (current.updated_at or utcnow()) + timedelta(minutes=1)
        self.offers[offer_id] = RemoteOffer.model_validate(data)
        return self.offers[offer_id]

    def add_order(self, order: Dict[str, Any]) -> RemoteOrder:
        remote = RemoteOrder.model_validate(order)
        self.orders[remote.id] = remote
        return remote

    def calls_of(self, method: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["method"] == method]

    def clear_history(self):
        """Clear test history"""
        self.calls = []

    def _check(self, method: str, key: Optional[str], **details) -> None:
        self.calls.append({"method": method, "key": key, **details})
        if self.auth_failure:
            raise MarketplaceAuthError("Authorization failed: token revoked", status_code=401)
        if key is not None and key in self.fail_for:
            raise self.fail_for[key]

    def _store(self, offer_id: str, data: Dict[str, Any]) -> RemoteOffer:
        body = {key: value for key, value in data.items() if value is not None}
        offer = RemoteOffer.model_validate({
            **body,
            "id": offer_id,
            "publication": {"status": "ACTIVE"},
            "revision": self._bump_revision(),
            "updatedAt": utcnow(),
        })
        self.offers[offer_id] = offer
        return offer

    # MarketplaceClient

    async def get_offer(self, offer_id: str) -> RemoteOffer:
        self._check("get_offer", offer_id)
        if offer_id not in self.offers:
            raise MarketplaceNotFoundError(f"Not found: offer {offer_id}", status_code=404)
        return self.offers[offer_id]

    async def list_offers(self, cursor: Optional[str] = None, limit: int = 100) -> RemoteOfferPage:
        self._check("list_offers", None, cursor=cursor, limit=limit)
        start = int(cursor) if cursor else 0
        ordered = list(self.offers.values())
        items = ordered[start:start + limit]
        end = start + len(items)
        return RemoteOfferPage(items=items, next_cursor=str(end) if end < len(ordered) else None)

    async def create_offer(self, data: Dict[str, Any]) -> RemoteOffer:
        sku = (data.get("external") or {}).get("id")
        self._check("create_offer", sku, data=data)
        offer_id = str(self._next_id)
        self._next_id += 1
        return self._store(offer_id, data)

    async def update_offer(self, offer_id: str, data: Dict[str, Any]) -> RemoteOffer:
        self._check("update_offer", offer_id, data=data)
        if offer_id not in self.offers:
            raise MarketplaceNotFoundError(f"Not found: offer {offer_id}", status_code=404)
        return self._store(offer_id, data)

    async def get_order(self, order_id: str) -> RemoteOrder:
        self._check("get_order", order_id)
        if order_id not in self.orders:
            raise MarketplaceNotFoundError(f"Not found: order {order_id}", status_code=404)
        return self.orders[order_id]
