"""
Catalog store access: products, offer mirrors and marketplace orders.

Stock moves go through ``adjust_product_stock`` / ``adjust_mirror_stock``,
single UPDATE statements that add a delta and bump ``version``. Field
overwrites go through the ORM, where ``version_id_col`` turns a concurrent
write into ``ConcurrentUpdateError`` at flush time.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Type, TypeVar

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from offersync.core.enums import OrderStatus, ProductStatus, SyncStatus
from offersync.core.exceptions import ConcurrentUpdateError
from offersync.models.offer import OfferMirror
from offersync.models.order import MarketplaceOrder, MarketplaceOrderLine
from offersync.models.product import Product
from offersync.schemas.marketplace import RemoteOffer, RemoteOrder

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", Product, OfferMirror)


class CatalogRepository:
    """Repository for products, their offer mirrors and recorded orders."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Products

    async def get_product(self, product_id: int) -> Optional[Product]:
        return await self.session.get(Product, product_id)

    async def get_product_by_sku(self, sku: str) -> Optional[Product]:
        result = await self.session.execute(select(Product).where(Product.sku == sku))
        return result.scalar_one_or_none()

    async def list_products(self, status: Optional[ProductStatus] = None) -> List[Product]:
        stmt = select(Product).order_by(Product.id)
        if status:
            stmt = stmt.where(Product.status == status.value)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def products_to_push(
        self,
        after_id: Optional[int],
        limit: int,
        product_ids: Optional[Sequence[int]] = None,
    ) -> List[Product]:
        """
        Products the DB -> marketplace pass should push, in id order after ``after_id``.

        Active products qualify when they have no mirror, were never synced, or
        changed locally since the last sync. Explicit ``product_ids`` bypass
        those filters.
        """
        stmt = select(Product).outerjoin(OfferMirror, OfferMirror.product_id == Product.id)
        if product_ids:
            stmt = stmt.where(Product.id.in_(list(product_ids)))
        else:
            stmt = stmt.where(
                Product.status == ProductStatus.ACTIVE.value,
                or_(
                    OfferMirror.id.is_(None),
                    OfferMirror.last_synced_at.is_(None),
                    Product.updated_at > OfferMirror.last_synced_at,
                ),
            )
        if after_id is not None:
            stmt = stmt.where(Product.id > after_id)
        stmt = stmt.order_by(Product.id).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().unique().all())

    # Offer mirrors

    async def get_mirror(self, mirror_id: int) -> Optional[OfferMirror]:
        return await self.session.get(OfferMirror, mirror_id)

    async def get_mirror_by_external_id(self, external_offer_id: str) -> Optional[OfferMirror]:
        result = await self.session.execute(
            select(OfferMirror).where(OfferMirror.external_offer_id == str(external_offer_id))
        )
        return result.scalar_one_or_none()

    async def get_mirror_for_product(self, product_id: int) -> Optional[OfferMirror]:
        result = await self.session.execute(
            select(OfferMirror).where(OfferMirror.product_id == product_id)
        )
        return result.scalar_one_or_none()

    async def linked_mirrors(self, after_id: Optional[int], limit: int) -> List[OfferMirror]:
        """Mirrors that have both a local product and a remote offer id, in id order."""
        stmt = select(OfferMirror).where(
            and_(OfferMirror.product_id.is_not(None), OfferMirror.external_offer_id.is_not(None))
        )
        if after_id is not None:
            stmt = stmt.where(OfferMirror.id > after_id)
        stmt = stmt.order_by(OfferMirror.id).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def upsert_mirror(
        self,
        remote: RemoteOffer,
        product: Optional[Product] = None,
        stock_quantity: Optional[int] = None,
        synced_at: Optional[datetime] = None,
    ) -> OfferMirror:
        """
        Create or update the mirror of ``remote`` from the marketplace's answer.

        Args:
            remote: Offer as returned by the marketplace
            product: Local product to link, if known
            stock_quantity: Stock to record; defaults to the remote stock
            synced_at: Sync timestamp; None leaves last_synced_at untouched

        Returns:
            The mirror (flushed)
        """
        mirror = await self.get_mirror_by_external_id(remote.id)
        if mirror is None and product is not None:
            mirror = await self.get_mirror_for_product(product.id)
        if mirror is None:
            mirror = OfferMirror(external_offer_id=remote.id)
            self.session.add(mirror)
            logger.info(f"Creating offer mirror for remote offer {remote.id}")

        if product is not None and mirror.product_id is None:
            mirror.product = product

        mirror.external_offer_id = remote.id
        self.apply_remote_fields(mirror, remote)
        mirror.stock_quantity = remote.stock_quantity if stock_quantity is None else stock_quantity
        if synced_at is not None:
            mirror.last_synced_at = synced_at
            mirror.sync_status = SyncStatus.SYNCED.value
            mirror.sync_error = None

        await self.save()
        return mirror

    @staticmethod
    def apply_remote_fields(mirror: OfferMirror, remote: RemoteOffer, update_markers: bool = True) -> None:
        """Copy listing fields and the remote version marker onto a mirror (stock excluded)."""
        if remote.name is not None:
            mirror.title = remote.name
        if remote.amount is not None:
            mirror.price = remote.amount
        if remote.currency:
            mirror.currency = remote.currency
        if remote.publication_status:
            mirror.publication_status = remote.publication_status
        if update_markers:
            mirror.remote_revision = remote.revision
            mirror.remote_updated_at = remote.updated_at

    async def mark_mirror(self, mirror: OfferMirror, status: SyncStatus, error: Optional[str] = None) -> None:
        mirror.sync_status = status.value
        mirror.sync_error = error
        await self.save()

    # Atomic stock deltas

    async def adjust_product_stock(
        self,
        product_id: int,
        delta: int,
        expected_version: Optional[int] = None,
    ) -> Optional[Product]:
        """Add ``delta`` to a product's stock in one statement. Returns the refreshed row."""
        stmt = update(Product).where(Product.id == product_id)
        if expected_version is not None:
            stmt = stmt.where(Product.version == expected_version)
        stmt = (
            # Remote-origin stock moves are not local edits: updated_at is kept
            stmt.values(
                stock_quantity=Product.stock_quantity + delta,
                version=Product.version + 1,
                updated_at=Product.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            if expected_version is not None:
                raise ConcurrentUpdateError(
                    f"Product {product_id} changed since version {expected_version}; stock not adjusted"
                )
            return None
        return await self._reload(Product, product_id)

    async def adjust_mirror_stock(
        self,
        mirror_id: int,
        delta: int,
        expected_version: Optional[int] = None,
    ) -> Optional[OfferMirror]:
        """
        Add ``delta`` to a mirror's stock in one statement. Returns the refreshed row.

        With ``expected_version`` the statement only matches the row as it was
        read; a concurrent write in between raises ConcurrentUpdateError.
        """
        stmt = update(OfferMirror).where(OfferMirror.id == mirror_id)
        if expected_version is not None:
            stmt = stmt.where(OfferMirror.version == expected_version)
        stmt = (
            stmt.values(
                stock_quantity=OfferMirror.stock_quantity + delta,
                version=OfferMirror.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            if expected_version is not None:
                raise ConcurrentUpdateError(
                    f"Offer mirror {mirror_id} changed since version {expected_version}; stock not adjusted"
                )
            return None
        return await self._reload(OfferMirror, mirror_id)

    async def adjust_offer_stock(self, mirror: OfferMirror, delta: int, compare_version: bool = False) -> OfferMirror:
        """
        Apply one delta to a mirror and, when linked, to its product.

        Pass ``compare_version`` when ``delta`` was derived from the mirror's
        stock as loaded (an absolute remote level turned into a delta).
        """
        if delta == 0:
            return mirror
        mirror_id, product_id = mirror.id, mirror.product_id
        expected_version = mirror.version if compare_version else None
        refreshed = await self.adjust_mirror_stock(mirror_id, delta, expected_version=expected_version)
        if product_id is not None:
            await self.adjust_product_stock(product_id, delta)
        logger.debug(f"Stock delta {delta:+d} applied to mirror {mirror_id} (product {product_id})")
        return refreshed

    async def _reload(self, model: Type[ModelT], entity_id: int) -> Optional[ModelT]:
        result = await self.session.execute(
            select(model).where(model.id == entity_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def save(self) -> None:
        """Flush pending ORM writes, surfacing lost version checks as ConcurrentUpdateError."""
        try:
            await self.session.flush()
        except StaleDataError as e:
            raise ConcurrentUpdateError(f"Concurrent update detected: {e}") from e

    # Orders

    async def get_order_by_external_id(self, external_order_id: str) -> Optional[MarketplaceOrder]:
        result = await self.session.execute(
            select(MarketplaceOrder).where(MarketplaceOrder.external_order_id == str(external_order_id))
        )
        return result.scalar_one_or_none()

    async def create_order(self, remote: RemoteOrder) -> MarketplaceOrder:
        """Record an order with every line item. Stock is not touched here."""
        order = MarketplaceOrder(
            external_order_id=remote.id,
            status=OrderStatus.from_remote(remote.status).value,
            buyer_email=remote.buyer.email if remote.buyer else None,
            buyer_login=remote.buyer.login if remote.buyer else None,
            total_amount=remote.total_price.amount if remote.total_price else None,
            currency=remote.total_price.currency if remote.total_price else None,
            ordered_at=remote.created_at,
            stock_applied=False,
            lines=[
                MarketplaceOrderLine(
                    external_offer_id=item.offer.id,
                    quantity=item.quantity,
                    unit_price=item.price.amount if item.price else None,
                )
                for item in remote.line_items
            ],
        )
        self.session.add(order)
        await self.session.flush()
        logger.info(f"Recorded marketplace order {remote.id} with {len(order.lines)} line(s)")
        return order
