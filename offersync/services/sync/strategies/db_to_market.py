import logging
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from offersync.core.enums import SyncJobType
from offersync.core.exceptions import ProductNotFoundError
from offersync.core.utils import utcnow
from offersync.models.offer import OfferMirror
from offersync.models.product import Product
from offersync.repositories.catalog_repository import CatalogRepository
from offersync.schemas.marketplace import offer_payload_from_product
from offersync.services.sync.results import ItemOutcome, StrategyResult
from offersync.services.sync.strategies.base import ProgressCallback, SyncStrategy

logger = logging.getLogger(__name__)


class DbToMarketStrategy(SyncStrategy):
    """
    Push local products to the marketplace.

    Candidates are active products created or edited since their last sync,
    taken in id order after the stored cursor. Each is created remotely, or
    updated when its mirror already holds a remote offer id.
    """

    job_type = SyncJobType.DB_TO_MARKET

    def __init__(self, *args, product_ids: Optional[Sequence[int]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.product_ids = list(product_ids) if product_ids else None

    async def execute(self, batch_size: int, progress: Optional[ProgressCallback] = None) -> StrategyResult:
        result = StrategyResult()
        use_cursor = self.product_ids is None

        cursor = await self.load_cursor() if use_cursor else None
        after_id = int(cursor) if cursor else None
        candidate_ids = await self._candidate_ids(after_id, batch_size)
        if not candidate_ids and after_id is not None:
            # End of the dataset: wrap around to the start
            after_id = None
            candidate_ids = await self._candidate_ids(None, batch_size)

        logger.info(f"{self.name}: {len(candidate_ids)} product(s) to push (after id {after_id})")
        outcomes = await self.run_items(candidate_ids, self._push_by_id, key=lambda pid: pid)
        result.extend(outcomes)

        if use_cursor:
            reached_end = len(candidate_ids) < batch_size
            await self.save_cursor(None if reached_end or not candidate_ids else str(candidate_ids[-1]))
        if progress:
            await progress(result)
        return result

    async def _candidate_ids(self, after_id: Optional[int], batch_size: int):
        async with self.session_factory() as session:
            products = await CatalogRepository(session).products_to_push(after_id, batch_size, self.product_ids)
            return [product.id for product in products]

    async def _push_by_id(self, session: AsyncSession, product_id: int) -> ItemOutcome:
        catalog = CatalogRepository(session)
        product = await catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        await self.push_one(catalog, product)
        return ItemOutcome.success(product_id)

    async def push_one(
        self,
        catalog: CatalogRepository,
        product: Product,
        mirror: Optional[OfferMirror] = None,
    ) -> OfferMirror:
        """Create or update the remote offer for ``product`` and record the answer on its mirror."""
        payload = offer_payload_from_product(product, self.settings.DEFAULT_CURRENCY)
        if mirror is None:
            mirror = await catalog.get_mirror_for_product(product.id)

        if mirror is not None and mirror.external_offer_id:
            remote = await self.client.update_offer(mirror.external_offer_id, payload)
            logger.debug(f"Updated remote offer {remote.id} for product {product.sku}")
        else:
            remote = await self.client.create_offer(payload)
            logger.info(f"Created remote offer {remote.id} for product {product.sku}")

        return await catalog.upsert_mirror(
            remote,
            product=product,
            stock_quantity=product.stock_quantity,
            synced_at=utcnow(),
        )
