import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from offersync.core.enums import SyncJobType
from offersync.core.exceptions import MarketplaceAPIError, MarketplaceAuthError
from offersync.core.utils import utcnow
from offersync.models.offer import OfferMirror
from offersync.repositories.catalog_repository import CatalogRepository
from offersync.schemas.marketplace import RemoteOffer
from offersync.services.sync.results import ItemOutcome, StrategyResult
from offersync.services.sync.strategies.base import ProgressCallback, SyncStrategy

logger = logging.getLogger(__name__)


class MarketToDbStrategy(SyncStrategy):
    """
    Pull remote offers into the local mirrors and products.

    Pages through ``list_offers`` from the stored remote cursor. Offers whose
    version marker matches the mirror are skipped without a write. A page that
    cannot be fetched ends the run as one failed item; only an auth error
    fails the job.
    """

    job_type = SyncJobType.MARKET_TO_DB

    async def execute(self, batch_size: int, progress: Optional[ProgressCallback] = None) -> StrategyResult:
        result = StrategyResult()
        cursor = await self.load_cursor()
        remaining = batch_size
        page_size = max(1, self.settings.MARKETPLACE_PAGE_SIZE)

        while remaining > 0:
            try:
                page = await self.client.list_offers(cursor=cursor, limit=min(page_size, remaining))
            except MarketplaceAuthError:
                raise
            except MarketplaceAPIError as e:
                # Cursor stays at the failed page so the next run resumes there
                logger.warning(f"{self.name}: page fetch failed at cursor {cursor!r}: {e}")
                result.add(ItemOutcome.failed(f"page {cursor or 'start'}", e))
                if progress:
                    await progress(result)
                break
            items = page.items[:remaining]
            logger.info(f"{self.name}: pulled page of {len(page.items)} offer(s) (cursor {cursor!r})")

            outcomes = await self.run_items(items, self._pull_item, key=lambda offer: offer.id)
            result.extend(outcomes)
            remaining -= len(items)
            if progress:
                await progress(result)

            if len(items) < len(page.items):
                # Page only partly consumed: keep the cursor so the rest is seen next run
                break
            cursor = page.next_cursor
            await self.save_cursor(cursor)
            if cursor is None or not items:
                break

        return result

    async def _pull_item(self, session: AsyncSession, offer: RemoteOffer) -> ItemOutcome:
        catalog = CatalogRepository(session)
        mirror = await catalog.get_mirror_by_external_id(offer.id)
        if (
            mirror is not None
            and mirror.last_synced_at is not None
            and mirror.version_marker is not None
            and mirror.version_marker == offer.version_marker
        ):
            return ItemOutcome.skipped(offer.id)

        await self.pull_one(catalog, offer, mirror)
        return ItemOutcome.success(offer.id)

    async def pull_one(
        self,
        catalog: CatalogRepository,
        offer: RemoteOffer,
        mirror: Optional[OfferMirror] = None,
    ) -> OfferMirror:
        """
        Apply remote truth for one offer to its mirror and linked product.

        Both rows are written through the ORM, so a concurrent stock delta
        between load and flush raises ConcurrentUpdateError instead of being lost.
        """
        if mirror is None:
            mirror = await catalog.get_mirror_by_external_id(offer.id)

        product = None
        if mirror is not None and mirror.product_id is not None:
            product = mirror.product
        elif offer.external_id:
            candidate = await catalog.get_product_by_sku(offer.external_id)
            if candidate is not None:
                linked = await catalog.get_mirror_for_product(candidate.id)
                if linked is None or linked.external_offer_id == offer.id:
                    product = candidate

        synced_at = utcnow()
        if product is not None:
            if offer.name is not None:
                product.title = offer.name
            if offer.amount is not None:
                product.price = offer.amount
            if offer.currency:
                product.currency = offer.currency
            product.stock_quantity = offer.stock_quantity
            # Pulled state is not a local edit: keep updated_at level with last_synced_at
            product.updated_at = synced_at

        return await catalog.upsert_mirror(offer, product=product, synced_at=synced_at)
