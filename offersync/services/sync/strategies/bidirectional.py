import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from offersync.core.enums import Resolution, SyncJobType, SyncStatus
from offersync.core.exceptions import ProductNotFoundError
from offersync.repositories.catalog_repository import CatalogRepository
from offersync.services.sync.conflict_resolver import LocalVersion, RemoteVersion, resolve
from offersync.services.sync.results import ItemOutcome, StrategyResult
from offersync.services.sync.strategies.base import ProgressCallback, SyncStrategy
from offersync.services.sync.strategies.db_to_market import DbToMarketStrategy
from offersync.services.sync.strategies.market_to_db import MarketToDbStrategy

logger = logging.getLogger(__name__)


class BidirectionalStrategy(SyncStrategy):
    """
    Reconcile linked offers by asking the conflict resolver who wins.

    Candidates are mirrors with both a product and a remote offer id, in
    mirror id order after the stored cursor. LOCAL_WINS reuses the push path,
    REMOTE_WINS the pull path; MANUAL marks the mirror CONFLICT and is
    reported for review.
    """

    job_type = SyncJobType.BIDIRECTIONAL

    def __init__(self, client, session_factory, settings):
        super().__init__(client, session_factory, settings)
        self.pusher = DbToMarketStrategy(client, session_factory, settings)
        self.puller = MarketToDbStrategy(client, session_factory, settings)

    async def execute(self, batch_size: int, progress: Optional[ProgressCallback] = None) -> StrategyResult:
        result = StrategyResult()
        cursor = await self.load_cursor()
        after_id = int(cursor) if cursor else None

        mirror_ids = await self._candidate_ids(after_id, batch_size)
        if not mirror_ids and after_id is not None:
            after_id = None
            mirror_ids = await self._candidate_ids(None, batch_size)

        logger.info(f"{self.name}: reconciling {len(mirror_ids)} offer(s) (after mirror id {after_id})")
        outcomes = await self.run_items(mirror_ids, self._reconcile, key=lambda mid: mid)
        result.extend(outcomes)

        reached_end = len(mirror_ids) < batch_size
        await self.save_cursor(None if reached_end or not mirror_ids else str(mirror_ids[-1]))
        if progress:
            await progress(result)
        return result

    async def _candidate_ids(self, after_id: Optional[int], batch_size: int):
        async with self.session_factory() as session:
            mirrors = await CatalogRepository(session).linked_mirrors(after_id, batch_size)
            return [mirror.id for mirror in mirrors]

    async def _reconcile(self, session: AsyncSession, mirror_id: int) -> ItemOutcome:
        catalog = CatalogRepository(session)
        mirror = await catalog.get_mirror(mirror_id)
        if mirror is None or mirror.product is None:
            raise ProductNotFoundError(f"Offer mirror {mirror_id} has no linked product")
        product = mirror.product

        remote = await self.client.get_offer(mirror.external_offer_id)
        record = resolve(LocalVersion.from_models(product, mirror), RemoteVersion.from_offer(remote))
        logger.debug(f"Mirror {mirror_id}: {record.resolution.value} ({record.reason})")

        if record.resolution == Resolution.LOCAL_WINS:
            await self.pusher.push_one(catalog, product, mirror)
        elif record.resolution == Resolution.REMOTE_WINS:
            await self.puller.pull_one(catalog, remote, mirror)
        elif record.resolution == Resolution.MANUAL:
            await catalog.mark_mirror(mirror, SyncStatus.CONFLICT, record.reason)
            logger.info(f"Mirror {mirror_id} needs review: {record.reason}")
            return ItemOutcome.needs_review(mirror_id, record.to_dict())

        return ItemOutcome.success(mirror_id)
