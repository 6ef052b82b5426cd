"""
Sync orchestration: one SyncJob per run.

A job is created RUNNING before any marketplace I/O, its counters are
persisted after every batch the strategy reports, and it is finalized
exactly once: COMPLETED when the strategy returns (item failures included),
FAILED when the strategy raises or the run exceeds SYNC_JOB_TIMEOUT_SECONDS.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from offersync.core.config import Settings
from offersync.core.enums import SyncJobStatus, SyncJobType
from offersync.core.exceptions import (
    ProductNotFoundError,
    SyncJobNotFoundError,
    SyncJobTimeoutError,
    ValidationError,
)
from offersync.core.utils import utcnow
from offersync.integrations.base import MarketplaceClient
from offersync.models.sync_job import SyncJob
from offersync.repositories.catalog_repository import CatalogRepository
from offersync.repositories.sync_job_repository import SyncJobRepository
from offersync.schemas.sync import SyncJobFilter, SyncJobResult
from offersync.services.sync.results import StrategyResult
from offersync.services.sync.strategies import DbToMarketStrategy, SyncStrategy, get_strategy_class

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Creates, drives and finalizes sync jobs."""

    def __init__(
        self,
        client: MarketplaceClient,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
    ):
        self.client = client
        self.session_factory = session_factory
        self.settings = settings

    def build_strategy(self, kind, **kwargs) -> SyncStrategy:
        strategy_class = get_strategy_class(kind)
        return strategy_class(self.client, self.session_factory, self.settings, **kwargs)

    async def run_sync(self, kind, batch_size: Optional[int] = None) -> SyncJobResult:
        """
        Run one strategy as a tracked sync job.

        Args:
            kind: SyncJobType, its value, or a slug such as "db-to-market"
            batch_size: Items to process; defaults to SYNC_BATCH_SIZE

        Returns:
            SyncJobResult for the COMPLETED job

        Raises:
            UnknownStrategyError: If ``kind`` names no strategy
            SyncJobTimeoutError: If the run exceeded SYNC_JOB_TIMEOUT_SECONDS (job is FAILED)
            MarketplaceAuthError: If the marketplace rejected the credentials (job is FAILED)
        """
        strategy = self.build_strategy(kind)
        batch_size = self._batch_size(batch_size)
        return await self._run(strategy, batch_size)

    async def sync_product(self, product_id: int) -> SyncJobResult:
        """Push a single product. Still recorded as a DB_TO_MARKET job with batch size 1."""
        async with self.session_factory() as session:
            catalog = CatalogRepository(session)
            product = await catalog.get_product(product_id)
            if product is None:
                raise ProductNotFoundError(f"Product {product_id} not found")
            mirror = await catalog.get_mirror_for_product(product_id)
            offer_id = mirror.id if mirror else None

        strategy = DbToMarketStrategy(self.client, self.session_factory, self.settings, product_ids=[product_id])
        result = await self._run(strategy, 1, product_id=product_id, offer_id=offer_id)

        if offer_id is None:
            await self._correlate_offer(result.job_id, product_id)
        return result

    async def _run(
        self,
        strategy: SyncStrategy,
        batch_size: int,
        product_id: Optional[int] = None,
        offer_id: Optional[int] = None,
    ) -> SyncJobResult:
        job_type = strategy.job_type
        async with self.session_factory() as session:
            job = await SyncJobRepository(session).create_running(
                job_type, batch_size=batch_size, product_id=product_id, offer_id=offer_id
            )
            await session.commit()
            job_id = job.id
        logger.info(f"Sync job {job_id} started: {job_type.value}, batch size {batch_size}")

        async def on_progress(result: StrategyResult) -> None:
            await self._persist_counts(job_id, result.as_counts())

        timeout = self.settings.SYNC_JOB_TIMEOUT_SECONDS
        try:
            result = await asyncio.wait_for(strategy.execute(batch_size, progress=on_progress), timeout=timeout)
        except asyncio.TimeoutError:
            message = f"Sync job {job_id} timed out after {timeout}s"
            logger.error(message)
            await self._finalize(job_id, SyncJobStatus.FAILED, error_message=message)
            raise SyncJobTimeoutError(message)
        except Exception as e:
            logger.exception(f"Sync job {job_id} failed")
            await self._finalize(job_id, SyncJobStatus.FAILED, error_message=str(e) or e.__class__.__name__)
            raise

        counts = result.as_counts()
        await self._finalize(job_id, SyncJobStatus.COMPLETED, counts=counts)
        logger.info(
            f"Sync job {job_id} completed: processed={result.processed} successful={result.successful} "
            f"failed={result.failed} needs_review={result.needs_review}"
        )
        return SyncJobResult(
            job_id=job_id,
            job_type=job_type,
            status=SyncJobStatus.COMPLETED,
            processed=result.processed,
            successful=result.successful,
            failed=result.failed,
            needs_review=result.needs_review,
            skipped=result.skipped,
            errors=counts["errors"],
            conflicts=counts["conflicts"],
        )

    async def _persist_counts(self, job_id: int, counts: Dict[str, Any]) -> None:
        async with self.session_factory() as session:
            job = await SyncJobRepository(session).get(job_id)
            if job is None or job.status_enum.is_terminal:
                return
            SyncJobRepository.apply_counts(job, counts)
            await session.commit()

    async def _finalize(
        self,
        job_id: int,
        status: SyncJobStatus,
        counts: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        async with self.session_factory() as session:
            job = await SyncJobRepository(session).get(job_id)
            if job is None:
                raise SyncJobNotFoundError(f"Sync job {job_id} not found")
            if job.status_enum.is_terminal:
                logger.warning(f"Sync job {job_id} already {job.status}; not finalizing again")
                return
            # FAILED keeps the last counts reported through on_progress
            if counts is not None:
                SyncJobRepository.apply_counts(job, counts)
            if error_message:
                job.error_message = error_message
            job.transition_to(status)
            await session.commit()

    async def _correlate_offer(self, job_id: int, product_id: int) -> None:
        async with self.session_factory() as session:
            job = await SyncJobRepository(session).get(job_id)
            mirror = await CatalogRepository(session).get_mirror_for_product(product_id)
            if job is not None and mirror is not None:
                job.offer_id = mirror.id
                await session.commit()

    def _batch_size(self, batch_size: Optional[int]) -> int:
        if batch_size is None:
            return self.settings.SYNC_BATCH_SIZE
        if batch_size < 1:
            raise ValidationError(f"batch_size must be at least 1, got {batch_size}")
        return batch_size

    # Queries

    async def get_sync_job(self, job_id: int) -> SyncJob:
        async with self.session_factory() as session:
            job = await SyncJobRepository(session).get(job_id)
            if job is None:
                raise SyncJobNotFoundError(f"Sync job {job_id} not found")
            return job

    async def list_sync_jobs(self, job_filter: Optional[SyncJobFilter] = None) -> Dict[str, Any]:
        async with self.session_factory() as session:
            return await SyncJobRepository(session).list_jobs(job_filter or SyncJobFilter())

    async def abandon_stale_jobs(self) -> List[int]:
        """Mark RUNNING jobs older than the configured deadline FAILED. Returns their ids."""
        timeout = self.settings.SYNC_JOB_TIMEOUT_SECONDS
        cutoff = utcnow() - timedelta(seconds=timeout)
        async with self.session_factory() as session:
            repo = SyncJobRepository(session)
            stale = await repo.running_started_before(cutoff)
            for job in stale:
                job.error_message = f"Abandoned: still RUNNING after {timeout}s (timeout)"
                job.transition_to(SyncJobStatus.FAILED)
            await session.commit()
            job_ids = [job.id for job in stale]

        if job_ids:
            logger.warning(f"Marked {len(job_ids)} stale sync job(s) FAILED: {job_ids}")
        return job_ids
