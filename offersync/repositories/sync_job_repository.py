import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from offersync.core.enums import SyncJobStatus, SyncJobType
from offersync.core.utils import paginate_query
from offersync.models.sync_job import SyncJob
from offersync.schemas.sync import SyncJobFilter

logger = logging.getLogger(__name__)


class SyncJobRepository:
    """Append-only creation plus targeted field updates for sync jobs."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_running(
        self,
        job_type: SyncJobType,
        batch_size: Optional[int] = None,
        product_id: Optional[int] = None,
        offer_id: Optional[int] = None,
    ) -> SyncJob:
        """Create a job and move it straight to RUNNING (started_at = now)."""
        job = SyncJob(
            job_type=job_type.value,
            direction=job_type.direction.value,
            status=SyncJobStatus.PENDING.value,
            batch_size=batch_size,
            product_id=product_id,
            offer_id=offer_id,
            errors=[],
            conflicts=[],
        )
        job.transition_to(SyncJobStatus.RUNNING)
        self.session.add(job)
        await self.session.flush()
        return job

    async def get(self, job_id: int) -> Optional[SyncJob]:
        return await self.session.get(SyncJob, job_id)

    @staticmethod
    def apply_counts(job: SyncJob, counts: Dict[str, Any]) -> None:
        """Copy a strategy result snapshot onto the job row."""
        job.processed_items = counts["processed"]
        job.successful_items = counts["successful"]
        job.failed_items = counts["failed"]
        job.needs_review_items = counts["needs_review"]
        job.total_items = counts["processed"] + counts["needs_review"]
        # New list objects so the JSON columns register as changed
        job.errors = list(counts["errors"])
        job.conflicts = list(counts["conflicts"])

    async def list_jobs(self, job_filter: SyncJobFilter) -> Dict[str, Any]:
        stmt = select(SyncJob)
        if job_filter.job_type:
            stmt = stmt.where(SyncJob.job_type == job_filter.job_type.value)
        if job_filter.status:
            stmt = stmt.where(SyncJob.status == job_filter.status.value)
        stmt = stmt.order_by(SyncJob.created_at.desc(), SyncJob.id.desc())
        return await paginate_query(stmt, self.session, page=job_filter.page, page_size=job_filter.limit)

    async def running_started_before(self, cutoff: datetime) -> List[SyncJob]:
        result = await self.session.execute(
            select(SyncJob)
            .where(SyncJob.status == SyncJobStatus.RUNNING.value, SyncJob.started_at < cutoff)
            .order_by(SyncJob.id)
        )
        return list(result.scalars().all())
