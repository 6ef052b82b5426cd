# offersync/models/sync_job.py
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey

from offersync.database import Base
from offersync.core.enums import SyncJobStatus, SYNC_JOB_TRANSITIONS
from offersync.core.exceptions import InvalidJobTransitionError
from offersync.core.utils import utcnow


class SyncJob(Base):
    """
    One run of a sync strategy.
    This table serves as the audit log for all sync activity, including
    single-product syncs.
    """
    __tablename__ = "sync_jobs"

    id = Column(Integer, primary_key=True, index=True)

    job_type = Column(String(32), nullable=False, index=True)
    direction = Column(String(32), nullable=False)
    status = Column(String(16), nullable=False, default=SyncJobStatus.PENDING.value, index=True)
    batch_size = Column(Integer, nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # --- Counters ---
    total_items = Column(Integer, nullable=False, default=0)
    processed_items = Column(Integer, nullable=False, default=0)
    successful_items = Column(Integer, nullable=False, default=0)
    failed_items = Column(Integer, nullable=False, default=0)
    needs_review_items = Column(Integer, nullable=False, default=0)

    # Ordered per-item errors: [{"item": ..., "error": ..., "retryable": ...}]
    errors = Column(JSON, nullable=False, default=list)
    # Conflicts needing operator review: [{"entity_id": ..., "resolution": "MANUAL", ...}]
    conflicts = Column(JSON, nullable=False, default=list)
    error_message = Column(Text, nullable=True)

    # --- Correlation for single-product syncs ---
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    offer_id = Column(Integer, ForeignKey("offer_mirrors.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def status_enum(self) -> SyncJobStatus:
        return SyncJobStatus(self.status)

    def transition_to(self, new_status: SyncJobStatus) -> None:
        """Move the job forward; completed_at is set iff the new status is terminal."""
        current = self.status_enum
        if new_status not in SYNC_JOB_TRANSITIONS[current]:
            raise InvalidJobTransitionError(
                f"Sync job {self.id} cannot move from {current.value} to {new_status.value}"
            )
        self.status = new_status.value
        if new_status == SyncJobStatus.RUNNING and self.started_at is None:
            self.started_at = utcnow()
        if new_status.is_terminal:
            self.completed_at = utcnow()

    def __repr__(self) -> str:
        return f"<SyncJob(id={self.id}, type={self.job_type}, status={self.status})>"
