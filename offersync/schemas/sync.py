"""
Schemas for sync jobs and their results.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from offersync.core.enums import SyncJobStatus, SyncJobType
from offersync.schemas.base import BaseSchema


class SyncJobRead(BaseSchema):
    id: int
    job_type: SyncJobType
    direction: str
    status: SyncJobStatus
    batch_size: Optional[int] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_items: int
    processed_items: int
    successful_items: int
    failed_items: int
    needs_review_items: int
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    conflicts: List[Dict[str, Any]] = Field(default_factory=list)
    error_message: Optional[str] = None
    product_id: Optional[int] = None
    offer_id: Optional[int] = None
    created_at: datetime


class SyncJobResult(BaseModel):
    """Returned by run_sync: the finalized job plus the strategy's breakdown"""
    job_id: int
    job_type: SyncJobType
    status: SyncJobStatus
    processed: int
    successful: int
    failed: int
    needs_review: int
    skipped: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    conflicts: List[Dict[str, Any]] = Field(default_factory=list)


class SyncJobFilter(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=200)
    job_type: Optional[SyncJobType] = None
    status: Optional[SyncJobStatus] = None
