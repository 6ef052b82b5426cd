import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from offersync.core.enums import SyncJobStatus, SyncJobType
from offersync.core.exceptions import (
    MarketplaceAuthError,
    ProductNotFoundError,
    SyncJobNotFoundError,
    SyncJobTimeoutError,
    UnknownStrategyError,
    ValidationError,
)
from offersync.dependencies import get_sync_orchestrator
from offersync.schemas.base import Page, Pagination
from offersync.schemas.sync import SyncJobFilter, SyncJobRead, SyncJobResult
from offersync.services.sync import SyncOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/jobs", response_model=Page[SyncJobRead])
async def list_sync_jobs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    job_type: Optional[SyncJobType] = Query(None, alias="type"),
    status: Optional[SyncJobStatus] = None,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Sync job history, newest first"""
    job_filter = SyncJobFilter(page=page, limit=limit, job_type=job_type, status=status)
    data = await orchestrator.list_sync_jobs(job_filter)
    return Page[SyncJobRead](
        items=[SyncJobRead.from_orm_model(job) for job in data["items"]],
        pagination=Pagination(
            page=data["page"],
            limit=data["page_size"],
            total=data["total"],
            total_pages=data["total_pages"],
        ),
    )


@router.get("/jobs/{job_id}", response_model=SyncJobRead)
async def get_sync_job(job_id: int, orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator)):
    try:
        job = await orchestrator.get_sync_job(job_id)
    except SyncJobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return SyncJobRead.from_orm_model(job)


@router.post("/product/{product_id}", response_model=SyncJobResult)
async def sync_single_product(product_id: int, orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator)):
    """Push one product to the marketplace (recorded as a batch-size-1 job)"""
    try:
        return await orchestrator.sync_product(product_id)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SyncJobTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    except MarketplaceAuthError as e:
        raise HTTPException(status_code=502, detail=f"Marketplace authorization failed: {e}")


@router.post("/{kind}", response_model=SyncJobResult)
async def run_sync(
    kind: str,
    batch_size: Optional[int] = Query(None, ge=1),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """Run one strategy: db-to-market, market-to-db or bidirectional"""
    try:
        return await orchestrator.run_sync(kind, batch_size)
    except (UnknownStrategyError, ValidationError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except SyncJobTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    except MarketplaceAuthError as e:
        raise HTTPException(status_code=502, detail=f"Marketplace authorization failed: {e}")
