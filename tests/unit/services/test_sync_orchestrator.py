# tests/unit/services/test_sync_orchestrator.py
import asyncio
from datetime import timedelta

import pytest

from offersync.core.enums import SyncJobStatus, SyncJobType
from offersync.core.exceptions import (
    InvalidJobTransitionError,
    MarketplaceAPIError,
    MarketplaceAuthError,
    ProductNotFoundError,
    SyncJobNotFoundError,
    SyncJobTimeoutError,
    UnknownStrategyError,
    ValidationError,
)
from offersync.core.utils import utcnow
from offersync.models import SyncJob
from offersync.schemas.sync import SyncJobFilter
from offersync.services.sync import SyncOrchestrator
from offersync.services.sync.results import ItemOutcome, StrategyResult
from offersync.services.sync.strategies import DbToMarketStrategy


@pytest.fixture
def orchestrator(session_factory, settings, marketplace):
    return SyncOrchestrator(marketplace, session_factory, settings)


def assert_counts_consistent(job: SyncJob):
    assert job.processed_items == job.successful_items + job.failed_items
    assert job.total_items == job.processed_items + job.needs_review_items


# --- run_sync ---

@pytest.mark.asyncio
async def test_run_sync_completes_job(orchestrator, make_product, fetch):
    # Scenario: a local product with stock 10 is pushed
    await make_product("SKU-1", stock_quantity=10)

    result = await orchestrator.run_sync("db-to-market", batch_size=10)

    assert result.status == SyncJobStatus.COMPLETED
    assert result.job_type == SyncJobType.DB_TO_MARKET
    assert result.successful == 1

    job = await fetch(SyncJob, result.job_id)
    assert job.status == SyncJobStatus.COMPLETED.value
    assert job.successful_items == 1
    assert job.batch_size == 10
    assert job.direction == "TO_MARKET"
    assert job.started_at is not None
    assert job.completed_at is not None
    assert job.completed_at >= job.started_at
    assert_counts_consistent(job)


@pytest.mark.asyncio
async def test_item_failures_still_complete_the_job(orchestrator, marketplace, make_product, fetch):
    for i in range(1, 6):
        await make_product(f"SKU-{i}")
    marketplace.fail_for["SKU-3"] = MarketplaceAPIError("Request failed (503): unavailable", status_code=503)

    result = await orchestrator.run_sync("db-to-market", batch_size=5)

    job = await fetch(SyncJob, result.job_id)
    assert job.status == SyncJobStatus.COMPLETED.value
    assert (job.processed_items, job.successful_items, job.failed_items) == (5, 4, 1)
    assert len(job.errors) == 1
    assert job.errors[0]["error"] == "Request failed (503): unavailable"
    assert_counts_consistent(job)


@pytest.mark.asyncio
async def test_pull_page_failure_still_completes_the_job(orchestrator, marketplace, mocker, fetch):
    marketplace.add_offer("OFF-1")
    mocker.patch.object(
        marketplace, "list_offers",
        mocker.AsyncMock(side_effect=MarketplaceAPIError("Request failed (503): unavailable", status_code=503)),
    )

    result = await orchestrator.run_sync("market-to-db")

    job = await fetch(SyncJob, result.job_id)
    assert job.status == SyncJobStatus.COMPLETED.value
    assert (job.processed_items, job.successful_items, job.failed_items) == (1, 0, 1)
    assert job.errors[0]["item"] == "page start"
    assert_counts_consistent(job)


@pytest.mark.asyncio
async def test_conflicts_are_counted_outside_processed(orchestrator, mocker, fetch):
    async def execute(self, batch_size, progress=None):
        result = StrategyResult()
        result.extend([
            ItemOutcome.success(1),
            ItemOutcome.needs_review(2, {"entity_id": 2, "resolution": "MANUAL", "reason": "currency mismatch"}),
        ])
        return result

    mocker.patch.object(DbToMarketStrategy, "execute", execute)

    result = await orchestrator.run_sync("db-to-market")

    job = await fetch(SyncJob, result.job_id)
    assert (job.processed_items, job.needs_review_items, job.total_items) == (1, 1, 2)
    assert job.conflicts == [{"entity_id": 2, "resolution": "MANUAL", "reason": "currency mismatch"}]
    assert_counts_consistent(job)


@pytest.mark.asyncio
async def test_strategy_exception_fails_job_and_keeps_last_progress(orchestrator, mocker, fetch):
    async def execute(self, batch_size, progress=None):
        partial = StrategyResult()
        partial.extend([ItemOutcome.success(1), ItemOutcome.failed(2, RuntimeError("bad row"))])
        await progress(partial)
        raise RuntimeError("database connection lost")

    mocker.patch.object(DbToMarketStrategy, "execute", execute)

    with pytest.raises(RuntimeError, match="database connection lost"):
        await orchestrator.run_sync("db-to-market")

    jobs = (await orchestrator.list_sync_jobs())["items"]
    job = await fetch(SyncJob, jobs[0].id)
    assert job.status == SyncJobStatus.FAILED.value
    assert job.error_message == "database connection lost"
    assert job.completed_at is not None
    assert (job.processed_items, job.successful_items, job.failed_items) == (2, 1, 1)
    assert_counts_consistent(job)


@pytest.mark.asyncio
async def test_auth_error_fails_job(orchestrator, marketplace, make_product):
    await make_product("SKU-1")
    marketplace.auth_failure = True

    with pytest.raises(MarketplaceAuthError):
        await orchestrator.run_sync("db-to-market")

    jobs = (await orchestrator.list_sync_jobs())["items"]
    assert jobs[0].status == SyncJobStatus.FAILED.value
    assert "Authorization failed" in jobs[0].error_message


@pytest.mark.asyncio
async def test_timeout_fails_job(session_factory, settings, marketplace, mocker):
    async def execute(self, batch_size, progress=None):
        await asyncio.sleep(5)

    mocker.patch.object(DbToMarketStrategy, "execute", execute)
    settings.SYNC_JOB_TIMEOUT_SECONDS = 0.05
    orchestrator = SyncOrchestrator(marketplace, session_factory, settings)

    with pytest.raises(SyncJobTimeoutError):
        await orchestrator.run_sync("db-to-market")

    jobs = (await orchestrator.list_sync_jobs())["items"]
    assert jobs[0].status == SyncJobStatus.FAILED.value
    assert "timed out" in jobs[0].error_message
    assert jobs[0].completed_at is not None


@pytest.mark.asyncio
async def test_unknown_strategy_creates_no_job(orchestrator):
    with pytest.raises(UnknownStrategyError):
        await orchestrator.run_sync("sideways")

    assert (await orchestrator.list_sync_jobs())["total"] == 0


@pytest.mark.asyncio
async def test_batch_size_must_be_positive(orchestrator):
    with pytest.raises(ValidationError):
        await orchestrator.run_sync("db-to-market", batch_size=0)


@pytest.mark.asyncio
async def test_default_batch_size_comes_from_settings(orchestrator, settings, fetch):
    result = await orchestrator.run_sync("bidirectional")

    job = await fetch(SyncJob, result.job_id)
    assert job.batch_size == settings.SYNC_BATCH_SIZE
    assert job.direction == "BIDIRECTIONAL"


# --- sync_product ---

@pytest.mark.asyncio
async def test_sync_product_records_correlated_job(orchestrator, marketplace, make_product, fetch):
    product = await make_product("SKU-1")
    # A second pending product must not be pushed by a single-product sync
    await make_product("SKU-2")

    result = await orchestrator.sync_product(product.id)

    job = await fetch(SyncJob, result.job_id)
    assert job.job_type == SyncJobType.DB_TO_MARKET.value
    assert job.batch_size == 1
    assert job.product_id == product.id
    assert job.offer_id is not None
    assert job.successful_items == 1
    assert [call["key"] for call in marketplace.calls_of("create_offer")] == ["SKU-1"]


@pytest.mark.asyncio
async def test_sync_product_pushes_even_when_already_synced(orchestrator, marketplace, make_product, make_mirror):
    product = await make_product("SKU-1")
    marketplace.add_offer("OFF-1", external_id="SKU-1")
    mirror = await make_mirror(product, "OFF-1")

    result = await orchestrator.sync_product(product.id)

    assert result.successful == 1
    assert [call["key"] for call in marketplace.calls_of("update_offer")] == ["OFF-1"]
    job = await orchestrator.get_sync_job(result.job_id)
    assert job.offer_id == mirror.id


@pytest.mark.asyncio
async def test_sync_product_unknown_product(orchestrator):
    with pytest.raises(ProductNotFoundError):
        await orchestrator.sync_product(999)


# --- Queries and maintenance ---

@pytest.mark.asyncio
async def test_get_sync_job_not_found(orchestrator):
    with pytest.raises(SyncJobNotFoundError):
        await orchestrator.get_sync_job(12345)


@pytest.mark.asyncio
async def test_list_sync_jobs_filters_and_orders_newest_first(orchestrator):
    first = await orchestrator.run_sync("db-to-market")
    second = await orchestrator.run_sync("bidirectional")

    everything = await orchestrator.list_sync_jobs()
    only_push = await orchestrator.list_sync_jobs(SyncJobFilter(job_type=SyncJobType.DB_TO_MARKET))

    assert [job.id for job in everything["items"]] == [second.job_id, first.job_id]
    assert [job.id for job in only_push["items"]] == [first.job_id]


@pytest.mark.asyncio
async def test_abandon_stale_jobs(orchestrator, session_factory, settings, fetch):
    async with session_factory() as session:
        stale = SyncJob(
            job_type=SyncJobType.DB_TO_MARKET.value,
            direction="TO_MARKET",
            status=SyncJobStatus.RUNNING.value,
            started_at=utcnow() - timedelta(seconds=settings.SYNC_JOB_TIMEOUT_SECONDS + 60),
            errors=[],
            conflicts=[],
        )
        fresh = SyncJob(
            job_type=SyncJobType.DB_TO_MARKET.value,
            direction="TO_MARKET",
            status=SyncJobStatus.RUNNING.value,
            started_at=utcnow(),
            errors=[],
            conflicts=[],
        )
        session.add_all([stale, fresh])
        await session.commit()

    abandoned = await orchestrator.abandon_stale_jobs()

    assert abandoned == [stale.id]
    stale_row = await fetch(SyncJob, stale.id)
    assert stale_row.status == SyncJobStatus.FAILED.value
    assert "timeout" in stale_row.error_message
    assert stale_row.completed_at is not None
    assert (await fetch(SyncJob, fresh.id)).status == SyncJobStatus.RUNNING.value


# --- Job state machine ---

def test_job_transitions_only_move_forward():
    job = SyncJob(job_type="DB_TO_MARKET", direction="TO_MARKET", status=SyncJobStatus.PENDING.value)

    job.transition_to(SyncJobStatus.RUNNING)
    assert job.started_at is not None
    assert job.completed_at is None

    job.transition_to(SyncJobStatus.COMPLETED)
    assert job.completed_at is not None

    with pytest.raises(InvalidJobTransitionError):
        job.transition_to(SyncJobStatus.RUNNING)
    with pytest.raises(InvalidJobTransitionError):
        job.transition_to(SyncJobStatus.FAILED)
