"""
Scheduled tasks for the sync engine.
This module sets up scheduled tasks that run within the FastAPI application.
"""

import logging
from datetime import datetime
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from offersync.core.config import Settings, get_settings
from offersync.database import async_session
from offersync.services.marketplace import HttpMarketplaceClient
from offersync.services.notification_service import EmailNotificationService
from offersync.services.sync import SyncOrchestrator
from offersync.services.webhooks import WebhookEventProcessor

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def build_orchestrator(settings: Settings) -> SyncOrchestrator:
    return SyncOrchestrator(HttpMarketplaceClient(settings), async_session, settings)


def build_webhook_processor(settings: Settings) -> WebhookEventProcessor:
    return WebhookEventProcessor(
        async_session,
        HttpMarketplaceClient(settings),
        settings,
        notifier=EmailNotificationService(settings),
    )


async def scheduled_sync_task():
    """Run the configured sync strategy"""
    settings = get_settings()
    try:
        logger.info(f"=== SCHEDULED SYNC STARTING ({settings.SYNC_SCHEDULE_STRATEGY}) ===")
        result = await build_orchestrator(settings).run_sync(settings.SYNC_SCHEDULE_STRATEGY)
        logger.info(
            f"Scheduled sync job {result.job_id} finished: {result.successful}/{result.processed} ok, "
            f"{result.failed} failed, {result.needs_review} for review"
        )
    except Exception as e:
        logger.exception(f"Error in scheduled sync task: {str(e)}")


async def abandon_stale_jobs_task():
    """Mark sync jobs stuck in RUNNING past the deadline as FAILED"""
    try:
        await build_orchestrator(get_settings()).abandon_stale_jobs()
    except Exception as e:
        logger.exception(f"Error in stale job sweep: {str(e)}")


async def retry_failed_webhooks_task():
    """Replay failed webhook events that are still under the attempt cap"""
    try:
        await build_webhook_processor(get_settings()).retry_failed_events()
    except Exception as e:
        logger.exception(f"Error in webhook retry sweep: {str(e)}")


def job_listener(event):
    """Listen to job events for logging"""
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.info(f"Job {event.job_id} executed successfully at {datetime.now()}")


def create_scheduler(settings: Optional[Settings] = None) -> AsyncIOScheduler:
    """Create and configure the scheduler"""
    global scheduler

    if scheduler is not None:
        return scheduler

    settings = settings or get_settings()
    scheduler = AsyncIOScheduler()

    # Add job event listeners
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    if settings.SYNC_SCHEDULE_ENABLED:
        scheduler.add_job(
            scheduled_sync_task,
            CronTrigger.from_crontab(settings.SYNC_SCHEDULE),
            id="scheduled_sync",
            name="Scheduled Marketplace Sync",
            replace_existing=True,
            max_instances=1,  # Scheduled runs never overlap
            misfire_grace_time=3600
        )
        logger.info(f"Scheduled sync job added with schedule: {settings.SYNC_SCHEDULE}")
    else:
        logger.info("Scheduled sync is disabled. Set SYNC_SCHEDULE_ENABLED=true to enable")

    # Stale job sweep always runs; it only touches jobs past SYNC_JOB_TIMEOUT_SECONDS
    scheduler.add_job(
        abandon_stale_jobs_task,
        IntervalTrigger(minutes=5),
        id="abandon_stale_jobs",
        name="Abandon Stale Sync Jobs",
        replace_existing=True,
        max_instances=1
    )

    if settings.WEBHOOK_RETRY_ENABLED:
        scheduler.add_job(
            retry_failed_webhooks_task,
            IntervalTrigger(minutes=settings.WEBHOOK_RETRY_INTERVAL_MINUTES),
            id="retry_failed_webhooks",
            name="Retry Failed Webhooks",
            replace_existing=True,
            max_instances=1
        )
        logger.info(f"Webhook retry sweep every {settings.WEBHOOK_RETRY_INTERVAL_MINUTES} minute(s)")

    return scheduler


async def start_scheduler():
    """Start the scheduler"""
    global scheduler

    if scheduler is None:
        scheduler = create_scheduler()

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started successfully")

        jobs = scheduler.get_jobs()
        logger.info(f"Active scheduled jobs: {len(jobs)}")
        for job in jobs:
            logger.info(f"  - {job.name}: {job.trigger}")


async def stop_scheduler():
    """Stop the scheduler gracefully"""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped successfully")
    scheduler = None


async def get_scheduler_status():
    """Get current scheduler status and job information"""
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs_info = []
    for job in scheduler.get_jobs():
        jobs_info.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs_info
    }
