# offersync/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from offersync import models  # noqa: F401  (registers every table on Base.metadata)
from offersync.core.logging_config import configure_logging
from offersync.core.security import get_current_username
from offersync.routes import health
from offersync.routes.sync import router as sync_router
from offersync.routes.webhooks import events_router as webhook_events_router
from offersync.routes.webhooks import router as webhook_router
from offersync.scheduler import get_scheduler_status, start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await start_scheduler()
    try:
        yield  # This is where the app runs
    finally:
        await stop_scheduler()


app = FastAPI(
    title="offersync",
    description="Marketplace offer sync and webhook reconciliation",
    lifespan=lifespan
)

app.include_router(sync_router, dependencies=[Depends(get_current_username)])
app.include_router(webhook_events_router, dependencies=[Depends(get_current_username)])
app.include_router(webhook_router)  # Webhooks authenticate with the shared secret instead
app.include_router(health.router)  # Health check should be accessible without auth


@app.get("/scheduler/status", dependencies=[Depends(get_current_username)])
async def scheduler_status():
    return await get_scheduler_status()
