from .catalog_repository import CatalogRepository
from .sync_cursor_repository import SyncCursorRepository
from .sync_job_repository import SyncJobRepository
from .webhook_repository import WebhookEventRepository

__all__ = [
    'CatalogRepository',
    'SyncCursorRepository',
    'SyncJobRepository',
    'WebhookEventRepository',
]
