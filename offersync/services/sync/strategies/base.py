import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from offersync.core.config import Settings
from offersync.core.enums import SyncJobType
from offersync.core.exceptions import ConcurrentUpdateError, MarketplaceAuthError
from offersync.integrations.base import MarketplaceClient
from offersync.repositories.sync_cursor_repository import SyncCursorRepository
from offersync.services.sync.results import ItemOutcome, StrategyResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[StrategyResult], Awaitable[None]]
ItemWorker = Callable[[AsyncSession, Any], Awaitable[ItemOutcome]]


class SyncStrategy(ABC):
    """
    One direction/policy of reconciliation, run in bounded batches.

    Items fan out under a semaphore of ``SYNC_MAX_CONCURRENCY``. Each item
    gets its own session and commits on its own, so a failing item never
    rolls back another. ``MarketplaceAuthError`` is the only item exception
    that escapes ``execute``.
    """

    job_type: SyncJobType

    def __init__(
        self,
        client: MarketplaceClient,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
    ):
        self.client = client
        self.session_factory = session_factory
        self.settings = settings
        self._semaphore = asyncio.Semaphore(max(1, settings.SYNC_MAX_CONCURRENCY))

    @property
    def name(self) -> str:
        return self.job_type.value

    @abstractmethod
    async def execute(self, batch_size: int, progress: Optional[ProgressCallback] = None) -> StrategyResult:
        """Process up to ``batch_size`` items and return the folded result"""
        pass

    async def _run_item(self, item: Any, key: str, worker: ItemWorker) -> ItemOutcome:
        async with self._semaphore:
            async with self.session_factory() as session:
                try:
                    outcome = await worker(session, item)
                    await session.commit()
                    return outcome
                except MarketplaceAuthError:
                    await session.rollback()
                    raise
                except StaleDataError as e:
                    await session.rollback()
                    logger.warning(f"{self.name}: item {key} lost a concurrent update")
                    return ItemOutcome.failed(key, ConcurrentUpdateError(str(e)))
                except Exception as e:
                    await session.rollback()
                    logger.warning(f"{self.name}: item {key} failed: {e}")
                    return ItemOutcome.failed(key, e)

    async def run_items(
        self,
        items: Sequence[Any],
        worker: ItemWorker,
        key: Callable[[Any], Any],
    ) -> List[ItemOutcome]:
        """
        Run ``worker`` over ``items`` with bounded parallelism.

        Returns:
            One outcome per item, in input order

        Raises:
            MarketplaceAuthError: If any item hit invalid credentials
        """
        keys = [str(key(item)) for item in items]
        raw = await asyncio.gather(
            *(self._run_item(item, item_key, worker) for item, item_key in zip(items, keys)),
            return_exceptions=True,
        )

        outcomes: List[ItemOutcome] = []
        for item_key, value in zip(keys, raw):
            if isinstance(value, MarketplaceAuthError):
                logger.error(f"{self.name}: marketplace rejected credentials, aborting batch")
                raise value
            if isinstance(value, BaseException) and not isinstance(value, Exception):
                raise value
            if isinstance(value, Exception):
                outcomes.append(ItemOutcome.failed(item_key, value))
            else:
                outcomes.append(value)
        return outcomes

    # Cursor persistence

    @property
    def cursor_key(self) -> str:
        return self.name

    async def load_cursor(self) -> Optional[str]:
        async with self.session_factory() as session:
            return await SyncCursorRepository(session).get(self.cursor_key)

    async def save_cursor(self, cursor: Optional[str]) -> None:
        async with self.session_factory() as session:
            await SyncCursorRepository(session).set(self.cursor_key, cursor)
            await session.commit()
        logger.debug(f"{self.name}: cursor now {cursor!r}")
