from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from offersync.models.sync_cursor import SyncCursor


class SyncCursorRepository:
    """Stable-order position of each strategy between runs."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, strategy: str) -> Optional[str]:
        row = await self.session.get(SyncCursor, strategy)
        return row.cursor if row else None

    async def set(self, strategy: str, cursor: Optional[str]) -> None:
        """Store the position; None resets the strategy to the start of its dataset."""
        row = await self.session.get(SyncCursor, strategy)
        if row is None:
            self.session.add(SyncCursor(strategy=strategy, cursor=cursor))
        else:
            row.cursor = cursor
        await self.session.flush()
