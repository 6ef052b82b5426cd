from typing import Dict, Type

from offersync.core.enums import SyncJobType
from offersync.core.exceptions import UnknownStrategyError

from .base import SyncStrategy
from .bidirectional import BidirectionalStrategy
from .db_to_market import DbToMarketStrategy
from .market_to_db import MarketToDbStrategy

STRATEGIES: Dict[SyncJobType, Type[SyncStrategy]] = {
    SyncJobType.DB_TO_MARKET: DbToMarketStrategy,
    SyncJobType.MARKET_TO_DB: MarketToDbStrategy,
    SyncJobType.BIDIRECTIONAL: BidirectionalStrategy,
}


def get_strategy_class(kind) -> Type[SyncStrategy]:
    """Look up a strategy by SyncJobType, enum value or slug ("db-to-market")."""
    try:
        job_type = kind if isinstance(kind, SyncJobType) else SyncJobType.from_slug(str(kind))
    except ValueError:
        raise UnknownStrategyError(f"Unknown sync strategy: {kind}")
    return STRATEGIES[job_type]


__all__ = [
    'STRATEGIES',
    'BidirectionalStrategy',
    'DbToMarketStrategy',
    'MarketToDbStrategy',
    'SyncStrategy',
    'get_strategy_class',
]
