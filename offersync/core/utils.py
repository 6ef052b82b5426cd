"""
Utility functions for the application.
"""
import hashlib
import json

from datetime import datetime, timezone
from typing import List, Optional, Dict, Any
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def compute_payload_hash(payload: Dict[str, Any]) -> str:
    """SHA256 of the canonical JSON form of a payload"""
    payload_str = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(payload_str.encode('utf-8')).hexdigest()


async def paginate_query(
    stmt: Select,
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20
) -> Dict[str, Any]:
    """
    Paginate a SQLAlchemy select statement.

    Args:
        stmt: Select statement returning ORM entities
        db: Database session
        page: Page number (1-indexed)
        page_size: Number of items per page

    Returns:
        Dictionary with pagination information and items
    """
    page = max(page, 1)
    page_size = max(page_size, 1)

    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = await db.scalar(count_stmt) or 0

    offset = (page - 1) * page_size
    result = await db.execute(stmt.offset(offset).limit(page_size))
    items: List[Any] = list(result.scalars().all())

    total_pages = (total + page_size - 1) // page_size if total > 0 else 1

    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
