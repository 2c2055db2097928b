"""
PayDesk - Pagination Utilities

Page/limit pagination shared by the list endpoints.
"""

from math import ceil
from typing import Any, Dict, List, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


async def paginate(
    db: AsyncSession,
    query: Select,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[Any], int]:
    """
    Run a paginated select.

    Args:
        db: Session to execute on
        query: Filtered and ordered select of one entity
        page: Page number (1-indexed)
        limit: Items per page, capped at MAX_PAGE_SIZE

    Returns:
        Tuple of (items, total_count)
    """
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    page = max(page, 1)

    count_query = select(func.count()).select_from(
        query.order_by(None).subquery()
    )
    total = (await db.execute(count_query)).scalar() or 0

    result = await db.execute(query.offset((page - 1) * limit).limit(limit))
    return list(result.scalars().unique().all()), total


def pagination_meta(page: int, limit: int, total: int) -> Dict[str, int]:
    """Pagination block returned alongside list results."""
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": ceil(total / limit) if total else 0,
    }
