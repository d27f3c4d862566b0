"""
Pagination helpers for list endpoints
"""
import math
from typing import Any, List, Tuple

from sqlalchemy.orm import Query

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def paginate(query: Query, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Tuple[List[Any], dict]:
    """Run ``query`` for one page; returns (items, meta)"""
    page = max(1, page)
    limit = min(MAX_PAGE_SIZE, max(1, limit))

    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, pagination_meta(total, page, limit)


def pagination_meta(total: int, page: int, limit: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }
