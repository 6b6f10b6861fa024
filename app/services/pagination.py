"""Offset pagination for list queries."""

import math
from typing import Any

from sqlalchemy.orm import Query

MAX_PAGE_SIZE = 100


def paginate(query: Query, page: int, limit: int) -> tuple[list[Any], dict[str, int]]:
    """Return one page of ``query`` and its pagination metadata.

    ``page`` is 1-based; both arguments are clamped to sane bounds.
    """
    page = max(1, page)
    limit = min(max(1, limit), MAX_PAGE_SIZE)

    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()

    return items, {
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }
