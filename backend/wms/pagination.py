from __future__ import annotations

import math

from flask import current_app


def clamp_page(page, limit) -> tuple[int, int]:
    """Normalize page/limit query input into (page >= 1, 1 <= limit <= MAX_PAGE_SIZE)."""
    default_limit = current_app.config.get("DEFAULT_PAGE_SIZE", 20)
    max_limit = current_app.config.get("MAX_PAGE_SIZE", 500)

    try:
        page = int(page) if page is not None else 1
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(limit) if limit is not None else default_limit
    except (TypeError, ValueError):
        limit = default_limit

    return max(page, 1), min(max(limit, 1), max_limit)


def pagination_meta(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


def paginate(query, page=None, limit=None) -> tuple[list, dict]:
    """
    Apply offset/limit to a SQLAlchemy query.

    Returns (items, meta) where meta is {page, limit, total, total_pages}.
    """
    page, limit = clamp_page(page, limit)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, pagination_meta(page, limit, total)
