# Overview: Shared page/per_page handling for list endpoints.

from __future__ import annotations

from typing import Callable

from flask import current_app


def paginate(query, *, page: int | None, per_page: int | None, default_per_page: int, serialize: Callable) -> dict:
    """
    Paginate an ordered query.

    Returns:
        Dict with 'items', 'count', and 'pagination' metadata.
        per_page is clamped to MAX_PER_PAGE; page to >= 1.
    """
    max_per_page = current_app.config.get("MAX_PER_PAGE", 100)
    per_page = min(per_page or default_per_page, max_per_page)
    per_page = max(per_page, 1)
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
