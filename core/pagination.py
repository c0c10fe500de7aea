"""
core/pagination.py -- Page arithmetic shared by the collection routes.

Pages are 1-based. Bounds on page/limit are enforced at the API layer (Query
constraints), so these helpers assume page >= 1 and limit >= 1.
"""

from __future__ import annotations

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def page_count(total: int, limit: int) -> int:
    """Number of pages needed to show `total` rows, `limit` per page (ceiling)."""
    if total <= 0:
        return 0
    return -(-total // limit)


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit
