"""
Page/limit helpers shared by list endpoints.
"""

from __future__ import annotations

import math


def offset_for(page: int, limit: int) -> int:
    return max(0, (max(1, page) - 1) * max(1, limit))


def pagination_block(*, total: int, page: int, limit: int) -> dict:
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit > 0 else 0,
    }
