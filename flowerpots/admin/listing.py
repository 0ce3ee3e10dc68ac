from __future__ import annotations

import math
from typing import Any, Dict, List, Sequence, Tuple

from flowerpots.db import LIKE_ESCAPE, like_contains


DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def clamp_paging(page: Any, page_size: Any) -> Tuple[int, int, int]:
    """(page, page_size, offset) with page >= 1 and page_size in 1..MAX_PAGE_SIZE."""
    try:
        p = int(page)
    except (TypeError, ValueError):
        p = 1
    try:
        ps = int(page_size)
    except (TypeError, ValueError):
        ps = DEFAULT_PAGE_SIZE
    p = max(1, p)
    ps = min(MAX_PAGE_SIZE, max(1, ps))
    return p, ps, (p - 1) * ps


def search_clause(columns: Sequence[str], search: str | None) -> Tuple[str, List[Any]]:
    """Case-insensitive literal substring match over `columns`, as (WHERE sql, params)."""
    s = (search or "").strip()
    if not s:
        return "", []
    like = like_contains(s)
    ors = " OR ".join([f"LOWER(COALESCE({c}, '')) LIKE ? {LIKE_ESCAPE}" for c in columns])
    return f" WHERE ({ors})", [like] * len(columns)


def paged_query(
    conn: Any,
    *,
    select_sql: str,
    from_sql: str,
    where_sql: str,
    params: Sequence[Any],
    order_sql: str,
    page: int,
    page_size: int,
    offset: int,
) -> Tuple[List[Any], Dict[str, Any]]:
    """Run a page query and its COUNT with the same FROM/WHERE."""
    rows = conn.execute(
        f"{select_sql} {from_sql}{where_sql} {order_sql} LIMIT ? OFFSET ?",
        tuple(params) + (page_size, offset),
    ).fetchall()
    total_row = conn.execute(
        f"SELECT COUNT(*) AS total {from_sql}{where_sql}",
        tuple(params),
    ).fetchone()
    total = int(total_row["total"] or 0)
    pagination = {
        "page": page,
        "pageSize": page_size,
        "total": total,
        "totalPages": math.ceil(total / page_size) if total else 0,
    }
    return list(rows), pagination
