"""
Helpers shared by the index endpoints: free-text search, sorting and
pagination over a SQLAlchemy select.
"""

import math
from typing import Sequence, Tuple, List, Any
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from vems.app.schemas.common import PageMeta


def search_clause(term: str, columns: Sequence):
    """OR of case-insensitive substring matches of ``term`` over ``columns``."""
    pattern = f"%{term.strip()}%"
    return or_(*[column.ilike(pattern) for column in columns])


def apply_sort(query, column, direction: str):
    return query.order_by(column.desc() if direction == "desc" else column.asc())


async def paginate(db: AsyncSession, query, page: int, per_page: int) -> Tuple[List[Any], PageMeta]:
    """
    Run ``query`` for one page.

    Returns:
        (rows, meta); rows are scalars when the select has a single entity,
        Row tuples otherwise
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar() or 0

    result = await db.execute(query.offset((page - 1) * per_page).limit(per_page))
    if len(query.column_descriptions) == 1:
        rows = list(result.scalars().all())
    else:
        rows = list(result.all())

    meta = PageMeta(
        total=total,
        page=page,
        per_page=per_page,
        last_page=max(1, math.ceil(total / per_page)),
    )
    return rows, meta


async def count(db: AsyncSession, column, *criteria) -> int:
    query = select(func.count(column))
    if criteria:
        query = query.where(*criteria)
    return (await db.execute(query)).scalar() or 0
