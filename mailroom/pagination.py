"""Forward-only cursor pagination over store reads.

A page request asks the store for one row more than the page size. The extra
row only signals that more data exists and is never returned; the cursor for
the next page is the id of the last row actually delivered.
"""

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from mailroom.errors import ValidationError
from mailroom.models import Page

logger = logging.getLogger(__name__)

T = TypeVar("T")

Fetch = Callable[[Optional[int], int], Awaitable[list[T]]]


def clamp_limit(limit: Optional[int], default: int, maximum: int) -> int:
    if limit is None:
        return default
    if limit < 1:
        raise ValidationError("limit", f"limit must be at least 1, got {limit}")
    return min(limit, maximum)


def parse_cursor(cursor: Any) -> Optional[int]:
    if cursor is None or cursor == "":
        return None
    if isinstance(cursor, int) and not isinstance(cursor, bool):
        value = cursor
    else:
        text = str(cursor).strip()
        if not text.isdigit():
            raise ValidationError("cursor", f"Invalid cursor: {cursor}")
        value = int(text)
    if value < 1:
        raise ValidationError("cursor", f"Invalid cursor: {cursor}")
    return value


async def paginate(
    fetch: Fetch,
    cursor: Any,
    limit: int,
    key: Callable[[Any], Any] = lambda item: item.id,
) -> Page:
    """Fetch one page strictly after ``cursor``.

    ``fetch(after, n)`` must return up to ``n`` rows ordered by the page's
    total order, starting after the row identified by ``after``.
    """
    after = parse_cursor(cursor)
    rows = await fetch(after, limit + 1)
    has_more = len(rows) > limit
    items = rows[:limit]
    next_cursor = str(key(items[-1])) if has_more and items else None
    return Page(items=items, next_cursor=next_cursor, has_more=has_more)
