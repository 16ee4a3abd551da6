"""Tests for cursor pagination."""

from dataclasses import dataclass

import pytest

from mailroom.errors import ValidationError
from mailroom.pagination import clamp_limit, paginate, parse_cursor


@dataclass
class Row:
    id: int


def fake_fetch(rows):
    """Fetch over rows ordered by id; records the requested sizes."""
    calls = []

    async def fetch(after, n):
        calls.append((after, n))
        remaining = [r for r in rows if after is None or r.id > after]
        return remaining[:n]

    fetch.calls = calls
    return fetch


class TestClampLimit:
    def test_missing_limit_uses_default(self):
        assert clamp_limit(None, default=50, maximum=100) == 50

    def test_limit_is_clamped_to_maximum(self):
        assert clamp_limit(500, default=50, maximum=100) == 100

    def test_limit_below_one_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            clamp_limit(0, default=50, maximum=100)
        assert exc_info.value.field == "limit"


class TestParseCursor:
    def test_empty_cursor_means_first_page(self):
        assert parse_cursor(None) is None
        assert parse_cursor("") is None

    def test_numeric_cursor(self):
        assert parse_cursor("42") == 42
        assert parse_cursor(42) == 42

    @pytest.mark.parametrize("cursor", ["abc", "-3", "1.5", "0"])
    def test_malformed_cursor_is_rejected(self, cursor):
        with pytest.raises(ValidationError) as exc_info:
            parse_cursor(cursor)
        assert exc_info.value.field == "cursor"


class TestPaginate:
    @pytest.mark.asyncio
    async def test_requests_one_extra_row(self):
        fetch = fake_fetch([Row(i) for i in range(1, 6)])
        page = await paginate(fetch, None, 2)

        assert fetch.calls == [(None, 3)]
        assert [r.id for r in page.items] == [1, 2]
        assert page.has_more is True
        assert page.next_cursor == "2"

    @pytest.mark.asyncio
    async def test_last_page_has_no_cursor(self):
        fetch = fake_fetch([Row(i) for i in range(1, 6)])
        page = await paginate(fetch, "4", 2)

        assert [r.id for r in page.items] == [5]
        assert page.has_more is False
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_exact_multiple_ends_without_empty_page(self):
        fetch = fake_fetch([Row(i) for i in range(1, 5)])
        first = await paginate(fetch, None, 2)
        second = await paginate(fetch, first.next_cursor, 2)

        assert second.has_more is False
        assert [r.id for r in second.items] == [3, 4]

    @pytest.mark.asyncio
    async def test_following_cursors_covers_every_row_once(self):
        rows = [Row(i) for i in range(1, 12)]
        fetch = fake_fetch(rows)
        seen = []
        cursor = None
        while True:
            page = await paginate(fetch, cursor, 3)
            seen.extend(r.id for r in page.items)
            if not page.has_more:
                break
            cursor = page.next_cursor

        assert seen == [r.id for r in rows]

    @pytest.mark.asyncio
    async def test_empty_result(self):
        page = await paginate(fake_fetch([]), None, 10)
        assert page.items == []
        assert page.has_more is False
        assert page.next_cursor is None
