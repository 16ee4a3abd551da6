"""Tests for storing fetched messages."""

import pytest

from mailroom.db.types import MessageFilter
from mailroom.errors import ValidationError
from mailroom.ingest import IngestResult, ingest_messages
from mailroom.models import MessageOrder
from tests.factories import ACCOUNT, OTHER_ACCOUNT


def row(**overrides):
    data = {
        "fromEmail": "Alice <alice@example.com>",
        "toEmail": "me@example.com",
        "direction": "received",
        "sentAt": "2024-05-01T09:00:00Z",
        "subject": "Hello",
        "body": "<p>Hi there</p>",
        "messageId": "<m1@example.com>",
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_inserts_and_normalizes(store, cache):
    result = await ingest_messages(store, cache, ACCOUNT, [row()])

    assert len(result.inserted_ids) == 1
    messages = await store.find_many(
        MessageFilter(account_id=ACCOUNT), MessageOrder.NEWEST_FIRST, None, 10
    )
    assert messages[0].from_address == "alice@example.com"
    assert messages[0].snippet == "Hi there"
    assert messages[0].folder.value == "inbox"


@pytest.mark.asyncio
async def test_duplicate_message_id_is_skipped(store, cache):
    await ingest_messages(store, cache, ACCOUNT, [row()])

    result = await ingest_messages(store, cache, ACCOUNT, [row(), row(messageId="<m2@x>")])

    assert result.duplicates == 1
    assert len(result.inserted_ids) == 1
    assert await store.count(MessageFilter(account_id=ACCOUNT)) == 2


@pytest.mark.asyncio
async def test_malformed_rows_are_rejected_individually(store, cache):
    result = await ingest_messages(
        store,
        cache,
        ACCOUNT,
        [
            row(direction=None),
            row(sentAt="yesterday", messageId="<m2@x>"),
            row(messageId="<m3@x>"),
            row(accountId=OTHER_ACCOUNT, messageId="<m4@x>"),
        ],
    )

    assert [r["index"] for r in result.rejected] == [0, 1, 3]
    assert len(result.inserted_ids) == 1


@pytest.mark.asyncio
async def test_string_flags_are_parsed(store, cache):
    result = await ingest_messages(
        store,
        cache,
        ACCOUNT,
        [
            row(isRead="false", isStarred="true"),
            row(isRead="sometimes", messageId="<m2@x>"),
        ],
    )

    assert [r["index"] for r in result.rejected] == [1]
    unread = await store.count(MessageFilter(account_id=ACCOUNT, is_unread=True))
    flagged = await store.find_many(
        MessageFilter(account_id=ACCOUNT), MessageOrder.NEWEST_FIRST, None, 10
    )
    assert unread == 1
    assert flagged[0].is_flagged is True


@pytest.mark.asyncio
async def test_insert_invalidates_cache(store, cache):
    cache.set(ACCOUNT, "stats", None, "stale")

    await ingest_messages(store, cache, ACCOUNT, [row()])

    assert cache.get(ACCOUNT, "stats", None) is None


@pytest.mark.asyncio
async def test_batch_limit(store, cache):
    with pytest.raises(ValidationError):
        await ingest_messages(store, cache, ACCOUNT, [row()] * 3, max_batch=2)


def test_response_shape():
    response = IngestResult(inserted_ids=[4], duplicates=1).to_response()
    assert response == {"success": True, "insertedIds": [4], "duplicates": 1, "rejected": []}
