"""Tests for read/flag/folder state transitions."""

import pytest

from mailroom.db.types import MessageFilter
from mailroom.errors import NotFoundError, ValidationError
from mailroom.models import ConversationKey, Folder, MessageOrder
from mailroom.mutations import conversation_key
from tests.factories import ACCOUNT, OTHER_ACCOUNT, make_message, make_reply


async def folder_of(store, message_id):
    messages = await store.find_many(
        MessageFilter(account_id=ACCOUNT, ids=[message_id]), MessageOrder.NEWEST_FIRST, None, 1
    )
    return messages[0].folder if messages else None


class TestMarkRead:
    @pytest.mark.asyncio
    async def test_partial_failure_reports_missing_ids(self, store, mutator):
        ids = await store.insert_many(
            [make_message(minutes=0), make_message(minutes=1)]
        )

        result = await mutator.mark_read(ACCOUNT, [ids[0], ids[1], 999], True)

        assert result.updated_count == 2
        assert result.failed_ids == [999]
        assert await store.count(MessageFilter(account_id=ACCOUNT, is_unread=True)) == 0

    @pytest.mark.asyncio
    async def test_repeating_gives_same_result(self, store, mutator):
        ids = await store.insert_many([make_message(minutes=0), make_message(minutes=1)])

        first = await mutator.mark_read(ACCOUNT, ids + [999], True)
        second = await mutator.mark_read(ACCOUNT, ids + [999], True)

        assert (first.updated_count, first.failed_ids) == (
            second.updated_count,
            second.failed_ids,
        )

    @pytest.mark.asyncio
    async def test_other_accounts_messages_fail(self, store, mutator):
        ids = await store.insert_many([make_message(account_id=OTHER_ACCOUNT)])

        result = await mutator.mark_read(ACCOUNT, ids, True)

        assert result.updated_count == 0
        assert result.failed_ids == ids

    @pytest.mark.asyncio
    async def test_duplicate_ids_applied_once(self, store, mutator):
        ids = await store.insert_many([make_message()])

        result = await mutator.mark_read(ACCOUNT, [ids[0], ids[0]], True)

        assert result.updated_count == 1
        assert result.failed_ids == []

    @pytest.mark.asyncio
    async def test_batch_size_is_bounded(self, mutator, limits):
        with pytest.raises(ValidationError) as exc_info:
            await mutator.mark_read(ACCOUNT, list(range(1, limits.max_bulk_ids + 2)), True)
        assert exc_info.value.field == "messageIds"

    @pytest.mark.asyncio
    async def test_empty_batch_is_rejected(self, mutator):
        with pytest.raises(ValidationError):
            await mutator.mark_read(ACCOUNT, [], True)

    @pytest.mark.asyncio
    async def test_whole_conversation(self, store, mutator, conversations):
        await store.insert_many(
            [
                make_message("alice@example.com", minutes=0),
                make_message("alice@example.com", minutes=1),
                make_message("bob@example.com", minutes=2),
            ]
        )

        result = await mutator.mark_conversation_read(
            ConversationKey(ACCOUNT, "alice@example.com", Folder.INBOX)
        )
        page = await conversations.list_conversations(ACCOUNT)

        assert result.updated_count == 2
        unread = {c.counterpart_address: c.unread_count for c in page.items}
        assert unread == {"alice@example.com": 0, "bob@example.com": 1}

    @pytest.mark.asyncio
    async def test_empty_conversation_is_not_found(self, mutator):
        with pytest.raises(NotFoundError):
            await mutator.mark_conversation_read(
                ConversationKey(ACCOUNT, "ghost@example.com", Folder.INBOX)
            )

    @pytest.mark.asyncio
    async def test_invalidates_cached_conversations(self, store, mutator, conversations):
        ids = await store.insert_many([make_message(minutes=0)])
        before = await conversations.list_conversations(ACCOUNT)
        assert before.items[0].unread_count == 1

        await mutator.mark_read(ACCOUNT, ids, True)
        after = await conversations.list_conversations(ACCOUNT)

        assert after.items[0].unread_count == 0


class TestFlag:
    @pytest.mark.asyncio
    async def test_set_and_clear(self, store, mutator):
        ids = await store.insert_many([make_message()])

        flagged = await mutator.set_flag(ACCOUNT, ids[0], True)
        assert flagged.updated_count == 1
        assert await store.count(MessageFilter(account_id=ACCOUNT, is_flagged=True)) == 1

        await mutator.set_flag(ACCOUNT, ids[0], False)
        assert await store.count(MessageFilter(account_id=ACCOUNT, is_flagged=True)) == 0


class TestMoves:
    @pytest.mark.asyncio
    async def test_move_to_current_folder_is_noop_success(self, store, mutator):
        ids = await store.insert_many([make_message(folder=Folder.ARCHIVE)])

        result = await mutator.move_folder(ACCOUNT, ids, Folder.INBOX, Folder.ARCHIVE)

        assert result.updated_count == 1
        assert result.failed_ids == []
        assert await folder_of(store, ids[0]) == Folder.ARCHIVE

    @pytest.mark.asyncio
    async def test_move_from_wrong_folder_fails(self, store, mutator):
        ids = await store.insert_many([make_message(folder=Folder.SPAM)])

        result = await mutator.move_folder(ACCOUNT, ids, "inbox", "trash")

        assert result.failed_ids == ids
        assert await folder_of(store, ids[0]) == Folder.SPAM

    @pytest.mark.asyncio
    async def test_invalid_destination(self, store, mutator):
        with pytest.raises(ValidationError) as exc_info:
            await mutator.move_folder(ACCOUNT, [1], None, "drafts")
        assert exc_info.value.field == "toFolder"

    @pytest.mark.asyncio
    async def test_archive_and_restore(self, store, mutator):
        ids = await store.insert_many(
            [make_message(minutes=0), make_reply("alice@example.com", minutes=1)]
        )

        archived = await mutator.archive(ACCOUNT, ids, from_folder=None)
        restored = await mutator.restore(ACCOUNT, ids)

        assert archived.updated_count == 2
        assert restored.updated_count == 2
        assert await folder_of(store, ids[0]) == Folder.INBOX
        assert await folder_of(store, ids[1]) == Folder.SENT

    @pytest.mark.asyncio
    async def test_restore_is_idempotent(self, store, mutator):
        ids = await store.insert_many([make_message(folder=Folder.TRASH)])

        first = await mutator.restore(ACCOUNT, ids)
        second = await mutator.restore(ACCOUNT, ids)

        assert first.updated_count == second.updated_count == 1
        assert await folder_of(store, ids[0]) == Folder.INBOX

    @pytest.mark.asyncio
    async def test_restore_skips_spam(self, store, mutator):
        ids = await store.insert_many([make_message(folder=Folder.SPAM)])

        result = await mutator.restore(ACCOUNT, ids)

        assert result.failed_ids == ids

    @pytest.mark.asyncio
    async def test_trash_whole_conversation(self, store, mutator):
        ids = await store.insert_many(
            [
                make_message("alice@example.com", minutes=0),
                make_message("alice@example.com", minutes=1),
                make_message("bob@example.com", minutes=2),
            ]
        )

        result = await mutator.trash(
            ACCOUNT, conversation_key(ACCOUNT, "Alice@example.com", "inbox")
        )

        assert result.updated_count == 2
        assert await folder_of(store, ids[0]) == Folder.TRASH
        assert await folder_of(store, ids[2]) == Folder.INBOX


class TestPermanentDelete:
    @pytest.mark.asyncio
    async def test_deletes_and_reports_missing(self, store, mutator):
        ids = await store.insert_many([make_message(minutes=0), make_message(minutes=1)])

        first = await mutator.permanent_delete(ACCOUNT, ids)
        second = await mutator.permanent_delete(ACCOUNT, ids)

        assert first.updated_count == 2
        assert second.updated_count == 0
        assert second.failed_ids == ids
        assert await store.count(MessageFilter(account_id=ACCOUNT)) == 0

    @pytest.mark.asyncio
    async def test_deleted_conversation_disappears(self, store, mutator, conversations):
        await store.insert_many(
            [make_message("alice@example.com"), make_message("bob@example.com", minutes=1)]
        )

        await mutator.permanent_delete(
            ACCOUNT, ConversationKey(ACCOUNT, "bob@example.com", Folder.INBOX)
        )
        page = await conversations.list_conversations(ACCOUNT)

        assert [c.counterpart_address for c in page.items] == ["alice@example.com"]
