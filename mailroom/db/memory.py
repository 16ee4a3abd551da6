"""In-process message store for development and tests."""

import asyncio
import copy
import logging
from typing import Optional

from mailroom.conversations import (
    after_bound,
    sort_conversations,
    summarize_conversations,
)
from mailroom.db.types import RESTORABLE_FOLDERS, MessageFilter, MessagePatch, MessageStore
from mailroom.errors import InvalidCursorError
from mailroom.models import (
    Conversation,
    ConversationSort,
    Direction,
    Folder,
    Message,
    MessageOrder,
)

logger = logging.getLogger(__name__)


def natural_folder(message: Message) -> Folder:
    return Folder.SENT if message.direction == Direction.SENT else Folder.INBOX


def _contains(haystack: Optional[str], needle: str) -> bool:
    return needle.lower() in (haystack or "").lower()


def matches(message: Message, filter: MessageFilter) -> bool:
    """Python equivalent of the SQL built by ``queries.messages.build_conditions``."""
    if message.account_id != filter.account_id:
        return False
    if filter.folders is not None and message.folder not in filter.folders:
        return False
    if filter.exclude_folders and message.folder in filter.exclude_folders:
        return False
    if filter.counterpart is not None and message.counterpart != filter.counterpart:
        return False
    if filter.ids is not None and message.id not in filter.ids:
        return False
    if filter.sender and not _contains(message.from_address, filter.sender):
        return False
    if filter.recipient and not (
        _contains(",".join(message.to_addresses), filter.recipient)
        or _contains(",".join(message.cc_addresses), filter.recipient)
    ):
        return False
    if filter.subject and not _contains(message.subject, filter.subject):
        return False
    if filter.text and not (
        _contains(message.subject, filter.text)
        or _contains(message.body_text, filter.text)
        or _contains(message.from_address, filter.text)
    ):
        return False
    if filter.date_from is not None and message.sent_at < filter.date_from:
        return False
    if filter.date_to is not None and message.sent_at > filter.date_to:
        return False
    if filter.has_attachment is not None and message.has_attachment != filter.has_attachment:
        return False
    if filter.is_unread is not None and message.is_read == filter.is_unread:
        return False
    if filter.is_flagged is not None and message.is_flagged != filter.is_flagged:
        return False
    if filter.country and (message.country or "").lower() != filter.country.lower():
        return False
    if filter.lead_status and (
        (message.lead_status or "").lower() != filter.lead_status.lower()
    ):
        return False
    return True


class MemoryMessageStore(MessageStore):
    def __init__(self, accounts: Optional[dict[str, str]] = None):
        self._accounts: dict[str, str] = {
            str(k): v.lower() for k, v in (accounts or {}).items()
        }
        self._messages: dict[int, Message] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        logger.info("Using in-memory message store")

    async def close(self) -> None:
        pass

    async def get_owner_address(self, account_id: str) -> Optional[str]:
        return self._accounts.get(str(account_id))

    async def add_account(self, account_id: str, address: str) -> None:
        self._accounts[str(account_id)] = address.lower()

    def _select(self, filter: MessageFilter) -> list[Message]:
        return [m for m in self._messages.values() if matches(m, filter)]

    def _anchor(self, filter: MessageFilter, cursor: int) -> Message:
        message = self._messages.get(cursor)
        if message is None or not matches(message, filter):
            raise InvalidCursorError(cursor, "not found for this account and filter")
        return message

    async def insert_many(self, messages: list[Message]) -> list[Optional[int]]:
        inserted: list[Optional[int]] = []
        async with self._lock:
            for message in messages:
                if message.message_id and any(
                    m.account_id == message.account_id
                    and m.message_id == message.message_id
                    for m in self._messages.values()
                ):
                    inserted.append(None)
                    continue
                stored = copy.deepcopy(message)
                stored.id = self._next_id
                self._next_id += 1
                self._messages[stored.id] = stored
                inserted.append(stored.id)
        return inserted

    async def find_many(
        self,
        filter: MessageFilter,
        order: MessageOrder,
        cursor: Optional[int],
        limit: int,
    ) -> list[Message]:
        rows = self._select(filter)
        newest_first = order == MessageOrder.NEWEST_FIRST
        rows.sort(key=lambda m: (m.sent_at, m.id), reverse=newest_first)
        if cursor is not None:
            anchor = self._anchor(filter, cursor)
            bound = (anchor.sent_at, anchor.id)
            if newest_first:
                rows = [m for m in rows if (m.sent_at, m.id) < bound]
            else:
                rows = [m for m in rows if (m.sent_at, m.id) > bound]
        return [copy.deepcopy(m) for m in rows[:limit]]

    async def find_ids(self, filter: MessageFilter) -> list[int]:
        return sorted(m.id for m in self._select(filter))

    async def count(self, filter: MessageFilter) -> int:
        return len(self._select(filter))

    async def aggregate_conversations(
        self,
        filter: MessageFilter,
        sort: ConversationSort,
        cursor: Optional[int],
        limit: int,
        preview_length: int = 120,
    ) -> list[Conversation]:
        conversations = sort_conversations(
            summarize_conversations(self._select(filter), preview_length), sort
        )
        if cursor is not None:
            anchor = self._anchor(filter, cursor)
            if sort == ConversationSort.RECENT:
                bound: tuple = (anchor.sent_at, anchor.id)
            elif sort == ConversationSort.UNREAD:
                unread = len(
                    self._select(
                        filter.narrowed(
                            counterpart=anchor.counterpart,
                            folders=[anchor.folder],
                            is_unread=True,
                        )
                    )
                )
                bound = (unread, anchor.sent_at, anchor.id)
            else:
                bound = (anchor.counterpart, anchor.folder.value)
            conversations = after_bound(conversations, sort, bound)
        return conversations[:limit]

    async def update_many(
        self, account_id: str, ids: list[int], patch: MessagePatch
    ) -> list[int]:
        matched: list[int] = []
        async with self._lock:
            for message_id in ids:
                message = self._messages.get(message_id)
                if message is None or message.account_id != account_id:
                    continue
                if patch.restore:
                    if (
                        message.folder not in RESTORABLE_FOLDERS
                        and message.folder != natural_folder(message)
                    ):
                        continue
                elif patch.allowed_folders and message.folder not in patch.allowed_folders:
                    continue
                matched.append(message_id)

            for message_id in matched:
                message = self._messages[message_id]
                if patch.is_read is not None:
                    message.is_read = patch.is_read
                if patch.is_flagged is not None:
                    message.is_flagged = patch.is_flagged
                if patch.folder is not None:
                    message.folder = patch.folder
                if patch.restore:
                    message.folder = natural_folder(message)
        return matched

    async def delete_many(self, account_id: str, ids: list[int]) -> list[int]:
        deleted: list[int] = []
        async with self._lock:
            for message_id in ids:
                message = self._messages.get(message_id)
                if message is not None and message.account_id == account_id:
                    del self._messages[message_id]
                    deleted.append(message_id)
        return deleted

    async def distinct_countries(self, filter: MessageFilter) -> list[str]:
        return sorted({m.country for m in self._select(filter) if m.country})
