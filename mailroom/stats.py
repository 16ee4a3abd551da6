import asyncio
import logging
from typing import Any

from mailroom.cache import ConversationCache
from mailroom.conversations import ConversationService
from mailroom.db.types import MessageFilter, MessageStore
from mailroom.models import Folder, InboxStats

logger = logging.getLogger(__name__)


class StatsService:
    """Per-account counters for the inbox header."""

    def __init__(
        self,
        store: MessageStore,
        conversations: ConversationService,
        cache: ConversationCache,
    ):
        self.store = store
        self.conversations = conversations
        self.cache = cache

    async def get_stats(self, account_id: str) -> InboxStats:
        await self.conversations.require_account(account_id)
        cached = self.cache.get(account_id, "stats", None)
        if cached is not None:
            return cached
        generation = self.cache.generation(account_id)

        inbox = MessageFilter(account_id=account_id, folders=[Folder.INBOX])
        total, unread, spam, with_attachments = await asyncio.gather(
            self.store.count(inbox),
            self.store.count(inbox.narrowed(is_unread=True)),
            self.store.count(MessageFilter(account_id=account_id, folders=[Folder.SPAM])),
            self.store.count(inbox.narrowed(has_attachment=True)),
        )
        stats = InboxStats(
            total=total, unread=unread, spam=spam, with_attachments=with_attachments
        )
        self.cache.set(account_id, "stats", None, stats, generation)
        return stats

    async def unread_summary(self, account_id: str) -> dict[str, Any]:
        await self.conversations.require_account(account_id)
        inbox_unread, spam_unread = await asyncio.gather(
            self.store.count(
                MessageFilter(account_id=account_id, folders=[Folder.INBOX], is_unread=True)
            ),
            self.store.count(
                MessageFilter(account_id=account_id, folders=[Folder.SPAM], is_unread=True)
            ),
        )
        return {
            "inboxUnread": inbox_unread,
            "spamUnread": spam_unread,
            "totalUnread": inbox_unread + spam_unread,
        }

    async def list_countries(self, account_id: str) -> list[str]:
        await self.conversations.require_account(account_id)
        return await self.store.distinct_countries(MessageFilter(account_id=account_id))
