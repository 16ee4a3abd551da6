"""Conversation aggregation.

A conversation is every message of one account exchanged with one
counterpart address inside one folder. The store does the grouping; the
helpers here define the same grouping and ordering in plain Python for the
in-memory backend and for callers that already hold messages.
"""

import logging
from typing import Any, Iterable, Optional, Union

from mailroom.cache import ConversationCache
from mailroom.config import LimitsConfig
from mailroom.db.types import AccountDirectory, MessageFilter, MessageStore
from mailroom.errors import NotFoundError, ValidationError
from mailroom.html_utils import preview_text
from mailroom.models import (
    UNKNOWN_COUNTERPART,
    Conversation,
    ConversationSort,
    Folder,
    Message,
    MessageOrder,
    Page,
    ThreadGroup,
    normalize_address,
)
from mailroom.pagination import clamp_limit, paginate

logger = logging.getLogger(__name__)

# Spam and trash stay out of a conversation's message list unless asked for.
HIDDEN_FOLDERS = [Folder.SPAM, Folder.TRASH]


def counterpart_of(message: Message) -> str:
    return message.counterpart


def normalize_counterpart(value: Optional[str]) -> str:
    if value is None or not value.strip():
        raise ValidationError("counterpart", "counterpart is required")
    if value.strip().lower() == UNKNOWN_COUNTERPART.lower():
        return UNKNOWN_COUNTERPART
    return normalize_address(value)


def coerce_sort(value: Union[str, ConversationSort, None]) -> ConversationSort:
    if value is None or value == "":
        return ConversationSort.RECENT
    if isinstance(value, ConversationSort):
        return value
    try:
        return ConversationSort(str(value).lower())
    except ValueError:
        raise ValidationError(
            "sortBy",
            f"Invalid sort '{value}'. Must be one of: "
            + ", ".join(s.value for s in ConversationSort),
        ) from None


def coerce_folder(value: Union[str, Folder, None], field: str = "folder") -> Optional[Folder]:
    if value is None or value == "":
        return None
    if isinstance(value, Folder):
        return value
    try:
        return Folder.from_string(value)
    except ValueError as e:
        raise ValidationError(field, str(e)) from None


def summarize_conversations(
    messages: Iterable[Message], preview_length: int = 120
) -> list[Conversation]:
    """Group messages by (counterpart, folder), unordered."""
    groups: dict[tuple[str, Folder], list[Message]] = {}
    for message in messages:
        groups.setdefault((message.counterpart, message.folder), []).append(message)

    conversations = []
    for (counterpart, folder), members in groups.items():
        latest = max(members, key=lambda m: (m.sent_at, m.id or 0))
        conversations.append(
            Conversation(
                account_id=latest.account_id,
                counterpart_address=counterpart,
                folder=folder,
                subject=latest.subject,
                last_message_at=latest.sent_at,
                last_body_preview=preview_text(latest.body_html, preview_length),
                unread_count=sum(1 for m in members if not m.is_read),
                has_attachment=any(m.has_attachment for m in members),
                is_flagged=any(m.is_flagged for m in members),
                message_count=len(members),
                last_message_id=latest.id or 0,
                country=latest.country,
                lead_status=latest.lead_status,
            )
        )
    return conversations


def sort_key(conversation: Conversation, sort: ConversationSort) -> tuple:
    """Sort key; recent and unread sort descending, sender ascending."""
    if sort == ConversationSort.UNREAD:
        return (
            conversation.unread_count,
            conversation.last_message_at,
            conversation.last_message_id,
        )
    if sort == ConversationSort.SENDER:
        return (conversation.counterpart_address, conversation.folder.value)
    return (conversation.last_message_at, conversation.last_message_id)


def sort_conversations(
    conversations: Iterable[Conversation], sort: ConversationSort
) -> list[Conversation]:
    return sorted(
        conversations,
        key=lambda c: sort_key(c, sort),
        reverse=sort != ConversationSort.SENDER,
    )


def after_bound(
    conversations: list[Conversation], sort: ConversationSort, bound: tuple
) -> list[Conversation]:
    """Conversations strictly after ``bound`` in ``sort`` order."""
    if sort == ConversationSort.SENDER:
        return [c for c in conversations if sort_key(c, sort) > bound]
    return [c for c in conversations if sort_key(c, sort) < bound]


class ConversationService:
    """Lists conversations and the messages inside one conversation."""

    def __init__(
        self,
        store: MessageStore,
        accounts: AccountDirectory,
        cache: ConversationCache,
        limits: LimitsConfig,
    ):
        self.store = store
        self.accounts = accounts
        self.cache = cache
        self.limits = limits

    async def require_account(self, account_id: Any) -> str:
        """Validate the account and return its owner address."""
        if account_id is None or not str(account_id).strip():
            raise ValidationError("accountId", "accountId is required")
        account_id = str(account_id).strip()
        address = self.cache.get(account_id, "owner", None)
        if address is None:
            address = await self.accounts.get_owner_address(account_id)
            if address is None:
                raise NotFoundError("account", account_id)
            self.cache.set(account_id, "owner", None, address)
        return address

    async def list_conversations(
        self,
        account_id: str,
        folder: Union[str, Folder, None] = Folder.INBOX,
        filters: Optional[MessageFilter] = None,
        sort: Union[str, ConversationSort, None] = ConversationSort.RECENT,
        cursor: Any = None,
        limit: Optional[int] = None,
    ) -> Page[Conversation]:
        sort = coerce_sort(sort)
        folder = coerce_folder(folder)
        limit = clamp_limit(
            limit,
            self.limits.conversation_page_default,
            self.limits.conversation_page_max,
        )
        await self.require_account(account_id)

        base = filters or MessageFilter(account_id=account_id)
        filter = base.narrowed(
            account_id=account_id,
            folders=[folder] if folder is not None else base.folders,
        )

        cache_params = (filter.cache_key(), sort.value, str(cursor or ""), limit)
        cached = self.cache.get(account_id, "conversations", cache_params)
        if cached is not None:
            return cached
        generation = self.cache.generation(account_id)

        async def fetch(after, n):
            return await self.store.aggregate_conversations(
                filter, sort, after, n, self.limits.preview_length
            )

        page = await paginate(fetch, cursor, limit)
        self.cache.set(account_id, "conversations", cache_params, page, generation)
        logger.debug(
            f"Listed {len(page.items)} conversations for account {account_id} "
            f"(folder={folder.value if folder else 'all'}, sort={sort.value})"
        )
        return page

    async def list_messages(
        self,
        account_id: str,
        counterpart: str,
        folder: Union[str, Folder, None] = None,
        cursor: Any = None,
        limit: Optional[int] = None,
    ) -> Page[Message]:
        """Messages of one conversation, oldest first."""
        folder = coerce_folder(folder)
        counterpart = normalize_counterpart(counterpart)
        limit = clamp_limit(
            limit, self.limits.message_page_default, self.limits.message_page_max
        )
        await self.require_account(account_id)

        if folder is not None:
            filter = MessageFilter(
                account_id=account_id, counterpart=counterpart, folders=[folder]
            )
        else:
            filter = MessageFilter(
                account_id=account_id,
                counterpart=counterpart,
                exclude_folders=HIDDEN_FOLDERS,
            )

        async def fetch(after, n):
            return await self.store.find_many(filter, MessageOrder.OLDEST_FIRST, after, n)

        return await paginate(fetch, cursor, limit)

    async def render_thread(
        self,
        account_id: str,
        counterpart: str,
        renderer: Any,
        folder: Union[str, Folder, None] = None,
        cursor: Any = None,
        limit: Optional[int] = None,
    ) -> tuple[Page[Message], list[ThreadGroup]]:
        """A page of messages plus its display groups."""
        page = await self.list_messages(account_id, counterpart, folder, cursor, limit)
        owner = await self.require_account(account_id)
        return page, renderer.render(page.items, owner)
