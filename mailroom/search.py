import logging
import re
from typing import Any, Optional, Union

from mailroom.config import LimitsConfig
from mailroom.conversations import ConversationService
from mailroom.db.types import MessageFilter, MessageStore
from mailroom.errors import ValidationError
from mailroom.models import (
    Conversation,
    ConversationSort,
    Message,
    MessageOrder,
    Page,
    SearchType,
)
from mailroom.pagination import clamp_limit, paginate

logger = logging.getLogger(__name__)

_OPERATOR = re.compile(r"(\w+):([^\s]+)")


def parse_search_operators(query: str) -> tuple[str, dict[str, Any]]:
    """
    Parse Gmail-style search operators from query string.

    Supported operators:
    - from:email@example.com
    - to:email@example.com
    - subject:keyword
    - has:attachment
    - is:unread / is:read
    - is:starred / is:flagged

    Unknown operators are kept as plain text.

    Returns: (plain_query, filters_dict)
    """
    filters: dict[str, Any] = {}
    remaining = query

    for match in _OPERATOR.finditer(query):
        operator = match.group(1).lower()
        value = match.group(2)
        handled = True

        if operator == "from":
            filters["sender"] = value
        elif operator == "to":
            filters["recipient"] = value
        elif operator == "subject":
            filters["subject"] = value
        elif operator == "has" and value.lower() == "attachment":
            filters["has_attachment"] = True
        elif operator == "is" and value.lower() == "unread":
            filters["is_unread"] = True
        elif operator == "is" and value.lower() == "read":
            filters["is_unread"] = False
        elif operator == "is" and value.lower() in ("starred", "flagged"):
            filters["is_flagged"] = True
        else:
            handled = False

        if handled:
            remaining = remaining.replace(match.group(0), " ", 1)

    return " ".join(remaining.split()), filters


def coerce_search_type(value: Union[str, SearchType, None]) -> SearchType:
    if value is None or value == "":
        return SearchType.ALL
    if isinstance(value, SearchType):
        return value
    try:
        return SearchType(str(value).lower())
    except ValueError:
        raise ValidationError(
            "type",
            f"Invalid search type '{value}'. Must be one of: "
            + ", ".join(t.value for t in SearchType),
        ) from None


def build_search_filter(
    account_id: str, query: str, search_type: SearchType
) -> MessageFilter:
    text, operators = parse_search_operators(query)
    filter = MessageFilter(account_id=account_id, text=text or None, **operators)

    if search_type == SearchType.UNREAD:
        if filter.is_unread is False:
            # is:read AND type=unread can never match
            return filter.narrowed(ids=[])
        filter = filter.narrowed(is_unread=True)
    elif search_type == SearchType.ATTACHMENTS:
        filter = filter.narrowed(has_attachment=True)

    return filter


class SearchService:
    """Account-scoped text search over subject, plain-text body and sender."""

    def __init__(
        self,
        store: MessageStore,
        conversations: ConversationService,
        limits: LimitsConfig,
    ):
        self.store = store
        self.conversations = conversations
        self.limits = limits

    def _prepare(
        self,
        account_id: Any,
        query: Optional[str],
        search_type: Union[str, SearchType, None],
        limit: Optional[int],
    ) -> tuple[Optional[str], SearchType, int]:
        if account_id is None or not str(account_id).strip():
            raise ValidationError("accountId", "accountId is required")
        search_type = coerce_search_type(search_type)
        limit = clamp_limit(
            limit, self.limits.search_page_default, self.limits.search_page_max
        )
        normalized = (query or "").strip()
        if len(normalized) < self.limits.min_query_length:
            return None, search_type, limit
        return normalized, search_type, limit

    async def search(
        self,
        account_id: str,
        query: Optional[str],
        search_type: Union[str, SearchType, None] = SearchType.ALL,
        cursor: Any = None,
        limit: Optional[int] = None,
    ) -> Page[Message]:
        """Matching messages, newest first."""
        normalized, search_type, limit = self._prepare(
            account_id, query, search_type, limit
        )
        if normalized is None:
            return Page.empty()
        await self.conversations.require_account(account_id)

        filter = build_search_filter(str(account_id), normalized, search_type)

        async def fetch(after, n):
            return await self.store.find_many(filter, MessageOrder.NEWEST_FIRST, after, n)

        page = await paginate(fetch, cursor, limit)
        logger.info(
            f"Search '{normalized}' ({search_type.value}) for account {account_id}: "
            f"{len(page.items)} hits, has_more={page.has_more}"
        )
        return page

    async def search_conversations(
        self,
        account_id: str,
        query: Optional[str],
        search_type: Union[str, SearchType, None] = SearchType.ALL,
        cursor: Any = None,
        limit: Optional[int] = None,
    ) -> Page[Conversation]:
        """One entry per matching conversation, summarized by its latest match."""
        normalized, search_type, limit = self._prepare(
            account_id, query, search_type, limit
        )
        if normalized is None:
            return Page.empty()
        await self.conversations.require_account(account_id)

        filter = build_search_filter(str(account_id), normalized, search_type)

        async def fetch(after, n):
            return await self.store.aggregate_conversations(
                filter, ConversationSort.RECENT, after, n, self.limits.preview_length
            )

        return await paginate(fetch, cursor, limit)
