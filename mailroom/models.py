"""Data model for messages, conversations and the results built from them."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import getaddresses, parseaddr
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

from mailroom.html_utils import html_to_text, preview_text

UNKNOWN_COUNTERPART = "Unknown"

T = TypeVar("T")


class Folder(str, Enum):
    INBOX = "inbox"
    SENT = "sent"
    SPAM = "spam"
    TRASH = "trash"
    ARCHIVE = "archive"

    @classmethod
    def from_string(cls, value: str) -> "Folder":
        try:
            return cls(value.lower().strip())
        except ValueError:
            raise ValueError(
                f"Invalid folder '{value}'. Must be one of: "
                + ", ".join(f.value for f in cls)
            ) from None


class Direction(str, Enum):
    SENT = "sent"
    RECEIVED = "received"


class ConversationSort(str, Enum):
    RECENT = "recent"
    UNREAD = "unread"
    SENDER = "sender"


class MessageOrder(str, Enum):
    NEWEST_FIRST = "newest"
    OLDEST_FIRST = "oldest"


class SearchType(str, Enum):
    ALL = "all"
    UNREAD = "unread"
    ATTACHMENTS = "attachments"


def normalize_address(value: Optional[str]) -> str:
    """Bare lower-cased address from ``addr`` or ``Name <addr>``."""
    if not value:
        return ""
    _, address = parseaddr(value)
    return (address or value).strip().lower()


def normalize_addresses(values: Any) -> list[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    parsed = getaddresses([v for v in values if v])
    return [addr.strip().lower() for _, addr in parsed if addr and addr.strip()]


def parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", ""}


def parse_bool(value: Any, default: bool = False) -> bool:
    """Strict flag parsing; ``"false"`` is False and junk is rejected."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_STRINGS:
            return True
        if normalized in _FALSE_STRINGS:
            return False
    raise ValueError(f"Invalid boolean: {value!r}")


@dataclass
class Attachment:
    filename: str
    mime_type: str = "application/octet-stream"
    size: int = 0
    locator: str = ""
    content_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Attachment":
        return cls(
            filename=data.get("filename") or data.get("name") or "attachment",
            mime_type=data.get("mime_type")
            or data.get("mimeType")
            or "application/octet-stream",
            size=int(data.get("size") or 0),
            locator=data.get("locator") or data.get("url") or "",
            content_id=data.get("content_id")
            or data.get("contentId")
            or data.get("cid"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "mimeType": self.mime_type,
            "size": self.size,
            "locator": self.locator,
            "contentId": self.content_id,
        }


@dataclass
class Message:
    """One email as stored for an account.

    ``id`` is assigned by the store and is monotonic enough to break ties
    between messages that share a ``sent_at``.
    """

    account_id: str
    from_address: str
    direction: Direction
    folder: Folder
    sent_at: datetime
    to_addresses: list[str] = field(default_factory=list)
    cc_addresses: list[str] = field(default_factory=list)
    subject: str = ""
    body_html: str = ""
    snippet: str = ""
    is_read: bool = False
    is_flagged: bool = False
    attachments: list[Attachment] = field(default_factory=list)
    country: Optional[str] = None
    lead_status: Optional[str] = None
    message_id: Optional[str] = None
    id: Optional[int] = None

    @property
    def has_attachment(self) -> bool:
        return len(self.attachments) > 0

    @property
    def body_text(self) -> str:
        return html_to_text(self.body_html)

    @property
    def counterpart(self) -> str:
        """The other party: sender for received mail, first recipient for sent."""
        if self.direction == Direction.SENT:
            address = self.to_addresses[0] if self.to_addresses else ""
        else:
            address = self.from_address
        return address or UNKNOWN_COUNTERPART

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Message":
        """Build a message from a loosely shaped row, rejecting invalid ones."""
        account_id = row.get("account_id", row.get("accountId"))
        if account_id is None or str(account_id).strip() == "":
            raise ValueError("account_id is required")

        direction_value = row.get("direction")
        if not direction_value:
            raise ValueError("direction is required")
        direction = Direction(str(direction_value).lower())

        folder_value = row.get("folder") or (
            "sent" if direction == Direction.SENT else "inbox"
        )
        folder = Folder.from_string(str(folder_value))

        sent_at = row.get("sent_at", row.get("sentAt"))
        if sent_at is None:
            raise ValueError("sent_at is required")

        body_html = row.get("body_html", row.get("body")) or ""
        snippet = row.get("snippet") or preview_text(body_html)
        attachments = [
            a if isinstance(a, Attachment) else Attachment.from_dict(a)
            for a in (row.get("attachments") or [])
        ]

        return cls(
            account_id=str(account_id),
            from_address=normalize_address(
                row.get("from_address", row.get("fromEmail"))
            ),
            direction=direction,
            folder=folder,
            sent_at=parse_datetime(sent_at),
            to_addresses=normalize_addresses(
                row.get("to_addresses", row.get("toEmail"))
            ),
            cc_addresses=normalize_addresses(row.get("cc_addresses", row.get("cc"))),
            subject=row.get("subject") or "",
            body_html=body_html,
            snippet=snippet,
            is_read=parse_bool(row.get("is_read", row.get("isRead"))),
            is_flagged=parse_bool(row.get("is_flagged", row.get("isStarred"))),
            attachments=attachments,
            country=row.get("country") or None,
            lead_status=row.get("lead_status", row.get("leadStatus")) or None,
            message_id=row.get("message_id", row.get("messageId")) or None,
            id=row.get("id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "accountId": self.account_id,
            "messageId": self.message_id,
            "fromAddress": self.from_address,
            "toAddresses": list(self.to_addresses),
            "ccAddresses": list(self.cc_addresses),
            "counterpart": self.counterpart,
            "direction": self.direction.value,
            "folder": self.folder.value,
            "subject": self.subject,
            "bodyHtml": self.body_html,
            "snippet": self.snippet,
            "isRead": self.is_read,
            "isFlagged": self.is_flagged,
            "hasAttachment": self.has_attachment,
            "attachments": [a.to_dict() for a in self.attachments],
            "sentAt": self.sent_at.isoformat(),
            "country": self.country,
            "leadStatus": self.lead_status,
        }


@dataclass(frozen=True)
class ConversationKey:
    account_id: str
    counterpart: str
    folder: Folder


@dataclass
class Conversation:
    account_id: str
    counterpart_address: str
    folder: Folder
    subject: str
    last_message_at: datetime
    last_body_preview: str
    unread_count: int
    has_attachment: bool
    is_flagged: bool
    message_count: int
    last_message_id: int
    country: Optional[str] = None
    lead_status: Optional[str] = None

    @property
    def id(self) -> int:
        return self.last_message_id

    @property
    def key(self) -> ConversationKey:
        return ConversationKey(self.account_id, self.counterpart_address, self.folder)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "accountId": self.account_id,
            "counterpartAddress": self.counterpart_address,
            "folder": self.folder.value,
            "subject": self.subject,
            "lastMessageAt": self.last_message_at.isoformat(),
            "lastBodyPreview": self.last_body_preview,
            "unreadCount": self.unread_count,
            "hasAttachment": self.has_attachment,
            "isFlagged": self.is_flagged,
            "messageCount": self.message_count,
            "country": self.country,
            "leadStatus": self.lead_status,
        }


@dataclass
class ThreadGroup:
    """A maximal run of consecutive messages from one sender."""

    sender_address: str
    messages: list[Any]
    is_mine: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "senderAddress": self.sender_address,
            "isMine": self.is_mine,
            "messages": [
                m.to_dict() if hasattr(m, "to_dict") else m for m in self.messages
            ],
        }


@dataclass
class Page(Generic[T]):
    items: list[T]
    next_cursor: Optional[str] = None
    has_more: bool = False

    @classmethod
    def empty(cls) -> "Page[T]":
        return cls(items=[], next_cursor=None, has_more=False)

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "data": [
                item.to_dict() if hasattr(item, "to_dict") else item
                for item in self.items
            ],
            "nextCursor": self.next_cursor,
            "hasMore": self.has_more,
        }


@dataclass
class MutationResult:
    """Outcome of a state transition; non-empty ``failed_ids`` is a partial failure."""

    updated_count: int = 0
    failed_ids: list[int] = field(default_factory=list)

    @property
    def is_partial_failure(self) -> bool:
        return len(self.failed_ids) > 0

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "updatedCount": self.updated_count,
            "failedIds": list(self.failed_ids),
        }


@dataclass
class InboxStats:
    total: int = 0
    unread: int = 0
    spam: int = 0
    with_attachments: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "unread": self.unread,
            "spam": self.spam,
            "withAttachments": self.with_attachments,
        }


MutationTarget = Union[int, ConversationKey]
