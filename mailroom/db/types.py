"""Message store contract shared by the Postgres and in-memory backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from mailroom.models import (
    Conversation,
    ConversationSort,
    Folder,
    Message,
    MessageOrder,
)


@dataclass
class MessageFilter:
    """Predicate over one account's messages. Unset fields do not filter."""

    account_id: str
    folders: Optional[list[Folder]] = None
    exclude_folders: Optional[list[Folder]] = None
    counterpart: Optional[str] = None
    ids: Optional[list[int]] = None
    sender: Optional[str] = None
    recipient: Optional[str] = None
    subject: Optional[str] = None
    text: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    has_attachment: Optional[bool] = None
    is_unread: Optional[bool] = None
    is_flagged: Optional[bool] = None
    country: Optional[str] = None
    lead_status: Optional[str] = None

    def narrowed(self, **changes) -> "MessageFilter":
        return replace(self, **changes)

    def cache_key(self) -> tuple:
        return tuple(
            (name, tuple(value) if isinstance(value, list) else value)
            for name, value in sorted(vars(self).items())
        )


@dataclass
class MessagePatch:
    """State change applied by ``update_many``.

    ``allowed_folders`` restricts which rows match. ``restore`` moves each row
    back to its natural folder (sent for sent mail, inbox otherwise) and only
    matches rows in trash or archive, or already in their natural folder.
    """

    is_read: Optional[bool] = None
    is_flagged: Optional[bool] = None
    folder: Optional[Folder] = None
    allowed_folders: list[Folder] = field(default_factory=list)
    restore: bool = False

    def __post_init__(self):
        if self.restore and self.folder is not None:
            raise ValueError("restore and folder are mutually exclusive")
        if (
            self.is_read is None
            and self.is_flagged is None
            and self.folder is None
            and not self.restore
        ):
            raise ValueError("Empty patch")


RESTORABLE_FOLDERS = [Folder.TRASH, Folder.ARCHIVE]


class AccountDirectory(ABC):
    """Resolves an account id to the owning mailbox address."""

    @abstractmethod
    async def get_owner_address(self, account_id: str) -> Optional[str]:
        """Return the lower-cased owner address, or None for unknown accounts."""


class MessageStore(AccountDirectory):
    """Persistent, per-account message log.

    Reads that take a cursor resolve it to a message of the same account
    that satisfies the filter, and raise ``InvalidCursorError`` otherwise.
    Store failures surface as ``StoreUnavailable``.
    """

    @abstractmethod
    async def initialize(self) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @abstractmethod
    async def add_account(self, account_id: str, address: str) -> None:
        pass

    @abstractmethod
    async def insert_many(self, messages: list[Message]) -> list[Optional[int]]:
        """Insert messages, returning the new id or None for each duplicate."""

    @abstractmethod
    async def find_many(
        self,
        filter: MessageFilter,
        order: MessageOrder,
        cursor: Optional[int],
        limit: int,
    ) -> list[Message]:
        pass

    @abstractmethod
    async def find_ids(self, filter: MessageFilter) -> list[int]:
        pass

    @abstractmethod
    async def count(self, filter: MessageFilter) -> int:
        pass

    @abstractmethod
    async def aggregate_conversations(
        self,
        filter: MessageFilter,
        sort: ConversationSort,
        cursor: Optional[int],
        limit: int,
        preview_length: int = 120,
    ) -> list[Conversation]:
        """Group matching messages by (counterpart, folder) and summarize them."""

    @abstractmethod
    async def update_many(
        self, account_id: str, ids: list[int], patch: MessagePatch
    ) -> list[int]:
        """Apply ``patch`` atomically; return the ids that matched."""

    @abstractmethod
    async def delete_many(self, account_id: str, ids: list[int]) -> list[int]:
        """Permanently delete; return the ids that existed."""

    @abstractmethod
    async def distinct_countries(self, filter: MessageFilter) -> list[str]:
        pass
