"""Message builders and store doubles shared by the test modules."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from mailroom.db.memory import MemoryMessageStore
from mailroom.models import Attachment, Direction, Folder, Message

OWNER = "me@example.com"
ACCOUNT = "acct-1"
OTHER_ACCOUNT = "acct-2"
BASE_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def make_message(
    sender: str = "alice@example.com",
    minutes: int = 0,
    account_id: str = ACCOUNT,
    direction: Direction = Direction.RECEIVED,
    folder: Optional[Folder] = None,
    to: Optional[list[str]] = None,
    subject: str = "Hello",
    body: str = "<p>Hi there</p>",
    is_read: bool = False,
    is_flagged: bool = False,
    attachments: Optional[list[Attachment]] = None,
    message_id: Optional[str] = None,
    country: Optional[str] = None,
) -> Message:
    if folder is None:
        folder = Folder.SENT if direction == Direction.SENT else Folder.INBOX
    if to is None:
        to = [OWNER] if direction == Direction.RECEIVED else []
    return Message(
        account_id=account_id,
        from_address=sender,
        direction=direction,
        folder=folder,
        sent_at=BASE_TIME + timedelta(minutes=minutes),
        to_addresses=to,
        subject=subject,
        body_html=body,
        snippet=body[:40],
        is_read=is_read,
        is_flagged=is_flagged,
        attachments=attachments or [],
        message_id=message_id,
        country=country,
    )


def make_reply(to: str, minutes: int, **kwargs) -> Message:
    return make_message(
        sender=OWNER, minutes=minutes, direction=Direction.SENT, to=[to], **kwargs
    )


def pdf(name: str = "report.pdf") -> Attachment:
    return Attachment(filename=name, mime_type="application/pdf", size=1024, locator=f"files/{name}")


class PausingStore(MemoryMessageStore):
    """Memory store whose aggregate reads hold their result until released.

    Stands in for a slow database so a write can land between a read's query
    and the moment its result is cached.
    """

    def __init__(self):
        super().__init__(accounts={ACCOUNT: OWNER})
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def _hold(self):
        self.entered.set()
        await self.release.wait()

    async def aggregate_conversations(self, *args, **kwargs):
        result = await super().aggregate_conversations(*args, **kwargs)
        await self._hold()
        return result

    async def count(self, filter):
        result = await super().count(filter)
        await self._hold()
        return result
