import logging
from dataclasses import dataclass, field
from typing import Any

from mailroom.cache import ConversationCache
from mailroom.db.types import MessageStore
from mailroom.errors import ValidationError
from mailroom.models import Message

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    inserted_ids: list[int] = field(default_factory=list)
    duplicates: int = 0
    rejected: list[dict[str, Any]] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "insertedIds": self.inserted_ids,
            "duplicates": self.duplicates,
            "rejected": self.rejected,
        }


async def ingest_messages(
    store: MessageStore,
    cache: ConversationCache,
    account_id: str,
    rows: list[dict[str, Any]],
    max_batch: int = 500,
) -> IngestResult:
    """Store a batch of fetched messages for one account.

    Malformed rows are rejected individually; messages already stored under
    the same Message-ID are skipped.
    """
    if not str(account_id or "").strip():
        raise ValidationError("accountId", "accountId is required")
    if len(rows) > max_batch:
        raise ValidationError(
            "messages", f"Too many messages ({len(rows)}); maximum is {max_batch}"
        )

    result = IngestResult()
    messages: list[Message] = []
    for index, row in enumerate(rows):
        row = {**row, "account_id": row.get("account_id") or row.get("accountId") or account_id}
        try:
            message = Message.from_row(row)
        except (ValueError, TypeError, KeyError) as e:
            result.rejected.append({"index": index, "error": str(e)})
            continue
        if message.account_id != str(account_id):
            result.rejected.append(
                {"index": index, "error": "message belongs to another account"}
            )
            continue
        message.id = None
        messages.append(message)

    if messages:
        for inserted in await store.insert_many(messages):
            if inserted is None:
                result.duplicates += 1
            else:
                result.inserted_ids.append(inserted)
        if result.inserted_ids:
            cache.invalidate_account(str(account_id))

    logger.info(
        f"Ingested {len(result.inserted_ids)} messages for account {account_id} "
        f"({result.duplicates} duplicates, {len(result.rejected)} rejected)"
    )
    return result
