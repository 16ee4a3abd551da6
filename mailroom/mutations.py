"""
State transitions on messages: read/unread, flag, folder moves and deletion.

Every operation takes a message id, a list of ids, or a whole conversation,
and reports ``MutationResult(updated_count, failed_ids)``. Ids that do not
belong to the account, or whose folder does not allow the move, fail on their
own without aborting the rest. A row that already has the requested state
counts as updated, so repeating a call gives the same result.
"""

import logging
from typing import Iterable, Optional, Union

from mailroom.cache import ConversationCache
from mailroom.config import LimitsConfig
from mailroom.conversations import coerce_folder, normalize_counterpart
from mailroom.db.types import MessageFilter, MessagePatch, MessageStore
from mailroom.errors import NotFoundError, ValidationError
from mailroom.models import ConversationKey, Folder, MutationResult, MutationTarget

logger = logging.getLogger(__name__)


class StateMutator:
    def __init__(
        self,
        store: MessageStore,
        cache: ConversationCache,
        limits: LimitsConfig,
    ):
        self.store = store
        self.cache = cache
        self.limits = limits

    def _normalize_ids(self, ids: Iterable) -> list[int]:
        normalized: list[int] = []
        seen: set[int] = set()
        for raw in ids:
            if isinstance(raw, bool):
                raise ValidationError("messageIds", f"Invalid message id: {raw}")
            try:
                message_id = int(raw)
            except (TypeError, ValueError):
                raise ValidationError("messageIds", f"Invalid message id: {raw}") from None
            if message_id not in seen:
                seen.add(message_id)
                normalized.append(message_id)
        if not normalized:
            raise ValidationError("messageIds", "At least one message id is required")
        if len(normalized) > self.limits.max_bulk_ids:
            raise ValidationError(
                "messageIds",
                f"Too many message ids ({len(normalized)}); "
                f"maximum is {self.limits.max_bulk_ids}",
            )
        return normalized

    def _require_account(self, account_id) -> str:
        if account_id is None or not str(account_id).strip():
            raise ValidationError("accountId", "accountId is required")
        return str(account_id).strip()

    async def _resolve(
        self, account_id: str, target: Union[MutationTarget, list[int]]
    ) -> list[int]:
        """Expand a target into concrete message ids, once."""
        if isinstance(target, ConversationKey):
            if target.account_id != account_id:
                raise ValidationError("accountId", "Conversation belongs to another account")
            ids = await self.store.find_ids(
                MessageFilter(
                    account_id=account_id,
                    counterpart=normalize_counterpart(target.counterpart),
                    folders=[target.folder],
                )
            )
            if not ids:
                raise NotFoundError(
                    "conversation", f"{target.counterpart} in {target.folder.value}"
                )
            return ids
        if isinstance(target, (list, tuple, set)):
            return self._normalize_ids(target)
        return self._normalize_ids([target])

    async def _apply(
        self, operation: str, account_id: str, ids: list[int], patch: MessagePatch
    ) -> MutationResult:
        matched = set(await self.store.update_many(account_id, ids, patch))
        return self._finish(operation, account_id, ids, matched)

    def _finish(
        self, operation: str, account_id: str, ids: list[int], matched: set[int]
    ) -> MutationResult:
        failed = [i for i in ids if i not in matched]
        if matched:
            self.cache.invalidate_account(account_id)
        if failed:
            logger.warning(
                f"{operation}: {len(failed)} of {len(ids)} messages not updated "
                f"for account {account_id}: {failed[:20]}"
            )
        else:
            logger.info(f"{operation}: updated {len(matched)} messages for account {account_id}")
        return MutationResult(updated_count=len(matched), failed_ids=failed)

    async def mark_read(
        self,
        account_id: str,
        ids: Union[MutationTarget, list[int]],
        is_read: bool = True,
    ) -> MutationResult:
        account_id = self._require_account(account_id)
        resolved = await self._resolve(account_id, ids)
        return await self._apply(
            "mark_read" if is_read else "mark_unread",
            account_id,
            resolved,
            MessagePatch(is_read=is_read),
        )

    async def mark_conversation_read(
        self, key: ConversationKey, is_read: bool = True
    ) -> MutationResult:
        return await self.mark_read(key.account_id, key, is_read)

    async def set_flag(
        self,
        account_id: str,
        target: Union[MutationTarget, list[int]],
        flagged: bool,
    ) -> MutationResult:
        account_id = self._require_account(account_id)
        resolved = await self._resolve(account_id, target)
        return await self._apply(
            "flag" if flagged else "unflag",
            account_id,
            resolved,
            MessagePatch(is_flagged=flagged),
        )

    async def move_folder(
        self,
        account_id: str,
        target: Union[MutationTarget, list[int]],
        from_folder: Union[str, Folder, None],
        to_folder: Union[str, Folder],
    ) -> MutationResult:
        """Move messages currently in ``from_folder`` to ``to_folder``.

        Messages already in ``to_folder`` count as moved. Without
        ``from_folder`` any source folder is accepted.
        """
        account_id = self._require_account(account_id)
        destination = coerce_folder(to_folder, "toFolder")
        if destination is None:
            raise ValidationError("toFolder", "toFolder is required")
        source = coerce_folder(from_folder, "fromFolder")
        if isinstance(target, ConversationKey) and source is None:
            source = target.folder

        resolved = await self._resolve(account_id, target)
        allowed = [source, destination] if source is not None else []
        return await self._apply(
            f"move to {destination.value}",
            account_id,
            resolved,
            MessagePatch(folder=destination, allowed_folders=allowed),
        )

    async def archive(
        self,
        account_id: str,
        target: Union[MutationTarget, list[int]],
        from_folder: Union[str, Folder, None] = Folder.INBOX,
    ) -> MutationResult:
        return await self.move_folder(account_id, target, from_folder, Folder.ARCHIVE)

    async def trash(
        self,
        account_id: str,
        target: Union[MutationTarget, list[int]],
        from_folder: Union[str, Folder, None] = None,
    ) -> MutationResult:
        return await self.move_folder(account_id, target, from_folder, Folder.TRASH)

    async def restore(
        self, account_id: str, target: Union[MutationTarget, list[int]]
    ) -> MutationResult:
        """Return trashed or archived messages to inbox (received) or sent (sent)."""
        account_id = self._require_account(account_id)
        resolved = await self._resolve(account_id, target)
        return await self._apply(
            "restore", account_id, resolved, MessagePatch(restore=True)
        )

    async def permanent_delete(
        self, account_id: str, target: Union[MutationTarget, list[int]]
    ) -> MutationResult:
        """Irreversibly remove messages. Ids already gone are reported as failed."""
        account_id = self._require_account(account_id)
        resolved = await self._resolve(account_id, target)
        deleted = set(await self.store.delete_many(account_id, resolved))
        return self._finish("permanent_delete", account_id, resolved, deleted)


def conversation_key(
    account_id: str, counterpart: str, folder: Optional[Union[str, Folder]]
) -> ConversationKey:
    resolved = coerce_folder(folder) or Folder.INBOX
    return ConversationKey(
        account_id=str(account_id),
        counterpart=normalize_counterpart(counterpart),
        folder=resolved,
    )
