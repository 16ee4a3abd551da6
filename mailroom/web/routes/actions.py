from typing import Optional, Union

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
import logging

from mailroom.errors import MailroomError, ValidationError
from mailroom.models import MutationTarget
from mailroom.mutations import conversation_key
from mailroom.web import action_error, get_services, unexpected_error

logger = logging.getLogger(__name__)

router = APIRouter()


class BulkReadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_id: str = Field(alias="accountId")
    message_ids: list[int] = Field(alias="messageIds")
    is_read: bool = Field(True, alias="isRead")


class ActionRequest(BaseModel):
    """Targets either explicit message ids or a whole conversation."""

    model_config = ConfigDict(populate_by_name=True)

    account_id: str = Field(alias="accountId")
    message_ids: Optional[list[int]] = Field(None, alias="messageIds")
    message_id: Optional[int] = Field(None, alias="messageId")
    counterpart: Optional[str] = None
    folder: Optional[str] = None

    def target(self) -> Union[MutationTarget, list[int]]:
        if self.message_ids:
            return self.message_ids
        if self.message_id is not None:
            return self.message_id
        if self.counterpart:
            return conversation_key(self.account_id, self.counterpart, self.folder)
        raise ValidationError(
            "messageIds", "Provide messageIds, messageId, or counterpart and folder"
        )


class ConversationReadRequest(ActionRequest):
    is_read: bool = Field(True, alias="isRead")


class FlagRequest(ActionRequest):
    flagged: bool = True


class MoveRequest(ActionRequest):
    from_folder: Optional[str] = Field(None, alias="fromFolder")
    to_folder: str = Field(alias="toFolder")


class ArchiveRequest(ActionRequest):
    from_folder: Optional[str] = Field(None, alias="fromFolder")


def _log_failure(action: str, request: ActionRequest, error: Exception) -> None:
    logger.warning(f"Failed to {action} for account {request.account_id}: {error}")


@router.post("/bulk-read")
async def bulk_read(request: BulkReadRequest):
    try:
        result = await get_services().mutator.mark_read(
            request.account_id, request.message_ids, request.is_read
        )
        return JSONResponse(
            {
                "success": True,
                "updated": result.updated_count,
                "failedIds": result.failed_ids,
            }
        )
    except MailroomError as e:
        logger.warning(f"Bulk read failed for account {request.account_id}: {e}")
        return action_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error in bulk read for account {request.account_id}")
        return unexpected_error(e, list_payload=False)


@router.post("/conversations/read")
async def mark_conversation_read(request: ConversationReadRequest):
    try:
        result = await get_services().mutator.mark_read(
            request.account_id, request.target(), request.is_read
        )
        return JSONResponse(result.to_response())
    except MailroomError as e:
        _log_failure("mark read", request, e)
        return action_error(e)
    except Exception as e:
        logger.exception("Unexpected error marking conversation read")
        return unexpected_error(e, list_payload=False)


@router.post("/actions/flag")
async def flag(request: FlagRequest):
    try:
        result = await get_services().mutator.set_flag(
            request.account_id, request.target(), request.flagged
        )
        return JSONResponse(result.to_response())
    except MailroomError as e:
        _log_failure("flag", request, e)
        return action_error(e)
    except Exception as e:
        logger.exception("Unexpected error flagging messages")
        return unexpected_error(e, list_payload=False)


@router.post("/actions/move")
async def move(request: MoveRequest):
    try:
        result = await get_services().mutator.move_folder(
            request.account_id, request.target(), request.from_folder, request.to_folder
        )
        return JSONResponse(result.to_response())
    except MailroomError as e:
        _log_failure("move", request, e)
        return action_error(e)
    except Exception as e:
        logger.exception("Unexpected error moving messages")
        return unexpected_error(e, list_payload=False)


@router.post("/actions/archive")
async def archive(request: ArchiveRequest):
    try:
        result = await get_services().mutator.archive(
            request.account_id, request.target(), request.from_folder
        )
        return JSONResponse(result.to_response())
    except MailroomError as e:
        _log_failure("archive", request, e)
        return action_error(e)
    except Exception as e:
        logger.exception("Unexpected error archiving messages")
        return unexpected_error(e, list_payload=False)


@router.post("/actions/trash")
async def trash(request: ArchiveRequest):
    try:
        result = await get_services().mutator.trash(
            request.account_id, request.target(), request.from_folder
        )
        return JSONResponse(result.to_response())
    except MailroomError as e:
        _log_failure("trash", request, e)
        return action_error(e)
    except Exception as e:
        logger.exception("Unexpected error trashing messages")
        return unexpected_error(e, list_payload=False)


@router.post("/actions/restore")
async def restore(request: ActionRequest):
    try:
        result = await get_services().mutator.restore(
            request.account_id, request.target()
        )
        return JSONResponse(result.to_response())
    except MailroomError as e:
        _log_failure("restore", request, e)
        return action_error(e)
    except Exception as e:
        logger.exception("Unexpected error restoring messages")
        return unexpected_error(e, list_payload=False)


@router.post("/actions/permanent-delete")
async def permanent_delete(request: ActionRequest):
    try:
        result = await get_services().mutator.permanent_delete(
            request.account_id, request.target()
        )
        return JSONResponse(result.to_response())
    except MailroomError as e:
        _log_failure("permanently delete", request, e)
        return action_error(e)
    except Exception as e:
        logger.exception("Unexpected error deleting messages")
        return unexpected_error(e, list_payload=False)
