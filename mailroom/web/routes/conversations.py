from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
import logging

from mailroom.errors import MailroomError
from mailroom.web import get_services, list_error, unexpected_error
from mailroom.web.params import conversation_filter, parse_limit

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/conversations/{account_id}")
async def list_conversations(
    account_id: str,
    folder: str = Query("inbox"),
    cursor: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    search: Optional[str] = Query(None),
    sender: Optional[str] = Query(None),
    recipient: Optional[str] = Query(None),
    subject: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
    has_attachment: Optional[bool] = Query(None, alias="hasAttachment"),
    is_unread: Optional[bool] = Query(None, alias="isUnread"),
    is_flagged: Optional[bool] = Query(None, alias="isFlagged"),
    country: Optional[str] = Query(None),
    lead_status: Optional[str] = Query(None, alias="leadStatus"),
):
    services = get_services()
    try:
        filters = conversation_filter(
            account_id,
            search=search,
            sender=sender,
            recipient=recipient,
            subject=subject,
            date_from=date_from,
            date_to=date_to,
            has_attachment=has_attachment,
            is_unread=is_unread,
            is_flagged=is_flagged,
            country=country,
            lead_status=lead_status,
        )
        page = await services.conversations.list_conversations(
            account_id,
            folder=folder,
            filters=filters,
            sort=sort_by,
            cursor=cursor,
            limit=parse_limit(limit),
        )
        return JSONResponse(page.to_response())
    except MailroomError as e:
        logger.warning(f"Failed to list conversations for account {account_id}: {e}")
        return list_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error listing conversations for account {account_id}")
        return unexpected_error(e)


@router.get("/messages/{account_id}/{counterpart}")
async def list_messages(
    account_id: str,
    counterpart: str,
    folder: Optional[str] = Query(None),
    cursor: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    grouped: bool = Query(False),
):
    services = get_services()
    try:
        if grouped:
            page, groups = await services.conversations.render_thread(
                account_id,
                counterpart,
                services.renderer,
                folder=folder,
                cursor=cursor,
                limit=parse_limit(limit),
            )
            response = page.to_response()
            response["threads"] = [g.to_dict() for g in groups]
            return JSONResponse(response)

        page = await services.conversations.list_messages(
            account_id, counterpart, folder=folder, cursor=cursor, limit=parse_limit(limit)
        )
        return JSONResponse(page.to_response())
    except MailroomError as e:
        logger.warning(
            f"Failed to list messages for account {account_id} counterpart={counterpart}: {e}"
        )
        return list_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error listing messages for account {account_id}")
        return unexpected_error(e)
