from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
import logging

from mailroom.errors import MailroomError, ValidationError
from mailroom.web import get_services, list_error, unexpected_error
from mailroom.web.params import parse_limit

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/search")
async def search(
    account_id: Optional[str] = Query(None, alias="accountId"),
    q: Optional[str] = Query(None),
    type: Optional[str] = Query("all"),
    cursor: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    view: str = Query("messages"),
):
    services = get_services()
    try:
        if view == "messages":
            page = await services.search.search(
                account_id, q, type, cursor=cursor, limit=parse_limit(limit)
            )
        elif view == "conversations":
            page = await services.search.search_conversations(
                account_id, q, type, cursor=cursor, limit=parse_limit(limit)
            )
        else:
            raise ValidationError(
                "view", f"Invalid view '{view}'. Must be 'messages' or 'conversations'."
            )
        return JSONResponse(page.to_response())
    except MailroomError as e:
        logger.warning(f"Search failed for account {account_id}: {e}")
        return list_error(e)
    except Exception as e:
        logger.exception(f"Unexpected search error for account {account_id}")
        return unexpected_error(e)
