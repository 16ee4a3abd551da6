from fastapi import APIRouter
from fastapi.responses import JSONResponse
import logging

from mailroom.errors import MailroomError
from mailroom.web import action_error, get_services, list_error, unexpected_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/stats/{account_id}")
async def get_stats(account_id: str):
    try:
        stats = await get_services().stats.get_stats(account_id)
        return JSONResponse({"success": True, "stats": stats.to_dict()})
    except MailroomError as e:
        logger.warning(f"Failed to load stats for account {account_id}: {e}")
        return action_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error loading stats for account {account_id}")
        return unexpected_error(e, list_payload=False)


@router.get("/stats/{account_id}/unread")
async def get_unread(account_id: str):
    try:
        summary = await get_services().stats.unread_summary(account_id)
        return JSONResponse({"success": True, **summary})
    except MailroomError as e:
        logger.warning(f"Failed to load unread counts for account {account_id}: {e}")
        return action_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error loading unread counts for account {account_id}")
        return unexpected_error(e, list_payload=False)


@router.get("/countries/{account_id}")
async def list_countries(account_id: str):
    try:
        countries = await get_services().stats.list_countries(account_id)
        return JSONResponse({"success": True, "data": countries})
    except MailroomError as e:
        logger.warning(f"Failed to list countries for account {account_id}: {e}")
        return list_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error listing countries for account {account_id}")
        return unexpected_error(e)
