from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import logging

from mailroom.errors import MailroomError
from mailroom.ingest import ingest_messages
from mailroom.web import action_error, get_services, unexpected_error

logger = logging.getLogger(__name__)

router = APIRouter()


class IngestRequest(BaseModel):
    messages: list[dict[str, Any]]


@router.post("/messages/{account_id}/ingest")
async def ingest(account_id: str, request: IngestRequest):
    services = get_services()
    try:
        result = await ingest_messages(
            services.store,
            services.cache,
            account_id,
            request.messages,
            max_batch=services.config.limits.max_bulk_ids,
        )
        return JSONResponse(result.to_response())
    except MailroomError as e:
        logger.warning(f"Ingest failed for account {account_id}: {e}")
        return action_error(e)
    except Exception as e:
        logger.exception(f"Unexpected ingest error for account {account_id}")
        return unexpected_error(e, list_payload=False)
