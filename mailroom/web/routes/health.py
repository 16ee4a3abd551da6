from fastapi import APIRouter
from fastapi.responses import JSONResponse

from mailroom.db.types import MessageFilter
from mailroom.errors import StoreUnavailable
from mailroom.web import get_services

router = APIRouter()


@router.get("/health")
async def health():
    services = get_services()
    try:
        await services.store.count(MessageFilter(account_id="", ids=[]))
    except StoreUnavailable as e:
        return JSONResponse(
            {"status": "degraded", "service": "mailroom", "error": str(e)},
            status_code=503,
        )
    return {
        "status": "ok",
        "service": "mailroom",
        "store": services.config.database.backend.value,
    }
