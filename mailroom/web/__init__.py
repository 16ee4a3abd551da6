"""
HTTP API for the conversation inbox.

Provides:
- Conversation list with filters, sorting and cursor pagination
- Per-conversation message pages with same-sender thread groups
- Account-scoped search
- Inbox stats
- Read/flag/folder state changes
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from mailroom.config import ServerConfig
from mailroom.db.types import AccountDirectory, MessageStore
from mailroom.errors import MailroomError
from mailroom.services import Services, build_services

logger = logging.getLogger(__name__)

_services: Optional[Services] = None
_routes_registered = False


@asynccontextmanager
async def lifespan(app):
    if _services is not None:
        await _services.start()
        logger.info("Message store started")
    yield
    if _services is not None:
        await _services.close()
        logger.info("Message store closed")


web_app = FastAPI(
    title="Mailroom",
    description="Conversation inbox API",
    docs_url="/api/docs",
    redoc_url=None,
    lifespan=lifespan,
)


def list_error(error: MailroomError) -> JSONResponse:
    """Failure envelope for list/search endpoints."""
    return JSONResponse(
        {
            "success": False,
            "data": [],
            "nextCursor": None,
            "hasMore": False,
            **error.to_dict(),
        },
        status_code=error.status_code,
    )


def action_error(error: MailroomError) -> JSONResponse:
    return JSONResponse(
        {"success": False, **error.to_dict()}, status_code=error.status_code
    )


def unexpected_error(error: Exception, list_payload: bool = True) -> JSONResponse:
    body = {"success": False, "error": str(error), "errorType": "internal"}
    if list_payload:
        body.update({"data": [], "nextCursor": None, "hasMore": False})
    return JSONResponse(body, status_code=500)


@web_app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    field = ".".join(str(p) for p in errors[0].get("loc", [])[1:]) if errors else ""
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    logger.warning(f"Rejected request to {request.url.path}: {field} {message}")
    body = {
        "success": False,
        "error": f"{field}: {message}" if field else message,
        "errorType": "validation",
        "field": field,
    }
    if request.method == "GET":
        body.update({"data": [], "nextCursor": None, "hasMore": False})
    return JSONResponse(body, status_code=400)


def get_services() -> Services:
    if _services is None:
        raise RuntimeError("Web app not initialized. Call init_web_app() first.")
    return _services


def _register_routes() -> None:
    global _routes_registered
    if _routes_registered:
        return

    from mailroom.web.routes import (
        actions,
        conversations,
        health,
        ingest,
        search,
        stats,
    )

    web_app.include_router(conversations.router)
    web_app.include_router(search.router)
    web_app.include_router(stats.router)
    web_app.include_router(actions.router)
    web_app.include_router(ingest.router)
    web_app.include_router(health.router)
    _routes_registered = True


def init_web_app(
    config: ServerConfig,
    store: Optional[MessageStore] = None,
    accounts: Optional[AccountDirectory] = None,
) -> FastAPI:
    global _services
    _services = build_services(config, store=store, accounts=accounts)
    _register_routes()
    logger.info(
        f"Web app initialized with {config.database.backend.value} message store"
    )
    return web_app
