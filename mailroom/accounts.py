"""
Account lookups and attachment links.

Owner addresses come either from the message store's account table or from
an external account service reached over HTTP.
"""

import logging
from typing import Optional

import httpx

from mailroom.db.types import AccountDirectory
from mailroom.errors import StoreUnavailable
from mailroom.models import Attachment

logger = logging.getLogger(__name__)


class HttpAccountDirectory(AccountDirectory):
    """Looks up ``GET {service_url}/accounts/{account_id}`` -> ``{"email": ...}``."""

    def __init__(
        self,
        service_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.service_url = service_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.service_url, timeout=self.timeout)
        return self._client

    async def get_owner_address(self, account_id: str) -> Optional[str]:
        client = await self.get_client()
        try:
            response = await client.get(f"/accounts/{account_id}")
            if response.status_code == 404:
                return None
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Account service error: {e.response.status_code} {e.response.text}"
            )
            raise StoreUnavailable(
                f"Account service returned {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Account service connection error: {e}")
            raise StoreUnavailable("Account service unavailable") from e

        data = payload.get("data", payload) if isinstance(payload, dict) else {}
        email = data.get("email") if isinstance(data, dict) else None
        return email.strip().lower() if email else None

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class AttachmentLinker:
    """Turns opaque attachment locators into URLs the client can fetch."""

    def __init__(self, base_url: str = "/attachments"):
        self.base_url = base_url.rstrip("/")

    def url_for(self, locator: str) -> str:
        if not locator:
            return ""
        if locator.startswith(("http://", "https://")):
            return locator
        return f"{self.base_url}/{locator.lstrip('/')}"

    def content_ids(self, attachments: list[Attachment]) -> list[tuple[str, str]]:
        return [
            (a.content_id, self.url_for(a.locator))
            for a in attachments
            if a.content_id and a.locator
        ]
