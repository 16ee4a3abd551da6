from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Optional, TypeVar
from urllib.parse import quote

import psycopg
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from mailroom.db import schema
from mailroom.db.queries import accounts as account_q
from mailroom.db.queries import messages as message_q
from mailroom.db.types import MessageFilter, MessagePatch, MessageStore
from mailroom.errors import StoreUnavailable
from mailroom.models import Conversation, ConversationSort, Message, MessageOrder

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PostgresMessageStore(MessageStore):
    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        database: str = "mailroom",
        user: str = "mailroom",
        password: str = "",
        ssl_mode: str = "prefer",
        min_pool_size: int = 2,
        max_pool_size: int = 10,
        query_timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.ssl_mode = ssl_mode
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.query_timeout = query_timeout
        self._pool: Optional[AsyncConnectionPool] = None

    def _get_connection_string(self) -> str:
        user = quote(self.user, safe="")
        password = quote(self.password, safe="")
        return f"postgresql://{user}:{password}@{self.host}:{self.port}/{self.database}?sslmode={self.ssl_mode}"

    async def initialize(self) -> None:
        self._pool = AsyncConnectionPool(
            self._get_connection_string(),
            min_size=self.min_pool_size,
            max_size=self.max_pool_size,
            open=False,
        )
        await self._pool.open()

        async with self._pool.connection() as conn:
            async with conn.cursor() as cur:
                await schema.initialize_core_schema(cur)
                await schema.create_indexes(cur)
            await conn.commit()
        logger.info(f"Message store ready on {self.host}:{self.port}/{self.database}")

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Any]:
        if not self._pool:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        async with self._pool.connection() as conn:
            yield conn

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None

    async def _run(self, operation: str, call: Awaitable[T]) -> T:
        """Run a query under the configured timeout, mapping outages."""
        try:
            return await asyncio.wait_for(call, timeout=self.query_timeout)
        except asyncio.TimeoutError:
            logger.error(f"{operation} timed out after {self.query_timeout}s")
            raise StoreUnavailable(f"{operation} timed out") from None
        except (psycopg.OperationalError, PoolTimeout) as e:
            logger.error(f"{operation} failed: {e}")
            raise StoreUnavailable(f"Message store unavailable: {e}") from e

    async def get_owner_address(self, account_id: str) -> Optional[str]:
        return await self._run(
            "get_owner_address", account_q.get_account_email(self, account_id)
        )

    async def add_account(self, account_id: str, address: str) -> None:
        await self._run("add_account", account_q.upsert_account(self, account_id, address))

    async def insert_many(self, messages: list[Message]) -> list[Optional[int]]:
        return await self._run("insert_many", message_q.insert_messages(self, messages))

    async def find_many(
        self,
        filter: MessageFilter,
        order: MessageOrder,
        cursor: Optional[int],
        limit: int,
    ) -> list[Message]:
        return await self._run(
            "find_many", message_q.find_messages(self, filter, order, cursor, limit)
        )

    async def find_ids(self, filter: MessageFilter) -> list[int]:
        return await self._run("find_ids", message_q.find_message_ids(self, filter))

    async def count(self, filter: MessageFilter) -> int:
        return await self._run("count", message_q.count_messages(self, filter))

    async def aggregate_conversations(
        self,
        filter: MessageFilter,
        sort: ConversationSort,
        cursor: Optional[int],
        limit: int,
        preview_length: int = 120,
    ) -> list[Conversation]:
        return await self._run(
            "aggregate_conversations",
            message_q.aggregate_conversations(
                self, filter, sort, cursor, limit, preview_length
            ),
        )

    async def update_many(
        self, account_id: str, ids: list[int], patch: MessagePatch
    ) -> list[int]:
        if not ids:
            return []
        return await self._run(
            "update_many", message_q.update_messages(self, account_id, ids, patch)
        )

    async def delete_many(self, account_id: str, ids: list[int]) -> list[int]:
        if not ids:
            return []
        return await self._run(
            "delete_many", message_q.delete_messages(self, account_id, ids)
        )

    async def distinct_countries(self, filter: MessageFilter) -> list[str]:
        return await self._run(
            "distinct_countries", message_q.distinct_countries(self, filter)
        )
