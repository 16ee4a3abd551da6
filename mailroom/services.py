"""Wires configuration, store, and the conversation services together."""

import logging
from dataclasses import dataclass
from typing import Optional

from mailroom.accounts import AttachmentLinker, HttpAccountDirectory
from mailroom.cache import ConversationCache
from mailroom.config import DatabaseBackend, ServerConfig
from mailroom.conversations import ConversationService
from mailroom.db.memory import MemoryMessageStore
from mailroom.db.postgres import PostgresMessageStore
from mailroom.db.types import AccountDirectory, MessageStore
from mailroom.mutations import StateMutator
from mailroom.search import SearchService
from mailroom.stats import StatsService
from mailroom.threads import ThreadRenderer

logger = logging.getLogger(__name__)


def create_store(config: ServerConfig) -> MessageStore:
    db_config = config.database
    if db_config.backend == DatabaseBackend.MEMORY:
        return MemoryMessageStore(accounts=config.accounts.addresses)
    pg = db_config.postgres
    return PostgresMessageStore(
        host=pg.host,
        port=pg.port,
        database=pg.database,
        user=pg.user,
        password=pg.password,
        ssl_mode=pg.ssl_mode,
        min_pool_size=pg.min_pool_size,
        max_pool_size=pg.max_pool_size,
        query_timeout=db_config.query_timeout_seconds,
    )


def create_account_directory(config: ServerConfig, store: MessageStore) -> AccountDirectory:
    if config.accounts.service_url:
        return HttpAccountDirectory(
            config.accounts.service_url, timeout=config.accounts.timeout_seconds
        )
    return store


@dataclass
class Services:
    config: ServerConfig
    store: MessageStore
    accounts: AccountDirectory
    cache: ConversationCache
    conversations: ConversationService
    search: SearchService
    mutator: StateMutator
    stats: StatsService
    renderer: ThreadRenderer

    async def start(self) -> None:
        await self.store.initialize()
        for account_id, address in self.config.accounts.addresses.items():
            await self.store.add_account(account_id, address)

    async def close(self) -> None:
        if isinstance(self.accounts, HttpAccountDirectory):
            await self.accounts.close()
        await self.store.close()


def build_services(
    config: ServerConfig,
    store: Optional[MessageStore] = None,
    accounts: Optional[AccountDirectory] = None,
) -> Services:
    store = store or create_store(config)
    accounts = accounts or create_account_directory(config, store)
    cache = ConversationCache(
        ttl_seconds=config.cache.ttl_seconds, max_entries=config.cache.max_entries
    )
    conversations = ConversationService(store, accounts, cache, config.limits)
    return Services(
        config=config,
        store=store,
        accounts=accounts,
        cache=cache,
        conversations=conversations,
        search=SearchService(store, conversations, config.limits),
        mutator=StateMutator(store, cache, config.limits),
        stats=StatsService(store, conversations, cache),
        renderer=ThreadRenderer(AttachmentLinker(config.attachments.base_url)),
    )
