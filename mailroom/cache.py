"""
Short-lived cache for per-account aggregates.

Conversation lists and stats are comparatively expensive to compute, and a
busy inbox view asks for the same page repeatedly. Entries expire after a
TTL and every write to an account drops that account's entries, so a cached
page is never stale by more than one mutation.

Each account also carries a generation number that every invalidation
bumps. Readers take the generation before they query the store and hand it
back on ``set``; a result computed before a concurrent mutation is then
discarded instead of being cached over the fresh state.
"""

import logging
import time
from typing import Any, Callable, Hashable, Optional

logger = logging.getLogger(__name__)


class ConversationCache:
    """TTL cache keyed by ``(account_id, kind, params)``."""

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 1024,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        # Insertion ordered, so the first key is always the oldest write.
        self._entries: dict[tuple, tuple[float, Any]] = {}
        self._generations: dict[str, int] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def generation(self, account_id: str) -> int:
        return self._generations.get(account_id, 0)

    def get(self, account_id: str, kind: str, params: Hashable) -> Optional[Any]:
        if not self.enabled:
            return None
        key = (account_id, kind, params)
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(
        self,
        account_id: str,
        kind: str,
        params: Hashable,
        value: Any,
        generation: Optional[int] = None,
    ) -> bool:
        """Store ``value``; returns False when the write was dropped.

        A write tagged with a generation older than the account's current
        one raced with a mutation and is not stored.
        """
        if not self.enabled:
            return False
        if generation is not None and generation != self.generation(account_id):
            logger.debug(f"Dropped stale {kind} result for account {account_id}")
            return False

        now = self._clock()
        self._purge_expired(now)
        key = (account_id, kind, params)
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_entries:
            del self._entries[next(iter(self._entries))]
        self._entries[key] = (now + self.ttl_seconds, value)
        return True

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    def invalidate_account(self, account_id: str) -> int:
        self._generations[account_id] = self.generation(account_id) + 1
        stale = [key for key in self._entries if key[0] == account_id]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Dropped {len(stale)} cached entries for account {account_id}")
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
