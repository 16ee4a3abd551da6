"""Tests for the per-account TTL cache."""

from mailroom.cache import ConversationCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = ConversationCache(ttl_seconds=30, clock=clock)
    cache.set("a", "conversations", ("inbox",), ["page"])

    clock.now += 29
    assert cache.get("a", "conversations", ("inbox",)) == ["page"]

    clock.now += 1
    assert cache.get("a", "conversations", ("inbox",)) is None
    assert len(cache) == 0


def test_invalidate_only_touches_one_account():
    cache = ConversationCache()
    cache.set("a", "stats", None, 1)
    cache.set("a", "conversations", "x", 2)
    cache.set("b", "stats", None, 3)

    assert cache.invalidate_account("a") == 2
    assert cache.get("a", "stats", None) is None
    assert cache.get("b", "stats", None) == 3


def test_params_distinguish_entries():
    cache = ConversationCache()
    cache.set("a", "conversations", ("inbox", "recent"), 1)
    assert cache.get("a", "conversations", ("inbox", "unread")) is None


def test_zero_ttl_disables_cache():
    cache = ConversationCache(ttl_seconds=0)
    cache.set("a", "stats", None, 1)
    assert not cache.enabled
    assert cache.get("a", "stats", None) is None
    assert len(cache) == 0


def test_write_from_before_invalidation_is_dropped():
    cache = ConversationCache()
    generation = cache.generation("a")

    cache.invalidate_account("a")

    assert cache.set("a", "stats", None, "stale", generation) is False
    assert cache.get("a", "stats", None) is None
    assert cache.set("a", "stats", None, "fresh", cache.generation("a")) is True
    assert cache.get("a", "stats", None) == "fresh"


def test_generations_are_per_account():
    cache = ConversationCache()
    generation = cache.generation("b")

    cache.invalidate_account("a")

    assert cache.set("b", "stats", None, 3, generation) is True


def test_expired_entries_are_purged_on_write():
    clock = FakeClock()
    cache = ConversationCache(ttl_seconds=1, clock=clock)
    for offset in range(1000):
        cache.set("a", "conversations", ("cursor", offset), offset)

    clock.now += 10
    cache.set("a", "conversations", ("cursor", "last"), "last")

    assert len(cache) == 1


def test_size_is_capped_oldest_first():
    cache = ConversationCache(max_entries=2)
    cache.set("a", "conversations", 1, "one")
    cache.set("a", "conversations", 2, "two")
    cache.set("a", "conversations", 3, "three")

    assert len(cache) == 2
    assert cache.get("a", "conversations", 1) is None
    assert cache.get("a", "conversations", 3) == "three"
