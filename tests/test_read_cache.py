"""
Tests for the process-local read cache.
"""
from clientsync.services.read_cache import ReadCache


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestReadCache:
    def test_get_missing(self):
        assert ReadCache().get("nope") is None

    def test_set_and_get(self):
        cache = ReadCache()
        cache.set("clients:list", [1, 2])
        assert cache.get("clients:list") == [1, 2]

    def test_expires_after_ttl(self):
        clock = _Clock()
        cache = ReadCache(ttl_seconds=300, clock=clock)
        cache.set("k", "v")
        clock.now += 299
        assert cache.get("k") == "v"
        clock.now += 1
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_invalidate_by_pattern(self):
        cache = ReadCache()
        cache.set("clients:list::", 1)
        cache.set("clients:id:CLI1", 2)
        cache.set("reports:list::100", 3)
        cache.set("stats:clients:reports:", 4)

        dropped = cache.invalidate("clients")

        assert dropped == 3
        assert cache.get("reports:list::100") == 3

    def test_make_key(self):
        assert ReadCache.make_key("clients", "list", None, 5) == "clients:list::5"

    def test_clear(self):
        cache = ReadCache()
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0
