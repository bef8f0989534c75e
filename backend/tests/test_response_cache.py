import pytest

from response_cache import CacheEntry, ResponseCache, cache_key


class Clock:
    def __init__(self, t=1_700_000_000_000.0):
        self.t = t

    def __call__(self):
        return self.t

    def advance(self, seconds):
        self.t += seconds * 1000.0


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def cache(clock):
    return ResponseCache(clock=clock)


def test_lookup_returns_newest_entry_for_key(cache, clock):
    cache.record('/api/top-companies', {'v': 1})
    clock.advance(10)
    cache.record('/api/top-companies', {'v': 2})
    cache.record('/api/market-movers', {'v': 3})
    entry = cache.lookup('/api/top-companies')
    assert entry.data == {'v': 2}
    assert cache.lookup('/api/global-markets') is None


def test_entries_expire_after_one_hour(cache, clock):
    cache.record('/api/market-indices', {'v': 1})
    clock.advance(3599)
    assert cache.lookup('/api/market-indices') is not None
    clock.advance(2)
    assert cache.lookup('/api/market-indices') is None


def test_lookup_never_returns_stale_entry_even_if_newer_key_exists(cache, clock):
    cache.record('/api/market-indices', {'v': 'old'})
    clock.advance(3700)
    cache.record('/api/market-movers', {'v': 'new'})
    assert cache.lookup('/api/market-indices') is None


def test_trim_keeps_most_recent_thirty(cache):
    for i in range(51):
        cache.record(f'/api/k{i}', i)
    assert len(cache) == 30
    assert [e.data for e in cache.snapshot()] == list(range(21, 51))


def test_trim_drops_expired_entries_first(cache, clock):
    for i in range(20):
        cache.record('/api/old', i)
    clock.advance(3601)
    for i in range(31):
        cache.record('/api/new', i)
    entries = cache.snapshot()
    assert len(entries) == 30
    assert all(e.endpoint_key == '/api/new' for e in entries)
    assert all(e.age_seconds(clock()) < 3600 for e in entries)


def test_no_trim_at_threshold(cache):
    for i in range(50):
        cache.record('/api/k', i)
    assert len(cache) == 50


def test_clear_returns_removed_count(cache):
    cache.record('/api/a', 1)
    cache.record('/api/b', 2)
    assert cache.clear() == 2
    assert len(cache) == 0


def test_stats(cache, clock):
    assert cache.stats()['entries'] == 0
    assert cache.stats()['oldest_age_seconds'] is None
    cache.record('/api/a', 1)
    clock.advance(30)
    cache.record('/api/b', 2)
    stats = cache.stats()
    assert stats['entries'] == 2
    assert stats['fresh_entries'] == 2
    assert stats['keys'] == ['/api/a', '/api/b']
    assert stats['oldest_age_seconds'] == 30.0
    assert stats['newest_age_seconds'] == 0.0
    assert stats['expiration_seconds'] == 3600.0


def test_captured_iso():
    entry = CacheEntry(data={}, captured_at_ms=0, endpoint_key='/api/a')
    assert entry.captured_iso() == '1970-01-01T00:00:00Z'


def test_cache_key_sorts_query_and_drops_endpoint():
    params = {'symbol': '^GSPC', 'endpoint': '/api/us-markets', 'a': '1'}
    assert cache_key('/api/us-markets', params) == '/api/us-markets?a=1&symbol=%5EGSPC'
    assert cache_key('/api/us-markets', params, include_query=False) == '/api/us-markets'
    assert cache_key('/api/us-markets', {}) == '/api/us-markets'
    assert cache_key('/api/us-markets', {'endpoint': '/api/us-markets'}) == '/api/us-markets'
