##########################################################################################
#
# Script name: test_cache.py
#
# Description: Expiry and eviction in the in-memory TTL cache.
#
##########################################################################################

from market_tracker.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache = TTLCache(ttl=10, clock=clock)
    cache.set('btc', 'bitcoin')
    clock.now = 9.9
    assert cache.get('btc') == 'bitcoin'
    clock.now = 10.0
    assert cache.get('btc') is None
    assert len(cache) == 0


def test_evict_expired_counts_removed_entries() -> None:
    clock = FakeClock()
    cache = TTLCache(ttl=5, clock=clock)
    cache.set(1, 'a')
    clock.now = 3
    cache.set(2, 'b')
    clock.now = 6
    assert cache.evict_expired() == 1
    assert cache.get(2) == 'b'


def test_full_cache_drops_oldest_entry() -> None:
    clock = FakeClock()
    cache = TTLCache(ttl=100, max_entries=2, clock=clock)
    cache.set('a', 1)
    clock.now = 1
    cache.set('b', 2)
    clock.now = 2
    cache.set('c', 3)
    assert cache.get('a') is None
    assert cache.get('b') == 2
    assert cache.get('c') == 3

    cache.clear()
    assert len(cache) == 0
