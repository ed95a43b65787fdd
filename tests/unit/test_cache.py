import pytest

from soroswap_mcp.cache import PriceCache
from soroswap_mcp.models import TokenPrice


def price(symbol: str, value: float = 1.0) -> TokenPrice:
    return TokenPrice(symbol=symbol, price=value, price_usd=value)


def test_put_then_get(clock):
    cache = PriceCache(ttl=60, max_size=10, clock=clock)
    cache.put("XLM-USDC", price("XLM/USDC", 0.12))

    assert cache.get("XLM-USDC").price == 0.12
    assert "XLM-USDC" in cache
    assert len(cache) == 1


def test_entries_expire_after_ttl(clock):
    cache = PriceCache(ttl=60, max_size=10, clock=clock)
    cache.put("single-XLM", price("XLM"))

    clock.advance(60)
    assert cache.get("single-XLM") is not None

    clock.advance(0.001)
    assert cache.get("single-XLM") is None
    assert len(cache) == 0


def test_full_cache_evicts_oldest_insert(clock):
    cache = PriceCache(ttl=60, max_size=3, clock=clock)
    for key in ("a", "b", "c"):
        cache.put(key, price(key))

    # Reads do not protect an entry from eviction
    cache.get("a")
    cache.put("d", price("d"))

    assert "a" not in cache
    assert all(key in cache for key in ("b", "c", "d"))
    assert len(cache) == 3


def test_overwrite_does_not_evict(clock):
    cache = PriceCache(ttl=60, max_size=2, clock=clock)
    cache.put("a", price("a", 1.0))
    cache.put("b", price("b"))

    cache.put("a", price("a", 2.0))

    assert len(cache) == 2
    assert cache.get("a").price == 2.0

    # "b" is now the oldest
    cache.put("c", price("c"))
    assert "b" not in cache
    assert "a" in cache


def test_overwrite_restarts_ttl(clock):
    cache = PriceCache(ttl=60, max_size=2, clock=clock)
    cache.put("a", price("a"))
    clock.advance(50)
    cache.put("a", price("a"))
    clock.advance(50)

    assert cache.get("a") is not None


def test_sweep_expired(clock):
    cache = PriceCache(ttl=60, max_size=10, clock=clock)
    cache.put("old", price("old"))
    clock.advance(30)
    cache.put("new", price("new"))
    clock.advance(31)

    assert cache.sweep_expired() == 1
    assert "new" in cache
    assert cache.sweep_expired() == 0


def test_invalidate_all(clock):
    cache = PriceCache(ttl=60, max_size=10, clock=clock)
    cache.put("a", price("a"))
    cache.put("b", price("b"))

    cache.invalidate_all()

    assert len(cache) == 0
    assert cache.get("a") is None


def test_stats(clock):
    cache = PriceCache(ttl=60, max_size=10, clock=clock)
    assert cache.stats()["lastInsert"] is None
    assert cache.stats()["hitRate"] == 0.0

    cache.put("a", price("a"))
    cache.get("a")
    cache.get("a")
    cache.get("missing")

    stats = cache.stats()
    assert stats["size"] == 1
    assert stats["maxSize"] == 10
    assert stats["ttl"] == 60
    assert stats["hits"] == 2
    assert stats["misses"] == 1
    assert stats["hitRate"] == pytest.approx(0.6667)
    assert stats["lastInsert"] is not None


def test_rejects_zero_capacity():
    with pytest.raises(ValueError):
        PriceCache(max_size=0)
