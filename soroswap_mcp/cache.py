"""
Price cache with per-entry expiry.

Entries are evicted in insertion order when the cache is full: reads never move an
entry, so this is not an LRU. Expired entries are dropped when read, or in bulk by
sweep_expired(), which the hosting process is expected to call periodically.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from mcp.server.fastmcp.utilities.logging import get_logger

from .models import TokenPrice

logger = get_logger(__name__)

DEFAULT_TTL = 60.0
DEFAULT_MAX_SIZE = 1000


@dataclass
class PriceCacheEntry:
    price: TokenPrice
    inserted_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return now > self.expires_at


class PriceCache:
    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock
        # dict keeps insertion order, which is the eviction order
        self._entries: Dict[str, PriceCacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._last_insert: Optional[float] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.expired(self._clock())

    def get(self, key: str) -> Optional[TokenPrice]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            self._misses += 1
            return None
        self._hits += 1
        return entry.price

    def put(self, key: str, price: TokenPrice) -> None:
        if key in self._entries:
            # Overwrites take the newest slot in the eviction order
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug(f"Price cache full, evicted {oldest}")
        now = self._clock()
        self._entries[key] = PriceCacheEntry(price=price, inserted_at=now, expires_at=now + self.ttl)
        self._last_insert = time.time()

    def invalidate_all(self) -> None:
        self._entries.clear()
        logger.info("Price cache cleared")

    def sweep_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Removed {len(expired)} expired price cache entries")
        return len(expired)

    def stats(self) -> Dict[str, object]:
        lookups = self._hits + self._misses
        return {
            "size": len(self._entries),
            "maxSize": self.max_size,
            "ttl": self.ttl,
            "hits": self._hits,
            "misses": self._misses,
            "hitRate": round(self._hits / lookups, 4) if lookups else 0.0,
            "lastInsert": self._last_insert,
        }
