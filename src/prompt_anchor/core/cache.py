"""In-memory TTL cache for labeling and suggestion results.

Entries expire lazily on read once older than the configured TTL. When the
cache is full, the single oldest *inserted* entry is evicted; reads never
refresh an entry's position.
"""

import hashlib
import logging
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: Five minutes
DEFAULT_TTL_MS: float = 300_000
DEFAULT_MAX_ENTRIES: int = 100

#: Hex characters kept from the SHA-256 document digest
DOCUMENT_HASH_LENGTH = 16


@dataclass
class CacheEntry(Generic[T]):
    """A cached value and the clock reading (seconds) at insertion."""

    data: T
    timestamp: float


@dataclass
class CacheStats:
    """Cache statistics."""

    entries: int
    max_entries: int
    ttl_ms: float
    hits: int
    misses: int
    expirations: int
    evictions: int


def generate_key(quote: str, left_ctx: str, right_ctx: str, document_hash: str) -> str:
    """Build a cache fingerprint from an anchor and a document hash.

    Each field is length-prefixed, so field contents can never be confused
    with separators: ``("a|b", "")`` and ``("a", "b|")`` yield distinct keys.
    """
    return "|".join(
        f"{len(part)}:{part}" for part in (quote, left_ctx, right_ctx, document_hash)
    )


def hash_document(text: str) -> str:
    """Stable hash of a full document, used as the last key component."""
    digest = hashlib.sha256(text.encode("utf-8", "surrogatepass")).hexdigest()
    return digest[:DOCUMENT_HASH_LENGTH]


class ResultCache(Generic[T]):
    """Bounded TTL cache with insertion-order eviction.

    Args:
        ttl_ms: Entry lifetime in milliseconds. An entry read exactly
            ``ttl_ms`` after insertion is still fresh.
        max_entries: Capacity. Must be at least 1.
        clock: Monotonic clock returning seconds; injectable for tests.
    """

    def __init__(
        self,
        ttl_ms: float = DEFAULT_TTL_MS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be > 0")
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_ms = ttl_ms
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[T]]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._expirations = 0
        self._evictions = 0

    generate_key = staticmethod(generate_key)
    hash_document = staticmethod(hash_document)

    def _is_fresh(self, entry: CacheEntry[T], now: float) -> bool:
        return (now - entry.timestamp) * 1000.0 <= self.ttl_ms

    def _lookup(self, key: str) -> Optional[CacheEntry[T]]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if not self._is_fresh(entry, self._clock()):
            del self._entries[key]
            self._expirations += 1
            self._misses += 1
            logger.debug("Cache entry expired: %s", key)
            return None

        self._hits += 1
        return entry

    def get(self, key: str, default: Optional[T] = None) -> Optional[T]:
        """Return the cached value, or ``default`` if absent or expired.

        Expired entries are removed as a side effect.
        """
        entry = self._lookup(key)
        return entry.data if entry is not None else default

    def set(self, key: str, value: T) -> None:
        """Insert ``value``, evicting the oldest-inserted entry at capacity.

        Re-setting an existing key replaces it and counts as a new insertion.
        """
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug("Cache full, evicted oldest entry: %s", evicted_key)

        self._entries[key] = CacheEntry(data=value, timestamp=self._clock())

    def has(self, key: str) -> bool:
        """True for a live entry, even one storing None (applies lazy expiry)."""
        return self._lookup(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def prune(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [k for k, e in self._entries.items() if not self._is_fresh(e, now)]
        for key in expired:
            del self._entries[key]
        self._expirations += len(expired)
        if expired:
            logger.debug("Pruned %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    @property
    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dict with cache statistics.
        """
        stats = CacheStats(
            entries=len(self._entries),
            max_entries=self.max_entries,
            ttl_ms=self.ttl_ms,
            hits=self._hits,
            misses=self._misses,
            expirations=self._expirations,
            evictions=self._evictions,
        )
        return asdict(stats)


__all__ = [
    "DEFAULT_TTL_MS",
    "DEFAULT_MAX_ENTRIES",
    "CacheEntry",
    "CacheStats",
    "ResultCache",
    "generate_key",
    "hash_document",
]
