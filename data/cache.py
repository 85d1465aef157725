# /// script
# requires-python = ">=3.12"
# dependencies = ["pydantic>=2.0"]
# ///
"""In-memory result cache for canonicalized plate appearances.

Memoizes canonicalizer output keyed by a content hash of the segment text,
the game context, the model identifier and the canonicalization mode.  The
cache is bounded: once it holds ``capacity`` entries, writing a new key
evicts the least recently used one.  Nothing is persisted; a cache lives for
the process that created it and is passed by reference to whoever needs it.

Usage::

    from data.cache import ResultCache, make_key

    cache = ResultCache(capacity=200)
    key = make_key(segment, context.as_prompt_dict(), "claude-sonnet-4-5", "model")
    cache.set(key, record)
    hit = cache.get(key)          # a copy of record, or None
"""

from __future__ import annotations

import hashlib
import json
import threading
from collections import OrderedDict
from typing import Any

from models import PlateAppearanceCanonical

DEFAULT_CAPACITY: int = 200
KEY_VERSION: int = 1


# ---------------------------------------------------------------------------
# Key generation
# ---------------------------------------------------------------------------

def make_key(
    segment: str,
    context: dict[str, Any] | None = None,
    model: str = "",
    mode: str = "model",
) -> str:
    """Build a deterministic cache key for one canonicalization request.

    The key is a SHA-256 hex digest of the canonicalised JSON representation
    of the inputs, so the same segment under the same context, model and mode
    always maps to the same key regardless of dict ordering.  No clock value
    takes part in it.
    """
    canonical = json.dumps(
        {"v": KEY_VERSION, "seg": segment, "ctx": context or {}, "model": model, "mode": mode},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Cache class
# ---------------------------------------------------------------------------

class ResultCache:
    """Bounded LRU map from request hash to canonical record.

    Reads and writes are point operations guarded by a lock, so one instance
    can be shared by every canonicalization worker thread.  Records are
    copied on the way in and on the way out; later mutation of a returned
    record (name backfill, alias resolution) never reaches the cache.

    Args:
        capacity: Maximum number of entries kept.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._entries: OrderedDict[str, PlateAppearanceCanonical] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    # -- public API --------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, key: str) -> PlateAppearanceCanonical | None:
        """Return a copy of the cached record and mark it most recently used."""
        with self._lock:
            record = self._entries.get(key)
            if record is None:
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return record.model_copy(deep=True)

    def set(self, key: str, record: PlateAppearanceCanonical) -> None:
        """Store a copy of *record*, evicting the least recently used entry if full."""
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            elif len(self._entries) >= self._capacity:
                self._entries.popitem(last=False)
                self._evictions += 1
            self._entries[key] = record.model_copy(deep=True)

    def has(self, key: str) -> bool:
        """Check for *key* without touching its recency."""
        with self._lock:
            return key in self._entries

    def invalidate(self, key: str) -> bool:
        """Remove a single entry.  Returns ``True`` if one was removed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        """Drop every entry and return how many there were."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "capacity": self._capacity,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)
