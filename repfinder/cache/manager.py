"""Tiered, event-invalidated cache for resolution results.

Independent partitions (categories), each with its own TTL class:

  location, jurisdiction                 historical  (30 days)
  federal-reps, state-reps,
  county-reps, municipal-reps            active      (6 hours)
  committees                             metadata    (24 hours)

Reads never block and never raise: expired entries are evicted lazily and
a payload that fails to deserialize is dropped and reported as a miss.

Writes are fenced so the freshest fetch wins. An entry stores the time
its fetch *started*; a write is rejected when its fetch started before
the stored entry's, or before the key (or whole partition) was last
invalidated. A slow fetch that began before an invalidation event can
therefore never resurrect stale data.

The clock is injectable (seconds as float), like the circuit breaker's.
"""

import json
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

LEVEL_CATEGORIES: dict[str, str] = {
    "federal": "federal-reps",
    "state": "state-reps",
    "county": "county-reps",
    "municipal": "municipal-reps",
}

REP_CATEGORIES: tuple[str, ...] = tuple(LEVEL_CATEGORIES.values())

CATEGORY_TTL_CLASS: dict[str, str] = {
    "location": "historical",
    "jurisdiction": "historical",
    **{category: "active" for category in REP_CATEGORIES},
    "committees": "metadata",
}

# Partitions keyed by postal code; committees are keyed by representative id.
POSTAL_KEYED: frozenset[str] = frozenset({"location", "jurisdiction", *REP_CATEGORIES})

DEFAULT_TTL_SECONDS: dict[str, float] = {
    "active": 6 * 3600,
    "historical": 30 * 86400,
    "metadata": 24 * 3600,
}

DEFAULT_MAX_ENTRIES = 5000

# event name -> (directly invalidated categories, cascaded categories)
DEFAULT_EVENTS: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "representative_update": (REP_CATEGORIES, ("committees",)),
    "district_boundary_change": (("location", "jurisdiction"), REP_CATEGORIES),
    "incorporation_change": (("jurisdiction",), ("county-reps", "municipal-reps")),
}


@dataclass
class CacheEntry:
    """One cached payload. ``payload`` is held in serialized (JSON) form."""

    category: str
    key: str
    payload: str
    ttl_class: str
    cached_at: float
    tags: frozenset[str] = field(default_factory=frozenset)
    hits: int = 0


@dataclass
class _Partition:
    name: str
    ttl_class: str
    max_entries: int
    entries: OrderedDict = field(default_factory=OrderedDict)
    invalidated_at: float = float("-inf")
    key_invalidated_at: dict[str, float] = field(default_factory=dict)
    hits: int = 0
    misses: int = 0
    writes: int = 0
    rejected_writes: int = 0
    evictions: int = 0
    expirations: int = 0
    corrupt: int = 0


class TieredCacheManager:
    """Partitioned TTL cache with fenced writes and event invalidation.

    Args:
        config: Resolver configuration dict (reads the "cache" section:
                ``ttl_seconds`` per TTL class and ``max_entries``).
        clock: Callable returning time in seconds. Defaults to time.time.
               Inject a mock for deterministic tests.
    """

    def __init__(self, config: dict | None = None, clock: Callable[[], float] | None = None):
        cache_cfg = (config or {}).get("cache", {})
        self.ttl_seconds = {**DEFAULT_TTL_SECONDS, **cache_cfg.get("ttl_seconds", {})}
        max_entries = cache_cfg.get("max_entries", DEFAULT_MAX_ENTRIES)
        self._clock = clock or time.time
        self._write_lock = threading.Lock()
        self._partitions: dict[str, _Partition] = {
            name: _Partition(name=name, ttl_class=ttl_class, max_entries=max_entries)
            for name, ttl_class in CATEGORY_TTL_CLASS.items()
        }
        self._events: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = dict(DEFAULT_EVENTS)

    def now(self) -> float:
        """Current time on the cache's clock; use it to stamp fetch starts."""
        return self._clock()

    # -- Reads --------------------------------------------------------------

    def get(self, category: str, key: str):
        """Return the deserialized payload, or None on miss / expiry / corruption."""
        partition = self._partition(category)
        entry = partition.entries.get(key)
        if entry is None:
            partition.misses += 1
            return None

        if self._clock() - entry.cached_at >= self.ttl_seconds[entry.ttl_class]:
            partition.entries.pop(key, None)
            partition.expirations += 1
            partition.misses += 1
            logger.debug("Cache expired %s/%s", category, key)
            return None

        try:
            payload = json.loads(entry.payload)
        except (TypeError, ValueError) as exc:
            partition.entries.pop(key, None)
            partition.corrupt += 1
            partition.misses += 1
            logger.warning("Discarding corrupt cache entry %s/%s: %s", category, key, exc)
            return None

        entry.hits += 1
        partition.hits += 1
        try:
            partition.entries.move_to_end(key)
        except KeyError:
            pass  # evicted concurrently; the payload we read is still valid
        return payload

    def peek(self, category: str, key: str) -> CacheEntry | None:
        """The raw entry (no expiry check, no hit accounting)."""
        return self._partition(category).entries.get(key)

    def keys(self, category: str) -> list[str]:
        return list(self._partition(category).entries)

    # -- Writes -------------------------------------------------------------

    def put(
        self,
        category: str,
        key: str,
        payload,
        fetch_started_at: float | None = None,
        tags: Iterable[str] = (),
    ) -> bool:
        """Store a payload if it is the freshest known answer.

        Args:
            category: Partition name.
            key: Entry key within the partition.
            payload: JSON-serializable value.
            fetch_started_at: When the fetch that produced the payload began.
                Defaults to now.
            tags: Labels for cross-partition invalidation (e.g. "zip:95814").

        Returns:
            True if stored, False if the write was fenced out.
        """
        partition = self._partition(category)
        started = self._clock() if fetch_started_at is None else fetch_started_at
        try:
            serialized = json.dumps(payload, sort_keys=True)
        except (TypeError, ValueError) as exc:
            logger.error("Refusing to cache unserializable payload %s/%s: %s", category, key, exc)
            return False

        with self._write_lock:
            existing = partition.entries.get(key)
            if existing is not None and started < existing.cached_at:
                partition.rejected_writes += 1
                logger.debug(
                    "Rejected stale write %s/%s: fetch started %.3f < cached %.3f",
                    category, key, started, existing.cached_at,
                )
                return False

            fence = max(partition.invalidated_at, partition.key_invalidated_at.get(key, float("-inf")))
            if started < fence:
                partition.rejected_writes += 1
                logger.debug(
                    "Rejected write %s/%s: fetch started %.3f before invalidation at %.3f",
                    category, key, started, fence,
                )
                return False

            partition.entries[key] = CacheEntry(
                category=category,
                key=key,
                payload=serialized,
                ttl_class=partition.ttl_class,
                cached_at=started,
                tags=frozenset(tags),
            )
            partition.entries.move_to_end(key)
            partition.writes += 1

            while len(partition.entries) > partition.max_entries:
                evicted_key, _ = partition.entries.popitem(last=False)
                partition.evictions += 1
                logger.debug("Evicted LRU entry %s/%s", category, evicted_key)
        return True

    # -- Invalidation -------------------------------------------------------

    def invalidate(self, category: str, key: str | None = None) -> int:
        """Drop one key, or the whole partition. Returns entries removed."""
        partition = self._partition(category)
        with self._write_lock:
            now = self._clock()
            if key is None:
                removed = len(partition.entries)
                partition.entries.clear()
                partition.key_invalidated_at.clear()
                partition.invalidated_at = now
            else:
                removed = 1 if partition.entries.pop(key, None) is not None else 0
                partition.key_invalidated_at[key] = now
        logger.debug("Invalidated %s/%s (%d entries)", category, key or "*", removed)
        return removed

    def register_event(
        self, name: str, categories: Iterable[str], cascade: Iterable[str] = (),
    ) -> None:
        """Declare which partitions an invalidation event clears."""
        categories, cascade = tuple(categories), tuple(cascade)
        for category in categories + cascade:
            self._partition(category)
        self._events[name] = (categories, cascade)

    def emit(self, event: str, key: str | None = None) -> int:
        """Apply an invalidation event, optionally scoped to one postal code.

        Key scoping applies to every postal-keyed partition the event touches;
        partitions keyed otherwise (committees) are cleared entirely.

        Raises:
            KeyError: unknown event name.
        """
        if event not in self._events:
            raise KeyError(f"Unknown cache event '{event}'")
        categories, cascade = self._events[event]
        removed = 0
        for category in categories + cascade:
            scoped_key = key if category in POSTAL_KEYED else None
            removed += self.invalidate(category, scoped_key)
        logger.info(
            "Cache event %s%s: %d entries invalidated (%s, cascade %s)",
            event, f" [{key}]" if key else "", removed,
            ", ".join(categories), ", ".join(cascade) or "none",
        )
        return removed

    def invalidate_tag(self, tag: str) -> int:
        """Drop every entry carrying ``tag``, across all partitions."""
        removed = 0
        with self._write_lock:
            now = self._clock()
            for partition in self._partitions.values():
                doomed = [k for k, e in partition.entries.items() if tag in e.tags]
                for k in doomed:
                    del partition.entries[k]
                    partition.key_invalidated_at[k] = now
                removed += len(doomed)
        logger.info("Invalidated tag %s: %d entries", tag, removed)
        return removed

    def clear(self) -> None:
        for category in self._partitions:
            self.invalidate(category)

    # -- Introspection ------------------------------------------------------

    def stats(self) -> dict[str, dict]:
        return {
            name: {
                "size": len(p.entries),
                "ttl_class": p.ttl_class,
                "hits": p.hits,
                "misses": p.misses,
                "writes": p.writes,
                "rejected_writes": p.rejected_writes,
                "evictions": p.evictions,
                "expirations": p.expirations,
                "corrupt": p.corrupt,
            }
            for name, p in self._partitions.items()
        }

    def _partition(self, category: str) -> _Partition:
        try:
            return self._partitions[category]
        except KeyError:
            raise KeyError(f"Unknown cache category '{category}'") from None
