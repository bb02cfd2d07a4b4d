"""
Match Cache

In-process, TTL-bounded memoization of LLM match results per (source, target)
pair. Owned by the orchestrator for the lifetime of the process.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable

from ..config import GEMINI_MODEL, MATCH_CACHE_TTL
from ..schemas.match import InterviewQuestion, MatchFeedback

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheKey:
    """
    source: the querying entity id, or "q:<fingerprint>" for free-text queries.
    target: the matched entity id.
    model_version: the configured scoring model. Lookups stay stable when the
    client falls back to a discovered model; the entry records which one served it.
    """
    source: str
    target: str
    model_version: str = GEMINI_MODEL

    def involves(self, entity_id: str) -> bool:
        return entity_id in (self.source, self.target)


@dataclass(frozen=True)
class CacheEntry:
    score: int
    feedback: MatchFeedback
    questions: list[InterviewQuestion] | None
    created_at: float
    served_model: str = ""


class MatchCache:
    def __init__(self, ttl: timedelta = MATCH_CACHE_TTL, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.clock = clock
        self._lock = threading.Lock()
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def is_fresh(self, entry: CacheEntry) -> bool:
        return (self.clock() - entry.created_at) < self.ttl.total_seconds()

    def get(self, key: CacheKey) -> CacheEntry | None:
        """Return a valid entry or None. Stale entries stay stored but are never returned."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self.is_fresh(entry):
                self._hits += 1
                logger.debug("Cache HIT %s -> %s score=%s", key.source, key.target, entry.score)
                return entry
            self._misses += 1
        if entry is not None:
            logger.debug("Cache expired for %s -> %s", key.source, key.target)
        return None

    def put(self, key: CacheKey, entry: CacheEntry) -> None:
        # Whole-entry replacement; last write wins.
        with self._lock:
            self._entries[key] = entry

    def store(
        self,
        key: CacheKey,
        *,
        score: int,
        feedback: MatchFeedback,
        questions: list[InterviewQuestion] | None,
        served_model: str = "",
    ) -> CacheEntry:
        entry = CacheEntry(
            score=int(score),
            feedback=feedback,
            questions=questions,
            created_at=self.clock(),
            served_model=served_model,
        )
        self.put(key, entry)
        return entry

    def invalidate_entity(self, entity_id: str) -> int:
        """Drop every entry where entity_id is the source or the target."""
        with self._lock:
            keys = [k for k in self._entries if k.involves(entity_id)]
            for k in keys:
                del self._entries[k]
        if keys:
            logger.info("Invalidated %s cache entries for entity=%s", len(keys), entity_id)
        return len(keys)

    def purge_stale(self) -> int:
        with self._lock:
            keys = [k for k, e in self._entries.items() if not self.is_fresh(e)]
            for k in keys:
                del self._entries[k]
        if keys:
            logger.info("Cleared %s stale cache entries", len(keys))
        return len(keys)

    def size(self) -> int:
        """Stored entries, stale ones included."""
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            entries = list(self._entries.values())
            hits, misses = self._hits, self._misses
        fresh = [e for e in entries if self.is_fresh(e)]
        avg = sum(e.score for e in fresh) / len(fresh) if fresh else 0
        return {
            "total_cached_matches": len(entries),
            "fresh_entries": len(fresh),
            "hits": hits,
            "misses": misses,
            "average_cached_score": round(avg, 2),
            "ttl_seconds": int(self.ttl.total_seconds()),
        }
