"""Bounded LRU cache of fetch results with request coalescing."""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future
from typing import Callable, Optional

from .models import DiffFingerprint, FetchResult

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 50


class DiffCache:
    """Fingerprint -> result, evicting the least recently used entry.

    The OrderedDict order is the recency order (last = most recent). All
    mutation happens under one lock; cached values are immutable so a value
    handed out stays valid after its entry is evicted.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"cache capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._entries: "OrderedDict[DiffFingerprint, FetchResult]" = OrderedDict()
        self._inflight: dict[DiffFingerprint, Future] = {}
        self._lock = threading.Lock()
        self._epoch = 0
        self.hits = 0
        self.misses = 0
        self.coalesced = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, fp: DiffFingerprint) -> bool:
        with self._lock:
            return fp in self._entries

    def lookup(self, fp: DiffFingerprint) -> Optional[FetchResult]:
        """Cached result for fp (promoted to most recent), or None."""
        with self._lock:
            result = self._entries.get(fp)
            if result is not None:
                self._entries.move_to_end(fp)
                self.hits += 1
            return result

    def put(self, fp: DiffFingerprint, result: FetchResult) -> None:
        with self._lock:
            self._insert(fp, result)

    def _insert(self, fp: DiffFingerprint, result: FetchResult) -> None:
        # caller holds the lock
        self._entries[fp] = result
        self._entries.move_to_end(fp)
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"DiffCache: evicted {evicted.describe()}")

    def get_or_fetch(self, fp: DiffFingerprint, fetch_fn: Callable[[], FetchResult]) -> FetchResult:
        """Return the cached result or compute it with fetch_fn.

        Concurrent callers for the same fingerprint share one fetch_fn call.
        A raised exception is not cached; every waiting caller sees it.
        """
        with self._lock:
            result = self._entries.get(fp)
            if result is not None:
                self._entries.move_to_end(fp)
                self.hits += 1
                return result
            pending = self._inflight.get(fp)
            if pending is None:
                pending = Future()
                self._inflight[fp] = pending
                epoch = self._epoch
                owner = True
                self.misses += 1
            else:
                owner = False
                self.coalesced += 1

        if not owner:
            logger.debug(f"DiffCache.get_or_fetch: waiting on in-flight {fp.describe()}")
            return pending.result()

        try:
            result = fetch_fn()
        except BaseException as e:
            with self._lock:
                self._release(fp, pending)
            pending.set_exception(e)
            raise
        with self._lock:
            # a clear() during the fetch means the result may be stale
            if epoch == self._epoch:
                self._insert(fp, result)
            self._release(fp, pending)
        pending.set_result(result)
        return result

    def _release(self, fp: DiffFingerprint, pending: Future) -> None:
        # caller holds the lock; a clear() may have handed fp to a newer fetch
        if self._inflight.get(fp) is pending:
            del self._inflight[fp]

    def clear(self) -> None:
        """Drop every entry and forget in-flight fetches.

        A fetch already running still answers the callers that joined it, but
        its result is not stored and later callers start a fetch of their own.
        """
        with self._lock:
            self._entries.clear()
            self._inflight.clear()
            self._epoch += 1
            self.hits = self.misses = self.coalesced = 0

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self.capacity,
                "hits": self.hits,
                "misses": self.misses,
                "coalesced": self.coalesced,
            }
