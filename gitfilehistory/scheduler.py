"""Selection/fetch scheduler.

Turns selection changes into cache lookups or debounced background fetches
and guarantees that only the newest selection's result is ever delivered.

States per selection cycle::

    idle -> debouncing -> fetching -> delivered
    idle -> delivered                       (cache hit)

Every select() bumps the generation. A fetch whose generation is no longer
the latest still fills the cache but is never delivered.
"""
from __future__ import annotations

import logging
import threading
import traceback
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional

from .cache import DiffCache
from .errors import HistoryError
from .models import DiffFingerprint, FetchRequest, FetchResult

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.1

IDLE = "idle"
DEBOUNCING = "debouncing"
FETCHING = "fetching"
DELIVERED = "delivered"

READY = "ready"
ERROR = "error"


@dataclass(frozen=True)
class Delivery:
    """Result handed to the presentation layer for one generation."""

    generation: int
    fingerprint: Optional[DiffFingerprint]
    status: str
    result: Optional[FetchResult] = None
    error: Optional[HistoryError] = None

    @property
    def ok(self) -> bool:
        return self.status == READY


@dataclass(frozen=True)
class SchedulerSnapshot:
    state: str
    generation: int
    delivered: Optional[Delivery]

    @property
    def loading(self) -> bool:
        return self.state in (DEBOUNCING, FETCHING)


class FetchScheduler:
    """Debounced, generation-checked fetching of diffs for the current selection.

    fetch_fn computes a result for a fingerprint (normally
    DiffFetchPipeline.fetch). on_delivered is called from whichever thread
    completed the cycle, outside the scheduler lock.
    """

    def __init__(
        self,
        fetch_fn: Callable[[DiffFingerprint], FetchResult],
        cache: DiffCache,
        debounce: float = DEFAULT_DEBOUNCE,
        on_delivered: Optional[Callable[[Delivery], None]] = None,
        executor: Optional[Executor] = None,
        max_workers: int = 4,
    ) -> None:
        self.fetch_fn = fetch_fn
        self.cache = cache
        self.debounce = debounce
        self.on_delivered = on_delivered
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="diff-fetch")
        self._lock = threading.Lock()
        self._delivered_cond = threading.Condition(self._lock)
        self._generation = 0
        self._state = IDLE
        self._timer: Optional[threading.Timer] = None
        self._delivered: Optional[Delivery] = None
        self._closed = False
        self._notify_lock = threading.Lock()
        self._notified = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def snapshot(self) -> SchedulerSnapshot:
        with self._lock:
            return SchedulerSnapshot(self._state, self._generation, self._delivered)

    def select(self, fp: DiffFingerprint) -> int:
        """Record a selection change and return its generation.

        A cached result is delivered immediately; otherwise the fetch starts
        once the debounce interval passes without another selection.
        """
        cached = self.cache.lookup(fp)
        with self._lock:
            if self._closed:
                raise RuntimeError("scheduler is shut down")
            self._generation += 1
            request = FetchRequest(fp, self._generation)
            self._cancel_timer()
            if cached is not None:
                delivery = self._deliver(request, READY, result=cached)
            else:
                delivery = None
                self._state = DEBOUNCING
                if self.debounce > 0:
                    self._timer = threading.Timer(self.debounce, self._debounce_elapsed, args=(request,))
                    self._timer.daemon = True
                    self._timer.start()
        logger.debug(f"FetchScheduler.select: generation {request.generation} {fp.describe()} cached={cached is not None}")
        if delivery is not None:
            self._notify(delivery)
        elif self.debounce <= 0:
            self._debounce_elapsed(request)
        return request.generation

    def report(self, fp: Optional[DiffFingerprint], error: HistoryError) -> int:
        """Deliver an error for a selection whose fingerprint could not be built."""
        with self._lock:
            self._generation += 1
            self._cancel_timer()
            delivery = self._deliver(FetchRequest(fp, self._generation), ERROR, error=error)
        self._notify(delivery)
        return delivery.generation

    def _cancel_timer(self) -> None:
        # caller holds the lock
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _debounce_elapsed(self, request: FetchRequest) -> None:
        cached = self.cache.lookup(request.fingerprint)
        with self._lock:
            if request.generation != self._generation or self._closed:
                return
            self._timer = None
            if cached is not None:
                delivery = self._deliver(request, READY, result=cached)
            else:
                delivery = None
                self._state = FETCHING
                self._executor.submit(self._run, request)
        if delivery is not None:
            self._notify(delivery)

    def _run(self, request: FetchRequest) -> None:
        fp = request.fingerprint
        try:
            result = self.cache.get_or_fetch(fp, lambda: self.fetch_fn(fp))
        except HistoryError as e:
            logger.debug(f"FetchScheduler._run: generation {request.generation} failed: {e}")
            self._complete(request, ERROR, error=e)
            return
        except Exception as e:
            logger.debug(f"FetchScheduler._run: unexpected exception: {e}")
            logger.debug(traceback.format_exc())
            self._complete(request, ERROR, error=HistoryError(str(e)))
            return
        self._complete(request, READY, result=result)

    def _complete(self, request: FetchRequest, status: str, result=None, error=None) -> None:
        with self._lock:
            if request.generation != self._generation:
                logger.debug(
                    f"FetchScheduler._complete: dropping generation {request.generation}, "
                    f"latest is {self._generation}"
                )
                return
            delivery = self._deliver(request, status, result=result, error=error)
        self._notify(delivery)

    def _deliver(self, request: FetchRequest, status: str, result=None, error=None) -> Delivery:
        # caller holds the lock
        delivery = Delivery(request.generation, request.fingerprint, status, result, error)
        if self._delivered is None or delivery.generation > self._delivered.generation:
            self._delivered = delivery
        self._state = DELIVERED
        self._delivered_cond.notify_all()
        return delivery

    def _notify(self, delivery: Delivery) -> None:
        if self.on_delivered is None:
            return
        with self._notify_lock:
            # never hand the callback an older generation than one it already saw
            if delivery.generation <= self._notified:
                return
            self._notified = delivery.generation
        try:
            self.on_delivered(delivery)
        except Exception as e:
            logger.debug(f"FetchScheduler._notify: on_delivered raised: {e}")
            logger.debug(traceback.format_exc())

    def wait(self, generation: Optional[int] = None, timeout: Optional[float] = None) -> Optional[Delivery]:
        """Block until generation (default: the latest) is delivered."""
        with self._lock:
            target = self._generation if generation is None else generation
            self._delivered_cond.wait_for(
                lambda: self._delivered is not None and self._delivered.generation >= target,
                timeout=timeout,
            )
            return self._delivered

    def reset(self) -> None:
        """Forget the delivered result, e.g. after the history was reloaded."""
        with self._lock:
            self._cancel_timer()
            self._generation += 1
            self._delivered = None
            self._state = IDLE

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
            self._cancel_timer()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
