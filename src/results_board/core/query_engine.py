from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, Protocol, Sequence, Tuple

import logging

from results_board.config import QUERY_DEBOUNCE_SECONDS
from results_board.core.normalizer import StudentRecord
from results_board.core.store import DatasetStore

logger = logging.getLogger(__name__)


class _Handle(Protocol):
    def cancel(self) -> Any: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, fn: Callable[[], None]) -> _Handle: ...


class ThreadingScheduler:
    """Runs each callback on a daemon threading.Timer."""

    def call_later(self, delay: float, fn: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, fn)
        timer.daemon = True
        timer.start()
        return timer


@dataclass(frozen=True)
class QueryLaneState:
    """
    What one search box currently shows.

    suggestions are the records whose name contains the query (rank order);
    resolved is the record whose name equals the query, ignoring case.
    """
    query: str = ""
    suggestions: Tuple[StudentRecord, ...] = ()
    resolved: Optional[StudentRecord] = None


def find_matches(
    records: Sequence[StudentRecord],
    query: str,
) -> Tuple[Tuple[StudentRecord, ...], Optional[StudentRecord]]:
    needle = query.casefold()
    suggestions = tuple(r for r in records if needle in r.name.casefold())
    resolved = next((r for r in suggestions if r.name.casefold() == needle), None)
    return suggestions, resolved


class QueryLane:
    """
    One independent name search with debounced evaluation.

    Every submission bumps a sequence number and restarts the quiet-period
    timer. An evaluation only writes its result if its sequence number is
    still the latest, so late finishers never overwrite newer input.
    """

    def __init__(
        self,
        name: str,
        store: DatasetStore,
        debounce_seconds: float = QUERY_DEBOUNCE_SECONDS,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.name = name
        self.evaluations = 0
        self._store = store
        self._debounce_seconds = debounce_seconds
        self._scheduler: Scheduler = scheduler or ThreadingScheduler()
        self._lock = threading.Lock()
        self._state = QueryLaneState()
        self._seq = 0
        self._pending: Optional[Tuple[_Handle, int, str]] = None
        store.add_reset_listener(self.clear)

    @property
    def state(self) -> QueryLaneState:
        return self._state

    @property
    def resolved(self) -> Optional[StudentRecord]:
        return self._state.resolved

    def submit_query(self, text: Optional[str]) -> None:
        text = text or ""
        with self._lock:
            self._seq += 1
            seq = self._seq
            self._cancel_pending()

            if not text:
                self._state = QueryLaneState()
                return

            self._state = replace(self._state, query=text)
            if not self._store.loaded:
                logger.debug("Lane %s: dataset not loaded, search skipped.", self.name)
                return

            handle = self._scheduler.call_later(
                self._debounce_seconds,
                lambda: self._evaluate(seq, text),
            )
            self._pending = (handle, seq, text)

    def flush(self) -> QueryLaneState:
        """Run the pending search now instead of waiting for the timer."""
        with self._lock:
            pending = self._pending
            self._cancel_pending()
        if pending is not None:
            _, seq, text = pending
            self._evaluate(seq, text)
        return self._state

    def clear(self) -> None:
        with self._lock:
            self._seq += 1
            self._cancel_pending()
            self._state = QueryLaneState()

    def _cancel_pending(self) -> None:
        # caller holds self._lock
        if self._pending is not None:
            self._pending[0].cancel()
            self._pending = None

    def _evaluate(self, seq: int, text: str) -> None:
        with self._lock:
            if seq != self._seq:
                return
            self._pending = None

        if not self._store.loaded:
            return

        suggestions, resolved = find_matches(self._store.snapshot.records, text)

        with self._lock:
            if seq != self._seq:
                logger.debug("Lane %s: dropping stale result for %r.", self.name, text)
                return
            self.evaluations += 1
            self._state = QueryLaneState(query=text, suggestions=suggestions, resolved=resolved)


@dataclass
class QueryLanes:
    """The three search boxes: single lookup and the two comparison slots."""
    single: QueryLane
    compare_a: QueryLane
    compare_b: QueryLane

    def comparison(self) -> Optional[Tuple[StudentRecord, StudentRecord]]:
        a = self.compare_a.resolved
        b = self.compare_b.resolved
        if a is None or b is None:
            return None
        return a, b


def build_lanes(
    store: DatasetStore,
    debounce_seconds: float = QUERY_DEBOUNCE_SECONDS,
    scheduler: Optional[Scheduler] = None,
) -> QueryLanes:
    return QueryLanes(
        single=QueryLane("single", store, debounce_seconds, scheduler),
        compare_a=QueryLane("compare_a", store, debounce_seconds, scheduler),
        compare_b=QueryLane("compare_b", store, debounce_seconds, scheduler),
    )
