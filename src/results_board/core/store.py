from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import logging

from results_board.core.normalizer import StudentRecord
from results_board.core.ranking import EmptyDatasetError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatasetSnapshot:
    """
    A ranked dataset and its averages from one successful load.

    Snapshots are never modified; a new load publishes a new snapshot.
    """
    records: Tuple[StudentRecord, ...] = ()
    averages: Dict[str, str] = field(default_factory=dict)
    generation: int = 0

    def find(self, name: str) -> Optional[StudentRecord]:
        key = (name or "").casefold()
        for record in self.records:
            if record.name.casefold() == key:
                return record
        return None

    def top_ranker(self) -> StudentRecord:
        if not self.records:
            raise EmptyDatasetError("No results loaded, so there is no top ranker.")
        return self.records[0]


EMPTY_SNAPSHOT = DatasetSnapshot()


class DatasetStore:
    """
    Holds the current results snapshot and its load status.

    All writes go through begin_load / publish / fail_load. begin_load hands
    out a ticket; publish and fail_load only take effect for the ticket of the
    most recently started load, so a slow older load cannot overwrite a newer
    one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: DatasetSnapshot = EMPTY_SNAPSHOT
        self._loaded = False
        self._loading = False
        self._ticket = 0
        self._last_error: Optional[BaseException] = None
        self._reset_listeners: List[Callable[[], None]] = []

    # -- read side ----------------------------------------------------------

    @property
    def snapshot(self) -> DatasetSnapshot:
        return self._snapshot

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    def add_reset_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback run whenever the dataset is cleared or replaced."""
        self._reset_listeners.append(callback)

    # -- write side ---------------------------------------------------------

    def begin_load(self) -> int:
        with self._lock:
            self._ticket += 1
            ticket = self._ticket
            self._loading = True
            self._loaded = False
            self._snapshot = EMPTY_SNAPSHOT
            self._last_error = None
        logger.info("Dataset load %d started.", ticket)
        self._notify_reset()
        return ticket

    def publish(
        self,
        records: Sequence[StudentRecord],
        averages: Dict[str, str],
        ticket: Optional[int] = None,
    ) -> bool:
        with self._lock:
            if ticket is not None and ticket != self._ticket:
                logger.warning("Discarding results of superseded load %d (current %d).", ticket, self._ticket)
                return False
            self._snapshot = DatasetSnapshot(
                records=tuple(records),
                averages=dict(averages),
                generation=self._ticket,
            )
            self._loaded = True
            self._loading = False
            self._last_error = None
        logger.info("Published %d records (load %d).", len(records), self._ticket)
        self._notify_reset()
        return True

    def fail_load(self, error: BaseException, ticket: Optional[int] = None) -> bool:
        with self._lock:
            if ticket is not None and ticket != self._ticket:
                logger.warning("Ignoring failure of superseded load %d: %s", ticket, error)
                return False
            self._snapshot = EMPTY_SNAPSHOT
            self._loaded = False
            self._loading = False
            self._last_error = error
        logger.error("Dataset load failed: %s", error)
        self._notify_reset()
        return True

    def _notify_reset(self) -> None:
        for callback in list(self._reset_listeners):
            callback()
