# tests/conftest.py
import json
from typing import Any, Callable, List, Optional, Sequence

import pytest

from results_board.core.normalizer import StudentRecord
from results_board.core.ranking import build_dataset
from results_board.core.store import DatasetStore

EXAMS = ["Exam 1", "Exam 2", "Exam 3", "Exam 4"]
LABELS = ["Name", *EXAMS, "Total"]


def make_feed(labels: Sequence[Optional[str]], rows: Sequence[Sequence[Any]]) -> str:
    """Build a payload shaped like a published sheet's gviz export."""
    payload = {
        "version": "0.6",
        "reqId": "0",
        "status": "ok",
        "table": {
            "cols": [
                {"id": chr(65 + i), "label": label or "", "type": "string"}
                for i, label in enumerate(labels)
            ],
            "rows": [
                {"c": [None if v is None else {"v": v} for v in row]}
                for row in rows
            ],
        },
    }
    return "/*O_o*/\ngoogle.visualization.Query.setResponse(" + json.dumps(payload) + ");"


def make_record(name: str, marks: Sequence[Any], total: Any) -> StudentRecord:
    return StudentRecord(name=name, marks=dict(zip(EXAMS, marks)), total=total)


class ManualHandle:
    def __init__(self, delay: float, fn: Callable[[], None]):
        self.delay = delay
        self.fn = fn
        self.cancelled = False
        self.ran = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers only fire when the test says so."""

    def __init__(self):
        self.handles: List[ManualHandle] = []

    def call_later(self, delay, fn):
        handle = ManualHandle(delay, fn)
        self.handles.append(handle)
        return handle

    @property
    def active(self) -> List[ManualHandle]:
        return [h for h in self.handles if not h.cancelled and not h.ran]

    def run_pending(self) -> None:
        for handle in self.active:
            handle.ran = True
            handle.fn()


@pytest.fixture
def sample_feed():
    """Three students A, B and C (C has no total)."""
    return make_feed(
        LABELS,
        [
            ["A", 10, 20, 30, 40, 100],
            ["B", 5, 5, 5, 5, 20],
            ["C", 0, 0, 0, 0, None],
        ],
    )


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def loaded_store():
    """Store holding five students, published in rank order."""
    store = DatasetStore()
    records = [
        make_record("Alice Martin", [80, 70, 90, 60], 300),
        make_record("Bob Stone", [50, 50, 50, 50], 200),
        make_record("Carla Diaz", [90, 90, 90, 90], 360),
        make_record("dave", [10, 20, 30, 40], 100),
        make_record("Eve", [0, 0, 0, 0], 0),
    ]
    ranked, averages = build_dataset(records, EXAMS)
    ticket = store.begin_load()
    store.publish(ranked, averages, ticket=ticket)
    return store
