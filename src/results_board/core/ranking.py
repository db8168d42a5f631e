from __future__ import annotations

import math
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

import logging

import pandas as pd

from results_board.config import EXAM_IDS
from results_board.core.normalizer import StudentRecord

logger = logging.getLogger(__name__)


class EmptyDatasetError(Exception):
    """Raised when a question needs at least one record and there are none."""


def _numeric_total(value: Any) -> Optional[float]:
    """Read a total as a number for ordering; None when it is not one."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def rank_records(records: Sequence[StudentRecord]) -> List[StudentRecord]:
    """
    Order records by total, highest first, and number them 1..N.

    The sort is stable: equal totals keep their sheet order and receive
    distinct consecutive ranks (3 and 4, never 3 and 3). Totals that are not
    numbers come after every numeric total.
    """
    def sort_key(record: StudentRecord) -> Tuple[bool, float]:
        total = _numeric_total(record.total)
        if total is None:
            return True, 0.0
        return False, -total

    ordered = sorted(records, key=sort_key)
    return [replace(r, rank=i + 1) for i, r in enumerate(ordered)]


def compute_averages(
    records: Sequence[StudentRecord],
    exam_ids: Sequence[str] = EXAM_IDS,
) -> Dict[str, str]:
    """
    Class average per exam, formatted with two decimals.

    Each average is the sum of that exam's marks over every record divided by
    the record count, so defaulted zeros count. A mark that is not a number
    turns its exam's average into "nan". With no records every exam reads
    "0.00".
    """
    exam_ids = list(dict.fromkeys(exam_ids))
    if not records:
        logger.warning("No records to average; reporting 0.00 for every exam.")
        return {exam: f"{0:.2f}" for exam in exam_ids}

    frame = pd.DataFrame([r.marks for r in records], columns=exam_ids)
    count = len(frame)

    averages: Dict[str, str] = {}
    for exam in exam_ids:
        values = pd.to_numeric(frame[exam], errors="coerce")
        mean = float(values.sum(skipna=False)) / count
        averages[exam] = f"{mean:.2f}"
    return averages


def build_dataset(
    records: Sequence[StudentRecord],
    exam_ids: Sequence[str] = EXAM_IDS,
) -> Tuple[List[StudentRecord], Dict[str, str]]:
    """Rank records and compute their averages as one matched pair."""
    ranked = rank_records(records)
    averages = compute_averages(ranked, exam_ids)
    logger.info("Ranked %d records; averages=%s", len(ranked), averages)
    return ranked, averages
