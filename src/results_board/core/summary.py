from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import math

import pandas as pd

from results_board.core.normalizer import StudentRecord


@dataclass
class ExamFact:
    """A student's mark on one exam set against the class average."""
    exam: str
    mark: float
    class_average: float
    delta: float
    direction: str  # 'above', 'below', 'level', 'unknown'


@dataclass
class StudentSummary:
    """
    Everything the printable summary shows for one student.

    Values are read from the published snapshot only; nothing here is
    recomputed from the feed.
    """
    name: str
    rank: Optional[int]
    total: Any
    facts: List[ExamFact]
    extra: Dict[str, Any]


@dataclass
class ExamComparison:
    exam: str
    mark_a: float
    mark_b: float
    difference: float  # mark_a - mark_b


@dataclass
class ComparisonSummary:
    name_a: str
    name_b: str
    rank_a: Optional[int]
    rank_b: Optional[int]
    exams: List[ExamComparison]
    total_difference: Optional[float]
    leader: Optional[str]  # name of the higher total, None on a tie or unknown totals


def _as_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return float("nan")
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")


def _direction_from_delta(delta: float, tolerance: float = 0.005) -> str:
    """
    Interpret a mark-minus-average delta as 'above', 'below' or 'level'.

    The tolerance absorbs the rounding of averages to two decimals. A delta
    that is not a number (missing mark or average) is 'unknown'.
    """
    if math.isnan(delta):
        return "unknown"
    if delta > tolerance:
        return "above"
    if delta < -tolerance:
        return "below"
    return "level"


def build_student_summary(
    record: StudentRecord,
    averages: Dict[str, str],
    tolerance: float = 0.005,
) -> StudentSummary:
    facts: List[ExamFact] = []
    for exam, mark in record.marks.items():
        mark_f = _as_float(mark)
        avg_f = _as_float(averages.get(exam))
        delta = mark_f - avg_f
        facts.append(
            ExamFact(
                exam=exam,
                mark=mark_f,
                class_average=avg_f,
                delta=delta,
                direction=_direction_from_delta(delta, tolerance=tolerance),
            )
        )

    return StudentSummary(
        name=record.name,
        rank=record.rank,
        total=record.total,
        facts=facts,
        extra=dict(record.extra),
    )


def build_comparison(a: StudentRecord, b: StudentRecord) -> ComparisonSummary:
    exams: List[ExamComparison] = []
    for exam, mark in a.marks.items():
        mark_a = _as_float(mark)
        mark_b = _as_float(b.marks.get(exam))
        exams.append(ExamComparison(exam=exam, mark_a=mark_a, mark_b=mark_b, difference=mark_a - mark_b))

    total_a = _as_float(a.total)
    total_b = _as_float(b.total)
    total_difference: Optional[float] = None
    leader: Optional[str] = None
    if not math.isnan(total_a) and not math.isnan(total_b):
        total_difference = total_a - total_b
        if total_difference > 0:
            leader = a.name
        elif total_difference < 0:
            leader = b.name

    return ComparisonSummary(
        name_a=a.name,
        name_b=b.name,
        rank_a=a.rank,
        rank_b=b.rank,
        exams=exams,
        total_difference=total_difference,
        leader=leader,
    )


# ---------------------------------------------------------------------------
# Tables for display / export
# ---------------------------------------------------------------------------

def summary_frame(summary: StudentSummary) -> pd.DataFrame:
    rows = []
    for f in summary.facts:
        rows.append(
            {
                "Exam": f.exam,
                "Mark": f.mark,
                "Class average": f.class_average,
                "Difference": round(f.delta, 2),
                "Versus class": f.direction,
            }
        )
    return pd.DataFrame(rows, columns=["Exam", "Mark", "Class average", "Difference", "Versus class"])


def comparison_frame(comparison: ComparisonSummary) -> pd.DataFrame:
    col_a = comparison.name_a
    col_b = comparison.name_b if comparison.name_b != col_a else f"{col_a} (B)"
    rows = []
    for e in comparison.exams:
        rows.append(
            {
                "Exam": e.exam,
                col_a: e.mark_a,
                col_b: e.mark_b,
                "Difference": round(e.difference, 2),
            }
        )
    return pd.DataFrame(rows).set_index("Exam") if rows else pd.DataFrame()


def records_frame(records: List[StudentRecord], exam_ids: List[str]) -> pd.DataFrame:
    """Leaderboard table: rank, name, one column per exam, total."""
    rows = []
    for r in records:
        row: Dict[str, Any] = {"Rank": r.rank, "Name": r.name}
        for exam in exam_ids:
            row[exam] = r.marks.get(exam)
        row["Total"] = r.total
        rows.append(row)
    return pd.DataFrame(rows, columns=["Rank", "Name", *exam_ids, "Total"])
