from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import logging

from results_board.config import EXAM_IDS, NAME_COLUMN, TOTAL_COLUMN
from results_board.core.data_loader import RawTable

logger = logging.getLogger(__name__)


@dataclass
class StudentRecord:
    """
    One student's row of the results sheet.

    total is the sheet's own Total column, copied as-is. It is deliberately
    not recomputed from marks: the sheet owner's total is authoritative and
    None when the sheet leaves it blank.
    """
    name: str
    marks: Dict[str, Any]
    total: Any = None
    rank: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)


def row_attributes(labels: Sequence[Optional[str]], cells: Sequence[Any]) -> Dict[str, Any]:
    """Zip labels to cells, skipping unlabeled columns and empty cells."""
    attrs: Dict[str, Any] = {}
    for label, value in zip(labels, cells):
        if not label or value is None:
            continue
        attrs[label] = value
    return attrs


def _resolve_name(attrs: Dict[str, Any]) -> Optional[str]:
    name = attrs.get(NAME_COLUMN)
    if name is None:
        return None
    name = str(name).strip()
    return name or None


def normalize_table(table: RawTable, exam_ids: Sequence[str] = EXAM_IDS) -> List[StudentRecord]:
    """
    Build unranked StudentRecords from a RawTable.

    Rows without a name (e.g. blank trailing rows) are dropped. Missing marks
    default to 0; non-numeric marks are kept as they are and only show up in
    the class averages.
    """
    consumed = {NAME_COLUMN, TOTAL_COLUMN, *exam_ids}
    records: List[StudentRecord] = []
    skipped = 0

    for cells in table.rows:
        attrs = row_attributes(table.labels, cells)
        name = _resolve_name(attrs)
        if name is None:
            skipped += 1
            continue

        marks = {exam: attrs.get(exam, 0) for exam in exam_ids}
        extra = {k: v for k, v in attrs.items() if k not in consumed}

        records.append(
            StudentRecord(
                name=name,
                marks=marks,
                total=attrs.get(TOTAL_COLUMN),
                extra=extra,
            )
        )

    if skipped:
        logger.info("Skipped %d feed rows without a %s value.", skipped, NAME_COLUMN)
    return records
