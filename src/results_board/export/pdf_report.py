from __future__ import annotations

import io
import math
from typing import Any, Dict, List, Optional

import logging

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from results_board.config import APP_NAME
from results_board.core.summary import StudentSummary

logger = logging.getLogger(__name__)

_DIRECTION_LABELS = {
    "above": "Above average",
    "below": "Below average",
    "level": "At average",
    "unknown": "n/a",
}


def format_value(value: Any) -> str:
    """Display text for a mark or total: "-" when missing, whole numbers without decimals."""
    if value is None:
        return "-"
    if isinstance(value, float):
        if math.isnan(value):
            return "-"
        return str(int(value)) if value.is_integer() else f"{value:.2f}"
    return str(value)


def direction_label(direction: str) -> str:
    return _DIRECTION_LABELS.get(direction, direction)


def _marks_table(summary: StudentSummary) -> Table:
    data: List[List[str]] = [["Exam", "Mark", "Class average", "Difference", ""]]
    for f in summary.facts:
        data.append(
            [
                f.exam,
                format_value(f.mark),
                format_value(f.class_average),
                format_value(round(f.delta, 2)) if not math.isnan(f.delta) else "-",
                direction_label(f.direction),
            ]
        )

    table = Table(data, hAlign="LEFT")
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1976d2")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("ALIGN", (1, 1), (3, -1), "RIGHT"),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f2f2f2")]),
            ]
        )
    )
    return table


def build_summary_pdf(summary: StudentSummary, title: Optional[str] = None) -> bytes:
    """
    Render a one-page printable result summary for a student.

    Returns the PDF document as bytes (ready for a download button).
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title=title or f"Result summary - {summary.name}",
    )
    styles = getSampleStyleSheet()

    story = []
    story.append(Paragraph(title or APP_NAME, styles["Title"]))
    story.append(Paragraph(f"Result summary for <b>{_escape(summary.name)}</b>", styles["Heading2"]))
    story.append(Spacer(1, 8))
    story.append(Paragraph(f"Rank: {format_value(summary.rank)}", styles["Normal"]))
    story.append(Paragraph(f"Total: {format_value(summary.total)}", styles["Normal"]))

    extra: Dict[str, Any] = summary.extra
    for key in sorted(extra):
        story.append(Paragraph(f"{_escape(key)}: {_escape(format_value(extra[key]))}", styles["Normal"]))

    story.append(Spacer(1, 12))
    story.append(_marks_table(summary))

    doc.build(story)
    logger.info("Built PDF summary for %s", summary.name)
    return buffer.getvalue()


def _escape(text: str) -> str:
    # Paragraph parses a small XML dialect
    return str(text).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
