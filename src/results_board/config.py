from __future__ import annotations

import os
from typing import List

# ---------------------------------------------------------------------------
# App identity
# ---------------------------------------------------------------------------

APP_NAME = "Exam Results Board"
APP_VERSION = "0.1.0"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

# ---------------------------------------------------------------------------
# Results feed
#
# The feed is a published spreadsheet. Either paste the sheet address
# (https://docs.google.com/spreadsheets/d/<id>/edit#gid=0) or the gviz export
# itself; core.data_loader.resolve_feed_url turns the former into the latter.
# Leave empty to require the address to be entered in the UI.
# ---------------------------------------------------------------------------

RESULTS_FEED_URL = os.getenv("RESULTS_FEED_URL", "").strip()

FEED_TIMEOUT_SECONDS = int(os.getenv("FEED_TIMEOUT_SECONDS", "30"))
FEED_MAX_RETRIES = int(os.getenv("FEED_MAX_RETRIES", "2"))

# ---------------------------------------------------------------------------
# Sheet columns
#
# EXAM_IDS is ordered: it fixes the shape of every record's marks and the axis
# order of every chart and table. Changing it changes both.
# ---------------------------------------------------------------------------

NAME_COLUMN = os.getenv("RESULTS_NAME_COLUMN", "Name").strip()
TOTAL_COLUMN = os.getenv("RESULTS_TOTAL_COLUMN", "Total").strip()


def parse_exam_ids(raw: str) -> List[str]:
    """Comma separated ids, blanks dropped, first occurrence of each kept."""
    ids = [part.strip() for part in raw.split(",")]
    return list(dict.fromkeys(i for i in ids if i))


EXAM_IDS: List[str] = parse_exam_ids(
    os.getenv("RESULTS_EXAM_IDS", "Exam 1,Exam 2,Exam 3,Exam 4")
) or ["Exam 1", "Exam 2", "Exam 3", "Exam 4"]

# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

# Quiet period before a name search runs (300 ms).
QUERY_DEBOUNCE_SECONDS = float(os.getenv("QUERY_DEBOUNCE_SECONDS", "0.3"))
