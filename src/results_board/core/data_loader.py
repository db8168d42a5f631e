from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional
from urllib.parse import parse_qs, urlparse

import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from results_board.config import FEED_MAX_RETRIES, FEED_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class ResultsFeedError(Exception):
    """Base class for failures while loading the results feed."""


class MissingLocatorError(ResultsFeedError):
    """Raised when no feed address is configured or entered."""


class TransportError(ResultsFeedError):
    """Raised when the feed request fails or returns a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FormatError(ResultsFeedError):
    """Raised when the payload is not a published feed or its JSON is broken."""


@dataclass
class RawTable:
    """
    Generic tabular view of the feed.

    labels holds one entry per feed column. Columns without a usable label are
    kept as None so that row cells stay aligned by position.
    """
    labels: List[Optional[str]] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)


# The gviz export wraps its payload as
#   /*O_o*/ google.visualization.Query.setResponse({...});
_WRAPPER_RE = re.compile(r"setResponse\(\s*(\{.*\})\s*\)\s*;?", re.DOTALL)

_SHEETS_RE = re.compile(r"^https?://docs\.google\.com/spreadsheets/d/([A-Za-z0-9_-]+)")


# ---------------------------------------------------------------------------
# Locator handling
# ---------------------------------------------------------------------------

def resolve_feed_url(locator: Optional[str]) -> str:
    """
    Turn a feed locator into the URL that is actually requested.

    A Google Sheets address (edit/view link) is converted into its gviz JSON
    export, keeping the sheet tab (gid) when the link names one. Anything else
    is assumed to already point at the export and is returned unchanged.
    """
    loc = (locator or "").strip()
    if not loc:
        raise MissingLocatorError("No results feed address configured.")

    if "/gviz/" in loc:
        return loc

    match = _SHEETS_RE.match(loc)
    if not match:
        return loc

    sheet_id = match.group(1)
    parsed = urlparse(loc)
    gid = None
    for source in (parsed.fragment, parsed.query):
        values = parse_qs(source).get("gid")
        if values:
            gid = values[0]
            break

    url = f"https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq?tqx=out:json"
    if gid:
        url += f"&gid={gid}"
    return url


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

def _build_retry_session(max_retries: int = FEED_MAX_RETRIES) -> requests.Session:
    """
    Build a requests Session with conservative retries.
    Statuses are not raised by urllib3 so the final response code reaches us.
    """
    session = requests.Session()

    retry = Retry(
        total=max_retries,
        connect=max_retries,
        read=max_retries,
        status=max_retries,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    return session


_SESSION: Optional[requests.Session] = None


def _get_session() -> requests.Session:
    global _SESSION
    if _SESSION is None:
        _SESSION = _build_retry_session()
    return _SESSION


def fetch_feed_text(
    locator: Optional[str],
    *,
    timeout_seconds: int = FEED_TIMEOUT_SECONDS,
    session: Optional[requests.Session] = None,
) -> str:
    """Download the raw feed body for a locator."""
    url = resolve_feed_url(locator)
    logger.info("Fetching results feed: %s", url)

    try:
        resp = (session or _get_session()).get(url, timeout=timeout_seconds)
    except requests.RequestException as exc:
        raise TransportError(f"Could not reach the results feed: {exc}") from exc

    if not resp.ok:
        raise TransportError(
            f"Results feed returned HTTP {resp.status_code}.",
            status_code=resp.status_code,
        )

    return resp.text


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _cell_value(cell: Any) -> Any:
    if isinstance(cell, dict):
        return cell.get("v")
    return None


def parse_feed(text: str) -> RawTable:
    """
    Decode a published-sheet payload into a RawTable.

    The payload must contain a single setResponse(...) call whose argument is
    a JSON object carrying table.cols (each with a label) and table.rows (each
    with ordered c cells holding a v value, or null).
    """
    match = _WRAPPER_RE.search(text or "")
    if not match:
        raise FormatError("Response is not a published spreadsheet feed.")

    try:
        payload = json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        raise FormatError(f"Feed JSON could not be decoded: {exc}") from exc

    table = payload.get("table") if isinstance(payload, dict) else None
    if not isinstance(table, dict):
        status = payload.get("status") if isinstance(payload, dict) else None
        raise FormatError(f"Feed does not contain a table (status={status!r}).")

    labels: List[Optional[str]] = []
    for col in table.get("cols") or []:
        label = col.get("label") if isinstance(col, dict) else None
        labels.append(label or None)

    rows: List[List[Any]] = []
    for row in table.get("rows") or []:
        cells = row.get("c") if isinstance(row, dict) else None
        rows.append([_cell_value(c) for c in (cells or [])])

    logger.info("Parsed feed: %d columns, %d rows", len(labels), len(rows))
    return RawTable(labels=labels, rows=rows)

