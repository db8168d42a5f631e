from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import logging

from results_board.config import EXAM_IDS
from results_board.core.data_loader import (
    FormatError,
    MissingLocatorError,
    TransportError,
    fetch_feed_text,
    parse_feed,
)
from results_board.core.normalizer import normalize_table
from results_board.core.ranking import build_dataset
from results_board.core.store import DatasetStore

logger = logging.getLogger(__name__)


@dataclass
class RefreshOutcome:
    """
    Result of one refresh, ready to show to the user.

    category is one of: 'ok', 'missing_locator', 'transport', 'format',
    'unexpected', 'superseded' (a newer refresh started before this one
    finished, so its data was not published).
    """
    ok: bool
    category: str
    message: str
    record_count: int = 0
    status_code: Optional[int] = None


class RefreshController:
    """Runs fetch -> parse -> normalize -> rank and publishes into the store."""

    def __init__(
        self,
        store: DatasetStore,
        fetch: Callable[[Optional[str]], str] = fetch_feed_text,
        exam_ids: Sequence[str] = EXAM_IDS,
    ) -> None:
        self.store = store
        self._fetch = fetch
        self._exam_ids = list(exam_ids)

    def refresh(self, locator: Optional[str]) -> RefreshOutcome:
        ticket = self.store.begin_load()

        try:
            if not (locator or "").strip():
                raise MissingLocatorError("No results feed address configured.")
            text = self._fetch(locator)
            table = parse_feed(text)
            records = normalize_table(table, self._exam_ids)
            ranked, averages = build_dataset(records, self._exam_ids)
        except MissingLocatorError as exc:
            return self._fail(ticket, exc, "missing_locator", "Enter the address of the published results sheet.")
        except TransportError as exc:
            if exc.status_code is not None:
                message = f"The results sheet could not be downloaded (HTTP {exc.status_code})."
            else:
                message = f"The results sheet could not be downloaded: {exc}"
            return self._fail(ticket, exc, "transport", message, status_code=exc.status_code)
        except FormatError as exc:
            return self._fail(
                ticket,
                exc,
                "format",
                f"The address does not point to a published results sheet. {exc}",
            )
        except Exception as exc:
            logger.exception("Unexpected error while refreshing results.")
            return self._fail(ticket, exc, "unexpected", f"Unexpected error while loading results: {exc!r}")

        if not self.store.publish(ranked, averages, ticket=ticket):
            return RefreshOutcome(
                ok=False,
                category="superseded",
                message="A newer reload started before this one finished.",
            )

        return RefreshOutcome(
            ok=True,
            category="ok",
            message=f"Loaded {len(ranked)} students.",
            record_count=len(ranked),
        )

    def _fail(
        self,
        ticket: int,
        error: Exception,
        category: str,
        message: str,
        status_code: Optional[int] = None,
    ) -> RefreshOutcome:
        logger.warning("Refresh failed (%s): %s", category, error)
        if not self.store.fail_load(error, ticket=ticket):
            category, message = "superseded", "A newer reload started before this one finished."
        return RefreshOutcome(ok=False, category=category, message=message, status_code=status_code)
