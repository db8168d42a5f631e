from __future__ import annotations

import time
import traceback
from typing import Optional

import logging

import pandas as pd
import streamlit as st

from results_board.config import APP_NAME, APP_VERSION, EXAM_IDS, RESULTS_FEED_URL
from results_board.core.query_engine import QueryLane, QueryLanes, build_lanes
from results_board.core.ranking import EmptyDatasetError
from results_board.core.refresh import RefreshController, RefreshOutcome
from results_board.core.store import DatasetStore
from results_board.core.summary import (
    build_comparison,
    build_student_summary,
    comparison_frame,
    records_frame,
    summary_frame,
)
from results_board.export.pdf_report import build_summary_pdf, format_value

logger = logging.getLogger(__name__)

_STATE_KEY = "results_board"


def _session() -> dict:
    """
    Store, lanes and controller for this browser session.

    Built once per session; Streamlit reruns reuse them.
    """
    if _STATE_KEY not in st.session_state:
        store = DatasetStore()
        st.session_state[_STATE_KEY] = {
            "store": store,
            "lanes": build_lanes(store),
            "controller": RefreshController(store),
            "outcome": None,
            "locator": None,
        }
    return st.session_state[_STATE_KEY]


def _run_refresh(locator: str) -> RefreshOutcome:
    sess = _session()
    t0 = time.perf_counter()
    with st.spinner("Loading results sheet..."):
        outcome = sess["controller"].refresh(locator)
    logger.info("Refresh finished in %0.2fs: %s", time.perf_counter() - t0, outcome.category)
    sess["outcome"] = outcome
    sess["locator"] = locator
    return outcome


def _render_source_panel() -> None:
    sess = _session()
    with st.sidebar:
        st.subheader("Results sheet")
        locator = st.text_input(
            "Published sheet address",
            value=sess["locator"] or RESULTS_FEED_URL,
            help="Share link or gviz export of a spreadsheet published to the web.",
        )
        reload_clicked = st.button("Load results", type="primary")

    first_load = sess["outcome"] is None and bool(locator.strip())
    if reload_clicked or first_load or (sess["locator"] is not None and locator != sess["locator"]):
        _run_refresh(locator)

    outcome: Optional[RefreshOutcome] = sess["outcome"]
    if outcome is not None and not outcome.ok:
        st.error(f"{outcome.category.replace('_', ' ').title()}: {outcome.message}")
        store: DatasetStore = sess["store"]
        if store.last_error is not None:
            with st.expander("Details", expanded=False):
                st.code(repr(store.last_error))


def _render_leaderboard(store: DatasetStore) -> None:
    snapshot = store.snapshot
    st.subheader("Leaderboard")

    try:
        top = snapshot.top_ranker()
    except EmptyDatasetError:
        st.info("The sheet has no student rows yet.")
        return

    col1, col2, col3 = st.columns(3)
    col1.metric("Students", len(snapshot.records))
    col2.metric("Top ranker", top.name)
    col3.metric("Top total", format_value(top.total))

    st.dataframe(records_frame(list(snapshot.records), EXAM_IDS), use_container_width=True, hide_index=True)

    st.write("Class averages")
    averages = pd.DataFrame(
        {"Average": [pd.to_numeric(snapshot.averages.get(e), errors="coerce") for e in EXAM_IDS]},
        index=EXAM_IDS,
    )
    st.bar_chart(averages)


def _search_box(lane: QueryLane, label: str, key: str) -> None:
    text = st.text_input(label, key=key)
    if text != lane.state.query:
        lane.submit_query(text)
        # Streamlit reruns once per committed input, so there is nothing to
        # coalesce: evaluate immediately.
        lane.flush()

    state = lane.state
    if state.query and state.resolved is None:
        if state.suggestions:
            names = ", ".join(r.name for r in state.suggestions[:10])
            st.caption(f"Did you mean: {names}")
        else:
            st.caption("No student matches that name.")


def _render_lookup(store: DatasetStore, lanes: QueryLanes) -> None:
    st.subheader("Student lookup")
    _search_box(lanes.single, "Student name", key="lookup_single")

    snapshot = store.snapshot
    record = lanes.single.resolved
    if record is None and not lanes.single.state.query:
        picked = st.selectbox(
            "Or pick from the leaderboard",
            [""] + [r.name for r in snapshot.records],
            key="lookup_pick",
        )
        record = snapshot.find(picked) if picked else None
    if record is None:
        return

    summary = build_student_summary(record, snapshot.averages)
    st.write(f"**{summary.name}** - rank {format_value(summary.rank)}, total {format_value(summary.total)}")
    frame = summary_frame(summary)
    st.dataframe(frame, use_container_width=True, hide_index=True)
    st.bar_chart(frame.set_index("Exam")[["Mark", "Class average"]])

    try:
        pdf_bytes = build_summary_pdf(summary, title=APP_NAME)
    except Exception:
        st.warning("The printable summary could not be generated.")
        st.text_area("Traceback", value=traceback.format_exc(), height=200)
        return

    st.download_button(
        "Download summary (PDF)",
        data=pdf_bytes,
        file_name=f"{summary.name}_summary.pdf",
        mime="application/pdf",
    )


def _render_comparison(lanes: QueryLanes) -> None:
    st.subheader("Compare two students")
    col_a, col_b = st.columns(2)
    with col_a:
        _search_box(lanes.compare_a, "First student", key="compare_a")
    with col_b:
        _search_box(lanes.compare_b, "Second student", key="compare_b")

    pair = lanes.comparison()
    if pair is None:
        return

    comparison = build_comparison(*pair)
    frame = comparison_frame(comparison)
    st.dataframe(frame, use_container_width=True)
    st.bar_chart(frame.drop(columns=["Difference"]))

    if comparison.leader:
        st.write(f"{comparison.leader} leads by {abs(comparison.total_difference):g} points overall.")
    elif comparison.total_difference is not None:
        st.write("Both students have the same total.")


def run_app() -> None:
    st.set_page_config(page_title=APP_NAME, page_icon="📊", layout="wide")
    st.title(APP_NAME)
    st.caption(f"Version {APP_VERSION}")

    _render_source_panel()

    sess = _session()
    store: DatasetStore = sess["store"]
    if not store.loaded:
        st.info("Load a published results sheet to get started.")
        return

    _render_leaderboard(store)
    st.divider()
    _render_lookup(store, sess["lanes"])
    st.divider()
    _render_comparison(sess["lanes"])
