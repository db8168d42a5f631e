# tests/test_query_engine.py
import time

import pytest

from results_board.core.query_engine import QueryLane, ThreadingScheduler, build_lanes, find_matches
from results_board.core.store import DatasetStore


@pytest.fixture
def lane(loaded_store, scheduler):
    return QueryLane("single", loaded_store, debounce_seconds=0.3, scheduler=scheduler)


class TestFindMatches:
    def test_substring_in_rank_order(self, loaded_store):
        suggestions, resolved = find_matches(loaded_store.snapshot.records, "A")

        # every name containing "a" in any case, in rank order
        assert [r.name for r in suggestions] == ["Carla Diaz", "Alice Martin", "dave"]
        assert resolved is None

    def test_exact_name_resolves_any_case(self, loaded_store):
        suggestions, resolved = find_matches(loaded_store.snapshot.records, "DAVE")
        assert resolved.name == "dave"
        assert resolved in suggestions

    def test_nonsense_query(self, loaded_store):
        assert find_matches(loaded_store.snapshot.records, "zz%$") == ((), None)


class TestQueryLane:
    def test_waits_for_quiet_period(self, lane, scheduler):
        lane.submit_query("eve")

        assert lane.state.resolved is None
        assert [h.delay for h in scheduler.active] == [0.3]

        scheduler.run_pending()
        assert lane.state.resolved.name == "Eve"

    def test_rapid_submissions_evaluate_once_with_last_text(self, lane, scheduler):
        lane.submit_query("a")
        lane.submit_query("al")
        lane.submit_query("alice martin")

        assert len(scheduler.active) == 1
        scheduler.run_pending()

        assert lane.evaluations == 1
        assert lane.state.query == "alice martin"
        assert lane.state.resolved.name == "Alice Martin"

    def test_stale_evaluation_cannot_overwrite(self, lane, scheduler):
        lane.submit_query("bob")
        stale = scheduler.handles[0]
        lane.submit_query("eve")

        stale.fn()  # late timer firing after a newer submission
        assert lane.evaluations == 0

        scheduler.run_pending()
        assert lane.state.resolved.name == "Eve"
        assert lane.evaluations == 1

    def test_empty_text_clears_immediately(self, lane, scheduler):
        lane.submit_query("bob stone")
        scheduler.run_pending()
        assert lane.state.resolved is not None

        lane.submit_query("")

        assert lane.state.query == ""
        assert lane.state.suggestions == ()
        assert lane.state.resolved is None
        assert scheduler.active == []

    def test_empty_text_cancels_pending_search(self, lane, scheduler):
        lane.submit_query("bob")
        lane.submit_query("")
        scheduler.run_pending()

        assert lane.evaluations == 0
        assert lane.state.suggestions == ()

    def test_skipped_when_not_loaded(self, scheduler):
        lane = QueryLane("single", DatasetStore(), scheduler=scheduler)
        lane.submit_query("bob")

        assert scheduler.handles == []
        assert lane.flush().suggestions == ()
        assert lane.evaluations == 0

    def test_flush_runs_pending_search_now(self, lane, scheduler):
        lane.submit_query("bob stone")
        state = lane.flush()

        assert state.resolved.name == "Bob Stone"
        assert scheduler.handles[0].cancelled

    def test_reload_clears_lane(self, lane, scheduler, loaded_store):
        lane.submit_query("eve")
        scheduler.run_pending()

        loaded_store.begin_load()
        assert lane.state.resolved is None
        assert lane.state.query == ""

    def test_pending_search_dropped_on_reload(self, lane, scheduler, loaded_store):
        lane.submit_query("eve")
        pending = scheduler.handles[0]
        loaded_store.begin_load()

        pending.fn()
        assert lane.evaluations == 0

    def test_threading_scheduler_fires(self, loaded_store):
        lane = QueryLane("single", loaded_store, debounce_seconds=0.01, scheduler=ThreadingScheduler())
        lane.submit_query("eve")

        deadline = time.monotonic() + 5
        while lane.state.resolved is None and time.monotonic() < deadline:
            time.sleep(0.01)
        assert lane.state.resolved.name == "Eve"


class TestLanes:
    def test_comparison_needs_both_lanes(self, loaded_store, scheduler):
        lanes = build_lanes(loaded_store, scheduler=scheduler)

        lanes.compare_a.submit_query("alice martin")
        scheduler.run_pending()
        assert lanes.comparison() is None

        lanes.compare_b.submit_query("Bob Stone")
        scheduler.run_pending()
        a, b = lanes.comparison()
        assert (a.name, b.name) == ("Alice Martin", "Bob Stone")

    def test_clearing_one_lane_keeps_the_other(self, loaded_store, scheduler):
        lanes = build_lanes(loaded_store, scheduler=scheduler)
        lanes.compare_a.submit_query("eve")
        lanes.compare_b.submit_query("dave")
        scheduler.run_pending()

        lanes.compare_a.submit_query("")

        assert lanes.compare_a.resolved is None
        assert lanes.compare_b.resolved.name == "dave"
        assert lanes.comparison() is None

    def test_lanes_have_independent_timers(self, loaded_store, scheduler):
        lanes = build_lanes(loaded_store, scheduler=scheduler)
        lanes.single.submit_query("eve")
        lanes.compare_a.submit_query("dave")

        assert len(scheduler.active) == 2
        scheduler.run_pending()
        assert lanes.single.resolved.name == "Eve"
        assert lanes.compare_a.resolved.name == "dave"
