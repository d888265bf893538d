from datetime import date, datetime
from types import SimpleNamespace

from cabinsched.phase import (
    compute_active,
    is_current_turn,
    next_secondary_group,
    primary_done,
    secondary_lifecycle,
    usage_by_group,
)

TODAY = date(2025, 10, 20)


def counter(group, primary_used=0, primary_allowed=2, secondary_used=0, secondary_allowed=1):
    return SimpleNamespace(
        group_name=group,
        primary_used=primary_used,
        primary_allowed=primary_allowed,
        secondary_used=secondary_used,
        secondary_allowed=secondary_allowed,
    )


def period(group, idx, start, end, phase="primary", completed=False):
    return SimpleNamespace(
        group_name=group,
        sequence_index=idx,
        start_date=start,
        end_date=end,
        phase=phase,
        completed=completed,
    )


def status(current=None, started_at=None, turn_completed=False):
    return SimpleNamespace(
        current_group=current, started_at=started_at, turn_completed=turn_completed
    )


def config(**overrides):
    values = dict(
        primary_window_days=14,
        secondary_window_days=7,
        secondary_max_periods=1,
        enable_secondary_selection=True,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


ORDER = ["A", "B", "C"]
PERIODS = [
    period("A", 0, date(2025, 10, 1), date(2025, 10, 14)),
    period("B", 1, date(2025, 10, 15), date(2025, 10, 28)),
    period("C", 2, date(2025, 10, 29), date(2025, 11, 11)),
]


class TestPrimaryPhase:
    def test_active_group_comes_from_the_pointer(self):
        state = compute_active(ORDER, [counter("A", 2)], PERIODS, "B", config=config(), today=TODAY)

        assert state.phase == "primary"
        assert state.label == "primary"
        assert state.active_group == "B"
        assert [q.group_name for q in state.upcoming_queue] == ["C"]

    def test_counters_never_pick_the_active_group(self):
        # A is done but nobody advanced the pointer
        state = compute_active(ORDER, [counter("A", 2)], PERIODS, None, config=config(), today=TODAY)
        assert state.active_group is None
        assert [q.group_name for q in state.upcoming_queue] == ["B", "C"]

    def test_queue_wraps_and_skips_done_groups(self):
        usage = [counter("A", 2)]
        state = compute_active(ORDER, usage, PERIODS, "C", config=config(), today=TODAY)
        assert [q.group_name for q in state.upcoming_queue] == ["B"]

    def test_group_without_stored_period_gets_a_computed_window(self):
        state = compute_active(ORDER, [], PERIODS[:2], "A", config=config(), today=TODAY)

        by_group = {q.group_name: q for q in state.upcoming_queue}
        assert by_group["B"].source == "scheduled"
        assert by_group["C"].source == "computed"
        assert by_group["C"].start_date == date(2025, 10, 29)
        assert by_group["C"].end_date == date(2025, 11, 11)

    def test_computed_windows_start_tomorrow_without_stored_rows(self):
        state = compute_active(ORDER, [], [], "A", config=config(primary_window_days=5), today=TODAY)
        assert [(q.start_date, q.end_date) for q in state.upcoming_queue] == [
            (date(2025, 10, 20), date(2025, 10, 24)),
            (date(2025, 10, 25), date(2025, 10, 29)),
        ]

    def test_unknown_counter_is_ignored(self, caplog):
        state = compute_active(
            ORDER, [counter("Zed", 5)], PERIODS, "A", config=config(), today=TODAY
        )
        assert state.phase == "primary"
        assert "Zed" in caplog.text

    def test_unknown_pointer_gives_no_active_group(self):
        state = compute_active(ORDER, [], PERIODS, "Zed", config=config(), today=TODAY)
        assert state.active_group is None
        assert len(state.upcoming_queue) == 3

    def test_display_info(self):
        state = compute_active(ORDER, [counter("A", 2)], PERIODS, "B", config=config(), today=TODAY)

        info = {d.group_name: d for d in state.display_info}
        assert info["A"].display_text == "Completed"
        assert info["B"].display_text == "Active Now"
        assert info["B"].is_current_turn
        assert info["C"].status == "scheduled"
        assert info["C"].days_until == 9
        assert info["C"].display_text == "Scheduled in 9 days"

    def test_active_turn_is_dated_from_today(self):
        state = compute_active(ORDER, [counter("A", 2)], PERIODS, "B", config=config(), today=TODAY)

        info = {d.group_name: d for d in state.display_info}
        assert info["B"].start_date == TODAY
        assert info["B"].end_date == date(2025, 11, 2)

    def test_groups_without_counters_use_configured_allowance(self):
        state = compute_active(
            ["A", "B"], [], [], None, None, config(primary_max_periods=0), TODAY
        )
        assert state.phase == "secondary"

    def test_groups_without_counters_are_not_done_by_default(self):
        state = compute_active(
            ["A", "B"], [counter("A", 2)], [], None, None, config(primary_max_periods=2), TODAY
        )
        assert state.phase == "primary"
        assert [q.group_name for q in state.upcoming_queue] == ["B"]

    def test_active_before_its_scheduled_start(self):
        state = compute_active(ORDER, [counter("A", 2), counter("B", 2)], PERIODS, "C",
                               config=config(), today=TODAY)
        info = {d.group_name: d for d in state.display_info}
        assert info["C"].display_text == "Active Now (originally scheduled for 2025-10-29)"

    def test_empty_order(self):
        state = compute_active([], [], [], None, today=TODAY)
        assert state.phase == "primary"
        assert state.active_group is None
        assert state.upcoming_queue == []

    def test_secondary_disabled_stays_primary(self):
        usage = [counter(g, 2) for g in ORDER]
        state = compute_active(
            ORDER, usage, PERIODS, None,
            config=config(enable_secondary_selection=False), today=TODAY,
        )
        assert state.phase == "primary"


class TestSecondaryPhase:
    usage = [counter(g, 2) for g in ORDER]

    def test_not_started(self):
        state = compute_active(ORDER, self.usage, PERIODS, "C", status(), config(), TODAY)

        assert state.phase == "secondary"
        assert state.label == "secondary_not_started"
        assert state.active_group is None
        assert state.order == ["C", "B", "A"]

    def test_live_windows_run_in_reverse_from_today(self):
        state = compute_active(ORDER, self.usage, PERIODS, None, status(), config(), TODAY)
        assert [(q.group_name, q.start_date, q.end_date) for q in state.upcoming_queue] == [
            ("C", date(2025, 10, 20), date(2025, 10, 26)),
            ("B", date(2025, 10, 27), date(2025, 11, 2)),
            ("A", date(2025, 11, 3), date(2025, 11, 9)),
        ]

    def test_active_turn(self):
        started = datetime(2025, 10, 18, 9, 0)
        state = compute_active(ORDER, self.usage, PERIODS, None, status("B", started), config(), TODAY)

        assert state.label == "secondary_active"
        assert state.active_group == "B"
        info = {d.group_name: d for d in state.display_info}
        assert info["C"].status == "completed"
        assert info["B"].display_text == "Day 3 of 7"
        assert info["B"].days_remaining == 5
        assert info["A"].status == "scheduled"
        assert [q.group_name for q in state.upcoming_queue] == ["A"]

    def test_turn_completed(self):
        state = compute_active(
            ORDER, self.usage, PERIODS, None,
            status("B", datetime(2025, 10, 10), turn_completed=True), config(), TODAY,
        )
        assert state.label == "secondary_turn_completed"
        assert state.active_group is None
        info = {d.group_name: d for d in state.display_info}
        assert info["B"].status == "completed"

    def test_phase_done(self):
        state = compute_active(
            ORDER, self.usage, PERIODS, None, status(None, datetime(2025, 10, 1)), config(), TODAY
        )
        assert state.label == "secondary_done"

    def test_groups_without_secondary_left_are_dropped(self):
        usage = self.usage[:2] + [counter("C", 2, secondary_used=1)]
        state = compute_active(ORDER, usage, PERIODS, None, status(), config(), TODAY)
        assert [q.group_name for q in state.upcoming_queue] == ["B", "A"]

    def test_stored_secondary_rows_take_precedence(self):
        rows = PERIODS + [
            period("C", 0, date(2025, 11, 12), date(2025, 11, 18), phase="secondary"),
        ]
        state = compute_active(ORDER, self.usage, rows, None, status(), config(), TODAY)
        assert [(q.group_name, q.source) for q in state.upcoming_queue] == [("C", "scheduled")]


class TestHelpers:
    def test_secondary_lifecycle(self):
        assert secondary_lifecycle(None) == "not_started"
        assert secondary_lifecycle(status("A")) == "not_started"
        assert secondary_lifecycle(status("A", datetime(2025, 1, 1))) == "active"
        assert secondary_lifecycle(status("A", datetime(2025, 1, 1), True)) == "turn_completed"
        assert secondary_lifecycle(status(None, datetime(2025, 1, 1))) == "phase_done"

    def test_is_current_turn(self):
        assert is_current_turn("A", status("A"))
        assert not is_current_turn("A", status("A", turn_completed=True))
        assert not is_current_turn("B", status("A"))
        assert not is_current_turn("A", None)

    def test_primary_done_default_allowance(self):
        assert not primary_done(None)
        assert primary_done(None, default_allowed=0)
        assert primary_done(counter("A", 1, primary_allowed=1), default_allowed=5)

    def test_next_secondary_group_wraps(self):
        usage = usage_by_group(ORDER, [counter("C", secondary_used=1)])
        assert next_secondary_group(ORDER, usage, None) == ("B", 1)
        assert next_secondary_group(ORDER, usage, "B") == ("A", 2)
        assert next_secondary_group(ORDER, usage, "A") == ("B", 1)

    def test_next_secondary_group_exhausted(self):
        usage = usage_by_group(ORDER, [counter(g, secondary_used=1) for g in ORDER])
        assert next_secondary_group(ORDER, usage, "C") == (None, -1)
        assert next_secondary_group([], {}, None) == (None, -1)
