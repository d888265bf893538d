"""
Selection phase tracking.

The primary phase walks the rotation order once. Whose turn it is comes
from an externally maintained pointer (ActiveTurn); usage counters only
say which groups are done, they never pick the active group. Once every
group has used its primary allowance the secondary phase takes over and
runs the order in reverse, driven by SecondaryPhaseStatus.
"""
import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from .rotation import reverse_order
from .scheduler import window_after
from .schemas import GroupDisplayInfo, PhaseState, QueueEntry

logger = logging.getLogger(__name__)

DEFAULT_PRIMARY_WINDOW_DAYS = 14
DEFAULT_SECONDARY_WINDOW_DAYS = 7
DEFAULT_PRIMARY_MAX_PERIODS = 2
DEFAULT_SECONDARY_MAX_PERIODS = 1

_LABELS = {
    "not_started": "secondary_not_started",
    "active": "secondary_active",
    "turn_completed": "secondary_turn_completed",
    "phase_done": "secondary_done",
}


def _days_text(days: int) -> str:
    return f"Scheduled in {days} day{'' if days == 1 else 's'}"


def usage_by_group(order: List[str], usage_counters: Iterable) -> Dict[str, object]:
    """Index counters by group, dropping ones for groups not in this year's order."""
    known = set(order)
    result: Dict[str, object] = {}
    for counter in usage_counters or []:
        if counter.group_name not in known:
            logger.warning(
                "Usage counter for %r ignored: group not in rotation order %s",
                counter.group_name,
                order,
            )
            continue
        result[counter.group_name] = counter
    return result


def primary_done(counter, default_allowed: int = DEFAULT_PRIMARY_MAX_PERIODS) -> bool:
    """A group without a counter has used nothing against the default allowance."""
    if counter is None:
        return default_allowed <= 0
    return counter.primary_used >= counter.primary_allowed


def all_primary_done(
    order: List[str], usage: Dict[str, object], default_allowed: int = DEFAULT_PRIMARY_MAX_PERIODS
) -> bool:
    return bool(order) and all(primary_done(usage.get(g), default_allowed) for g in order)


def secondary_remaining(counter, default_allowed: int = DEFAULT_SECONDARY_MAX_PERIODS) -> int:
    if counter is None:
        return default_allowed
    return counter.secondary_allowed - counter.secondary_used


def secondary_lifecycle(status) -> str:
    """not_started -> active -> turn_completed -> active | phase_done"""
    if status is None or status.started_at is None:
        return "not_started"
    if status.current_group is None:
        return "phase_done"
    if status.turn_completed:
        return "turn_completed"
    return "active"


def is_current_turn(group_name: str, status) -> bool:
    return (
        status is not None
        and status.current_group == group_name
        and not status.turn_completed
    )


def next_secondary_group(
    order: List[str],
    usage: Dict[str, object],
    current_group: Optional[str],
    default_allowed: int = DEFAULT_SECONDARY_MAX_PERIODS,
) -> Tuple[Optional[str], int]:
    """
    The group after current_group in the reversed order that still has a
    secondary period left, wrapping around. With no current group the
    search starts at the top. Returns (None, -1) when nobody is left.
    """
    reversed_order = reverse_order(order)
    n = len(reversed_order)
    if n == 0:
        return None, -1
    start = reversed_order.index(current_group) + 1 if current_group in reversed_order else 0
    for step in range(n):
        idx = (start + step) % n
        group = reversed_order[idx]
        if secondary_remaining(usage.get(group), default_allowed) > 0:
            return group, idx
    return None, -1


def _primary_allowance(config) -> int:
    allowed = getattr(config, "primary_max_periods", None)
    return DEFAULT_PRIMARY_MAX_PERIODS if allowed is None else allowed


def _sorted_rows(periods: Iterable, phase: str) -> List[object]:
    rows = [p for p in periods or [] if (getattr(p, "phase", None) or "primary") == phase]
    return sorted(rows, key=lambda p: p.sequence_index)


def primary_queue(
    order: List[str],
    usage: Dict[str, object],
    rows_by_group: Dict[str, object],
    active_group: Optional[str],
    window_days: int,
    last_known_end: date,
    default_allowed: int = DEFAULT_PRIMARY_MAX_PERIODS,
) -> List[QueueEntry]:
    """
    Groups still to come after the active one, cyclically. Groups that
    have used their allowance are skipped. A group without a stored period
    gets a window computed on from last_known_end.
    """
    n = len(order)
    if active_group in order:
        start, count = order.index(active_group) + 1, n - 1
    else:
        start, count = 0, n

    cursor = last_known_end
    queue: List[QueueEntry] = []
    for step in range(count):
        group = order[(start + step) % n]
        if primary_done(usage.get(group), default_allowed):
            continue
        row = rows_by_group.get(group)
        if row is not None:
            queue.append(
                QueueEntry(group_name=group, start_date=row.start_date, end_date=row.end_date)
            )
            continue
        logger.info("No stored period for %r, computing one after %s", group, cursor)
        window_start, window_end = window_after(cursor, window_days)
        queue.append(
            QueueEntry(
                group_name=group,
                start_date=window_start,
                end_date=window_end,
                source="computed",
            )
        )
        cursor = window_end
    return queue


def _primary_state(order, usage, periods, active_pointer, config, today) -> PhaseState:
    window_days = getattr(config, "primary_window_days", None) or DEFAULT_PRIMARY_WINDOW_DAYS
    default_allowed = _primary_allowance(config)
    rows = _sorted_rows(periods, "primary")
    rows_by_group: Dict[str, object] = {}
    for row in rows:
        rows_by_group.setdefault(row.group_name, row)

    active_group = None
    if active_pointer:
        if active_pointer in order:
            active_group = active_pointer
        else:
            logger.warning("Active pointer %r is not in rotation order %s", active_pointer, order)

    last_known_end = max((r.end_date for r in rows), default=today - timedelta(days=1))
    queue = primary_queue(
        order, usage, rows_by_group, active_group, window_days, last_known_end, default_allowed
    )
    queued = {q.group_name: q for q in queue}

    display: List[GroupDisplayInfo] = []
    for group in order:
        row = rows_by_group.get(group)
        if group == active_group:
            text = "Active Now"
            if row is not None and row.start_date > today:
                text = f"Active Now (originally scheduled for {row.start_date.isoformat()})"
            display.append(
                GroupDisplayInfo(
                    group_name=group,
                    status="active",
                    start_date=today,
                    end_date=today + timedelta(days=window_days - 1),
                    days_until=0,
                    is_current_turn=True,
                    display_text=text,
                )
            )
            continue

        if primary_done(usage.get(group), default_allowed) or (
            row is not None and (row.completed or row.end_date < today)
        ):
            display.append(
                GroupDisplayInfo(
                    group_name=group,
                    status="completed",
                    start_date=row.start_date if row is not None else None,
                    end_date=row.end_date if row is not None else None,
                    display_text="Completed",
                )
            )
            continue

        entry = queued.get(group)
        start = entry.start_date if entry else (row.start_date if row is not None else None)
        end = entry.end_date if entry else (row.end_date if row is not None else None)
        days_until = (start - today).days if start else None
        display.append(
            GroupDisplayInfo(
                group_name=group,
                status="scheduled",
                start_date=start,
                end_date=end,
                days_until=days_until,
                display_text=_days_text(days_until) if days_until is not None else "Scheduled",
            )
        )

    return PhaseState(
        phase="primary",
        label="primary",
        active_group=active_group,
        order=list(order),
        upcoming_queue=queue,
        display_info=display,
    )


def secondary_windows(
    order: List[str],
    usage: Dict[str, object],
    status,
    window_days: int,
    today: date,
    default_allowed: int = DEFAULT_SECONDARY_MAX_PERIODS,
) -> List[QueueEntry]:
    """
    Live secondary schedule: reversed order, back-to-back windows from
    today. Groups without a secondary period left are dropped, as are
    groups the reversed sequence has already passed.
    """
    reversed_order = reverse_order(order)
    current = getattr(status, "current_group", None)
    current_idx = reversed_order.index(current) if current in reversed_order else -1

    entries: List[QueueEntry] = []
    anchor = today
    for idx, group in enumerate(reversed_order):
        if secondary_remaining(usage.get(group), default_allowed) <= 0:
            continue
        if current_idx >= 0 and idx < current_idx:
            continue
        end = anchor + timedelta(days=window_days - 1)
        entries.append(
            QueueEntry(group_name=group, start_date=anchor, end_date=end, source="computed")
        )
        anchor = end + timedelta(days=1)
    return entries


def _secondary_state(order, usage, periods, status, config, today) -> PhaseState:
    window_days = getattr(config, "secondary_window_days", None) or DEFAULT_SECONDARY_WINDOW_DAYS
    default_allowed = getattr(config, "secondary_max_periods", None)
    if default_allowed is None:
        default_allowed = DEFAULT_SECONDARY_MAX_PERIODS

    state = secondary_lifecycle(status)
    reversed_order = reverse_order(order)
    current = getattr(status, "current_group", None)
    current_idx = reversed_order.index(current) if current in reversed_order else -1

    stored = [r for r in _sorted_rows(periods, "secondary") if not r.completed]
    if stored:
        entries = [
            QueueEntry(group_name=r.group_name, start_date=r.start_date, end_date=r.end_date)
            for r in stored
        ]
    else:
        entries = secondary_windows(order, usage, status, window_days, today, default_allowed)
    by_group = {e.group_name: e for e in entries}

    active_group = current if state == "active" else None

    display: List[GroupDisplayInfo] = []
    for idx, group in enumerate(reversed_order):
        remaining = secondary_remaining(usage.get(group), default_allowed)
        entry = by_group.get(group)
        if state == "active" and is_current_turn(group, status):
            days_passed = max(0, (today - status.started_at.date()).days)
            display.append(
                GroupDisplayInfo(
                    group_name=group,
                    status="active",
                    start_date=status.started_at.date(),
                    end_date=(status.started_at + timedelta(days=window_days - 1)).date(),
                    days_until=0,
                    days_remaining=max(0, window_days - days_passed),
                    is_current_turn=True,
                    display_text=f"Day {min(days_passed, window_days - 1) + 1} of {window_days}",
                )
            )
        elif remaining <= 0 or (current_idx >= 0 and idx < current_idx) or (
            group == current and state == "turn_completed"
        ):
            display.append(
                GroupDisplayInfo(group_name=group, status="completed", display_text="Completed")
            )
        else:
            days_until = (entry.start_date - today).days if entry else None
            display.append(
                GroupDisplayInfo(
                    group_name=group,
                    status="scheduled",
                    start_date=entry.start_date if entry else None,
                    end_date=entry.end_date if entry else None,
                    days_until=days_until,
                    display_text=_days_text(days_until) if days_until is not None else "Scheduled",
                )
            )

    return PhaseState(
        phase="secondary",
        label=_LABELS[state],
        secondary_state=state,
        active_group=active_group,
        order=reversed_order,
        upcoming_queue=[e for e in entries if e.group_name != active_group],
        display_info=display,
    )


def compute_active(
    order: List[str],
    usage_counters: Iterable,
    periods: Iterable,
    active_pointer: Optional[str],
    secondary_status=None,
    config=None,
    today: Optional[date] = None,
) -> PhaseState:
    """
    Work out the phase, the active group and the queue of turns to come.

    order is the resolved rotation order for the year; periods may mix
    primary and secondary rows, told apart by their phase tag.
    """
    today = today or date.today()
    if not order:
        return PhaseState(phase="primary", label="primary")

    usage = usage_by_group(order, usage_counters)
    secondary_enabled = getattr(config, "enable_secondary_selection", True)
    if secondary_enabled is None:
        secondary_enabled = True

    if secondary_enabled and all_primary_done(order, usage, _primary_allowance(config)):
        return _secondary_state(order, usage, periods, secondary_status, config, today)
    return _primary_state(order, usage, periods, active_pointer, config, today)
