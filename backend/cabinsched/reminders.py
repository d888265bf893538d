import logging
import os
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from .schemas import ReminderInstance

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = int(os.getenv("REMINDER_HORIZON_DAYS", "30"))
REMINDER_OFFSETS = (7, 3, 1)
ALL_GROUPS = "All Family Groups"


def _field(obj, name, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"not a date: {value!r}")


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        return _naive_utc(datetime.fromisoformat(value.strip()))
    raise ValueError(f"not a timestamp: {value!r}")


def _at_midnight(d: date) -> datetime:
    return datetime.combine(d, time.min)


def _long_date(d: date) -> str:
    return f"{d:%A, %B} {d.day}, {d.year}"


def _fill(template: str, values: Dict[str, str]) -> str:
    for key, value in values.items():
        template = template.replace("{" + key + "}", value)
    return template


def enabled_offsets(settings) -> Tuple[int, ...]:
    return tuple(
        days for days in REMINDER_OFFSETS if _field(settings, f"remind_{days}_day", True)
    )


def _enabled(settings, name: str) -> bool:
    value = _field(settings, name, True)
    return True if value is None else bool(value)


def _recipient(group_name: str, contacts: Dict[str, object], fallback: Optional[str] = None) -> str:
    contact = contacts.get(group_name)
    email = _field(contact, "lead_email") if contact is not None else None
    return email or fallback or group_name


def _reservation_reminders(
    reservation, settings, offsets, today, horizon_end, contacts
) -> List[ReminderInstance]:
    status = _field(reservation, "status") or "confirmed"
    if status != "confirmed":
        return []

    check_in = _as_date(_field(reservation, "start_date"))
    end_value = _field(reservation, "end_date")
    check_out = _as_date(end_value) if end_value is not None else check_in
    if not today <= check_in <= horizon_end:
        return []

    group = _field(reservation, "group_name") or ""
    host = _field(reservation, "host_name") or group
    recipient = _recipient(group, contacts, host)
    subject_template = _field(settings, "subject_template")
    message_template = _field(settings, "message_template")

    result = []
    for days in offsets:
        send_on = check_in - timedelta(days=days)
        if send_on < today:
            continue
        timing = f"{days}-day"
        values = {
            "group_name": group,
            "host_name": host,
            "timing": timing,
            "check_in_date": _long_date(check_in),
        }
        subject = (
            _fill(subject_template, values)
            if subject_template
            else f"{timing} Cabin Reminder - {group}"
        )
        body = (
            _fill(message_template, values)
            if message_template
            else (
                f"Hi {host},\n\n"
                f"This is a {timing} reminder that your family has a cabin reservation "
                f"starting {_long_date(check_in)}.\n\n"
                "Please review the check-in procedures and make sure everything is "
                "ready for your arrival."
            )
        )
        result.append(
            ReminderInstance(
                id=f"reservation:{_field(reservation, 'id')}:{days}_day",
                source_type="reservation",
                reminder_kind=f"{days}_day",
                send_at=_at_midnight(send_on),
                recipient=recipient,
                group_name=group,
                subject=subject,
                body=body,
                event_start=check_in,
                event_end=check_out,
            )
        )
    return result


def _work_weekend_reminders(work_weekend, offsets, today, horizon_end) -> List[ReminderInstance]:
    if _field(work_weekend, "status") != "fully_approved":
        return []

    start = _as_date(_field(work_weekend, "start_date"))
    end_value = _field(work_weekend, "end_date")
    end = _as_date(end_value) if end_value is not None else start
    if not today <= start <= horizon_end:
        return []

    title = _field(work_weekend, "title") or "Work Weekend"
    description = _field(work_weekend, "description") or (
        "Please plan to participate in this cabin maintenance event."
    )
    result = []
    for days in offsets:
        send_on = start - timedelta(days=days)
        if send_on < today:
            continue
        subject = (
            f"Work Weekend Tomorrow - {title}"
            if days == 1
            else f"Work Weekend Reminder - {title}"
        )
        body = (
            f"Hello!\n\nThis is a {days}-day reminder about the upcoming work weekend: {title}\n\n"
            f"Date: {_long_date(start)} - {_long_date(end)}\n"
            f"Organizer: {_field(work_weekend, 'proposer_name') or 'the organizer'}\n\n"
            f"{description}"
        )
        result.append(
            ReminderInstance(
                id=f"work_weekend:{_field(work_weekend, 'id')}:{days}_day",
                source_type="work_weekend",
                reminder_kind=f"{days}_day",
                send_at=_at_midnight(send_on),
                recipient=ALL_GROUPS,
                group_name="All",
                subject=subject,
                body=body,
                event_start=start,
                event_end=end,
            )
        )
    return result


def _period_key(period) -> str:
    period_id = _field(period, "id")
    if period_id is not None:
        return str(period_id)
    return "{}-{}-{}".format(
        _field(period, "rotation_year"),
        _field(period, "phase") or "primary",
        _field(period, "sequence_index"),
    )


def _selection_reminders(
    period, today, horizon_end, completed_groups, extensions, contacts
) -> List[ReminderInstance]:
    group = _field(period, "group_name") or ""
    start = _as_date(_field(period, "start_date"))
    end = _as_date(_field(period, "end_date"))
    rotation_year = _field(period, "rotation_year")
    extended_until = extensions.get((rotation_year, group))
    effective_end = _as_date(extended_until) if extended_until is not None else end

    key = _period_key(period)
    recipient = _recipient(group, contacts)
    done = group in completed_groups or bool(_field(period, "completed", False))

    result = []
    if not done and today <= start <= horizon_end:
        result.append(
            ReminderInstance(
                id=f"selection_period:{key}:selection_start",
                source_type="selection_period",
                reminder_kind="selection_start",
                send_at=_at_midnight(start),
                recipient=recipient,
                group_name=group,
                subject=f"Your Selection Period Has Started - {group}",
                body=(
                    f"Hello {group}!\n\nIt's your turn to select dates for {rotation_year}.\n\n"
                    f"Period: {_long_date(start)} - {_long_date(effective_end)}"
                ),
                event_start=start,
                event_end=effective_end,
            )
        )

    ending_on = effective_end - timedelta(days=1)
    if today <= ending_on <= horizon_end:
        result.append(
            ReminderInstance(
                id=f"selection_period:{key}:selection_ending",
                source_type="selection_period",
                reminder_kind="selection_ending",
                send_at=_at_midnight(ending_on),
                recipient=recipient,
                group_name=group,
                subject=f"Selection Period Ends Tomorrow - {group}",
                body=(
                    f"Hello {group}!\n\nYour selection period ends tomorrow, "
                    f"{_long_date(effective_end)}.\n\nDon't miss out on making your reservations!"
                ),
                event_start=start,
                event_end=effective_end,
            )
        )
    return result


def _secondary_reminder(
    status, window_days, today, horizon_end, contacts
) -> Optional[ReminderInstance]:
    group = _field(status, "current_group")
    started_value = _field(status, "started_at")
    if not group or started_value is None or _field(status, "turn_completed", False):
        return None

    # a turn covers window_days calendar days; the reminder lands on the last
    started_at = _as_datetime(started_value)
    send_at = started_at + timedelta(days=window_days - 1)
    last_day = send_at.date()
    if not today <= last_day <= horizon_end:
        return None

    rotation_year = _field(status, "rotation_year")
    return ReminderInstance(
        id=f"selection_period:secondary-{rotation_year}-{group}:secondary_deadline",
        source_type="selection_period",
        reminder_kind="secondary_deadline",
        send_at=send_at,
        recipient=_recipient(group, contacts),
        group_name=group,
        subject=f"Secondary Selection Ends Today - {group}",
        body=(
            f"Hello {group}!\n\nToday, {_long_date(last_day)}, is the last day of your "
            f"secondary selection turn for {rotation_year}."
        ),
        event_start=started_at.date(),
        event_end=last_day,
    )


def _sort_key(reminder: ReminderInstance):
    return (reminder.send_at, reminder.source_type, reminder.group_name, reminder.id)


def build_reminders(
    reservations: Iterable,
    selection_periods: Iterable,
    secondary_status,
    work_weekends: Iterable,
    settings=None,
    now: Optional[datetime] = None,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    completed_groups: Iterable[str] = (),
    extensions: Optional[Iterable] = None,
    contacts: Optional[Iterable] = None,
    secondary_window_days: int = 7,
) -> List[ReminderInstance]:
    """
    Build the reminders due within horizon_days of now, sorted by send time.

    The same snapshots and the same now always give the same list: ids are
    derived from (source, kind) so a reminder appears at most once per pass.
    An event with an unreadable date is logged and left out; it does not
    stop the rest of the list.
    """
    now = _naive_utc(now) if now is not None else datetime.utcnow()
    today = now.date()
    horizon_end = today + timedelta(days=horizon_days)
    completed = set(completed_groups or ())
    contacts_by_group = {_field(c, "group_name"): c for c in contacts or []}
    extensions_by_group = {
        (_field(e, "rotation_year"), _field(e, "group_name")): _field(e, "extended_until")
        for e in extensions or []
    }
    offsets = enabled_offsets(settings)

    built: Dict[str, ReminderInstance] = {}

    def collect(items: Iterable[ReminderInstance]) -> None:
        for item in items:
            built.setdefault(item.id, item)

    if _enabled(settings, "reservation_reminders_enabled"):
        for reservation in reservations or []:
            try:
                collect(
                    _reservation_reminders(
                        reservation, settings, offsets, today, horizon_end, contacts_by_group
                    )
                )
            except (ValueError, TypeError) as e:
                logger.warning("Skipping reservation %s: %s", _field(reservation, "id"), e)

    if _enabled(settings, "work_weekend_reminders_enabled"):
        for work_weekend in work_weekends or []:
            try:
                collect(_work_weekend_reminders(work_weekend, offsets, today, horizon_end))
            except (ValueError, TypeError) as e:
                logger.warning("Skipping work weekend %s: %s", _field(work_weekend, "id"), e)

    if _enabled(settings, "selection_reminders_enabled"):
        for period in selection_periods or []:
            try:
                collect(
                    _selection_reminders(
                        period, today, horizon_end, completed, extensions_by_group, contacts_by_group
                    )
                )
            except (ValueError, TypeError) as e:
                logger.warning("Skipping selection period %s: %s", _field(period, "id"), e)

        if secondary_status is not None:
            try:
                reminder = _secondary_reminder(
                    secondary_status, secondary_window_days, today, horizon_end, contacts_by_group
                )
                if reminder is not None:
                    collect([reminder])
            except (ValueError, TypeError) as e:
                logger.warning("Skipping secondary selection reminder: %s", e)

    return sorted(built.values(), key=_sort_key)
