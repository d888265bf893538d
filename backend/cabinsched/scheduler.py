from datetime import date, timedelta
from typing import List, Dict, Any, Optional, Tuple

from .rotation import month_number


def first_day_of_start_month(selection_year: int, start_month: Optional[str]) -> date:
    return date(selection_year, month_number(start_month), 1)


def window_after(previous_end: date, window_days: int) -> Tuple[date, date]:
    """The window of window_days that starts the day after previous_end."""
    start = previous_end + timedelta(days=1)
    return start, start + timedelta(days=window_days - 1)


def generate_selection_periods(
    order: List[str],
    selection_year: int,
    window_days: int = 14,
    start_month: Optional[str] = "October",
    phase: str = "primary",
) -> List[Dict[str, Any]]:
    """
    Returns list of periods, one per group in order:
      {
        "rotation_year": int,     # selection_year + 1
        "phase": str,
        "group_name": str,
        "sequence_index": int,
        "start_date": date,
        "end_date": date,
        "completed": False,
      }
    Periods are back to back: each starts the day after the previous ends.
    """
    if window_days <= 0:
        raise ValueError("window_days must be positive")
    if not order:
        return []

    reservation_year = selection_year + 1
    anchor = first_day_of_start_month(selection_year, start_month)

    periods: List[Dict[str, Any]] = []
    for i, group_name in enumerate(order):
        end = anchor + timedelta(days=window_days - 1)
        periods.append(
            {
                "rotation_year": reservation_year,
                "phase": phase,
                "group_name": group_name,
                "sequence_index": i,
                "start_date": anchor,
                "end_date": end,
                "completed": False,
            }
        )
        anchor = end + timedelta(days=1)

    return periods
