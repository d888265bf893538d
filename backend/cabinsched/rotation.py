import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

MOVE_FIRST_TO_LAST = "move_first_to_last"
MOVE_LAST_TO_FIRST = "move_last_to_first"

# older configs stored "first" / "last"
_POLICY_ALIASES = {
    "first": MOVE_FIRST_TO_LAST,
    "last": MOVE_LAST_TO_FIRST,
    MOVE_FIRST_TO_LAST: MOVE_FIRST_TO_LAST,
    MOVE_LAST_TO_FIRST: MOVE_LAST_TO_FIRST,
}

ALLOCATION_MODES = (
    "rotating_selection",
    "static_weeks",
    "first_come_first_serve",
    "manual",
    "lottery",
)

# Mode flags that legacy rows mixed into the rotation order array,
# mapped to the allocation mode they stood for.
_SENTINEL_MODES = {mode: mode for mode in ALLOCATION_MODES}
_SENTINEL_MODES.update(
    {
        "use_virtual_weeks_system": "static_weeks",
        "virtual_weeks": "static_weeks",
        "__static_weeks__": "static_weeks",
        "__manual__": "manual",
    }
)
LEGACY_MODE_SENTINELS = frozenset(_SENTINEL_MODES)

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
DEFAULT_START_MONTH = 10


@dataclass
class RotationSetup:
    mode: str = "rotating_selection"
    order: List[str] = field(default_factory=list)


def _is_sentinel(value) -> bool:
    if not isinstance(value, str):
        return True
    stripped = value.strip()
    return not stripped or stripped in LEGACY_MODE_SENTINELS


def strip_sentinels(raw_order: Optional[Iterable]) -> List[str]:
    """Keep only real group names, in order."""
    if not raw_order:
        return []
    return [v.strip() for v in raw_order if not _is_sentinel(v)]


def split_legacy_order(raw_order: Optional[Iterable]) -> RotationSetup:
    """
    Turn a legacy order array (group names with mode flags mixed in) into
    a RotationSetup. The first recognised allocation mode wins; without
    one the mode is rotating_selection.
    """
    mode = "rotating_selection"
    for v in raw_order or []:
        if isinstance(v, str) and v.strip() in _SENTINEL_MODES:
            mode = _SENTINEL_MODES[v.strip()]
            break
    return RotationSetup(mode=mode, order=strip_sentinels(raw_order))


def normalize_policy(policy: Optional[str]) -> str:
    normalized = _POLICY_ALIASES.get((policy or "").strip().lower())
    if normalized is None:
        logger.warning("Unknown rotation direction %r, using %s", policy, MOVE_FIRST_TO_LAST)
        return MOVE_FIRST_TO_LAST
    return normalized


def resolve_for_year(
    base_order: Optional[Iterable],
    base_year: int,
    target_year: int,
    direction_policy: Optional[str] = MOVE_FIRST_TO_LAST,
) -> List[str]:
    """
    Effective turn order for target_year.

    Each year after base_year applies one rotation step:
      move_first_to_last: [A, B, C] -> [B, C, A]
      move_last_to_first: [A, B, C] -> [C, A, B]

    Years before base_year get the base order unrotated.
    """
    order = strip_sentinels(base_order)
    if not order or target_year <= base_year:
        return order

    steps = (target_year - base_year) % len(order)
    if steps == 0:
        return order

    if normalize_policy(direction_policy) == MOVE_FIRST_TO_LAST:
        return order[steps:] + order[:steps]
    return order[-steps:] + order[:-steps]


def reverse_order(order: Iterable[str]) -> List[str]:
    """Secondary selection runs the resolved order backwards."""
    return list(reversed(list(order)))


def month_number(month_name: Optional[str]) -> int:
    """1-based month for a name like 'October'; unknown names give October."""
    if month_name:
        wanted = month_name.strip().lower()
        for i, name in enumerate(MONTH_NAMES):
            if name.lower() == wanted or name[:3].lower() == wanted:
                return i + 1
    return DEFAULT_START_MONTH


def selection_rotation_year(today: date, start_month: Optional[str]) -> int:
    """
    The reservation year currently being selected for. Selections opening
    on or after the first of start_month are for next year's reservations.
    """
    rotation_start = date(today.year, month_number(start_month), 1)
    return today.year + 1 if today >= rotation_start else today.year
