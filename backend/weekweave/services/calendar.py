"""Week anchoring, day-of-week mapping and teaching period numbering.

Weeks are anchored on Monday and a school week runs Monday..Saturday. Every helper here
works on real ``date`` values and :class:`DayOfWeek`; nothing compares day-name strings or
sliced ISO dates.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from weekweave.core.config import get_settings
from weekweave.models.timetable_entry import DayOfWeek

DAY_ORDER: tuple[DayOfWeek, ...] = tuple(DayOfWeek)
DAY_OFFSETS: dict[DayOfWeek, int] = {day: index for index, day in enumerate(DAY_ORDER)}
SCHOOL_WEEK_LENGTH = 6
BREAK_LABEL = "Break"

_DAY_ALIASES: dict[str, DayOfWeek] = {}
for _day in DayOfWeek:
    _DAY_ALIASES[_day.value] = _day
    _DAY_ALIASES[_day.value[:3]] = _day


def parse_day(value: str | DayOfWeek) -> DayOfWeek:
    if isinstance(value, DayOfWeek):
        return value
    key = str(value).strip().lower()
    try:
        return _DAY_ALIASES[key]
    except KeyError:
        raise ValueError(f"Invalid day value: {value!r}") from None


def day_of(value: date) -> DayOfWeek:
    return DAY_ORDER[value.weekday()]


def week_start(value: date) -> date:
    """Monday of the week containing ``value``; a Sunday belongs to the Monday six days before."""
    return value - timedelta(days=value.weekday())


def week_bounds(value: date) -> tuple[date, date]:
    monday = week_start(value)
    return monday, monday + timedelta(days=SCHOOL_WEEK_LENGTH - 1)


def in_school_week(candidate: date, reference: date) -> bool:
    start, end = week_bounds(reference)
    return start <= candidate <= end


def date_of_day_in_week(reference: date, day: DayOfWeek | str) -> date:
    return week_start(reference) + timedelta(days=DAY_OFFSETS[parse_day(day)])


def sort_days(days: Iterable[DayOfWeek | str]) -> list[DayOfWeek]:
    return sorted({parse_day(item) for item in days}, key=DAY_OFFSETS.__getitem__)


def today(tz_name: str | None = None) -> date:
    zone = ZoneInfo(tz_name or get_settings().school_timezone)
    return datetime.now(zone).date()


def teaching_period_number(slots: Sequence, target_period: int) -> int | None:
    """Ordinal of ``target_period`` among non-break slots, or ``None`` for a break.

    ``slots`` is the current structure's slot list (objects or dicts with ``period`` and
    ``is_break``). The number is recomputed on every call.
    """
    ordered = sorted(slots, key=lambda item: _slot_attr(item, "period"))
    count = 0
    target_is_break = False
    for slot in ordered:
        period = _slot_attr(slot, "period")
        if period > target_period:
            break
        if _slot_attr(slot, "is_break"):
            if period == target_period:
                target_is_break = True
            continue
        count += 1
    if target_is_break:
        return None
    return count


def period_label(slots: Sequence, period: int) -> str:
    number = teaching_period_number(slots, period)
    return BREAK_LABEL if number is None else str(number)


def _slot_attr(slot, name: str):
    if isinstance(slot, dict):
        return slot.get(name, False if name == "is_break" else None)
    return getattr(slot, name)
