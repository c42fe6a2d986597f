"""
Module: taskflow_engines.schedule
Responsibility:
    Resolve weekly work schedules and answer "is this instant (or range)
    inside working hours?" for a user's time zone.  Also validates slots
    submitted for storage.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import taskflow_kernel/domain and taskflow_kernel.exceptions.

Invariants enforced:
    - Weekdays are numbered 0 = Sunday .. 6 = Saturday.
    - An absent or empty schedule means the default Mon-Fri 09:00-17:00.
    - Slot bounds are inclusive: 17:00 is inside a 09:00-17:00 slot.

Failure modes:
    - InvalidScheduleError from ``parse_minutes`` / ``validate_slots`` on
      malformed times, out-of-range days, inverted or duplicate slots.
    - ``is_instant_within_schedule`` and ``is_range_within_schedule`` return
      False for unparseable instants instead of raising.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from taskflow_kernel.domain.calendar import DEFAULT_SCHEDULE_SLOTS, ScheduleSlot
from taskflow_kernel.domain.instants import parse_instant
from taskflow_kernel.exceptions import InvalidInstantError, InvalidScheduleError
from taskflow_kernel.logging_config import get_logger

logger = get_logger("engines.schedule")

_TIME_PATTERN = re.compile(r"^([0-1]\d|2[0-3]):[0-5]\d$")

SlotLike = ScheduleSlot | Mapping[str, Any]

__all__ = [
    "DEFAULT_SCHEDULE_SLOTS",
    "ScheduleSlot",
    "is_instant_within_schedule",
    "is_range_within_schedule",
    "parse_minutes",
    "resolve_slots",
    "schedule_day",
    "validate_slots",
]


def parse_minutes(value: str) -> int:
    """``"HH:MM"`` to minutes after midnight, 00:00 through 23:59."""
    try:
        hours_text, minutes_text = value.split(":", 1)
        hours, minutes = int(hours_text), int(minutes_text)
    except (AttributeError, ValueError):
        raise InvalidScheduleError(f"invalid schedule time {value!r}") from None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise InvalidScheduleError(f"schedule time out of range {value!r}")
    return hours * 60 + minutes


def schedule_day(moment: datetime) -> int:
    """Weekday of ``moment`` on the 0 = Sunday scale."""
    return moment.isoweekday() % 7


def resolve_slots(
    raw: Iterable[SlotLike] | None = None,
    default: Sequence[ScheduleSlot] = DEFAULT_SCHEDULE_SLOTS,
) -> tuple[ScheduleSlot, ...]:
    """Effective slots sorted by (day, start); the default when none are given."""
    slots = [ScheduleSlot.from_value(slot) for slot in (raw or ())]
    if not slots:
        slots = list(default)
    return tuple(sorted(slots, key=lambda slot: (slot.day, slot.start)))


def _contains(moment: datetime, slot: ScheduleSlot) -> bool:
    if schedule_day(moment) != slot.day:
        return False
    minutes = moment.hour * 60 + moment.minute
    return parse_minutes(slot.start) <= minutes <= parse_minutes(slot.end)


def is_instant_within_schedule(
    instant: str | datetime,
    slots: Iterable[SlotLike] | None,
    time_zone: str | None,
) -> bool:
    """True when ``instant``, read in ``time_zone``, falls inside any slot."""
    try:
        moment = parse_instant(instant, time_zone)
    except InvalidInstantError:
        return False
    return any(_contains(moment, slot) for slot in resolve_slots(slots))


def is_range_within_schedule(
    start: str | datetime,
    end: str | datetime,
    slots: Iterable[SlotLike] | None,
    time_zone: str | None,
) -> bool:
    """True when [start, end] lies on one local date and inside a single slot."""
    try:
        start_moment = parse_instant(start, time_zone)
        end_moment = parse_instant(end, time_zone)
    except InvalidInstantError:
        return False
    if end_moment <= start_moment or start_moment.date() != end_moment.date():
        return False
    return any(
        _contains(start_moment, slot) and _contains(end_moment, slot)
        for slot in resolve_slots(slots)
    )


def validate_slots(slots: Iterable[SlotLike]) -> tuple[ScheduleSlot, ...]:
    """Check slots submitted for storage and return them sorted.

    Only one slot per weekday is accepted.
    """
    seen: set[int] = set()
    validated: list[ScheduleSlot] = []
    for raw in slots:
        slot = ScheduleSlot.from_value(raw)
        if not isinstance(slot.day, int) or isinstance(slot.day, bool) or not 0 <= slot.day <= 6:
            raise InvalidScheduleError("day must be between 0 and 6")
        if not (
            isinstance(slot.start, str) and isinstance(slot.end, str)
            and _TIME_PATTERN.match(slot.start) and _TIME_PATTERN.match(slot.end)
        ):
            raise InvalidScheduleError("start and end must be HH:mm in 24-hour format")
        if slot.end <= slot.start:
            raise InvalidScheduleError("end time must be after start time")
        if slot.day in seen:
            raise InvalidScheduleError("only one slot per day is supported")
        seen.add(slot.day)
        validated.append(ScheduleSlot(day=slot.day, start=slot.start, end=slot.end))
    return tuple(sorted(validated, key=lambda slot: (slot.day, slot.start)))
