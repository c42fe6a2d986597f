"""
Module: taskflow_engines.duration
Responsibility:
    Compute the instant at which an effort estimate is exhausted, walking a
    user's weekly work schedule forward from a start instant and skipping
    holidays and leave days.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import taskflow_kernel/domain and taskflow_kernel.exceptions.

Invariants enforced:
    - Purity: the start instant is always passed in; no clock access.
    - Decimal arithmetic for the remaining effort.
    - Slot bounds are wall-clock times in the user's zone; the cursor
      advances in absolute (UTC) minutes, so DST changes never stretch or
      shrink consumed time.
    - One "working day" for DAYS estimates is the average scheduled minutes
      across days that have slots, rounded half-up, never below 60; a
      schedule with no working days counts 480.

Failure modes:
    - InvalidInstantError for an unparseable start or unknown time zone.
    - InvalidEstimateError for a non-positive quantity.
    - InvalidScheduleError for malformed slot times.
    - ScheduleExhaustedError when the walk needs more than
      ``max_iterations`` day steps (a schedule with no usable time).

Usage:
    from taskflow_engines.duration import add_working_duration

    add_working_duration(
        "2025-05-27T09:00:00", Decimal("16"), EstimationUnit.HOURS, "Asia/Kolkata",
    )  # datetime(2025, 5, 28, 11, 30, tzinfo=timezone.utc)
"""

from __future__ import annotations

from datetime import date, datetime, time as wall_time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Sequence

from taskflow_kernel.domain.calendar import DEFAULT_SCHEDULE_SLOTS, ScheduleSlot
from taskflow_kernel.domain.dtos import EstimationUnit
from taskflow_kernel.domain.instants import parse_calendar_date, parse_instant, resolve_zone
from taskflow_kernel.exceptions import InvalidEstimateError, ScheduleExhaustedError
from taskflow_engines.schedule import SlotLike, parse_minutes, resolve_slots, schedule_day
from taskflow_engines.tracer import traced_engine

DEFAULT_DAILY_MINUTES = 480
MIN_DAILY_MINUTES = 60
DEFAULT_MAX_ITERATIONS = 10_000

_MICROSECOND = timedelta(microseconds=1)
_MICROS_PER_MINUTE = 60_000_000


def build_schedule_map(slots: Iterable[ScheduleSlot]) -> dict[int, list[ScheduleSlot]]:
    """Group slots by weekday, each day's slots ordered by start time."""
    schedule: dict[int, list[ScheduleSlot]] = {}
    for slot in slots:
        schedule.setdefault(slot.day, []).append(slot)
    for day_slots in schedule.values():
        day_slots.sort(key=lambda slot: parse_minutes(slot.start))
    return schedule


def compute_daily_minutes(schedule: Mapping[int, list[ScheduleSlot]]) -> int:
    """Average scheduled minutes per working day."""
    total = 0
    working_days = 0
    for day_slots in schedule.values():
        if not day_slots:
            continue
        working_days += 1
        for slot in day_slots:
            span = parse_minutes(slot.end) - parse_minutes(slot.start)
            if span > 0:
                total += span
    if not working_days:
        return DEFAULT_DAILY_MINUTES
    average = (Decimal(total) / working_days).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(MIN_DAILY_MINUTES, int(average))


def _date_set(entries: Iterable[Any] | None) -> set[date]:
    """Calendar dates from holiday / leave records, mappings or plain dates."""
    dates: set[date] = set()
    for entry in entries or ():
        if entry is None:
            continue
        if isinstance(entry, Mapping):
            value = entry.get("date")
        elif isinstance(entry, (date, str)):
            value = entry
        else:
            value = getattr(entry, "date", None)
        if value:
            dates.add(parse_calendar_date(value))
    return dates


def _at_wall_clock(day: date, minutes: int, zone) -> datetime:
    local = datetime.combine(day, wall_time(minutes // 60, minutes % 60), tzinfo=zone)
    return local.astimezone(timezone.utc)


def _minutes(amount: Decimal) -> timedelta:
    micros = (amount * _MICROS_PER_MINUTE).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return timedelta(microseconds=int(micros))


def _next_day_start(cursor_utc: datetime, zone) -> datetime:
    next_day = cursor_utc.astimezone(zone).date() + timedelta(days=1)
    return datetime.combine(next_day, wall_time(0, 0), tzinfo=zone).astimezone(timezone.utc)


@traced_engine(
    "duration",
    "1.0",
    fingerprint_fields=(
        "start", "quantity", "unit", "time_zone", "schedule", "default_schedule",
    ),
)
def add_working_duration(
    start: str | datetime,
    quantity: Decimal | int | str,
    unit: EstimationUnit | str,
    time_zone: str | None,
    schedule: Iterable[SlotLike] | None = None,
    holidays: Iterable[Any] | None = None,
    leave_dates: Iterable[Any] | None = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    default_schedule: Sequence[ScheduleSlot] = DEFAULT_SCHEDULE_SLOTS,
) -> datetime:
    """
    Return the UTC instant at which ``quantity`` ``unit`` of work is done.

    Args:
        start: First instant work may begin; naive values are wall-clock
            times in ``time_zone``.
        quantity: Positive effort amount.
        unit: HOURS (60 minutes each) or DAYS (average working day).
        time_zone: IANA zone in which the schedule slots are read.
        schedule: Weekly slots; ``default_schedule`` when empty.
        holidays: Company holidays (records, ``{"date": ...}`` or dates).
        leave_dates: Approved leave of the assignee, same shapes.
        max_iterations: Safety bound on the number of day steps.
        default_schedule: Slots used when ``schedule`` is empty; Mon-Fri
            09:00-17:00 unless the caller configures otherwise.
    """
    zone = resolve_zone(time_zone)
    cursor = parse_instant(start, time_zone).astimezone(timezone.utc)

    amount = Decimal(str(quantity))
    if not amount.is_finite() or amount <= 0:
        raise InvalidEstimateError("quantity", "must be greater than zero")
    unit = EstimationUnit(unit)

    schedule_map = build_schedule_map(resolve_slots(schedule, default=default_schedule))
    if unit == EstimationUnit.HOURS:
        remaining = amount * 60
    else:
        remaining = amount * compute_daily_minutes(schedule_map)

    non_working = _date_set(holidays) | _date_set(leave_dates)

    iterations = 0
    while remaining > 0:
        if iterations > max_iterations:
            raise ScheduleExhaustedError(iterations, remaining)
        iterations += 1

        local = cursor.astimezone(zone)
        day = local.date()
        day_slots = [] if day in non_working else schedule_map.get(schedule_day(local), [])

        for slot in day_slots:
            slot_start = _at_wall_clock(day, parse_minutes(slot.start), zone)
            slot_end = _at_wall_clock(day, parse_minutes(slot.end), zone)
            if slot_end <= slot_start or cursor > slot_end:
                continue
            if cursor > slot_start:
                slot_start = cursor
            available = Decimal((slot_end - slot_start) // _MICROSECOND) / _MICROS_PER_MINUTE
            if available <= 0:
                continue
            used = min(available, remaining)
            cursor = slot_start + _minutes(used)
            remaining -= used
            if remaining <= 0:
                break

        if remaining <= 0:
            break
        # Whatever is left of this day lies outside its slots.
        cursor = _next_day_start(cursor, zone)

    return cursor
