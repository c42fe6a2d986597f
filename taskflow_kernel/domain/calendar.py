"""
Calendar value objects (``taskflow_kernel.domain.calendar``).

Responsibility:
    Frozen records for weekly work schedules, company holidays and leave
    days -- the inputs of the completion-date calculation.

Architecture position:
    Kernel > Domain -- pure value objects, ZERO I/O.

Conventions:
    - ``day`` numbers weekdays 0 = Sunday .. 6 = Saturday.
    - ``start`` / ``end`` are 24h ``HH:MM`` wall-clock times in the
      schedule owner's time zone.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from taskflow_kernel.exceptions import InvalidScheduleError


@dataclass(frozen=True)
class ScheduleSlot:
    day: int
    start: str
    end: str

    def to_dict(self) -> dict[str, Any]:
        return {"day": self.day, "start": self.start, "end": self.end}

    @classmethod
    def from_value(cls, value: ScheduleSlot | Mapping[str, Any]) -> ScheduleSlot:
        if isinstance(value, ScheduleSlot):
            return value
        try:
            return cls(day=value["day"], start=value["start"], end=value["end"])
        except (KeyError, TypeError) as exc:
            raise InvalidScheduleError(f"malformed schedule slot {value!r}") from exc


DEFAULT_SCHEDULE_SLOTS: tuple[ScheduleSlot, ...] = tuple(
    ScheduleSlot(day=day, start="09:00", end="17:00") for day in range(1, 6)
)


class LeaveStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class WorkScheduleRecord:
    """A stored weekly schedule: per user, company default, or global."""

    id: UUID
    name: str
    time_zone: str
    slots: tuple[ScheduleSlot, ...]
    user_id: UUID | None = None
    company_id: UUID | None = None


@dataclass(frozen=True)
class HolidayRecord:
    id: UUID
    date: date
    name: str
    company_id: UUID | None = None
    vendor_id: UUID | None = None


@dataclass(frozen=True)
class LeaveRecord:
    id: UUID
    user_id: UUID
    date: date
    status: LeaveStatus
