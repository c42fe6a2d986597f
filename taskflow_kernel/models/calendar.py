"""
Module: taskflow_kernel.models.calendar
Responsibility: ORM persistence for weekly work schedules, company holidays
    and leave (day-off) entries.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A work schedule belongs to a user, to a company (default), or to
      nobody (global fallback).
    - Only APPROVED leave removes a day from the working calendar; the
      filtering happens in CalendarSelector.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from taskflow_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from taskflow_kernel.domain.calendar import HolidayRecord, LeaveRecord, WorkScheduleRecord


class WorkScheduleModel(Base):
    __tablename__ = "work_schedules"

    __table_args__ = (
        Index("ix_work_schedules_user", "user_id"),
        Index("ix_work_schedules_company", "company_id"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    time_zone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    company_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    slots: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)

    def to_dto(self) -> WorkScheduleRecord:
        from taskflow_kernel.domain.calendar import ScheduleSlot, WorkScheduleRecord as DTO

        return DTO(
            id=self.id,
            name=self.name,
            time_zone=self.time_zone,
            slots=tuple(ScheduleSlot.from_value(slot) for slot in self.slots),
            user_id=self.user_id,
            company_id=self.company_id,
        )


class CompanyHolidayModel(Base):
    __tablename__ = "company_holidays"

    __table_args__ = (
        Index("ix_company_holidays_company_date", "company_id", "holiday_date"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False)
    calendar_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    company_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    vendor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def to_dto(self) -> HolidayRecord:
        from taskflow_kernel.domain.calendar import HolidayRecord as DTO

        return DTO(
            id=self.id,
            date=self.holiday_date,
            name=self.name,
            company_id=self.company_id,
            vendor_id=self.vendor_id,
        )


class LeaveModel(Base):
    __tablename__ = "leave_days"

    __table_args__ = (
        Index("ix_leave_days_user_status", "user_id", "status"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    leave_date: Mapped[date] = mapped_column(Date, nullable=False)
    leave_type: Mapped[str] = mapped_column(String(50), nullable=False, default="VACATION")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")

    def to_dto(self) -> LeaveRecord:
        from taskflow_kernel.domain.calendar import LeaveRecord as DTO, LeaveStatus

        return DTO(
            id=self.id,
            user_id=self.user_id,
            date=self.leave_date,
            status=LeaveStatus(self.status),
        )
