"""
Calendar query selector.

Supplies the three inputs of the completion-date calculation for one user:
the weekly work schedule, company holidays and approved leave.

Schedule precedence (first match wins):
    1. the user's own schedule
    2. the company's default schedule (company_id set, user_id null)
    3. the global schedule (neither set)
"""

from uuid import UUID

from sqlalchemy import or_, select

from taskflow_kernel.domain.calendar import (
    HolidayRecord,
    LeaveRecord,
    LeaveStatus,
    WorkScheduleRecord,
)
from taskflow_kernel.models.calendar import CompanyHolidayModel, LeaveModel, WorkScheduleModel
from taskflow_kernel.selectors.base import BaseSelector


class CalendarSelector(BaseSelector[WorkScheduleModel]):

    def find_schedule_for_user(
        self, user_id: UUID | None, company_id: UUID | None = None,
    ) -> WorkScheduleRecord | None:
        candidates = []
        if user_id is not None:
            candidates.append(WorkScheduleModel.user_id == user_id)
        if company_id is not None:
            candidates.append(
                (WorkScheduleModel.company_id == company_id) & WorkScheduleModel.user_id.is_(None)
            )
        candidates.append(
            WorkScheduleModel.user_id.is_(None) & WorkScheduleModel.company_id.is_(None)
        )
        for criterion in candidates:
            model = self.session.scalars(
                select(WorkScheduleModel).where(criterion).order_by(WorkScheduleModel.name).limit(1)
            ).first()
            if model is not None:
                return model.to_dto()
        return None

    def list_holidays(
        self, company_id: UUID | None = None, vendor_id: UUID | None = None,
    ) -> list[HolidayRecord]:
        """Holidays visible to a company / vendor.

        With ``vendor_id`` only that vendor's holidays qualify.  With
        ``company_id`` company-less holidays qualify as well as the
        company's own.
        """
        stmt = select(CompanyHolidayModel).order_by(CompanyHolidayModel.holiday_date)
        if vendor_id is not None:
            stmt = stmt.where(CompanyHolidayModel.vendor_id == vendor_id)
        if company_id is not None:
            stmt = stmt.where(
                or_(
                    CompanyHolidayModel.company_id.is_(None),
                    CompanyHolidayModel.company_id == company_id,
                )
            )
        return [model.to_dto() for model in self.session.scalars(stmt)]

    def list_approved_leave(self, user_id: UUID) -> list[LeaveRecord]:
        models = self.session.scalars(
            select(LeaveModel)
            .where(
                LeaveModel.user_id == user_id,
                LeaveModel.status == LeaveStatus.APPROVED.value,
            )
            .order_by(LeaveModel.leave_date)
        )
        return [model.to_dto() for model in models]
