"""
taskflow_services.schedule_service -- Read and store users' weekly schedules.

Responsibility:
    Return the effective work schedule of a user and replace a user's own
    schedule after validating the submitted slots.

Architecture position:
    Services -- stateful orchestration over engines + kernel.  Slot
    validation is the pure ``taskflow_engines.schedule.validate_slots``.

Invariants enforced:
    - A user may always manage their own schedule; managing someone else's
      requires one of ``policy.schedule_admin_roles``.
    - Stored slots are validated and sorted; one slot per weekday.

Failure modes:
    - UserNotFoundError for an unknown target user.
    - UnauthorizedScheduleAccessError for a non-admin acting on another user.
    - InvalidScheduleError from slot validation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskflow_engines.schedule import ScheduleSlot, validate_slots
from taskflow_kernel.domain.calendar import WorkScheduleRecord
from taskflow_kernel.domain.dtos import Actor, UserInfo
from taskflow_kernel.domain.policy import DEFAULT_POLICY, WorkflowPolicy
from taskflow_kernel.exceptions import UnauthorizedScheduleAccessError, UserNotFoundError
from taskflow_kernel.logging_config import get_logger
from taskflow_kernel.models.calendar import WorkScheduleModel
from taskflow_kernel.selectors.calendar_selector import CalendarSelector
from taskflow_kernel.selectors.directory_selector import DirectorySelector

logger = get_logger("services.schedule")


@dataclass(frozen=True)
class UserSchedule:
    """The schedule in effect for a user.  ``slots`` is empty when none is stored."""

    user: UserInfo
    time_zone: str
    slots: tuple[ScheduleSlot, ...]


class ScheduleService:
    """Schedule lookup and storage with the self-or-admin access rule."""

    def __init__(self, session: Session, policy: WorkflowPolicy = DEFAULT_POLICY) -> None:
        self._session = session
        self._policy = policy
        self._directory = DirectorySelector(session)
        self._calendar = CalendarSelector(session)

    def get_schedule_for_user(self, actor: Actor, user_id: UUID) -> UserSchedule:
        target = self._authorized_target(actor, user_id)
        schedule = self._calendar.find_schedule_for_user(target.id, target.company_id)
        return UserSchedule(
            user=target,
            time_zone=(
                schedule.time_zone if schedule
                else target.time_zone or self._policy.default_time_zone
            ),
            slots=schedule.slots if schedule else (),
        )

    def save_schedule_for_user(
        self,
        actor: Actor,
        user_id: UUID,
        slots: Iterable[ScheduleSlot | Mapping[str, Any]],
    ) -> WorkScheduleRecord:
        """Replace the user's own schedule (company and global ones are untouched)."""
        target = self._authorized_target(actor, user_id)
        validated = validate_slots(slots)

        model = self._session.scalars(
            select(WorkScheduleModel).where(WorkScheduleModel.user_id == target.id)
        ).first()
        if model is None:
            model = WorkScheduleModel(user_id=target.id)
            self._session.add(model)
        model.name = target.full_name or target.email
        model.time_zone = target.time_zone or self._policy.default_time_zone
        model.company_id = target.company_id
        model.slots = [slot.to_dict() for slot in validated]
        self._session.flush()

        logger.info(
            "work_schedule_saved",
            extra={
                "user_id": str(target.id),
                "actor_id": str(actor.id),
                "slot_count": len(validated),
            },
        )
        return model.to_dto()

    def _authorized_target(self, actor: Actor, user_id: UUID) -> UserInfo:
        target = self._directory.get_user(user_id)
        if target is None:
            raise UserNotFoundError(str(user_id))
        if actor.id != target.id and actor.role not in self._policy.schedule_admin_roles:
            raise UnauthorizedScheduleAccessError(str(actor.id), str(target.id))
        return target
