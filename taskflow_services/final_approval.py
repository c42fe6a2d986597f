"""
taskflow_services.final_approval -- Final approval and scheduling of a task.

Responsibility:
    Complete a task's approval workflow at its last step and schedule the
    work: resolve the developer who will do it, load their calendar, compute
    the expected completion instant and commit planned start, completion,
    scheduled status, estimate approval and instance completion together.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Lives in taskflow_services/ (not kernel) because it composes the kernel
    workflow service with the duration engine.

Invariants enforced:
    - Only the configured finalizer role may finalize.
    - The instance's active step must be the definition's last step.
    - Every precondition and the completion-date computation run before the
      first write; a ScheduleExhaustedError leaves the task untouched.
    - Exactly one WorkflowAction (APPROVE) is appended; its metadata carries
      the planned start and expected completion instants.

Failure modes:
    - UnauthorizedFinalApproverError: actor role is not the finalizer role.
    - InvalidInstantError: planned start missing or unparseable.
    - NoActiveEstimateError: no estimate, or it was rejected.
    - NotReadyForFinalApprovalError: no instance, or not at the last step.
    - ScheduleExhaustedError: the assignee's schedule has no usable time.

Audit relevance:
    ``task_final_approved`` is logged with the planned start, the expected
    completion and the resolved assignee.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from taskflow_engines.duration import add_working_duration
from taskflow_kernel.domain.clock import Clock, SystemClock
from taskflow_kernel.domain.dtos import (
    Actor,
    EstimationStatus,
    FinalApprovalPayload,
    TaskWorkflowResult,
    UserInfo,
)
from taskflow_kernel.domain.instants import format_instant, parse_instant
from taskflow_kernel.domain.policy import DEFAULT_POLICY, WorkflowPolicy
from taskflow_kernel.domain.transitions import apply_final_approval
from taskflow_kernel.domain.workflow import InstanceStatus
from taskflow_kernel.exceptions import (
    InvalidInstantError,
    NoActiveEstimateError,
    NotReadyForFinalApprovalError,
    UnauthorizedFinalApproverError,
)
from taskflow_kernel.logging_config import LogContext, get_logger
from taskflow_kernel.models.task import AssignmentStatus, TaskModel
from taskflow_kernel.selectors.calendar_selector import CalendarSelector
from taskflow_kernel.selectors.directory_selector import DirectorySelector
from taskflow_kernel.services.notification_service import NotificationDispatcher
from taskflow_kernel.services.workflow_engine import TaskWorkflowService

logger = get_logger("services.final_approval")


class FinalApprovalOrchestrator:
    """Finalizes a task's workflow and computes its expected completion.

    Contract:
        Receives its session, clock and policy via constructor injection and
        shares them with the kernel ``TaskWorkflowService`` it drives.
    Guarantees:
        - Flushes only; the caller commits.
        - On success the task status is ``policy.scheduled_task_status``,
          the estimate is APPROVED and the instance is COMPLETED with no
          current step.
    Non-goals:
        - Does not start time tracking or notify the assignee's team.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: WorkflowPolicy = DEFAULT_POLICY,
        notifier: NotificationDispatcher | None = None,
        workflow: TaskWorkflowService | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy
        self._workflow = workflow or TaskWorkflowService(
            session, self._clock, notifier=notifier, policy=policy,
        )
        self._directory = DirectorySelector(session)
        self._calendar = CalendarSelector(session)

    def final_approve(
        self, task_id: UUID, actor: Actor, payload: FinalApprovalPayload,
    ) -> TaskWorkflowResult:
        """Approve the final step and schedule the task.

        ``payload.planned_start_date`` is an instant; without an offset it
        is read in the assignee's time zone.
        """
        if actor.role != self._policy.finalizer_role:
            raise UnauthorizedFinalApproverError(
                str(actor.id), actor.role.value, self._policy.finalizer_role.value,
            )
        if not payload.planned_start_date:
            raise InvalidInstantError("", "planned_start_date is required")
        note = payload.note.strip() if payload.note else None

        with LogContext.bind(actor_id=str(actor.id), task_id=str(task_id)):
            task = self._workflow.load_task_for_update(task_id)
            estimation = task.get_estimation()
            if estimation is None or estimation.status == EstimationStatus.REJECTED:
                raise NoActiveEstimateError(str(task.id))

            instance_model = self._workflow.find_instance_for_update(task)
            if instance_model is None:
                raise NotReadyForFinalApprovalError(str(task.id), None)
            instance = instance_model.to_dto()
            definition = self._workflow.definition_for(instance)
            active = instance.active_step
            final_step = definition.last_step
            if (
                instance.status != InstanceStatus.IN_PROGRESS
                or active is None
                or final_step is None
                or active.step_id != final_step.id
            ):
                raise NotReadyForFinalApprovalError(
                    str(task.id), str(active.step_id) if active else None,
                )

            assignee = self._resolve_assignee(task, estimation.submitted_by_id)
            assignee_id = assignee.id if assignee else actor.id
            company_id = assignee.company_id if assignee else actor.company_id
            time_zone = (
                (assignee.time_zone if assignee else None)
                or actor.time_zone
                or self._policy.default_time_zone
            )

            planned_start = parse_instant(payload.planned_start_date, time_zone)
            schedule = self._calendar.find_schedule_for_user(assignee_id, company_id)
            expected_completion = add_working_duration(
                planned_start,
                estimation.quantity,
                estimation.unit,
                time_zone,
                schedule=schedule.slots if schedule else None,
                holidays=self._calendar.list_holidays(company_id=company_id),
                leave_dates=self._calendar.list_approved_leave(assignee_id),
                max_iterations=self._policy.max_schedule_iterations,
                default_schedule=self._policy.default_schedule,
            )

            now = self._clock.now_utc()
            index = next(
                position for position, step in enumerate(instance.steps)
                if step.step_id == active.step_id
            )
            outcome = apply_final_approval(instance.steps, index, actor.id, now, note)

            instance_model.steps = [step.to_dict() for step in outcome.steps]
            instance_model.status = outcome.status.value
            instance_model.current_step_id = outcome.current_step_id
            instance_model.updated_at = now

            task.planned_start_date = planned_start
            task.expected_completion_date = expected_completion
            task.status = self._policy.scheduled_task_status
            task.set_estimation(estimation.with_status(EstimationStatus.APPROVED, now))
            task.updated_by_id = actor.id

            self._workflow.append_action(
                instance_model.id,
                active.step_id,
                actor.id,
                outcome.effective_action,
                note,
                {
                    "planned_start_date": format_instant(planned_start),
                    "expected_completion_date": format_instant(expected_completion),
                },
                now,
            )
            self._session.flush()

            logger.info(
                "task_final_approved",
                extra={
                    "instance_id": str(instance_model.id),
                    "assignee_id": str(assignee_id),
                    "time_zone": time_zone,
                    "planned_start_date": format_instant(planned_start),
                    "expected_completion_date": format_instant(expected_completion),
                },
            )

            self._workflow.notify_submitter(
                task,
                f"Task {task.title} approved and scheduled",
                extra_ids=(task.created_by_id,),
                expected_completion_date=format_instant(expected_completion),
            )

            return TaskWorkflowResult(
                task=task.to_dto(),
                workflow=self._workflow.build_summary(instance_model.to_dto(), definition),
            )

    def _resolve_assignee(self, task: TaskModel, submitted_by_id: UUID) -> UserInfo | None:
        """Developer on the approved (else completed) assignment, else the submitter."""
        assignment = next(
            (a for a in task.assignments if a.status == AssignmentStatus.APPROVED.value),
            None,
        ) or next(
            (a for a in task.assignments if a.status == AssignmentStatus.COMPLETED.value),
            None,
        )
        candidates = [assignment.developer_id] if assignment is not None else []
        candidates.append(submitted_by_id)
        for candidate_id in candidates:
            user = self._directory.get_user(candidate_id)
            if user is not None and user.role in self._policy.developer_roles:
                return user
        return None
