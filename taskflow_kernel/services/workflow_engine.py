"""
TaskWorkflowService -- the workflow instance engine for tasks.

Responsibility:
    Submit estimates (creating or resetting the task's workflow instance),
    apply step actions, and build the workflow summary.  Transition
    decisions come from the pure table in
    ``taskflow_kernel.domain.transitions``; this service loads, checks
    preconditions, persists, audits and notifies.

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/, db/.

Invariants enforced:
    - Every precondition is checked before the first write, so a refused
      request leaves the task, instance and action log untouched.
    - Task and instance rows are read with SELECT ... FOR UPDATE; concurrent
      actions on one task serialize.
    - Every step action appends exactly one WorkflowAction row.
    - Step snapshots are copied from the definition once, when the instance
      is created; resets rebuild from those snapshots.

Failure modes:
    - UnauthorizedEstimateSubmitterError / UnauthorizedStepActorError.
    - InvalidEstimateError, CommentRequiredError, ActionNotAllowedError,
      UnknownEnumValueError.
    - TaskNotFoundError, WorkflowInstanceNotFoundError, NoActiveStepError,
      FinalStepApprovalError, EstimateAlreadyUnderReviewError,
      EstimateAlreadyApprovedError, WorkflowDefinitionMismatchError.
    - WorkflowNotConfiguredError, InactiveWorkflowDefinitionError,
      InvalidEntityTypeError, WorkflowDefinitionNotFoundError when no usable
      definition is bound to the task's project.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from taskflow_kernel.domain.clock import Clock
from taskflow_kernel.domain.dtos import (
    Actor,
    EstimatePayload,
    EstimationStatus,
    StepActionPayload,
    TaskEstimation,
    TaskWorkflowResult,
)
from taskflow_kernel.domain.policy import DEFAULT_POLICY, WorkflowPolicy
from taskflow_kernel.domain.transitions import (
    TransitionOutcome,
    apply_action,
    snapshot_steps,
)
from taskflow_kernel.domain.workflow import (
    RESETTABLE_INSTANCE_STATUSES,
    InstanceStatus,
    WorkflowActionType,
    WorkflowDefinition,
    WorkflowEntityType,
    WorkflowInstance,
    WorkflowSummary,
    parse_enum,
)
from taskflow_kernel.exceptions import (
    ActionNotAllowedError,
    CommentRequiredError,
    EstimateAlreadyApprovedError,
    EstimateAlreadyUnderReviewError,
    InactiveWorkflowDefinitionError,
    InvalidEntityTypeError,
    NoActiveStepError,
    TaskNotFoundError,
    UnauthorizedEstimateSubmitterError,
    UnauthorizedStepActorError,
    WorkflowDefinitionMismatchError,
    WorkflowDefinitionNotFoundError,
    WorkflowInstanceNotFoundError,
    WorkflowNotConfiguredError,
)
from taskflow_kernel.logging_config import LogContext, get_logger
from taskflow_kernel.models.task import ProjectModel, TaskModel
from taskflow_kernel.models.workflow import WorkflowActionModel, WorkflowInstanceModel
from taskflow_kernel.selectors.workflow_selector import WorkflowSelector
from taskflow_kernel.services.base import BaseService
from taskflow_kernel.services.notification_service import (
    ACTION_UPDATE,
    NotificationDispatcher,
    NotificationService,
)

logger = get_logger("services.workflow_engine")

_TASK = WorkflowEntityType.TASK


class TaskWorkflowService(BaseService[WorkflowInstanceModel]):
    """Drives a task's approval workflow."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifier: NotificationDispatcher | None = None,
        policy: WorkflowPolicy = DEFAULT_POLICY,
    ):
        super().__init__(session, clock)
        self.notifier = notifier or NotificationService(session, self.clock)
        self.policy = policy
        self._workflows = WorkflowSelector(session)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def submit_estimate(
        self, task_id: UUID, actor: Actor, payload: EstimatePayload,
    ) -> TaskWorkflowResult:
        """Record a fresh estimate and put it in front of the first approver.

        Creates the task's workflow instance on first submission; an instance
        left in CHANGES_REQUESTED or REJECTED is restarted from step 1.
        """
        if actor.role not in self.policy.estimate_submitter_roles:
            raise UnauthorizedEstimateSubmitterError(str(actor.id), actor.role.value)
        estimate = payload.validated()

        with LogContext.bind(actor_id=str(actor.id), task_id=str(task_id)):
            task = self.load_task_for_update(task_id)
            current = task.get_estimation()
            if current is not None and current.status == EstimationStatus.UNDER_REVIEW:
                raise EstimateAlreadyUnderReviewError(str(task.id))
            if current is not None and current.status == EstimationStatus.APPROVED:
                raise EstimateAlreadyApprovedError(str(task.id))

            instance_model = self.find_instance_for_update(task)
            if instance_model is None:
                definition = self.resolve_project_definition(task.project_id)
                instance_model = self._create_instance(task, definition)
            elif InstanceStatus(instance_model.status) in RESETTABLE_INSTANCE_STATUSES:
                self._restart_instance(instance_model)

            now = self.clock.now_utc()
            task.set_estimation(TaskEstimation(
                quantity=estimate.quantity,
                unit=estimate.unit,
                status=EstimationStatus.UNDER_REVIEW,
                submitted_by_id=actor.id,
                submitted_at=now,
                notes=estimate.notes,
                confidence=estimate.confidence,
                updated_at=now,
            ))
            task.workflow_instance_id = instance_model.id
            task.updated_by_id = actor.id
            self.session.flush()

            instance = instance_model.to_dto()
            logger.info(
                "estimate_submitted",
                extra={
                    "instance_id": str(instance.id),
                    "quantity": estimate.quantity,
                    "unit": estimate.unit.value,
                    "instance_status": instance.status.value,
                },
            )

            active = instance.active_step
            if active is not None:
                self.notifier.notify_role(
                    active.assignee_role,
                    f"Task {task.title} ready for {active.name}",
                    {"task_id": task.id, "step_id": active.step_id},
                )
            return TaskWorkflowResult(task=task.to_dto(), workflow=self.build_summary(instance))

    def perform_step_action(
        self, task_id: UUID, actor: Actor, payload: StepActionPayload,
    ) -> TaskWorkflowResult:
        """Apply APPROVE, REJECT, REQUEST_CHANGE or SEND_BACK to the current step."""
        action = parse_enum(WorkflowActionType, payload.action)
        comment = payload.trimmed_comment

        with LogContext.bind(actor_id=str(actor.id), task_id=str(task_id)):
            task = self.load_task_for_update(task_id)
            instance_model = self.find_instance_for_update(task)
            if instance_model is None:
                raise WorkflowInstanceNotFoundError(_TASK.value, str(task.id))
            instance = instance_model.to_dto()
            definition = self.definition_for(instance)

            index = self._current_index(instance)
            step = instance.steps[index]
            if actor.role != step.assignee_role:
                raise UnauthorizedStepActorError(
                    str(actor.id), actor.role.value, step.assignee_role.value,
                )
            step_definition = definition.step_by_id(step.step_id)
            if step_definition is None:
                raise WorkflowDefinitionMismatchError(str(definition.id), str(step.step_id))
            if not comment and (
                (action == WorkflowActionType.REJECT and step.requires_comment_on_reject)
                or (action == WorkflowActionType.SEND_BACK and step.requires_comment_on_send_back)
            ):
                raise CommentRequiredError(str(step.step_id), action.value)
            if not step_definition.allows(action):
                raise ActionNotAllowedError(str(step.step_id), action.value)

            now = self.clock.now_utc()
            outcome = apply_action(instance.steps, index, action, actor.id, now, comment)

            self._write_outcome(instance_model, outcome, now)
            if outcome.estimation_status is not None:
                estimation = task.get_estimation()
                if estimation is not None:
                    task.set_estimation(estimation.with_status(outcome.estimation_status, now))
            metadata = {}
            if outcome.effective_action != action:
                metadata["requested_action"] = action.value
            self.append_action(
                instance_model.id, step.step_id, actor.id,
                outcome.effective_action, comment, metadata, now,
            )
            self.session.flush()

            logger.info(
                "workflow_step_transition",
                extra={
                    "instance_id": str(instance_model.id),
                    "step_id": str(step.step_id),
                    "action": outcome.effective_action.value,
                    "instance_status": outcome.status.value,
                },
            )
            self._notify_outcome(task, outcome)

            updated = instance_model.to_dto()
            return TaskWorkflowResult(
                task=task.to_dto(),
                workflow=self.build_summary(updated, definition),
            )

    def get_workflow_summary(self, task_id: UUID) -> WorkflowSummary | None:
        """Definition, instance and action history, or None before any submission."""
        task = self.session.get(TaskModel, task_id)
        if task is None:
            raise TaskNotFoundError(str(task_id))
        if task.workflow_instance_id is None:
            return None
        instance = self._workflows.get_instance(task.workflow_instance_id)
        if instance is None:
            return None
        return self.build_summary(instance)

    # ------------------------------------------------------------------
    # Building blocks shared with the final approval orchestrator
    # ------------------------------------------------------------------

    def load_task_for_update(self, task_id: UUID) -> TaskModel:
        task = self.session.scalars(
            select(TaskModel)
            .where(TaskModel.id == task_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()
        if task is None:
            raise TaskNotFoundError(str(task_id))
        return task

    def find_instance_for_update(self, task: TaskModel) -> WorkflowInstanceModel | None:
        stmt = select(WorkflowInstanceModel)
        if task.workflow_instance_id is not None:
            stmt = stmt.where(WorkflowInstanceModel.id == task.workflow_instance_id)
        else:
            stmt = stmt.where(
                WorkflowInstanceModel.entity_type == _TASK.value,
                WorkflowInstanceModel.entity_id == task.id,
            )
        return self.session.scalars(
            stmt.with_for_update().execution_options(populate_existing=True)
        ).first()

    def resolve_project_definition(self, project_id: UUID) -> WorkflowDefinition:
        """The definition a project's tasks run: the pinned one, else the active one."""
        project = self.session.get(ProjectModel, project_id)
        pinned = project.task_workflow_definition_id if project is not None else None
        if pinned is None:
            definition = self._workflows.find_active_definition(_TASK)
            if definition is None:
                raise WorkflowNotConfiguredError(str(project_id), _TASK.value)
            return definition

        definition = self._workflows.get_definition(pinned)
        if definition is None:
            raise WorkflowDefinitionNotFoundError(str(pinned))
        if definition.entity_type != _TASK:
            raise InvalidEntityTypeError(definition.entity_type.value, _TASK.value)
        if not definition.is_active:
            raise InactiveWorkflowDefinitionError(str(definition.id))
        return definition

    def append_action(
        self,
        instance_id: UUID,
        step_id: UUID,
        actor_id: UUID,
        action: WorkflowActionType,
        comment: str | None,
        metadata: Mapping[str, Any] | None,
        created_at: datetime,
    ) -> WorkflowActionModel:
        last = self.session.scalar(
            select(func.max(WorkflowActionModel.sequence))
            .where(WorkflowActionModel.instance_id == instance_id)
        )
        model = WorkflowActionModel(
            instance_id=instance_id,
            sequence=(last or 0) + 1,
            step_id=step_id,
            actor_id=actor_id,
            action=action.value,
            comment=comment,
            action_metadata=dict(metadata or {}),
            created_at=created_at,
        )
        self.session.add(model)
        return model

    def build_summary(
        self, instance: WorkflowInstance, definition: WorkflowDefinition | None = None,
    ) -> WorkflowSummary:
        return WorkflowSummary(
            definition=definition or self.definition_for(instance),
            instance=instance,
            actions=self._workflows.list_actions(instance.id),
        )

    def notify_submitter(self, task: TaskModel, message: str, extra_ids=(), **metadata) -> None:
        estimation = task.get_estimation()
        recipients = [estimation.submitted_by_id] if estimation is not None else []
        recipients.extend(extra_ids)
        self.notifier.notify_users(
            recipients, message, ACTION_UPDATE, {"task_id": task.id, **metadata},
        )

    # ------------------------------------------------------------------

    def definition_for(self, instance: WorkflowInstance) -> WorkflowDefinition:
        definition = self._workflows.get_definition(instance.definition_id)
        if definition is None:
            raise WorkflowDefinitionNotFoundError(str(instance.definition_id))
        return definition

    def _current_index(self, instance: WorkflowInstance) -> int:
        index = instance.current_step_index
        if instance.status != InstanceStatus.IN_PROGRESS or index is None:
            raise NoActiveStepError(str(instance.id), instance.status.value)
        return index

    def _create_instance(
        self, task: TaskModel, definition: WorkflowDefinition,
    ) -> WorkflowInstanceModel:
        steps = snapshot_steps(definition)
        now = self.clock.now_utc()
        model = WorkflowInstanceModel(
            definition_id=definition.id,
            entity_type=_TASK.value,
            entity_id=task.id,
            status=InstanceStatus.IN_PROGRESS.value,
            current_step_id=steps[0].step_id,
            steps=[step.to_dict() for step in steps],
            created_at=now,
            updated_at=now,
        )
        self.session.add(model)
        self.session.flush()
        logger.info(
            "workflow_instance_created",
            extra={
                "instance_id": str(model.id),
                "definition_id": str(definition.id),
                "step_count": len(steps),
            },
        )
        return model

    def _restart_instance(self, model: WorkflowInstanceModel) -> None:
        """Rebuild the steps from the bound definition as it stands now."""
        previous = model.status
        steps = snapshot_steps(self.definition_for(model.to_dto()))
        model.steps = [step.to_dict() for step in steps]
        model.status = InstanceStatus.IN_PROGRESS.value
        model.current_step_id = steps[0].step_id
        model.updated_at = self.clock.now_utc()
        logger.info(
            "workflow_instance_restarted",
            extra={"instance_id": str(model.id), "previous_status": previous},
        )

    def _write_outcome(
        self, model: WorkflowInstanceModel, outcome: TransitionOutcome, now: datetime,
    ) -> None:
        model.steps = [step.to_dict() for step in outcome.steps]
        model.status = outcome.status.value
        model.current_step_id = outcome.current_step_id
        model.updated_at = now

    def _notify_outcome(self, task: TaskModel, outcome: TransitionOutcome) -> None:
        if outcome.notify_submitter:
            if outcome.effective_action == WorkflowActionType.REJECT:
                message = f"Task {task.title} estimate rejected"
            else:
                message = f"Changes requested for task {task.title}"
            self.notify_submitter(task, message)
        elif outcome.next_step is not None:
            if outcome.effective_action == WorkflowActionType.SEND_BACK:
                message = f"Task {task.title} sent back"
            else:
                message = f"Task {task.title} ready for {outcome.next_step.name}"
            self.notifier.notify_role(
                outcome.next_step.assignee_role,
                message,
                {"task_id": task.id, "step_id": outcome.next_step.step_id},
            )
