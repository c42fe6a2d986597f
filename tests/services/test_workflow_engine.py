"""
Tests for the task workflow engine.

Covers:
- Estimate submission: instance creation, authorization, validation, guards
- Definition binding: project pin, global active definition, misconfiguration
- Step actions: approve, reject, request change, send back
- Comment requirements and allowed actions per step
- Resubmission after changes requested / rejection
- Snapshot isolation from later definition edits
- Summaries, notifications and structured logs
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from taskflow_kernel.domain.dtos import EstimatePayload, EstimationStatus, StepActionPayload
from taskflow_kernel.domain.workflow import (
    InstanceStatus,
    Role,
    StepStatus,
    WorkflowActionType,
)
from taskflow_kernel.exceptions import (
    ActionNotAllowedError,
    CommentRequiredError,
    EstimateAlreadyUnderReviewError,
    FinalStepApprovalError,
    InactiveWorkflowDefinitionError,
    InvalidEstimateError,
    NoActiveStepError,
    TaskNotFoundError,
    UnauthorizedEstimateSubmitterError,
    UnauthorizedStepActorError,
    UnknownEnumValueError,
    WorkflowDefinitionMismatchError,
    WorkflowInstanceNotFoundError,
    WorkflowNotConfiguredError,
)
from taskflow_kernel.models.notification import NotificationModel
from taskflow_kernel.models.workflow import WorkflowActionModel, WorkflowInstanceModel
from taskflow_kernel.services.notification_service import ACTION_REQUIRED, ACTION_UPDATE
from tests.conftest import TEST_ACTOR_ID

ESTIMATE = EstimatePayload(quantity="16", unit="HOURS", notes="login + tests")


def notifications_for(session, user_id):
    return list(session.scalars(
        select(NotificationModel).where(NotificationModel.user_id == user_id)
    ))


def action_count(session):
    return len(list(session.scalars(select(WorkflowActionModel))))


@pytest.fixture
def definition(make_definition):
    return make_definition()


@pytest.fixture
def task(make_task, definition):
    return make_task()


@pytest.fixture
def submitted(workflow_service, task, pm):
    return workflow_service.submit_estimate(task.id, pm, ESTIMATE)


class TestSubmitEstimate:

    def test_creates_instance_at_first_step(self, submitted, task, definition, pm):
        instance = submitted.workflow.instance

        assert instance.status == InstanceStatus.IN_PROGRESS
        assert instance.definition_id == definition.id
        assert instance.entity_id == task.id
        assert [s.status for s in instance.steps] == [StepStatus.ACTIVE, StepStatus.PENDING]
        assert instance.current_step_id == definition.steps[0].id
        assert submitted.task.workflow_instance_id == instance.id
        assert submitted.workflow.actions == ()

    def test_records_estimate_under_review(self, submitted, pm, clock):
        estimation = submitted.task.estimation

        assert estimation.quantity == Decimal("16")
        assert estimation.status == EstimationStatus.UNDER_REVIEW
        assert estimation.submitted_by_id == pm.id
        assert estimation.submitted_at == clock.now_utc()
        assert estimation.notes == "login + tests"

    def test_steps_snapshot_definition(self, submitted, definition):
        first, second = submitted.workflow.instance.steps

        assert first.name == "Engineering review"
        assert first.assignee_role == Role.ENGINEER
        assert first.requires_comment_on_send_back is True
        assert second.assignee_role == Role.PM

    def test_notifies_first_step_role(self, session, engineer, task, pm, workflow_service):
        workflow_service.submit_estimate(task.id, pm, ESTIMATE)

        (notification,) = notifications_for(session, engineer.id)
        assert notification.message == "Task Build login page ready for Engineering review"
        assert notification.type == ACTION_REQUIRED
        assert notification.payload["task_id"] == str(task.id)

    def test_only_submitter_roles_may_submit(self, workflow_service, task, engineer, session):
        with pytest.raises(UnauthorizedEstimateSubmitterError):
            workflow_service.submit_estimate(task.id, engineer, ESTIMATE)

        assert session.scalars(select(WorkflowInstanceModel)).first() is None

    def test_invalid_estimate(self, workflow_service, task, pm):
        with pytest.raises(InvalidEstimateError):
            workflow_service.submit_estimate(task.id, pm, EstimatePayload(quantity=0, unit="HOURS"))

    def test_unknown_task(self, workflow_service, pm, definition):
        with pytest.raises(TaskNotFoundError):
            workflow_service.submit_estimate(uuid4(), pm, ESTIMATE)

    def test_second_submission_while_under_review(self, submitted, workflow_service, task, pm):
        with pytest.raises(EstimateAlreadyUnderReviewError):
            workflow_service.submit_estimate(task.id, pm, ESTIMATE)

    def test_logs_submission(self, captured_logs, workflow_service, task, pm):
        workflow_service.submit_estimate(task.id, pm, ESTIMATE)

        records = {r["message"]: r for r in captured_logs()}
        assert "workflow_instance_created" in records
        assert records["estimate_submitted"]["task_id"] == str(task.id)
        assert records["estimate_submitted"]["actor_id"] == str(pm.id)


class TestDefinitionBinding:

    def test_no_definition_configured(self, workflow_service, make_task, pm):
        task = make_task()

        with pytest.raises(WorkflowNotConfiguredError):
            workflow_service.submit_estimate(task.id, pm, ESTIMATE)

    def test_project_pin_wins_over_global_active(
        self, workflow_service, make_definition, make_project, make_task, pm,
    ):
        make_definition(name="Global")
        pinned = make_definition(
            [{"name": "VP sign-off", "approver_role": "VP"}], name="Pinned",
        )
        task = make_task(make_project(pinned.id))

        result = workflow_service.submit_estimate(task.id, pm, ESTIMATE)

        assert result.workflow.definition.id == pinned.id
        assert result.workflow.instance.steps[0].assignee_role == Role.VP

    def test_pinned_inactive_definition(
        self, workflow_service, make_definition, make_project, make_task, pm,
    ):
        old = make_definition(name="Old")
        make_definition(name="New")
        task = make_task(make_project(old.id))

        with pytest.raises(InactiveWorkflowDefinitionError):
            workflow_service.submit_estimate(task.id, pm, ESTIMATE)


class TestApprove:

    def test_moves_to_next_step(self, submitted, workflow_service, task, engineer):
        result = workflow_service.perform_step_action(
            task.id, engineer, StepActionPayload("APPROVE", "  looks right "),
        )

        first, second = result.workflow.instance.steps
        assert first.status == StepStatus.APPROVED
        assert first.acted_by_id == engineer.id
        assert first.comment == "looks right"
        assert second.status == StepStatus.ACTIVE
        assert result.workflow.instance.current_step_id == second.step_id
        assert result.task.estimation.status == EstimationStatus.UNDER_REVIEW

    def test_appends_action_record(self, submitted, workflow_service, task, engineer):
        result = workflow_service.perform_step_action(task.id, engineer, StepActionPayload("APPROVE"))

        (record,) = result.workflow.actions
        assert record.action == WorkflowActionType.APPROVE
        assert record.actor_id == engineer.id
        assert record.step_id == submitted.workflow.instance.steps[0].step_id
        assert record.comment is None
        assert dict(record.metadata) == {}

    def test_notifies_next_role(self, session, submitted, workflow_service, task, engineer, pm):
        workflow_service.perform_step_action(task.id, engineer, StepActionPayload("APPROVE"))

        messages = [n.message for n in notifications_for(session, pm.id)]
        assert messages == ["Task Build login page ready for PM approval"]

    def test_last_step_needs_final_approval(self, submitted, workflow_service, task, engineer, pm):
        workflow_service.perform_step_action(task.id, engineer, StepActionPayload("APPROVE"))

        with pytest.raises(FinalStepApprovalError):
            workflow_service.perform_step_action(task.id, pm, StepActionPayload("APPROVE"))

    def test_wrong_role_refused(self, session, submitted, workflow_service, task, pm):
        with pytest.raises(UnauthorizedStepActorError) as exc_info:
            workflow_service.perform_step_action(task.id, pm, StepActionPayload("APPROVE"))

        assert exc_info.value.required_role == "ENGINEER"
        assert action_count(session) == 0

    def test_unknown_action(self, submitted, workflow_service, task, engineer):
        with pytest.raises(UnknownEnumValueError):
            workflow_service.perform_step_action(task.id, engineer, StepActionPayload("ESCALATE"))

    def test_no_instance_yet(self, workflow_service, task, engineer):
        with pytest.raises(WorkflowInstanceNotFoundError):
            workflow_service.perform_step_action(task.id, engineer, StepActionPayload("APPROVE"))

    def test_logs_transition(self, captured_logs, submitted, workflow_service, task, engineer):
        workflow_service.perform_step_action(task.id, engineer, StepActionPayload("APPROVE"))

        (record,) = [r for r in captured_logs() if r["message"] == "workflow_step_transition"]
        assert record["action"] == "APPROVE"
        assert record["instance_status"] == "IN_PROGRESS"
        assert record["task_id"] == str(task.id)


class TestReject:

    def test_comment_required(self, session, submitted, workflow_service, task, engineer):
        with pytest.raises(CommentRequiredError):
            workflow_service.perform_step_action(task.id, engineer, StepActionPayload("REJECT", "   "))

        assert action_count(session) == 0

    def test_reject_closes_instance(self, session, submitted, workflow_service, task, engineer, pm):
        result = workflow_service.perform_step_action(
            task.id, engineer, StepActionPayload("REJECT", "scope unclear"),
        )

        instance = result.workflow.instance
        assert instance.status == InstanceStatus.REJECTED
        assert instance.current_step_id is None
        assert instance.steps[0].status == StepStatus.REJECTED
        assert result.task.estimation.status == EstimationStatus.REJECTED
        (notification,) = notifications_for(session, pm.id)
        assert notification.message == "Task Build login page estimate rejected"
        assert notification.type == ACTION_UPDATE

    def test_no_further_actions_after_reject(self, submitted, workflow_service, task, engineer):
        workflow_service.perform_step_action(task.id, engineer, StepActionPayload("REJECT", "no"))

        with pytest.raises(NoActiveStepError):
            workflow_service.perform_step_action(task.id, engineer, StepActionPayload("APPROVE"))

    def test_action_not_offered_by_step(self, workflow_service, make_definition, make_task, pm):
        make_definition([{"name": "PM only approves", "approver_role": "PM", "actions": ["APPROVE"]},
                         {"name": "VP", "approver_role": "VP"}])
        task = make_task()
        workflow_service.submit_estimate(task.id, pm, ESTIMATE)

        with pytest.raises(ActionNotAllowedError):
            workflow_service.perform_step_action(task.id, pm, StepActionPayload("REJECT", "no"))


class TestRequestChangeAndSendBack:

    def test_request_change_rewinds(self, session, submitted, workflow_service, task, engineer, pm):
        workflow_service.perform_step_action(task.id, engineer, StepActionPayload("APPROVE"))

        result = workflow_service.perform_step_action(
            task.id, pm, StepActionPayload("REQUEST_CHANGE", "split it"),
        )

        instance = result.workflow.instance
        assert instance.status == InstanceStatus.CHANGES_REQUESTED
        assert [s.status for s in instance.steps] == [StepStatus.ACTIVE, StepStatus.PENDING]
        assert result.task.estimation.status == EstimationStatus.CHANGES_REQUESTED
        messages = [n.message for n in notifications_for(session, pm.id)]
        assert "Changes requested for task Build login page" in messages

    def test_send_back_on_first_step_is_request_change(
        self, submitted, workflow_service, task, engineer,
    ):
        result = workflow_service.perform_step_action(
            task.id, engineer, StepActionPayload("SEND_BACK", "re-estimate"),
        )

        (record,) = result.workflow.actions
        assert record.action == WorkflowActionType.REQUEST_CHANGE
        assert dict(record.metadata) == {"requested_action": "SEND_BACK"}
        assert result.workflow.instance.status == InstanceStatus.CHANGES_REQUESTED

    def test_step_actions_wait_for_resubmission(self, submitted, workflow_service, task, engineer):
        workflow_service.perform_step_action(
            task.id, engineer, StepActionPayload("REQUEST_CHANGE", "split it"),
        )

        with pytest.raises(NoActiveStepError):
            workflow_service.perform_step_action(task.id, engineer, StepActionPayload("APPROVE"))

        summary = workflow_service.get_workflow_summary(task.id)
        assert summary.instance.status == InstanceStatus.CHANGES_REQUESTED
        assert len(summary.actions) == 1

    def test_send_back_comment_required_on_flagged_step(
        self, submitted, workflow_service, task, engineer,
    ):
        with pytest.raises(CommentRequiredError):
            workflow_service.perform_step_action(task.id, engineer, StepActionPayload("SEND_BACK"))

    def test_send_back_whitespace_comment_refused(
        self, submitted, workflow_service, task, engineer,
    ):
        with pytest.raises(CommentRequiredError):
            workflow_service.perform_step_action(
                task.id, engineer, StepActionPayload("SEND_BACK", "   \t "),
            )

        instance = workflow_service.get_workflow_summary(task.id).instance
        assert instance.status == InstanceStatus.IN_PROGRESS
        assert instance.steps[0].status == StepStatus.ACTIVE

    def test_send_back_returns_to_previous_step(
        self, session, submitted, workflow_service, task, engineer, pm,
    ):
        workflow_service.perform_step_action(task.id, engineer, StepActionPayload("APPROVE"))

        result = workflow_service.perform_step_action(task.id, pm, StepActionPayload("SEND_BACK"))

        first, second = result.workflow.instance.steps
        assert first.status == StepStatus.ACTIVE
        assert first.acted_by_id is None
        assert second.status == StepStatus.SENT_BACK
        assert result.workflow.instance.status == InstanceStatus.IN_PROGRESS
        assert result.workflow.instance.current_step_id == first.step_id
        assert [a.sequence for a in session.scalars(
            select(WorkflowActionModel).order_by(WorkflowActionModel.sequence)
        )] == [1, 2]
        messages = [n.message for n in notifications_for(session, engineer.id)]
        assert messages[-1] == "Task Build login page sent back"


class TestResubmission:

    def test_resubmit_after_changes_requested(self, submitted, workflow_service, task, engineer, pm):
        workflow_service.perform_step_action(
            task.id, engineer, StepActionPayload("REQUEST_CHANGE", "too vague"),
        )

        result = workflow_service.submit_estimate(
            task.id, pm, EstimatePayload(quantity="3", unit="DAYS"),
        )

        instance = result.workflow.instance
        assert instance.id == submitted.workflow.instance.id
        assert instance.status == InstanceStatus.IN_PROGRESS
        assert [s.status for s in instance.steps] == [StepStatus.ACTIVE, StepStatus.PENDING]
        assert result.task.estimation.status == EstimationStatus.UNDER_REVIEW
        assert result.task.estimation.quantity == Decimal("3")
        assert len(result.workflow.actions) == 1

    def test_resubmit_after_rejection(self, submitted, workflow_service, task, engineer, pm):
        workflow_service.perform_step_action(task.id, engineer, StepActionPayload("REJECT", "no"))

        result = workflow_service.submit_estimate(task.id, pm, ESTIMATE)

        assert result.workflow.instance.status == InstanceStatus.IN_PROGRESS
        assert all(s.acted_by_id is None for s in result.workflow.instance.steps)

    def test_resubmit_picks_up_edited_definition(
        self, submitted, registry, definition, workflow_service, task, engineer, pm,
    ):
        workflow_service.perform_step_action(task.id, engineer, StepActionPayload("REJECT", "no"))
        registry.update_definition(
            definition.id, TEST_ACTOR_ID,
            steps=[
                {"name": "Tech lead review", "dynamic_approver_type": "ENGINEERING_TEAM"},
                {"name": "Delivery sign-off", "approver_role": "PM"},
            ],
        )

        resubmitted = workflow_service.submit_estimate(task.id, pm, ESTIMATE)
        result = workflow_service.perform_step_action(
            task.id, engineer, StepActionPayload("APPROVE"),
        )

        assert [s.name for s in resubmitted.workflow.instance.steps] == [
            "Tech lead review", "Delivery sign-off",
        ]
        instance = result.workflow.instance
        assert [s.status for s in instance.steps] == [StepStatus.APPROVED, StepStatus.ACTIVE]
        assert instance.current_step_id == result.workflow.definition.steps[1].id


class TestSnapshotIsolation:

    def test_definition_edit_does_not_reach_instance(
        self, submitted, registry, definition, workflow_service, task,
    ):
        registry.update_definition(
            definition.id, TEST_ACTOR_ID,
            steps=[{"name": "Renamed review", "approver_role": "VIEWER"}],
        )

        summary = workflow_service.get_workflow_summary(task.id)

        assert summary.instance.steps[0].name == "Engineering review"
        assert summary.instance.steps[0].assignee_role == Role.ENGINEER
        assert summary.definition.steps[0].name == "Renamed review"

    def test_replaced_steps_block_further_actions(
        self, submitted, registry, definition, workflow_service, task, engineer,
    ):
        registry.update_definition(
            definition.id, TEST_ACTOR_ID,
            steps=[{"name": "Renamed review", "approver_role": "VIEWER"}],
        )

        with pytest.raises(WorkflowDefinitionMismatchError):
            workflow_service.perform_step_action(task.id, engineer, StepActionPayload("APPROVE"))


class TestSummary:

    def test_unknown_task(self, workflow_service):
        with pytest.raises(TaskNotFoundError):
            workflow_service.get_workflow_summary(uuid4())

    def test_none_before_submission(self, workflow_service, task):
        assert workflow_service.get_workflow_summary(task.id) is None

    def test_actions_in_sequence(self, submitted, workflow_service, task, engineer, pm):
        workflow_service.perform_step_action(task.id, engineer, StepActionPayload("APPROVE"))
        workflow_service.perform_step_action(task.id, pm, StepActionPayload("SEND_BACK"))

        summary = workflow_service.get_workflow_summary(task.id)

        assert [a.action for a in summary.actions] == [
            WorkflowActionType.APPROVE, WorkflowActionType.SEND_BACK,
        ]
        assert summary.definition.name == submitted.workflow.definition.name
