"""
Tests for the workflow step transition table.

Covers:
- Initial snapshot and restart
- APPROVE on intermediate and final steps
- REJECT, REQUEST_CHANGE and SEND_BACK (first step and later steps)
- Final approval
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from taskflow_kernel.domain.dtos import EstimationStatus
from taskflow_kernel.domain.transitions import (
    apply_action,
    apply_final_approval,
    snapshot_steps,
)
from taskflow_kernel.domain.workflow import (
    InstanceStatus,
    StepStatus,
    WorkflowActionType,
    WorkflowDefinition,
    WorkflowEntityType,
    WorkflowStepInput,
    normalize_steps,
)
from taskflow_kernel.exceptions import FinalStepApprovalError

NOW = datetime(2025, 5, 20, 8, 0, tzinfo=timezone.utc)


def three_step_definition() -> WorkflowDefinition:
    return WorkflowDefinition(
        id=uuid4(),
        entity_type=WorkflowEntityType.TASK,
        name="Three steps",
        is_active=True,
        steps=normalize_steps([
            WorkflowStepInput(name="Engineering", dynamic_approver_type="ENGINEERING_TEAM"),
            WorkflowStepInput(name="Project", approver_role="PROJECT_MANAGER"),
            WorkflowStepInput(name="PM", approver_role="PM"),
        ]),
    )


def n_step_definition(n: int) -> WorkflowDefinition:
    return WorkflowDefinition(
        id=uuid4(),
        entity_type=WorkflowEntityType.TASK,
        name=f"{n} steps",
        is_active=True,
        steps=normalize_steps([
            WorkflowStepInput(name=f"Step {position}", approver_role="PROJECT_MANAGER")
            for position in range(n)
        ]),
    )


def approved_through(steps, last_index, actor):
    for index in range(last_index + 1):
        steps = apply_action(steps, index, WorkflowActionType.APPROVE, actor, NOW).steps
    return steps


def statuses(steps):
    return [step.status for step in steps]


class TestSnapshot:

    def setup_method(self):
        self.definition = three_step_definition()

    def test_first_step_active_others_pending(self):
        steps = snapshot_steps(self.definition)

        assert statuses(steps) == [StepStatus.ACTIVE, StepStatus.PENDING, StepStatus.PENDING]
        assert [s.step_id for s in steps] == [s.id for s in self.definition.steps]

    def test_fresh_snapshot_carries_no_actions(self):
        steps = snapshot_steps(self.definition)
        rejected = apply_action(steps, 1, WorkflowActionType.REJECT, uuid4(), NOW, "no").steps

        again = snapshot_steps(self.definition)

        assert rejected != again
        assert again == steps
        assert all(step.acted_by_id is None and step.comment is None for step in again)


class TestApprove:

    def setup_method(self):
        self.steps = snapshot_steps(three_step_definition())
        self.actor = uuid4()

    def test_intermediate_step(self):
        outcome = apply_action(self.steps, 0, WorkflowActionType.APPROVE, self.actor, NOW, "ok")

        assert statuses(outcome.steps) == [StepStatus.APPROVED, StepStatus.ACTIVE, StepStatus.PENDING]
        assert outcome.steps[0].acted_by_id == self.actor
        assert outcome.steps[0].acted_at == NOW
        assert outcome.steps[0].comment == "ok"
        assert outcome.status == InstanceStatus.IN_PROGRESS
        assert outcome.current_step_id == self.steps[1].step_id
        assert outcome.next_step.step_id == self.steps[1].step_id
        assert outcome.estimation_status is None
        assert outcome.notify_submitter is False

    def test_last_step_requires_final_approval(self):
        second = apply_action(self.steps, 0, WorkflowActionType.APPROVE, self.actor, NOW).steps
        third = apply_action(second, 1, WorkflowActionType.APPROVE, self.actor, NOW).steps

        with pytest.raises(FinalStepApprovalError):
            apply_action(third, 2, WorkflowActionType.APPROVE, self.actor, NOW)


@pytest.mark.parametrize("n", [2, 3, 5])
class TestApproveAnyLength:

    def test_second_to_last_step_activates_last(self, n):
        actor = uuid4()
        steps = approved_through(snapshot_steps(n_step_definition(n)), n - 3, actor)

        outcome = apply_action(steps, n - 2, WorkflowActionType.APPROVE, actor, NOW)

        assert statuses(outcome.steps) == [StepStatus.APPROVED] * (n - 1) + [StepStatus.ACTIVE]
        assert outcome.current_step_id == steps[n - 1].step_id
        assert outcome.status == InstanceStatus.IN_PROGRESS

    def test_last_step_refuses_plain_approve(self, n):
        actor = uuid4()
        steps = approved_through(snapshot_steps(n_step_definition(n)), n - 2, actor)

        with pytest.raises(FinalStepApprovalError):
            apply_action(steps, n - 1, WorkflowActionType.APPROVE, actor, NOW)


class TestReject:

    def test_reject_resets_other_steps(self):
        actor = uuid4()
        steps = snapshot_steps(three_step_definition())
        steps = apply_action(steps, 0, WorkflowActionType.APPROVE, actor, NOW).steps

        outcome = apply_action(steps, 1, WorkflowActionType.REJECT, actor, NOW, "too big")

        assert statuses(outcome.steps) == [StepStatus.PENDING, StepStatus.REJECTED, StepStatus.PENDING]
        assert outcome.steps[0].acted_by_id is None
        assert outcome.steps[1].comment == "too big"
        assert outcome.status == InstanceStatus.REJECTED
        assert outcome.current_step_id is None
        assert outcome.estimation_status == EstimationStatus.REJECTED
        assert outcome.notify_submitter is True


class TestRequestChange:

    def test_rewinds_to_first_step(self):
        actor = uuid4()
        steps = snapshot_steps(three_step_definition())
        steps = apply_action(steps, 0, WorkflowActionType.APPROVE, actor, NOW).steps

        outcome = apply_action(steps, 1, WorkflowActionType.REQUEST_CHANGE, actor, NOW, "split it")

        assert statuses(outcome.steps) == [StepStatus.ACTIVE, StepStatus.PENDING, StepStatus.PENDING]
        assert outcome.status == InstanceStatus.CHANGES_REQUESTED
        assert outcome.current_step_id == steps[0].step_id
        assert outcome.estimation_status == EstimationStatus.CHANGES_REQUESTED
        assert outcome.effective_action == WorkflowActionType.REQUEST_CHANGE
        assert outcome.notify_submitter is True


class TestSendBack:

    def setup_method(self):
        self.actor = uuid4()
        self.steps = snapshot_steps(three_step_definition())

    def test_first_step_becomes_request_change(self):
        outcome = apply_action(self.steps, 0, WorkflowActionType.SEND_BACK, self.actor, NOW, "redo")

        assert outcome.effective_action == WorkflowActionType.REQUEST_CHANGE
        assert outcome.status == InstanceStatus.CHANGES_REQUESTED
        assert outcome.estimation_status == EstimationStatus.CHANGES_REQUESTED

    @pytest.mark.parametrize("n", [2, 3, 5])
    def test_first_step_outcome_identical_to_request_change(self, n):
        steps = snapshot_steps(n_step_definition(n))

        sent_back = apply_action(steps, 0, WorkflowActionType.SEND_BACK, self.actor, NOW, "redo")
        changed = apply_action(steps, 0, WorkflowActionType.REQUEST_CHANGE, self.actor, NOW, "redo")

        assert sent_back == changed
        assert sent_back.steps == changed.steps
        assert sent_back.current_step_id == changed.current_step_id == steps[0].step_id

    def test_later_step_returns_to_previous(self):
        steps = apply_action(self.steps, 0, WorkflowActionType.APPROVE, self.actor, NOW).steps
        steps = apply_action(steps, 1, WorkflowActionType.APPROVE, self.actor, NOW).steps

        outcome = apply_action(steps, 2, WorkflowActionType.SEND_BACK, self.actor, NOW, "check")

        assert statuses(outcome.steps) == [StepStatus.APPROVED, StepStatus.ACTIVE, StepStatus.SENT_BACK]
        assert outcome.steps[1].acted_by_id is None
        assert outcome.steps[2].comment == "check"
        assert outcome.status == InstanceStatus.IN_PROGRESS
        assert outcome.current_step_id == steps[1].step_id
        assert outcome.next_step.step_id == steps[1].step_id
        assert outcome.estimation_status is None
        assert outcome.effective_action == WorkflowActionType.SEND_BACK


class TestFinalApproval:

    def test_completes_instance(self):
        actor = uuid4()
        steps = snapshot_steps(three_step_definition())
        steps = apply_action(steps, 0, WorkflowActionType.APPROVE, actor, NOW).steps
        steps = apply_action(steps, 1, WorkflowActionType.APPROVE, actor, NOW).steps

        outcome = apply_final_approval(steps, 2, actor, NOW, "ship it")

        assert statuses(outcome.steps) == [StepStatus.APPROVED] * 3
        assert outcome.steps[2].comment == "ship it"
        assert outcome.status == InstanceStatus.COMPLETED
        assert outcome.current_step_id is None
        assert outcome.estimation_status == EstimationStatus.APPROVED
