"""
Workflow step transition table (``taskflow_kernel.domain.transitions``).

Responsibility
--------------
Pure functions computing the next step array, instance status, current step
and estimation status for each workflow action.  The services layer loads
and persists; this module only decides.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  Imports only ``domain/`` and
``exceptions``.

Transition table (steps indexed 0..n-1, acting step i)
------------------------------------------------------
=================  ===========================  ===================  ==========
action             steps                        instance status      current
=================  ===========================  ===================  ==========
APPROVE (i < n-1)  i APPROVED, i+1 ACTIVE,      IN_PROGRESS          i+1
                   > i+1 PENDING
REJECT             i REJECTED, others PENDING   REJECTED             none
REQUEST_CHANGE     all PENDING, 0 ACTIVE        CHANGES_REQUESTED    0
SEND_BACK (i = 0)  same as REQUEST_CHANGE
SEND_BACK (i > 0)  i SENT_BACK, i-1 ACTIVE,     IN_PROGRESS          i-1
                   > i-1 PENDING
final approval     i APPROVED                   COMPLETED            none
=================  ===========================  ===================  ==========

APPROVE on the last step is never a plain transition: it raises
``FinalStepApprovalError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Sequence
from uuid import UUID

from taskflow_kernel.domain.dtos import EstimationStatus
from taskflow_kernel.domain.workflow import (
    InstanceStatus,
    StepStatus,
    WorkflowActionType,
    WorkflowDefinition,
    WorkflowStepInstance,
)
from taskflow_kernel.exceptions import FinalStepApprovalError


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of applying one action to a step array."""

    steps: tuple[WorkflowStepInstance, ...]
    status: InstanceStatus
    current_step_id: UUID | None
    effective_action: WorkflowActionType
    estimation_status: EstimationStatus | None = None
    # Step whose role becomes responsible; None when the submitter is told instead.
    next_step: WorkflowStepInstance | None = None
    notify_submitter: bool = False


def snapshot_steps(definition: WorkflowDefinition) -> tuple[WorkflowStepInstance, ...]:
    """Copy a definition's steps into fresh instance steps, step 0 ACTIVE."""
    steps = tuple(WorkflowStepInstance.snapshot(step) for step in definition.steps)
    return _rewind(steps, 0)


def _rewind(
    steps: tuple[WorkflowStepInstance, ...],
    target_index: int,
    acting: WorkflowStepInstance | None = None,
    acting_index: int | None = None,
) -> tuple[WorkflowStepInstance, ...]:
    """Reactivate ``target_index``; every later step returns to PENDING.

    Steps before the target keep their state.  ``acting`` (already marked)
    replaces the step at ``acting_index``.
    """
    rewound: list[WorkflowStepInstance] = []
    for index, step in enumerate(steps):
        if acting is not None and index == acting_index:
            rewound.append(acting)
        elif index == target_index:
            rewound.append(step.activated())
        elif index > target_index:
            rewound.append(step.reset())
        else:
            rewound.append(step)
    return tuple(rewound)


def _approve(steps, index, actor_id, acted_at, comment) -> TransitionOutcome:
    if index >= len(steps) - 1:
        raise FinalStepApprovalError(str(steps[index].step_id))
    next_index = index + 1
    updated: list[WorkflowStepInstance] = []
    for position, step in enumerate(steps):
        if position == index:
            updated.append(step.acted(
                StepStatus.APPROVED, actor_id, acted_at, WorkflowActionType.APPROVE, comment,
            ))
        elif position == next_index:
            updated.append(step.activated())
        elif position > next_index:
            updated.append(step.reset())
        else:
            updated.append(step)
    return TransitionOutcome(
        steps=tuple(updated),
        status=InstanceStatus.IN_PROGRESS,
        current_step_id=updated[next_index].step_id,
        effective_action=WorkflowActionType.APPROVE,
        next_step=updated[next_index],
    )


def _reject(steps, index, actor_id, acted_at, comment) -> TransitionOutcome:
    updated = tuple(
        step.acted(StepStatus.REJECTED, actor_id, acted_at, WorkflowActionType.REJECT, comment)
        if position == index
        else step.reset()
        for position, step in enumerate(steps)
    )
    return TransitionOutcome(
        steps=updated,
        status=InstanceStatus.REJECTED,
        current_step_id=None,
        effective_action=WorkflowActionType.REJECT,
        estimation_status=EstimationStatus.REJECTED,
        notify_submitter=True,
    )


def _request_change(steps, index, actor_id, acted_at, comment) -> TransitionOutcome:
    updated = _rewind(steps, 0)
    return TransitionOutcome(
        steps=updated,
        status=InstanceStatus.CHANGES_REQUESTED,
        current_step_id=updated[0].step_id,
        effective_action=WorkflowActionType.REQUEST_CHANGE,
        estimation_status=EstimationStatus.CHANGES_REQUESTED,
        notify_submitter=True,
    )


def _send_back(steps, index, actor_id, acted_at, comment) -> TransitionOutcome:
    if index == 0:
        return _request_change(steps, index, actor_id, acted_at, comment)
    target_index = index - 1
    acting = steps[index].acted(
        StepStatus.SENT_BACK, actor_id, acted_at, WorkflowActionType.SEND_BACK, comment,
    )
    updated = _rewind(steps, target_index, acting=acting, acting_index=index)
    return TransitionOutcome(
        steps=updated,
        status=InstanceStatus.IN_PROGRESS,
        current_step_id=updated[target_index].step_id,
        effective_action=WorkflowActionType.SEND_BACK,
        next_step=updated[target_index],
    )


_Handler = Callable[
    [tuple[WorkflowStepInstance, ...], int, UUID, datetime, str | None],
    TransitionOutcome,
]

TRANSITIONS: dict[WorkflowActionType, _Handler] = {
    WorkflowActionType.APPROVE: _approve,
    WorkflowActionType.REJECT: _reject,
    WorkflowActionType.REQUEST_CHANGE: _request_change,
    WorkflowActionType.SEND_BACK: _send_back,
}


def apply_action(
    steps: Sequence[WorkflowStepInstance],
    index: int,
    action: WorkflowActionType,
    actor_id: UUID,
    acted_at: datetime,
    comment: str | None = None,
) -> TransitionOutcome:
    """Apply ``action`` to the step at ``index`` and return the outcome."""
    return TRANSITIONS[action](tuple(steps), index, actor_id, acted_at, comment)


def apply_final_approval(
    steps: Sequence[WorkflowStepInstance],
    index: int,
    actor_id: UUID,
    acted_at: datetime,
    note: str | None = None,
) -> TransitionOutcome:
    """Mark the final step APPROVED and complete the instance."""
    updated = tuple(
        step.acted(StepStatus.APPROVED, actor_id, acted_at, WorkflowActionType.APPROVE, note)
        if position == index
        else step
        for position, step in enumerate(steps)
    )
    return TransitionOutcome(
        steps=updated,
        status=InstanceStatus.COMPLETED,
        current_step_id=None,
        effective_action=WorkflowActionType.APPROVE,
        estimation_status=EstimationStatus.APPROVED,
        notify_submitter=True,
    )
