"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except through the injected Clock)
- I/O

All domain objects are immutable and deterministic.
"""

from taskflow_kernel.domain.calendar import (
    DEFAULT_SCHEDULE_SLOTS,
    HolidayRecord,
    LeaveRecord,
    LeaveStatus,
    ScheduleSlot,
    WorkScheduleRecord,
)
from taskflow_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from taskflow_kernel.domain.dtos import (
    Actor,
    EstimatePayload,
    EstimationConfidence,
    EstimationStatus,
    EstimationUnit,
    FinalApprovalPayload,
    StepActionPayload,
    TaskEstimation,
    TaskSnapshot,
    TaskWorkflowResult,
    UserInfo,
)
from taskflow_kernel.domain.policy import DEFAULT_POLICY, WorkflowPolicy
from taskflow_kernel.domain.transitions import (
    TransitionOutcome,
    apply_action,
    apply_final_approval,
    snapshot_steps,
)
from taskflow_kernel.domain.workflow import (
    ApproverType,
    DynamicApproverType,
    InstanceStatus,
    Role,
    StepStatus,
    WorkflowActionRecord,
    WorkflowActionType,
    WorkflowDefinition,
    WorkflowEntityType,
    WorkflowInstance,
    WorkflowStepDefinition,
    WorkflowStepInput,
    WorkflowStepInstance,
    WorkflowSummary,
    normalize_steps,
    parse_enum,
    resolve_assignee_role,
)

__all__ = [
    "Actor",
    "ApproverType",
    "Clock",
    "DEFAULT_POLICY",
    "DEFAULT_SCHEDULE_SLOTS",
    "DeterministicClock",
    "DynamicApproverType",
    "EstimatePayload",
    "EstimationConfidence",
    "EstimationStatus",
    "EstimationUnit",
    "FinalApprovalPayload",
    "HolidayRecord",
    "InstanceStatus",
    "LeaveRecord",
    "LeaveStatus",
    "Role",
    "ScheduleSlot",
    "StepActionPayload",
    "StepStatus",
    "SystemClock",
    "TaskEstimation",
    "TaskSnapshot",
    "TaskWorkflowResult",
    "TransitionOutcome",
    "UserInfo",
    "WorkScheduleRecord",
    "WorkflowActionRecord",
    "WorkflowActionType",
    "WorkflowDefinition",
    "WorkflowEntityType",
    "WorkflowInstance",
    "WorkflowPolicy",
    "WorkflowStepDefinition",
    "WorkflowStepInput",
    "WorkflowStepInstance",
    "WorkflowSummary",
    "apply_action",
    "apply_final_approval",
    "normalize_steps",
    "parse_enum",
    "resolve_assignee_role",
    "snapshot_steps",
]
