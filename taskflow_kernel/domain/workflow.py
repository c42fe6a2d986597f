"""
Workflow domain types (``taskflow_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the task approval workflow: the closed enumerations,
step/definition/instance snapshots, audit action records, and the
definition-build rules (assignee-role resolution and step normalization).

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Closed enumerations -- ``parse_enum`` rejects any value outside the set.
* Dynamic approver mapping is a total lookup table resolved once, when a
  definition is built; ``assignee_role`` is never recomputed later.
* Step order is re-numbered 1..n contiguously after a stable sort.
* ``WorkflowStepInstance`` is a value copy of its step definition, so later
  definition edits never reach an in-flight instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Sequence, TypeVar
from uuid import UUID, uuid4

from taskflow_kernel.domain.instants import format_instant
from taskflow_kernel.exceptions import (
    InvalidWorkflowDefinitionError,
    UnknownEnumValueError,
)


# =========================================================================
# Closed enumerations
# =========================================================================


class Role(str, Enum):
    """Directory roles."""

    SUPER_ADMIN = "SUPER_ADMIN"
    VP = "VP"
    PM = "PM"
    ENGINEER = "ENGINEER"
    PROJECT_MANAGER = "PROJECT_MANAGER"
    DEVELOPER = "DEVELOPER"
    VIEWER = "VIEWER"


class WorkflowEntityType(str, Enum):
    TASK = "TASK"


class WorkflowActionType(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    SEND_BACK = "SEND_BACK"
    REQUEST_CHANGE = "REQUEST_CHANGE"


class ApproverType(str, Enum):
    ROLE = "ROLE"
    DYNAMIC = "DYNAMIC"


class DynamicApproverType(str, Enum):
    """Context-derived approvers; each maps to exactly one role."""

    ENGINEERING_TEAM = "ENGINEERING_TEAM"
    TASK_PROJECT_MANAGER = "TASK_PROJECT_MANAGER"
    TASK_PM = "TASK_PM"
    TASK_ASSIGNED_DEVELOPER = "TASK_ASSIGNED_DEVELOPER"


class StepStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SENT_BACK = "SENT_BACK"


class InstanceStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


DYNAMIC_APPROVER_ROLES: Mapping[DynamicApproverType, Role] = {
    DynamicApproverType.ENGINEERING_TEAM: Role.ENGINEER,
    DynamicApproverType.TASK_PROJECT_MANAGER: Role.PROJECT_MANAGER,
    DynamicApproverType.TASK_PM: Role.PM,
    DynamicApproverType.TASK_ASSIGNED_DEVELOPER: Role.DEVELOPER,
}

ALL_ACTIONS: tuple[WorkflowActionType, ...] = tuple(WorkflowActionType)

# Instances a fresh estimate submission rebuilds from step 1.
RESETTABLE_INSTANCE_STATUSES: frozenset[InstanceStatus] = frozenset({
    InstanceStatus.CHANGES_REQUESTED,
    InstanceStatus.REJECTED,
})

E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: type[E], value: Any) -> E:
    """Coerce ``value`` to a member of ``enum_cls`` or raise UnknownEnumValueError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise UnknownEnumValueError(enum_cls.__name__, value) from None


def _optional_enum(enum_cls: type[E], value: Any) -> E | None:
    if value is None or value == "":
        return None
    return parse_enum(enum_cls, value)


# =========================================================================
# Definition types
# =========================================================================


@dataclass(frozen=True)
class WorkflowStepInput:
    """Raw, unvalidated step configuration as supplied by an administrator."""

    name: str
    description: str | None = None
    order: int | None = None
    approver_type: ApproverType | str | None = None
    approver_role: Role | str | None = None
    dynamic_approver_type: DynamicApproverType | str | None = None
    requires_comment_on_reject: bool = False
    requires_comment_on_send_back: bool = False
    actions: Sequence[WorkflowActionType | str] | None = None
    id: UUID | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> WorkflowStepInput:
        actions = data.get("actions")
        step_id = data.get("id")
        return cls(
            name=data.get("name", ""),
            description=data.get("description"),
            order=data.get("order"),
            approver_type=data.get("approver_type"),
            approver_role=data.get("approver_role"),
            dynamic_approver_type=data.get("dynamic_approver_type"),
            requires_comment_on_reject=bool(data.get("requires_comment_on_reject", False)),
            requires_comment_on_send_back=bool(data.get("requires_comment_on_send_back", False)),
            actions=tuple(actions) if actions is not None else None,
            id=UUID(str(step_id)) if step_id else None,
        )


@dataclass(frozen=True)
class WorkflowStepDefinition:
    """A published approval step.  Immutable."""

    id: UUID
    name: str
    order: int
    approver_type: ApproverType
    assignee_role: Role
    actions: tuple[WorkflowActionType, ...]
    approver_role: Role | None = None
    dynamic_approver_type: DynamicApproverType | None = None
    requires_comment_on_reject: bool = False
    requires_comment_on_send_back: bool = False
    description: str | None = None

    def allows(self, action: WorkflowActionType) -> bool:
        return action in self.actions


@dataclass(frozen=True)
class WorkflowDefinition:
    """Named template of ordered approval steps for an entity type."""

    id: UUID
    entity_type: WorkflowEntityType
    name: str
    is_active: bool
    steps: tuple[WorkflowStepDefinition, ...]
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def last_step(self) -> WorkflowStepDefinition | None:
        return self.steps[-1] if self.steps else None

    def step_by_id(self, step_id: UUID) -> WorkflowStepDefinition | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


def resolve_assignee_role(
    approver_type: ApproverType,
    approver_role: Role | None = None,
    dynamic_approver_type: DynamicApproverType | None = None,
) -> Role:
    """Resolve the role responsible for a step.

    ROLE steps use ``approver_role``; DYNAMIC steps go through the closed
    ``DYNAMIC_APPROVER_ROLES`` table.

    Raises:
        InvalidWorkflowDefinitionError: missing role / tag, or unmapped tag.
    """
    if approver_type == ApproverType.ROLE:
        if approver_role is None:
            raise InvalidWorkflowDefinitionError("workflow step requires an approver role")
        return approver_role
    if dynamic_approver_type is None:
        raise InvalidWorkflowDefinitionError("workflow step requires a dynamic approver type")
    mapped = DYNAMIC_APPROVER_ROLES.get(dynamic_approver_type)
    if mapped is None:
        raise InvalidWorkflowDefinitionError(
            f"unsupported dynamic approver type {dynamic_approver_type.value}"
        )
    return mapped


def _normalize_actions(
    actions: Sequence[WorkflowActionType | str] | None,
    index: int,
) -> tuple[WorkflowActionType, ...]:
    if actions is None:
        return ALL_ACTIONS
    if not actions:
        raise InvalidWorkflowDefinitionError(
            "workflow step requires at least one supported action", index,
        )
    parsed: list[WorkflowActionType] = []
    for action in actions:
        member = parse_enum(WorkflowActionType, action)
        if member not in parsed:
            parsed.append(member)
    return tuple(parsed)


def normalize_steps(inputs: Sequence[WorkflowStepInput]) -> tuple[WorkflowStepDefinition, ...]:
    """Validate step inputs and build published step definitions.

    Order defaults to the array position; the result is stably sorted by
    order and then re-numbered 1..n regardless of the supplied values.
    """
    if not inputs:
        raise InvalidWorkflowDefinitionError("workflow definition requires at least one step")

    built: list[tuple[int, int, WorkflowStepDefinition]] = []
    seen_ids: set[UUID] = set()
    for index, step in enumerate(inputs):
        name = (step.name or "").strip()
        if not name:
            raise InvalidWorkflowDefinitionError("workflow step requires a name", index)
        if step.order is not None and not isinstance(step.order, int):
            raise InvalidWorkflowDefinitionError("step order must be an integer", index)

        actions = _normalize_actions(step.actions, index)
        dynamic = _optional_enum(DynamicApproverType, step.dynamic_approver_type)
        approver_role = _optional_enum(Role, step.approver_role)
        if step.approver_type is not None:
            approver_type = parse_enum(ApproverType, step.approver_type)
        else:
            approver_type = ApproverType.DYNAMIC if dynamic else ApproverType.ROLE

        try:
            assignee_role = resolve_assignee_role(approver_type, approver_role, dynamic)
        except InvalidWorkflowDefinitionError as exc:
            raise InvalidWorkflowDefinitionError(exc.reason, index) from None

        step_id = step.id or uuid4()
        if step_id in seen_ids:
            raise InvalidWorkflowDefinitionError(f"duplicate step id {step_id}", index)
        seen_ids.add(step_id)

        description = step.description.strip() if step.description else None
        definition = WorkflowStepDefinition(
            id=step_id,
            name=name,
            order=0,
            approver_type=approver_type,
            assignee_role=assignee_role,
            actions=actions,
            approver_role=assignee_role if approver_type == ApproverType.ROLE else None,
            dynamic_approver_type=dynamic if approver_type == ApproverType.DYNAMIC else None,
            requires_comment_on_reject=step.requires_comment_on_reject,
            requires_comment_on_send_back=step.requires_comment_on_send_back,
            description=description or None,
        )
        order = step.order if step.order is not None else index + 1
        built.append((order, index, definition))

    built.sort(key=lambda item: (item[0], item[1]))
    return tuple(
        replace(definition, order=position)
        for position, (_, _, definition) in enumerate(built, start=1)
    )


# =========================================================================
# Instance types
# =========================================================================


@dataclass(frozen=True)
class WorkflowStepInstance:
    """Frozen copy of a step definition plus the step's mutable state.

    State changes produce new values (``activated``, ``reset``, ``acted``);
    the snapshot metadata is carried over untouched.
    """

    step_id: UUID
    name: str
    assignee_role: Role
    approver_type: ApproverType
    status: StepStatus = StepStatus.PENDING
    approver_role: Role | None = None
    dynamic_approver_type: DynamicApproverType | None = None
    requires_comment_on_reject: bool = False
    requires_comment_on_send_back: bool = False
    acted_by_id: UUID | None = None
    acted_at: datetime | None = None
    action: WorkflowActionType | None = None
    comment: str | None = None

    @classmethod
    def snapshot(cls, step: WorkflowStepDefinition) -> WorkflowStepInstance:
        return cls(
            step_id=step.id,
            name=step.name,
            assignee_role=step.assignee_role,
            approver_type=step.approver_type,
            approver_role=step.approver_role,
            dynamic_approver_type=step.dynamic_approver_type,
            requires_comment_on_reject=step.requires_comment_on_reject,
            requires_comment_on_send_back=step.requires_comment_on_send_back,
        )

    def _cleared(self, status: StepStatus) -> WorkflowStepInstance:
        return replace(
            self, status=status, acted_by_id=None, acted_at=None, action=None, comment=None,
        )

    def activated(self) -> WorkflowStepInstance:
        return self._cleared(StepStatus.ACTIVE)

    def reset(self) -> WorkflowStepInstance:
        return self._cleared(StepStatus.PENDING)

    def acted(
        self,
        status: StepStatus,
        actor_id: UUID,
        acted_at: datetime,
        action: WorkflowActionType,
        comment: str | None,
    ) -> WorkflowStepInstance:
        return replace(
            self,
            status=status,
            acted_by_id=actor_id,
            acted_at=acted_at,
            action=action,
            comment=comment,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe persisted shape."""
        return {
            "step_id": str(self.step_id),
            "name": self.name,
            "assignee_role": self.assignee_role.value,
            "approver_type": self.approver_type.value,
            "approver_role": self.approver_role.value if self.approver_role else None,
            "dynamic_approver_type": (
                self.dynamic_approver_type.value if self.dynamic_approver_type else None
            ),
            "requires_comment_on_reject": self.requires_comment_on_reject,
            "requires_comment_on_send_back": self.requires_comment_on_send_back,
            "status": self.status.value,
            "acted_by_id": str(self.acted_by_id) if self.acted_by_id else None,
            "acted_at": format_instant(self.acted_at) if self.acted_at else None,
            "action": self.action.value if self.action else None,
            "comment": self.comment,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorkflowStepInstance:
        acted_at = data.get("acted_at")
        return cls(
            step_id=UUID(data["step_id"]),
            name=data["name"],
            assignee_role=parse_enum(Role, data["assignee_role"]),
            approver_type=parse_enum(ApproverType, data["approver_type"]),
            status=parse_enum(StepStatus, data["status"]),
            approver_role=_optional_enum(Role, data.get("approver_role")),
            dynamic_approver_type=_optional_enum(
                DynamicApproverType, data.get("dynamic_approver_type"),
            ),
            requires_comment_on_reject=bool(data.get("requires_comment_on_reject", False)),
            requires_comment_on_send_back=bool(data.get("requires_comment_on_send_back", False)),
            acted_by_id=UUID(data["acted_by_id"]) if data.get("acted_by_id") else None,
            acted_at=datetime.fromisoformat(acted_at) if acted_at else None,
            action=_optional_enum(WorkflowActionType, data.get("action")),
            comment=data.get("comment"),
        )


@dataclass(frozen=True)
class WorkflowInstance:
    """Live, per-entity execution of a definition."""

    id: UUID
    definition_id: UUID
    entity_type: WorkflowEntityType
    entity_id: UUID
    status: InstanceStatus
    steps: tuple[WorkflowStepInstance, ...]
    current_step_id: UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def current_step_index(self) -> int | None:
        if self.current_step_id is None:
            return None
        for index, step in enumerate(self.steps):
            if step.step_id == self.current_step_id:
                return index
        return None

    @property
    def active_step(self) -> WorkflowStepInstance | None:
        for step in self.steps:
            if step.status == StepStatus.ACTIVE:
                return step
        return None


@dataclass(frozen=True)
class WorkflowActionRecord:
    """Append-only audit record of one workflow transition."""

    id: UUID
    instance_id: UUID
    step_id: UUID
    actor_id: UUID
    action: WorkflowActionType
    comment: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass(frozen=True)
class WorkflowSummary:
    """Definition, instance and history for one approvable entity."""

    definition: WorkflowDefinition
    instance: WorkflowInstance
    actions: tuple[WorkflowActionRecord, ...] = ()
