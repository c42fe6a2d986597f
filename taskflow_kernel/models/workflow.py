"""
Module: taskflow_kernel.models.workflow
Responsibility: ORM persistence for workflow definitions, their steps, live
    workflow instances, and the append-only action log.
Architecture position: Kernel > Models.  May import from db/base.py only
    (domain DTOs are imported lazily inside to_dto/from_dto).

Invariants enforced:
    - Step snapshots live on the instance row as a JSON array; the array is
      reassigned wholesale on every change, never mutated in place.
    - One instance per (entity_type, entity_id).
    - WorkflowAction rows are append-only (db/immutability.py).
    - A COMPLETED instance is frozen (db/immutability.py).

Failure modes:
    - IntegrityError on a second instance for the same entity.
    - ImmutabilityViolationError on action UPDATE/DELETE or on changes to a
      COMPLETED instance.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskflow_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from taskflow_kernel.domain.workflow import (
        WorkflowActionRecord,
        WorkflowDefinition,
        WorkflowInstance,
        WorkflowStepDefinition,
    )


class WorkflowDefinitionModel(TrackedBase):
    """A named, ordered list of approval steps for one entity type."""

    __tablename__ = "workflow_definitions"

    __table_args__ = (
        Index("ix_workflow_definitions_entity_active", "entity_type", "is_active"),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    steps: Mapped[list["WorkflowStepDefinitionModel"]] = relationship(
        "WorkflowStepDefinitionModel",
        back_populates="definition",
        order_by="WorkflowStepDefinitionModel.order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<WorkflowDefinition {self.name} {self.entity_type} active={self.is_active}>"

    def to_dto(self) -> WorkflowDefinition:
        """Convert ORM model to frozen domain DTO."""
        from taskflow_kernel.domain.workflow import (
            WorkflowDefinition as WorkflowDefinitionDTO,
            WorkflowEntityType,
            parse_enum,
        )

        return WorkflowDefinitionDTO(
            id=self.id,
            entity_type=parse_enum(WorkflowEntityType, self.entity_type),
            name=self.name,
            is_active=self.is_active,
            steps=tuple(step.to_dto() for step in self.steps),
            description=self.description,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class WorkflowStepDefinitionModel(Base):
    """One published step of a definition."""

    __tablename__ = "workflow_step_definitions"

    __table_args__ = (
        UniqueConstraint("definition_id", "step_order", name="uq_workflow_step_order"),
    )

    definition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_definitions.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    order: Mapped[int] = mapped_column("step_order", BigInteger, nullable=False)
    approver_type: Mapped[str] = mapped_column(String(20), nullable=False)
    approver_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    dynamic_approver_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    assignee_role: Mapped[str] = mapped_column(String(50), nullable=False)
    requires_comment_on_reject: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    requires_comment_on_send_back: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    actions: Mapped[list[str]] = mapped_column(JSON, nullable=False)

    definition: Mapped["WorkflowDefinitionModel"] = relationship(
        "WorkflowDefinitionModel", back_populates="steps",
    )

    def to_dto(self) -> WorkflowStepDefinition:
        from taskflow_kernel.domain.workflow import (
            ApproverType,
            DynamicApproverType,
            Role,
            WorkflowActionType,
            WorkflowStepDefinition as StepDTO,
            parse_enum,
        )

        return StepDTO(
            id=self.id,
            name=self.name,
            order=self.order,
            approver_type=parse_enum(ApproverType, self.approver_type),
            assignee_role=parse_enum(Role, self.assignee_role),
            actions=tuple(parse_enum(WorkflowActionType, a) for a in self.actions),
            approver_role=parse_enum(Role, self.approver_role) if self.approver_role else None,
            dynamic_approver_type=(
                parse_enum(DynamicApproverType, self.dynamic_approver_type)
                if self.dynamic_approver_type
                else None
            ),
            requires_comment_on_reject=self.requires_comment_on_reject,
            requires_comment_on_send_back=self.requires_comment_on_send_back,
            description=self.description,
        )

    @classmethod
    def from_dto(cls, dto: WorkflowStepDefinition) -> WorkflowStepDefinitionModel:
        return cls(
            id=dto.id,
            name=dto.name,
            description=dto.description,
            order=dto.order,
            approver_type=dto.approver_type.value,
            approver_role=dto.approver_role.value if dto.approver_role else None,
            dynamic_approver_type=(
                dto.dynamic_approver_type.value if dto.dynamic_approver_type else None
            ),
            assignee_role=dto.assignee_role.value,
            requires_comment_on_reject=dto.requires_comment_on_reject,
            requires_comment_on_send_back=dto.requires_comment_on_send_back,
            actions=[action.value for action in dto.actions],
        )


class WorkflowInstanceModel(Base):
    """Live execution of a definition for one approvable entity."""

    __tablename__ = "workflow_instances"

    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", name="uq_workflow_instance_entity"),
        Index("ix_workflow_instances_definition", "definition_id"),
    )

    definition_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_definitions.id"),
        nullable=False,
    )
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    current_step_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    steps: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<WorkflowInstance {self.entity_type}:{self.entity_id} status={self.status}>"

    def to_dto(self) -> WorkflowInstance:
        from taskflow_kernel.domain.workflow import (
            InstanceStatus,
            WorkflowEntityType,
            WorkflowInstance as WorkflowInstanceDTO,
            WorkflowStepInstance,
            parse_enum,
        )

        return WorkflowInstanceDTO(
            id=self.id,
            definition_id=self.definition_id,
            entity_type=parse_enum(WorkflowEntityType, self.entity_type),
            entity_id=self.entity_id,
            status=parse_enum(InstanceStatus, self.status),
            steps=tuple(WorkflowStepInstance.from_dict(step) for step in self.steps),
            current_step_id=self.current_step_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class WorkflowActionModel(Base):
    """Append-only audit record of one workflow transition."""

    __tablename__ = "workflow_actions"

    __table_args__ = (
        UniqueConstraint("instance_id", "sequence", name="uq_workflow_action_sequence"),
    )

    instance_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_instances.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)
    step_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<WorkflowAction #{self.sequence} {self.action} step={self.step_id}>"

    def to_dto(self) -> WorkflowActionRecord:
        from taskflow_kernel.domain.workflow import (
            WorkflowActionRecord as WorkflowActionDTO,
            WorkflowActionType,
            parse_enum,
        )

        return WorkflowActionDTO(
            id=self.id,
            instance_id=self.instance_id,
            step_id=self.step_id,
            actor_id=self.actor_id,
            action=parse_enum(WorkflowActionType, self.action),
            comment=self.comment,
            metadata=dict(self.action_metadata or {}),
            created_at=self.created_at,
        )
