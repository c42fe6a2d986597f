"""
Module: taskflow_kernel.models.task
Responsibility: ORM persistence for projects, tasks and developer
    assignments -- the approvable entities and the context the workflow
    engine reads when scheduling.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A task's estimation is written only by the workflow engine; it is
      stored as a JSON document and replaced wholesale.
    - A project may pin the workflow definition its tasks use.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskflow_kernel.db.base import TrackedBase, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from taskflow_kernel.domain.dtos import TaskEstimation, TaskSnapshot


class AssignmentStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ProjectModel(TrackedBase):
    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    company_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    task_workflow_definition_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_definitions.id"),
        nullable=True,
    )

    tasks: Mapped[list["TaskModel"]] = relationship("TaskModel", back_populates="project")

    def __repr__(self) -> str:
        return f"<Project {self.name}>"


class TaskModel(TrackedBase):
    """A unit of work carrying an estimation and a workflow binding."""

    __tablename__ = "tasks"

    __table_args__ = (
        Index("ix_tasks_project", "project_id"),
    )

    project_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("projects.id"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="BACKLOG")
    estimation: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    planned_start_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    expected_completion_date: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    workflow_instance_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("workflow_instances.id"),
        nullable=True,
    )

    project: Mapped["ProjectModel"] = relationship("ProjectModel", back_populates="tasks")
    assignments: Mapped[list["AssignmentModel"]] = relationship(
        "AssignmentModel",
        back_populates="task",
        order_by="AssignmentModel.created_at",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Task {self.title} status={self.status}>"

    def get_estimation(self) -> TaskEstimation | None:
        from taskflow_kernel.domain.dtos import TaskEstimation as TaskEstimationDTO

        if not self.estimation:
            return None
        return TaskEstimationDTO.from_dict(self.estimation)

    def set_estimation(self, estimation: TaskEstimation | None) -> None:
        self.estimation = estimation.to_dict() if estimation is not None else None

    def to_dto(self) -> TaskSnapshot:
        from taskflow_kernel.domain.dtos import TaskSnapshot as TaskSnapshotDTO

        return TaskSnapshotDTO(
            id=self.id,
            project_id=self.project_id,
            title=self.title,
            status=self.status,
            created_by_id=self.created_by_id,
            estimation=self.get_estimation(),
            planned_start_date=self.planned_start_date,
            expected_completion_date=self.expected_completion_date,
            workflow_instance_id=self.workflow_instance_id,
        )


class AssignmentModel(TrackedBase):
    """A developer assigned to a task."""

    __tablename__ = "task_assignments"

    task_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tasks.id"),
        nullable=False,
    )
    developer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=AssignmentStatus.PENDING.value,
    )

    task: Mapped["TaskModel"] = relationship("TaskModel", back_populates="assignments")

    def __repr__(self) -> str:
        return f"<Assignment task={self.task_id} developer={self.developer_id} {self.status}>"
