"""
Workflow query selector.

Read-only access to workflow definitions, instances and the action log.

Key design decisions:
- Returns domain DTOs (frozen dataclasses), not ORM models.
- "Active definition" is a query, not a cached value: the registry keeps at
  most one active row per entity type.
- Actions are returned in append order (``sequence``).
"""

from uuid import UUID

from sqlalchemy import func, select

from taskflow_kernel.domain.workflow import (
    WorkflowActionRecord,
    WorkflowDefinition,
    WorkflowEntityType,
    WorkflowInstance,
)
from taskflow_kernel.models.workflow import (
    WorkflowActionModel,
    WorkflowDefinitionModel,
    WorkflowInstanceModel,
)
from taskflow_kernel.selectors.base import BaseSelector


class WorkflowSelector(BaseSelector[WorkflowDefinitionModel]):
    """Queries over definitions, instances and actions."""

    def get_definition(self, definition_id: UUID) -> WorkflowDefinition | None:
        model = self.session.get(WorkflowDefinitionModel, definition_id)
        return model.to_dto() if model is not None else None

    def find_active_definition(
        self, entity_type: WorkflowEntityType = WorkflowEntityType.TASK,
    ) -> WorkflowDefinition | None:
        model = self.session.scalars(
            select(WorkflowDefinitionModel)
            .where(
                WorkflowDefinitionModel.entity_type == WorkflowEntityType(entity_type).value,
                WorkflowDefinitionModel.is_active.is_(True),
            )
            .order_by(WorkflowDefinitionModel.updated_at.desc())
            .limit(1)
        ).first()
        return model.to_dto() if model is not None else None

    def list_definitions(
        self, entity_type: WorkflowEntityType | None = None,
    ) -> list[WorkflowDefinition]:
        stmt = select(WorkflowDefinitionModel).order_by(
            WorkflowDefinitionModel.created_at, WorkflowDefinitionModel.name,
        )
        if entity_type is not None:
            stmt = stmt.where(
                WorkflowDefinitionModel.entity_type == WorkflowEntityType(entity_type).value,
            )
        return [model.to_dto() for model in self.session.scalars(stmt)]

    def get_instance(self, instance_id: UUID) -> WorkflowInstance | None:
        model = self.session.get(WorkflowInstanceModel, instance_id)
        return model.to_dto() if model is not None else None

    def count_instances_for_definition(self, definition_id: UUID) -> int:
        return self.session.scalar(
            select(func.count())
            .select_from(WorkflowInstanceModel)
            .where(WorkflowInstanceModel.definition_id == definition_id)
        ) or 0

    def list_actions(self, instance_id: UUID) -> tuple[WorkflowActionRecord, ...]:
        models = self.session.scalars(
            select(WorkflowActionModel)
            .where(WorkflowActionModel.instance_id == instance_id)
            .order_by(WorkflowActionModel.sequence)
        )
        return tuple(model.to_dto() for model in models)
