"""
WorkflowDefinitionService -- the workflow definition registry.

Responsibility:
    Create, update, activate, deactivate, delete and look up workflow
    definitions.  Step validation and numbering are delegated to the pure
    ``normalize_steps`` in ``taskflow_kernel.domain.workflow``.

Architecture position:
    Kernel > Services.  May import from domain/, models/, selectors/, db/.

Invariants enforced:
    - At most one active definition per entity type.  Creating an active
      definition or activating one deactivates every sibling of the same
      entity type with a single UPDATE inside the caller's transaction.
    - Only ``TASK`` definitions are accepted.
    - A definition referenced by an instance cannot be deleted.  Instances
      carry their own step snapshots, so later edits never reach them.

Failure modes:
    - InvalidWorkflowDefinitionError / UnknownEnumValueError from step
      normalization.
    - InvalidEntityTypeError for entity types other than TASK.
    - WorkflowDefinitionNotFoundError for unknown ids.
    - WorkflowDefinitionInUseError when deleting a referenced definition.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence
from uuid import UUID

from sqlalchemy import update

from taskflow_kernel.domain.workflow import (
    WorkflowDefinition,
    WorkflowEntityType,
    WorkflowStepInput,
    normalize_steps,
)
from taskflow_kernel.exceptions import (
    InvalidEntityTypeError,
    InvalidWorkflowDefinitionError,
    WorkflowDefinitionInUseError,
    WorkflowDefinitionNotFoundError,
)
from taskflow_kernel.logging_config import get_logger
from taskflow_kernel.models.workflow import WorkflowDefinitionModel, WorkflowStepDefinitionModel
from taskflow_kernel.selectors.workflow_selector import WorkflowSelector
from taskflow_kernel.services.base import BaseService

logger = get_logger("services.definition_registry")

_UNSET: Any = object()


def _task_entity_type(entity_type: WorkflowEntityType | str) -> WorkflowEntityType:
    try:
        parsed = WorkflowEntityType(entity_type)
    except ValueError:
        raise InvalidEntityTypeError(str(entity_type), WorkflowEntityType.TASK.value) from None
    if parsed != WorkflowEntityType.TASK:
        raise InvalidEntityTypeError(parsed.value, WorkflowEntityType.TASK.value)
    return parsed


def _as_inputs(
    steps: Sequence[WorkflowStepInput | Mapping[str, Any]],
) -> list[WorkflowStepInput]:
    return [
        step if isinstance(step, WorkflowStepInput) else WorkflowStepInput.from_mapping(step)
        for step in steps
    ]


class WorkflowDefinitionService(BaseService[WorkflowDefinitionModel]):
    """Registry of workflow definitions."""

    def create_definition(
        self,
        name: str,
        steps: Sequence[WorkflowStepInput | Mapping[str, Any]],
        created_by_id: UUID,
        entity_type: WorkflowEntityType | str = WorkflowEntityType.TASK,
        description: str | None = None,
        is_active: bool = True,
    ) -> WorkflowDefinition:
        """Validate, normalize and store a new definition.

        New definitions are active unless ``is_active=False``; an active one
        deactivates its siblings.
        """
        kind = _task_entity_type(entity_type)
        clean_name = (name or "").strip()
        if not clean_name:
            raise InvalidWorkflowDefinitionError("workflow definition requires a name")
        normalized = normalize_steps(_as_inputs(steps))

        now = self.clock.now_utc()
        model = WorkflowDefinitionModel(
            entity_type=kind.value,
            name=clean_name,
            description=(description or "").strip() or None,
            is_active=is_active,
            created_by_id=created_by_id,
            created_at=now,
            updated_at=now,
        )
        model.steps = [WorkflowStepDefinitionModel.from_dto(step) for step in normalized]
        self.session.add(model)
        self.session.flush()

        if is_active:
            self._deactivate_siblings(kind, model.id)

        logger.info(
            "workflow_definition_created",
            extra={
                "definition_id": str(model.id),
                "entity_type": kind.value,
                "step_count": len(normalized),
                "is_active": is_active,
            },
        )
        return model.to_dto()

    def update_definition(
        self,
        definition_id: UUID,
        updated_by_id: UUID,
        name: str | None = None,
        description: str | None = _UNSET,
        steps: Sequence[WorkflowStepInput | Mapping[str, Any]] | None = None,
        is_active: bool | None = None,
    ) -> WorkflowDefinition:
        """Patch a definition.  Supplied steps replace the existing ones wholesale.

        Running instances keep their own step snapshots and are unaffected.
        """
        model = self._load(definition_id)

        normalized = normalize_steps(_as_inputs(steps)) if steps is not None else None
        if name is not None:
            clean_name = name.strip()
            if not clean_name:
                raise InvalidWorkflowDefinitionError("workflow definition requires a name")
            model.name = clean_name
        if description is not _UNSET:
            model.description = (description or "").strip() or None
        if normalized is not None:
            model.steps.clear()
            # Old rows must be gone before step ids / orders are reused.
            self.session.flush()
            model.steps.extend(WorkflowStepDefinitionModel.from_dto(step) for step in normalized)
        if is_active is not None:
            model.is_active = is_active
        model.updated_by_id = updated_by_id
        model.updated_at = self.clock.now_utc()
        self.session.flush()

        if model.is_active:
            self._deactivate_siblings(WorkflowEntityType(model.entity_type), model.id)

        logger.info(
            "workflow_definition_updated",
            extra={
                "definition_id": str(model.id),
                "steps_replaced": normalized is not None,
                "is_active": model.is_active,
            },
        )
        self.session.refresh(model)
        return model.to_dto()

    def activate_definition(self, definition_id: UUID, actor_id: UUID | None = None) -> WorkflowDefinition:
        model = self._load(definition_id)
        model.is_active = True
        model.updated_by_id = actor_id
        model.updated_at = self.clock.now_utc()
        self.session.flush()
        deactivated = self._deactivate_siblings(WorkflowEntityType(model.entity_type), model.id)

        logger.info(
            "workflow_definition_activated",
            extra={"definition_id": str(model.id), "deactivated_siblings": deactivated},
        )
        return model.to_dto()

    def deactivate_definition(
        self, definition_id: UUID, actor_id: UUID | None = None,
    ) -> WorkflowDefinition:
        model = self._load(definition_id)
        model.is_active = False
        model.updated_by_id = actor_id
        model.updated_at = self.clock.now_utc()
        self.session.flush()
        logger.info("workflow_definition_deactivated", extra={"definition_id": str(model.id)})
        return model.to_dto()

    def delete_definition(self, definition_id: UUID) -> None:
        model = self._load(definition_id)
        in_use = WorkflowSelector(self.session).count_instances_for_definition(definition_id)
        if in_use:
            raise WorkflowDefinitionInUseError(str(definition_id), in_use)
        self.session.delete(model)
        self.session.flush()
        logger.info("workflow_definition_deleted", extra={"definition_id": str(definition_id)})

    def get_definition(self, definition_id: UUID) -> WorkflowDefinition:
        return self._load(definition_id).to_dto()

    def list_definitions(
        self, entity_type: WorkflowEntityType | str = WorkflowEntityType.TASK,
    ) -> list[WorkflowDefinition]:
        return WorkflowSelector(self.session).list_definitions(_task_entity_type(entity_type))

    def find_active_definition(
        self, entity_type: WorkflowEntityType | str = WorkflowEntityType.TASK,
    ) -> WorkflowDefinition | None:
        return WorkflowSelector(self.session).find_active_definition(
            _task_entity_type(entity_type),
        )

    def seed_definitions(
        self,
        definitions: Iterable[Mapping[str, Any]],
        created_by_id: UUID,
    ) -> list[WorkflowDefinition]:
        """Create configured definitions whose name is not registered yet.

        Each mapping carries ``name``, ``steps`` and optionally
        ``description``, ``entity_type`` and ``is_active``.
        """
        existing = {
            definition.name for definition in WorkflowSelector(self.session).list_definitions()
        }
        created: list[WorkflowDefinition] = []
        for fragment in definitions:
            if fragment.get("name") in existing:
                continue
            created.append(self.create_definition(
                name=fragment.get("name", ""),
                steps=fragment.get("steps") or [],
                created_by_id=created_by_id,
                entity_type=fragment.get("entity_type", WorkflowEntityType.TASK.value),
                description=fragment.get("description"),
                is_active=bool(fragment.get("is_active", True)),
            ))
            existing.add(created[-1].name)
        logger.info("workflow_definitions_seeded", extra={"created_count": len(created)})
        return created

    # ------------------------------------------------------------------

    def _load(self, definition_id: UUID) -> WorkflowDefinitionModel:
        model = self.session.get(WorkflowDefinitionModel, definition_id)
        if model is None:
            raise WorkflowDefinitionNotFoundError(str(definition_id))
        return model

    def _deactivate_siblings(self, entity_type: WorkflowEntityType, keep_id: UUID) -> int:
        result = self.session.execute(
            update(WorkflowDefinitionModel)
            .where(
                WorkflowDefinitionModel.entity_type == entity_type.value,
                WorkflowDefinitionModel.id != keep_id,
                WorkflowDefinitionModel.is_active.is_(True),
            )
            .values(is_active=False, updated_at=self.clock.now_utc())
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0
