"""
EngineSettings schema.

Defines the human-authored, reviewable configuration of the workflow
engine.  YAML is parsed into these types by the loader; the kernel never
sees them directly -- ``EngineSettings.to_policy()`` produces the kernel's
``WorkflowPolicy``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from taskflow_kernel.domain.calendar import DEFAULT_SCHEDULE_SLOTS, ScheduleSlot
from taskflow_kernel.domain.policy import WorkflowPolicy
from taskflow_kernel.domain.workflow import Role

# ---------------------------------------------------------------------------
# Seed workflow definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkflowDefinitionDef:
    """A workflow definition to seed into the registry."""

    name: str
    steps: tuple[dict[str, Any], ...]
    description: str | None = None
    entity_type: str = "TASK"
    is_active: bool = True

    def as_mapping(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "steps": [dict(step) for step in self.steps],
            "description": self.description,
            "entity_type": self.entity_type,
            "is_active": self.is_active,
        }


# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    """Runtime knobs of the approval engine and the completion-date calculator."""

    finalizer_role: Role = Role.PM
    estimate_submitter_roles: frozenset[Role] = frozenset({Role.PM})
    developer_roles: frozenset[Role] = frozenset({Role.DEVELOPER, Role.ENGINEER})
    schedule_admin_roles: frozenset[Role] = frozenset({Role.PM, Role.SUPER_ADMIN})
    scheduled_task_status: str = "SELECTED"
    default_time_zone: str = "UTC"
    max_schedule_iterations: int = 10_000
    default_schedule: tuple[ScheduleSlot, ...] = DEFAULT_SCHEDULE_SLOTS
    workflow_definitions: tuple[WorkflowDefinitionDef, ...] = ()
    checksum: str = field(default="", compare=False)

    def to_policy(self) -> WorkflowPolicy:
        return WorkflowPolicy(
            finalizer_role=self.finalizer_role,
            estimate_submitter_roles=self.estimate_submitter_roles,
            developer_roles=self.developer_roles,
            schedule_admin_roles=self.schedule_admin_roles,
            scheduled_task_status=self.scheduled_task_status,
            default_time_zone=self.default_time_zone,
            max_schedule_iterations=self.max_schedule_iterations,
            default_schedule=self.default_schedule,
        )
