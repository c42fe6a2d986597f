"""
WorkflowPolicy -- the runtime knobs the engine services obey.

Built by ``taskflow_config`` from YAML (``EngineSettings.to_policy()``) so
the kernel never imports the config package.  The defaults reproduce the
stock behaviour: only PMs submit estimates and perform final approval,
developers and engineers are eligible assignees, scheduled tasks move to
``SELECTED``.
"""

from __future__ import annotations

from dataclasses import dataclass

from taskflow_kernel.domain.calendar import DEFAULT_SCHEDULE_SLOTS, ScheduleSlot
from taskflow_kernel.domain.workflow import Role


@dataclass(frozen=True)
class WorkflowPolicy:
    finalizer_role: Role = Role.PM
    estimate_submitter_roles: frozenset[Role] = frozenset({Role.PM})
    developer_roles: frozenset[Role] = frozenset({Role.DEVELOPER, Role.ENGINEER})
    schedule_admin_roles: frozenset[Role] = frozenset({Role.PM, Role.SUPER_ADMIN})
    scheduled_task_status: str = "SELECTED"
    default_time_zone: str = "UTC"
    max_schedule_iterations: int = 10_000
    default_schedule: tuple[ScheduleSlot, ...] = DEFAULT_SCHEDULE_SLOTS


DEFAULT_POLICY = WorkflowPolicy()
