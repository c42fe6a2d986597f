"""
Configuration Loader (``taskflow_config.loader``).

Responsibility
--------------
Loads the engine YAML file and parses it into the typed
``taskflow_config.schema`` dataclasses.  The single public entry point for
runtime config is ``taskflow_config.get_active_config()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on kernel domain
types only (roles, schedule slots); never on services.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; roles and schedule slots are validated here, not at first use.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown role, bad slot or non-positive iteration bound -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Iterable

import yaml

from taskflow_config.schema import EngineSettings, WorkflowDefinitionDef
from taskflow_engines.schedule import validate_slots
from taskflow_kernel.domain.calendar import DEFAULT_SCHEDULE_SLOTS
from taskflow_kernel.domain.instants import resolve_zone
from taskflow_kernel.domain.workflow import Role
from taskflow_kernel.exceptions import InvalidInstantError, InvalidScheduleError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_role(value: Any) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise ValueError(f"Unknown role {value!r}") from None


def parse_roles(values: Iterable[Any] | None, default: frozenset[Role]) -> frozenset[Role]:
    if values is None:
        return default
    if isinstance(values, str):
        values = [values]
    return frozenset(parse_role(value) for value in values)


def parse_workflow_definition(data: dict[str, Any]) -> WorkflowDefinitionDef:
    """
    Parse one seed workflow definition.

    Raises:
        KeyError: if ``name`` or ``steps`` is missing.
    """
    return WorkflowDefinitionDef(
        name=data["name"],
        steps=tuple(dict(step) for step in data["steps"]),
        description=data.get("description"),
        entity_type=data.get("entity_type", "TASK"),
        is_active=bool(data.get("is_active", True)),
    )


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """
    Parse ``EngineSettings`` from the raw YAML mapping.

    Absent keys keep their defaults.  The checksum covers the raw data.
    """
    defaults = EngineSettings()

    schedule_data = data.get("default_schedule")
    try:
        default_schedule = (
            validate_slots(schedule_data) if schedule_data else DEFAULT_SCHEDULE_SLOTS
        )
    except InvalidScheduleError as exc:
        raise ValueError(f"default_schedule: {exc.reason}") from None

    time_zone = data.get("default_time_zone", defaults.default_time_zone)
    try:
        resolve_zone(time_zone)
    except InvalidInstantError:
        raise ValueError(f"default_time_zone: unknown time zone {time_zone!r}") from None

    iterations = int(data.get("max_schedule_iterations", defaults.max_schedule_iterations))
    if iterations <= 0:
        raise ValueError("max_schedule_iterations must be positive")

    return EngineSettings(
        finalizer_role=parse_role(data.get("finalizer_role", defaults.finalizer_role.value)),
        estimate_submitter_roles=parse_roles(
            data.get("estimate_submitter_roles"), defaults.estimate_submitter_roles,
        ),
        developer_roles=parse_roles(data.get("developer_roles"), defaults.developer_roles),
        schedule_admin_roles=parse_roles(
            data.get("schedule_admin_roles"), defaults.schedule_admin_roles,
        ),
        scheduled_task_status=str(
            data.get("scheduled_task_status", defaults.scheduled_task_status),
        ),
        default_time_zone=time_zone,
        max_schedule_iterations=iterations,
        default_schedule=default_schedule,
        workflow_definitions=tuple(
            parse_workflow_definition(item) for item in data.get("workflow_definitions") or ()
        ),
        checksum=compute_checksum(data),
    )


def load_workflow_definitions(path: Path) -> list[dict[str, Any]]:
    """Seed workflow definition mappings from a YAML file, ready for the registry."""
    settings = parse_settings(load_yaml_file(path))
    return [definition.as_mapping() for definition in settings.workflow_definitions]


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
