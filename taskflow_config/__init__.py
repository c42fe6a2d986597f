"""
taskflow_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain engine settings at runtime through
    ``get_active_config()``.  Returns a frozen ``EngineSettings``; callers
    hand ``settings.to_policy()`` to the kernel services and feed
    ``settings.workflow_definitions`` to the definition registry's
    ``seed_definitions``.

Architecture position:
    Configuration -- YAML-driven settings.  This package sits above
    ``taskflow_kernel`` and ``taskflow_engines``.  The kernel MUST NEVER
    import from ``taskflow_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Deterministic checksum: the same YAML always produces the same
      ``EngineSettings.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- the requested file does not exist.
    - ``ValueError`` / ``KeyError`` -- malformed settings.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``taskflow_config_loaded`` log entry carrying the source path and
    checksum.
"""

from __future__ import annotations

from pathlib import Path

from taskflow_config.loader import load_yaml_file, parse_settings
from taskflow_config.schema import EngineSettings, WorkflowDefinitionDef
from taskflow_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "engine.yaml"

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "EngineSettings",
    "WorkflowDefinitionDef",
    "get_active_config",
]


def get_active_config(config_path: Path | str | None = None) -> EngineSettings:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to the engine YAML file.  Defaults to
            taskflow_config/defaults/engine.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If a setting is invalid.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    settings = parse_settings(load_yaml_file(path))

    _logger.info(
        "taskflow_config_loaded",
        extra={
            "config_path": str(path),
            "checksum": settings.checksum,
            "finalizer_role": settings.finalizer_role.value,
            "workflow_definition_count": len(settings.workflow_definitions),
        },
    )
    return settings
