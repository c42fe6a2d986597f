"""
Module: taskflow_engines
Responsibility:
    Package entrypoint re-exporting the pure calendar calculators: the
    schedule resolver and the working-duration calculator.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import taskflow_kernel/domain, taskflow_kernel.exceptions and
    taskflow_kernel.logging_config.  MUST NOT import taskflow_services.

Invariants enforced:
    - Purity: engines never read the clock; start instants are parameters.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    ``add_working_duration`` is traced via ``@traced_engine`` (see
    ``taskflow_engines.tracer``), emitting TASKFLOW_ENGINE_TRACE records.

Usage:
    from taskflow_engines import add_working_duration, is_instant_within_schedule
"""

from taskflow_engines.duration import (
    add_working_duration,
    build_schedule_map,
    compute_daily_minutes,
)
from taskflow_engines.schedule import (
    DEFAULT_SCHEDULE_SLOTS,
    ScheduleSlot,
    is_instant_within_schedule,
    is_range_within_schedule,
    parse_minutes,
    resolve_slots,
    validate_slots,
)
from taskflow_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "DEFAULT_SCHEDULE_SLOTS",
    "ScheduleSlot",
    "add_working_duration",
    "build_schedule_map",
    "compute_daily_minutes",
    "compute_input_fingerprint",
    "is_instant_within_schedule",
    "is_range_within_schedule",
    "parse_minutes",
    "resolve_slots",
    "traced_engine",
    "validate_slots",
]
