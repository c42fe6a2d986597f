"""
taskflow_engines.tracer -- Engine invocation tracer emitting TASKFLOW_ENGINE_TRACE.

Responsibility:
    Provide a lightweight decorator (``@traced_engine``) that wraps pure
    engine invocations with structured trace logging.  The trace captures
    engine_name, engine_version, input_fingerprint (deterministic SHA-256
    hash of selected inputs), and duration_ms.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Does NOT introduce I/O into engines; emits a log record only.

Invariants enforced:
    - Fingerprints are deterministic: values are canonicalized, mapping keys
      sorted, and the SHA-256 digest truncated to 16 hex chars.
    - The decorator only reads arguments; it never mutates them.

Failure modes:
    - Fingerprint fields missing from the call are recorded as "null".

Usage:
    from taskflow_engines.tracer import traced_engine

    @traced_engine("duration", "1.0", fingerprint_fields=("start", "quantity"))
    def add_working_duration(start, quantity, unit, time_zone, ...):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from taskflow_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of ``value`` for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda item: str(item[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple, set, frozenset)):
        values = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
        return "[" + ",".join(_canonicalize(v) for v in values) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """16-char SHA-256 prefix over the named arguments."""
    parts = [f"{name}={_canonicalize(arguments.get(name))}" for name in fingerprint_fields]
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits TASKFLOW_ENGINE_TRACE for pure engine invocations.

    Positional and keyword arguments are both bound to parameter names
    before fingerprinting.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                try:
                    bound = signature.bind(*args, **kwargs)
                    arguments: Mapping[str, Any] = bound.arguments
                except TypeError:
                    # Let the real call raise the argument error.
                    arguments = kwargs
                fp = compute_input_fingerprint(fingerprint_fields, arguments)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                "TASKFLOW_ENGINE_TRACE",
                extra={
                    "trace_type": "TASKFLOW_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
