"""
Domain DTOs (``taskflow_kernel.domain.dtos``).

Responsibility:
    Frozen value objects exchanged between the engine services and their
    callers: actors, request payloads, the task estimation, and read-only
    task/user snapshots.

Architecture position:
    Kernel > Domain -- pure value objects, ZERO I/O.

Invariants enforced:
    - ``EstimatePayload.validated()`` rejects non-positive quantities and
      values outside the closed unit/confidence sets.
    - ``TaskEstimation`` is replaced wholesale on every change; its
      persisted shape carries ISO-8601 instants.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from taskflow_kernel.domain.instants import format_instant
from taskflow_kernel.domain.workflow import Role, parse_enum
from taskflow_kernel.exceptions import InvalidEstimateError, UnknownEnumValueError


class EstimationUnit(str, Enum):
    HOURS = "HOURS"
    DAYS = "DAYS"


class EstimationStatus(str, Enum):
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"


class EstimationConfidence(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class Actor:
    """The authenticated user performing an operation."""

    id: UUID
    role: Role
    company_id: UUID | None = None
    vendor_id: UUID | None = None
    time_zone: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", parse_enum(Role, self.role))


# =========================================================================
# Request payloads
# =========================================================================


@dataclass(frozen=True)
class EstimatePayload:
    quantity: Decimal | int | float | str
    unit: EstimationUnit | str
    notes: str | None = None
    confidence: EstimationConfidence | str | None = None

    def validated(self) -> EstimatePayload:
        """Return a copy with typed fields, or raise InvalidEstimateError."""
        try:
            quantity = Decimal(str(self.quantity))
        except (InvalidOperation, ValueError):
            raise InvalidEstimateError("quantity", "must be a number") from None
        if not quantity.is_finite() or quantity <= 0:
            raise InvalidEstimateError("quantity", "must be greater than zero")
        try:
            unit = EstimationUnit(self.unit)
        except ValueError:
            raise InvalidEstimateError("unit", "must be HOURS or DAYS") from None
        confidence = None
        if self.confidence is not None:
            try:
                confidence = EstimationConfidence(self.confidence)
            except ValueError:
                raise InvalidEstimateError(
                    "confidence", "must be LOW, MEDIUM or HIGH",
                ) from None
        notes = self.notes.strip() if self.notes else None
        return EstimatePayload(
            quantity=quantity, unit=unit, notes=notes or None, confidence=confidence,
        )


@dataclass(frozen=True)
class StepActionPayload:
    action: Any  # WorkflowActionType or its name
    comment: str | None = None

    @property
    def trimmed_comment(self) -> str | None:
        comment = self.comment.strip() if self.comment else ""
        return comment or None


@dataclass(frozen=True)
class FinalApprovalPayload:
    planned_start_date: datetime | str
    note: str | None = None


# =========================================================================
# Task estimation
# =========================================================================


@dataclass(frozen=True)
class TaskEstimation:
    """Effort estimate owned by a task, mutated only by the workflow engine."""

    quantity: Decimal
    unit: EstimationUnit
    status: EstimationStatus
    submitted_by_id: UUID
    submitted_at: datetime
    notes: str | None = None
    confidence: EstimationConfidence | None = None
    updated_at: datetime | None = None

    def with_status(self, status: EstimationStatus, at: datetime) -> TaskEstimation:
        return replace(self, status=status, updated_at=at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "quantity": str(self.quantity),
            "unit": self.unit.value,
            "status": self.status.value,
            "submitted_by_id": str(self.submitted_by_id),
            "submitted_at": format_instant(self.submitted_at),
            "notes": self.notes,
            "confidence": self.confidence.value if self.confidence else None,
            "updated_at": format_instant(self.updated_at) if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TaskEstimation:
        try:
            unit = EstimationUnit(data["unit"])
            status = EstimationStatus(data["status"])
            confidence = (
                EstimationConfidence(data["confidence"]) if data.get("confidence") else None
            )
        except ValueError as exc:
            raise UnknownEnumValueError("TaskEstimation", str(exc)) from None
        updated_at = data.get("updated_at")
        return cls(
            quantity=Decimal(str(data["quantity"])),
            unit=unit,
            status=status,
            submitted_by_id=UUID(data["submitted_by_id"]),
            submitted_at=datetime.fromisoformat(data["submitted_at"]),
            notes=data.get("notes"),
            confidence=confidence,
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )


# =========================================================================
# Read-only snapshots
# =========================================================================


@dataclass(frozen=True)
class TaskSnapshot:
    id: UUID
    project_id: UUID
    title: str
    status: str
    created_by_id: UUID
    estimation: TaskEstimation | None = None
    planned_start_date: datetime | None = None
    expected_completion_date: datetime | None = None
    workflow_instance_id: UUID | None = None


@dataclass(frozen=True)
class UserInfo:
    id: UUID
    role: Role
    email: str
    full_name: str = ""
    company_id: UUID | None = None
    vendor_id: UUID | None = None
    time_zone: str | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", parse_enum(Role, self.role))

    def as_actor(self) -> Actor:
        return Actor(
            id=self.id,
            role=self.role,
            company_id=self.company_id,
            vendor_id=self.vendor_id,
            time_zone=self.time_zone,
        )


@dataclass(frozen=True)
class TaskWorkflowResult:
    """Updated task plus its workflow summary, returned by every engine operation."""

    task: TaskSnapshot
    workflow: Any  # taskflow_kernel.domain.workflow.WorkflowSummary
