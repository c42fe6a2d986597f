"""
ORM-level immutability enforcement for the workflow audit trail.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here refuse:

Entity               | When immutable                 | Why
---------------------|--------------------------------|------------------------------
WorkflowAction       | ALWAYS (from creation)         | Append-only transition log
WorkflowInstance     | After status = COMPLETED       | Completed approvals are final

A COMPLETED instance may still be *written* once: the final-approval flush
that moves it to COMPLETED.  The check therefore looks at the attribute
history ("was completed") rather than the current value ("is completed").

Usage:

    from taskflow_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # create_tables() calls this
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from taskflow_kernel.exceptions import ImmutabilityViolationError
from taskflow_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_COMPLETED = "COMPLETED"


def _blocked(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_workflow_action_update(mapper, connection, target):
    raise _blocked(
        "WorkflowAction", target.id, "UPDATE",
        "Workflow actions are append-only and cannot be modified",
    )


def _check_workflow_action_delete(mapper, connection, target):
    raise _blocked(
        "WorkflowAction", target.id, "DELETE",
        "Workflow actions are append-only and cannot be deleted",
    )


def _was_completed(target) -> bool:
    history = get_history(target, "status")
    if history.deleted:
        return _COMPLETED in history.deleted
    return _COMPLETED in (history.unchanged or ())


def _check_workflow_instance_update(mapper, connection, target):
    """Block any change once the instance has been persisted as COMPLETED.

    The IN_PROGRESS -> COMPLETED flush itself is allowed: its history shows
    the old status in ``deleted`` and COMPLETED only in ``added``.
    """
    if _was_completed(target):
        raise _blocked(
            "WorkflowInstance", target.id, "UPDATE",
            "Completed workflow instances cannot be modified",
        )


def _check_workflow_instance_delete(mapper, connection, target):
    if _was_completed(target):
        raise _blocked(
            "WorkflowInstance", target.id, "DELETE",
            "Completed workflow instances cannot be deleted",
        )


def _listeners():
    from taskflow_kernel.models.workflow import WorkflowActionModel, WorkflowInstanceModel

    return (
        (WorkflowActionModel, "before_update", _check_workflow_action_update),
        (WorkflowActionModel, "before_delete", _check_workflow_action_delete),
        (WorkflowInstanceModel, "before_update", _check_workflow_instance_update),
        (WorkflowInstanceModel, "before_delete", _check_workflow_instance_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
