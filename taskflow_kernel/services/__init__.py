"""Services for the taskflow kernel (write side)."""

from taskflow_kernel.services.definition_registry import WorkflowDefinitionService
from taskflow_kernel.services.notification_service import (
    ACTION_REQUIRED,
    ACTION_UPDATE,
    NotificationDispatcher,
    NotificationService,
)
from taskflow_kernel.services.workflow_engine import TaskWorkflowService

__all__ = [
    "ACTION_REQUIRED",
    "ACTION_UPDATE",
    "NotificationDispatcher",
    "NotificationService",
    "TaskWorkflowService",
    "WorkflowDefinitionService",
]
