"""ORM models for the task workflow kernel."""

from taskflow_kernel.models.calendar import (
    CompanyHolidayModel,
    LeaveModel,
    WorkScheduleModel,
)
from taskflow_kernel.models.directory import UserModel
from taskflow_kernel.models.notification import NotificationModel
from taskflow_kernel.models.task import (
    AssignmentModel,
    AssignmentStatus,
    ProjectModel,
    TaskModel,
)
from taskflow_kernel.models.workflow import (
    WorkflowActionModel,
    WorkflowDefinitionModel,
    WorkflowInstanceModel,
    WorkflowStepDefinitionModel,
)

__all__ = [
    "AssignmentModel",
    "AssignmentStatus",
    "CompanyHolidayModel",
    "LeaveModel",
    "NotificationModel",
    "ProjectModel",
    "TaskModel",
    "UserModel",
    "WorkScheduleModel",
    "WorkflowActionModel",
    "WorkflowDefinitionModel",
    "WorkflowInstanceModel",
    "WorkflowStepDefinitionModel",
]
