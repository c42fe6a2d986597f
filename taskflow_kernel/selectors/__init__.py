"""Selectors for the taskflow kernel (read side)."""

from taskflow_kernel.selectors.calendar_selector import CalendarSelector
from taskflow_kernel.selectors.directory_selector import DirectorySelector
from taskflow_kernel.selectors.workflow_selector import WorkflowSelector

__all__ = [
    "CalendarSelector",
    "DirectorySelector",
    "WorkflowSelector",
]
