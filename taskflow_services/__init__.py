"""
taskflow_services -- Package init and public API.

Responsibility:
    Stateful orchestration services that compose the pure calendar engines
    (taskflow_engines/) with database sessions and the kernel workflow
    services.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        taskflow_services/ -> taskflow_engines/  (allowed)
        taskflow_services/ -> taskflow_kernel/   (allowed)
        taskflow_engines/  -> taskflow_services/ (FORBIDDEN)
        taskflow_kernel/   -> taskflow_services/ (FORBIDDEN)
"""

from taskflow_services.final_approval import FinalApprovalOrchestrator
from taskflow_services.schedule_service import ScheduleService, UserSchedule

__all__ = [
    "FinalApprovalOrchestrator",
    "ScheduleService",
    "UserSchedule",
]
