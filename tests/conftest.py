"""
Pytest fixtures for the taskflow test suite.

Provides:
- An in-memory SQLite engine created once per test session
- Per-test sessions that roll back everything at teardown
- A deterministic clock, engine settings and small data factories
- Structured log capture
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from taskflow_config import get_active_config
from taskflow_kernel.db.engine import create_tables, drop_tables, init_engine_from_url, reset_engine
from taskflow_kernel.domain.clock import DeterministicClock
from taskflow_kernel.domain.dtos import Actor, UserInfo
from taskflow_kernel.domain.workflow import Role
from taskflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from taskflow_kernel.models.calendar import CompanyHolidayModel, LeaveModel, WorkScheduleModel
from taskflow_kernel.models.directory import UserModel
from taskflow_kernel.models.task import AssignmentModel, ProjectModel, TaskModel
from taskflow_kernel.services.definition_registry import WorkflowDefinitionService
from taskflow_kernel.services.workflow_engine import TaskWorkflowService
from taskflow_services.final_approval import FinalApprovalOrchestrator

# Test actor ID for records that need a creator
TEST_ACTOR_ID = uuid4()

FIXED_NOW = datetime(2025, 5, 20, 8, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture taskflow_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow_service):
            workflow_service.submit_estimate(...)
            logs = captured_logs()
            assert any(r["message"] == "estimate_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("taskflow_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    eng = init_engine_from_url("sqlite:///:memory:")
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture(scope="function")
def session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection;
    teardown rolls the outer transaction back, undoing every change the
    test made.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Clock, settings, services
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(FIXED_NOW)


@pytest.fixture(scope="session")
def settings():
    return get_active_config()


@pytest.fixture
def policy(settings):
    return settings.to_policy()


@pytest.fixture
def registry(session, clock) -> WorkflowDefinitionService:
    return WorkflowDefinitionService(session, clock)


@pytest.fixture
def workflow_service(session, clock, policy) -> TaskWorkflowService:
    return TaskWorkflowService(session, clock, policy=policy)


@pytest.fixture
def final_approval(session, clock, policy, workflow_service) -> FinalApprovalOrchestrator:
    return FinalApprovalOrchestrator(session, clock, policy=policy, workflow=workflow_service)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_user(session):
    def _make(
        role: Role,
        *,
        time_zone: str | None = None,
        company_id: UUID | None = None,
        vendor_id: UUID | None = None,
        is_active: bool = True,
        full_name: str = "",
    ) -> UserInfo:
        model = UserModel(
            email=f"{Role(role).value.lower()}-{uuid4().hex[:8]}@example.com",
            full_name=full_name or f"Test {Role(role).value.title()}",
            role=Role(role).value,
            company_id=company_id,
            vendor_id=vendor_id,
            time_zone=time_zone,
            is_active=is_active,
        )
        session.add(model)
        session.flush()
        return model.to_dto()

    return _make


@pytest.fixture
def make_actor(make_user):
    def _make(role: Role, **kwargs) -> Actor:
        return make_user(role, **kwargs).as_actor()

    return _make


@pytest.fixture
def pm(make_actor) -> Actor:
    return make_actor(Role.PM, time_zone="UTC")


@pytest.fixture
def engineer(make_actor) -> Actor:
    return make_actor(Role.ENGINEER)


TWO_STEPS = [
    {
        "name": "Engineering review",
        "approver_type": "DYNAMIC",
        "dynamic_approver_type": "ENGINEERING_TEAM",
        "requires_comment_on_reject": True,
        "requires_comment_on_send_back": True,
    },
    {
        "name": "PM approval",
        "approver_type": "ROLE",
        "approver_role": "PM",
        "requires_comment_on_reject": True,
    },
]


@pytest.fixture
def make_definition(registry):
    def _make(steps=None, *, name: str | None = None, is_active: bool = True):
        return registry.create_definition(
            name=name or f"Workflow {uuid4().hex[:6]}",
            steps=steps if steps is not None else TWO_STEPS,
            created_by_id=TEST_ACTOR_ID,
            is_active=is_active,
        )

    return _make


@pytest.fixture
def make_project(session):
    def _make(definition_id: UUID | None = None, company_id: UUID | None = None) -> ProjectModel:
        project = ProjectModel(
            name=f"Project {uuid4().hex[:6]}",
            company_id=company_id,
            task_workflow_definition_id=definition_id,
            created_by_id=TEST_ACTOR_ID,
        )
        session.add(project)
        session.flush()
        return project

    return _make


@pytest.fixture
def make_task(session, make_project):
    def _make(
        project: ProjectModel | None = None,
        *,
        title: str = "Build login page",
        created_by_id: UUID = TEST_ACTOR_ID,
    ) -> TaskModel:
        project = project or make_project()
        task = TaskModel(
            project_id=project.id,
            title=title,
            created_by_id=created_by_id,
        )
        session.add(task)
        session.flush()
        return task

    return _make


@pytest.fixture
def assign(session):
    def _assign(task: TaskModel, developer_id: UUID, status: str) -> AssignmentModel:
        assignment = AssignmentModel(
            task_id=task.id,
            developer_id=developer_id,
            status=status,
            created_by_id=TEST_ACTOR_ID,
        )
        session.add(assignment)
        session.flush()
        session.refresh(task)
        return assignment

    return _assign


@pytest.fixture
def add_schedule(session):
    def _add(slots, *, time_zone="UTC", user_id=None, company_id=None, name="Schedule"):
        model = WorkScheduleModel(
            name=name,
            time_zone=time_zone,
            user_id=user_id,
            company_id=company_id,
            slots=[dict(slot) for slot in slots],
        )
        session.add(model)
        session.flush()
        return model

    return _add


@pytest.fixture
def add_holiday(session):
    def _add(holiday_date, *, company_id=None, vendor_id=None, name="Holiday"):
        model = CompanyHolidayModel(
            name=name,
            holiday_date=holiday_date,
            company_id=company_id,
            vendor_id=vendor_id,
        )
        session.add(model)
        session.flush()
        return model

    return _add


@pytest.fixture
def add_leave(session):
    def _add(user_id, leave_date, *, status="APPROVED"):
        model = LeaveModel(user_id=user_id, leave_date=leave_date, status=status)
        session.add(model)
        session.flush()
        return model

    return _add
