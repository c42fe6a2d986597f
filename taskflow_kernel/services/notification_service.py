"""
NotificationService -- queues in-app notifications for workflow events.

Responsibility:
    Fan a message out to users or to every active holder of a role.
    Rows are written inside a SAVEPOINT so that a failed write is rolled
    back on its own: the workflow transition that triggered it still
    commits.  Failures are logged, never raised.

Architecture position:
    Kernel > Services.  Implements the ``NotificationDispatcher`` protocol
    the workflow services depend on; tests may substitute any object with
    the same two methods.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from taskflow_kernel.domain.workflow import Role
from taskflow_kernel.logging_config import get_logger
from taskflow_kernel.models.notification import NotificationModel
from taskflow_kernel.selectors.directory_selector import DirectorySelector
from taskflow_kernel.services.base import BaseService

logger = get_logger("services.notifications")

ACTION_REQUIRED = "WORKFLOW_ACTION_REQUIRED"
ACTION_UPDATE = "WORKFLOW_ACTION"


class NotificationDispatcher(Protocol):
    def notify_users(
        self,
        user_ids: Iterable[UUID],
        message: str,
        notification_type: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> int: ...

    def notify_role(
        self,
        role: Role,
        message: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> int: ...


class NotificationService(BaseService[NotificationModel]):
    """Persists ``NotificationModel`` rows; delivery happens downstream."""

    def notify_users(
        self,
        user_ids: Iterable[UUID],
        message: str,
        notification_type: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> int:
        """Queue one notification per distinct user.  Returns the number written."""
        recipients = list(dict.fromkeys(uid for uid in user_ids if uid is not None))
        if not recipients:
            return 0

        payload = {key: _jsonable(value) for key, value in (metadata or {}).items()}
        now = self.clock.now_utc()
        try:
            with self.session.begin_nested():
                for user_id in recipients:
                    self.session.add(NotificationModel(
                        user_id=user_id,
                        message=message,
                        type=notification_type,
                        read=False,
                        payload=dict(payload),
                        created_at=now,
                    ))
        except SQLAlchemyError:
            logger.error(
                "notification_dispatch_failed",
                extra={"recipient_count": len(recipients), "notification_type": notification_type},
                exc_info=True,
            )
            return 0

        logger.info(
            "notifications_queued",
            extra={"recipient_count": len(recipients), "notification_type": notification_type},
        )
        return len(recipients)

    def notify_role(
        self,
        role: Role,
        message: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> int:
        """Tell every active holder of ``role`` that an action is required."""
        recipients = DirectorySelector(self.session).list_users_by_role(role)
        if not recipients:
            logger.info("notification_role_has_no_members", extra={"role": Role(role).value})
            return 0
        return self.notify_users(
            (user.id for user in recipients), message, ACTION_REQUIRED, metadata,
        )


def _jsonable(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    return value
