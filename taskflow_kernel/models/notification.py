"""
Module: taskflow_kernel.models.notification
Responsibility: ORM persistence for in-app notifications queued by the
    workflow engine.  Delivery (email, push, websocket) happens elsewhere.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from taskflow_kernel.db.base import Base, UTCDateTime, UUIDString


class NotificationModel(Base):
    __tablename__ = "notifications"

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payload: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<Notification {self.type} user={self.user_id}>"
