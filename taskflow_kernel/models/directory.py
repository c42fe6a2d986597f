"""
Module: taskflow_kernel.models.directory
Responsibility: ORM persistence for the user directory -- the role, tenant
    (company / vendor) and IANA time zone of every user.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from taskflow_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from taskflow_kernel.domain.dtos import UserInfo


class UserModel(Base):
    __tablename__ = "users"

    __table_args__ = (
        Index("ix_users_role_active", "role", "is_active"),
    )

    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    company_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    vendor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    time_zone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"

    def to_dto(self) -> UserInfo:
        from taskflow_kernel.domain.dtos import UserInfo as UserInfoDTO
        from taskflow_kernel.domain.workflow import Role, parse_enum

        return UserInfoDTO(
            id=self.id,
            role=parse_enum(Role, self.role),
            email=self.email,
            full_name=self.full_name,
            company_id=self.company_id,
            vendor_id=self.vendor_id,
            time_zone=self.time_zone,
            is_active=self.is_active,
        )
