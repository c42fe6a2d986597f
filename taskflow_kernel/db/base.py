"""
Module: taskflow_kernel.db.base
Responsibility: Declarative base and portable column types shared by every
    ORM model of the approval engine.
Architecture position: Kernel > DB.  Lowest import target in the kernel;
    it imports nothing from models/, services/, selectors/ or domain/.

Invariants enforced:
    - Every row is keyed by a uuid4 stored as a 36-character string, which
      reads the same on PostgreSQL and SQLite.
    - Instants are stored in UTC and always load as aware datetimes, even on
      backends that drop the zone (SQLite hands back naive strings).
    - Tracked rows carry who created them and when they last changed.
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID <-> String(36)."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(str(value))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Aware datetime stored in UTC; naive input is read as UTC already."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else _as_utc(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        return _as_utc(value)


class Base(DeclarativeBase):
    """Declarative base: uuid primary key, UTC datetimes, 64-bit integers."""

    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        datetime: UTCDateTime(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Rows with an author.

    ``created_by_id`` is mandatory; ``updated_by_id`` is set by the service
    that last changed the row.  Both timestamps come from the database.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), onupdate=func.now(), nullable=False,
    )
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
