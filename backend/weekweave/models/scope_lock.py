import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from weekweave.db.base import Base


class TimetableScopeLock(Base):
    """Exclusive hold on one class-week while a promotion rewrites it."""

    __tablename__ = "timetable_scope_locks"
    __table_args__ = (UniqueConstraint("class_id", "week_start", name="uq_timetable_scope_locks_scope"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    class_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    holder_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class TimetableScope(Base):
    """Revision counter for one class-week, bumped by every write to the week."""

    __tablename__ = "timetable_scopes"

    class_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    week_start: Mapped[date] = mapped_column(Date, primary_key=True)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ClassWriteHold(Base):
    __tablename__ = "class_write_holds"

    class_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
