import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Enum as SAEnum, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from weekweave.db.base import Base


class ChangeType(str, Enum):
    substitution = "substitution"
    cancellation = "cancellation"
    room_change = "room_change"
    time_change = "time_change"


class ChangeSource(str, Enum):
    manual = "manual"
    auto_absence = "auto_absence"
    auto_substitution = "auto_substitution"


class ChangeState(str, Enum):
    pending = "pending"
    approved = "approved"
    dismissed = "dismissed"


class TimetableChange(Base):
    __tablename__ = "timetable_changes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    timetable_entry_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    change_type: Mapped[ChangeType] = mapped_column(SAEnum(ChangeType, name="change_type"), nullable=False)
    change_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    original_teacher_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    new_teacher_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    original_room: Mapped[str | None] = mapped_column(String(100), nullable=True)
    new_room: Mapped[str | None] = mapped_column(String(100), nullable=True)
    new_start_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    new_end_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    change_source: Mapped[ChangeSource] = mapped_column(
        SAEnum(ChangeSource, name="change_source"),
        nullable=False,
        default=ChangeSource.manual,
    )
    state: Mapped[ChangeState] = mapped_column(
        SAEnum(ChangeState, name="change_state"),
        nullable=False,
        default=ChangeState.pending,
        index=True,
    )
    approved_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    @property
    def is_approved(self) -> bool:
        return self.state in {ChangeState.approved, ChangeState.dismissed}
