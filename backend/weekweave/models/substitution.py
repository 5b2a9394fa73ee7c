import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from weekweave.db.base import Base


class SubstitutionStatus(str, Enum):
    auto_assigned = "auto_assigned"
    confirmed = "confirmed"


class Substitution(Base):
    __tablename__ = "substitutions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    timetable_entry_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    original_teacher_id: Mapped[str] = mapped_column(String(36), nullable=False)
    substitute_teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    substitution_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[SubstitutionStatus] = mapped_column(
        SAEnum(SubstitutionStatus, name="substitution_status"),
        nullable=False,
        default=SubstitutionStatus.auto_assigned,
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
