import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from weekweave.db.base import Base


class AttendanceStatus(str, Enum):
    present = "present"
    absent = "absent"
    on_leave = "on_leave"
    medical_leave = "medical_leave"
    personal_leave = "personal_leave"


ABSENCE_STATUSES = frozenset(
    {
        AttendanceStatus.absent,
        AttendanceStatus.on_leave,
        AttendanceStatus.medical_leave,
        AttendanceStatus.personal_leave,
    }
)


class TeacherAttendance(Base):
    __tablename__ = "teacher_attendance"
    __table_args__ = (
        UniqueConstraint("teacher_id", "attendance_date", name="uq_teacher_attendance_day"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    attendance_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[AttendanceStatus] = mapped_column(
        SAEnum(AttendanceStatus, name="attendance_status"),
        nullable=False,
        default=AttendanceStatus.present,
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    leave_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    leave_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    marked_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    @property
    def is_absence(self) -> bool:
        return self.status in ABSENCE_STATUSES

    def covers(self, day: date) -> bool:
        if self.attendance_date == day:
            return True
        if self.leave_start_date and self.leave_end_date:
            return self.leave_start_date <= day <= self.leave_end_date
        return False
