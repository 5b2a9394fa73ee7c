"""create weekly edits, change records, substitutions and attendance

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


day_of_week = postgresql.ENUM(name="day_of_week", create_type=False)
change_type = postgresql.ENUM(
    "substitution", "cancellation", "room_change", "time_change", name="change_type", create_type=False
)
change_source = postgresql.ENUM(
    "manual", "auto_absence", "auto_substitution", name="change_source", create_type=False
)
change_state = postgresql.ENUM("pending", "approved", "dismissed", name="change_state", create_type=False)
substitution_status = postgresql.ENUM("auto_assigned", "confirmed", name="substitution_status", create_type=False)
attendance_status = postgresql.ENUM(
    "present",
    "absent",
    "on_leave",
    "medical_leave",
    "personal_leave",
    name="attendance_status",
    create_type=False,
)

NEW_ENUMS = (change_type, change_source, change_state, substitution_status, attendance_status)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in NEW_ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "weekly_edits",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("class_id", sa.String(length=36), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("day", day_of_week, nullable=False),
        sa.Column("period", sa.Integer(), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=True),
        sa.Column("subject_id", sa.String(length=36), nullable=True),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("room", sa.String(length=100), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False, server_default=""),
        sa.Column("modified_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("class_id", "week_start", "day", "period", name="uq_weekly_edits_slot"),
    )
    op.create_index("ix_weekly_edits_class_id", "weekly_edits", ["class_id"], unique=False)
    op.create_index("ix_weekly_edits_week_start", "weekly_edits", ["week_start"], unique=False)

    op.create_table(
        "timetable_changes",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("timetable_entry_id", sa.String(length=36), nullable=False),
        sa.Column("change_type", change_type, nullable=False),
        sa.Column("change_date", sa.Date(), nullable=False),
        sa.Column("original_teacher_id", sa.String(length=36), nullable=True),
        sa.Column("new_teacher_id", sa.String(length=36), nullable=True),
        sa.Column("original_room", sa.String(length=100), nullable=True),
        sa.Column("new_room", sa.String(length=100), nullable=True),
        sa.Column("new_start_time", sa.String(length=5), nullable=True),
        sa.Column("new_end_time", sa.String(length=5), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("change_source", change_source, nullable=False, server_default="manual"),
        sa.Column("state", change_state, nullable=False, server_default="pending"),
        sa.Column("approved_by", sa.String(length=36), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_timetable_changes_timetable_entry_id", "timetable_changes", ["timetable_entry_id"], unique=False)
    op.create_index("ix_timetable_changes_change_date", "timetable_changes", ["change_date"], unique=False)
    op.create_index("ix_timetable_changes_state", "timetable_changes", ["state"], unique=False)

    op.create_table(
        "substitutions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("timetable_entry_id", sa.String(length=36), nullable=False),
        sa.Column("original_teacher_id", sa.String(length=36), nullable=False),
        sa.Column("substitute_teacher_id", sa.String(length=36), nullable=False),
        sa.Column("substitution_date", sa.Date(), nullable=False),
        sa.Column("status", substitution_status, nullable=False, server_default="auto_assigned"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_substitutions_timetable_entry_id", "substitutions", ["timetable_entry_id"], unique=False)
    op.create_index("ix_substitutions_substitute_teacher_id", "substitutions", ["substitute_teacher_id"], unique=False)
    op.create_index("ix_substitutions_substitution_date", "substitutions", ["substitution_date"], unique=False)

    op.create_table(
        "teacher_attendance",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("attendance_date", sa.Date(), nullable=False),
        sa.Column("status", attendance_status, nullable=False, server_default="present"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("leave_start_date", sa.Date(), nullable=True),
        sa.Column("leave_end_date", sa.Date(), nullable=True),
        sa.Column("marked_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("teacher_id", "attendance_date", name="uq_teacher_attendance_day"),
    )
    op.create_index("ix_teacher_attendance_teacher_id", "teacher_attendance", ["teacher_id"], unique=False)
    op.create_index("ix_teacher_attendance_attendance_date", "teacher_attendance", ["attendance_date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_teacher_attendance_attendance_date", table_name="teacher_attendance")
    op.drop_index("ix_teacher_attendance_teacher_id", table_name="teacher_attendance")
    op.drop_table("teacher_attendance")
    op.drop_index("ix_substitutions_substitution_date", table_name="substitutions")
    op.drop_index("ix_substitutions_substitute_teacher_id", table_name="substitutions")
    op.drop_index("ix_substitutions_timetable_entry_id", table_name="substitutions")
    op.drop_table("substitutions")
    op.drop_index("ix_timetable_changes_state", table_name="timetable_changes")
    op.drop_index("ix_timetable_changes_change_date", table_name="timetable_changes")
    op.drop_index("ix_timetable_changes_timetable_entry_id", table_name="timetable_changes")
    op.drop_table("timetable_changes")
    op.drop_index("ix_weekly_edits_week_start", table_name="weekly_edits")
    op.drop_index("ix_weekly_edits_class_id", table_name="weekly_edits")
    op.drop_table("weekly_edits")

    bind = op.get_bind()
    for enum_type in reversed(NEW_ENUMS):
        enum_type.drop(bind, checkfirst=True)
