"""create directory, structure and base timetable

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


day_of_week = postgresql.ENUM(
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
    name="day_of_week",
    create_type=False,
)


def upgrade() -> None:
    day_of_week.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "timetable_structures",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("working_days", sa.JSON(), nullable=False),
        sa.Column("time_slots", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_timetable_structures_school_id", "timetable_structures", ["school_id"], unique=True)

    op.create_table(
        "school_classes",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("grade", sa.String(length=50), nullable=False),
        sa.Column("section", sa.String(length=10), nullable=False),
        sa.Column("room", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_school_classes_school_id", "school_classes", ["school_id"], unique=False)

    op.create_table(
        "teachers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True, unique=True),
        sa.Column("subjects", sa.JSON(), nullable=False),
        sa.Column("max_daily_periods", sa.Integer(), nullable=False, server_default="6"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_teachers_school_id", "teachers", ["school_id"], unique=False)

    op.create_table(
        "subjects",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=10), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_subjects_school_id", "subjects", ["school_id"], unique=False)

    op.create_table(
        "timetable_entries",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("class_id", sa.String(length=36), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=False),
        sa.Column("day", day_of_week, nullable=False),
        sa.Column("period", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("room", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("class_id", "day", "period", name="uq_timetable_entries_slot"),
    )
    op.create_index("ix_timetable_entries_class_id", "timetable_entries", ["class_id"], unique=False)
    op.create_index("ix_timetable_entries_teacher_id", "timetable_entries", ["teacher_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_timetable_entries_teacher_id", table_name="timetable_entries")
    op.drop_index("ix_timetable_entries_class_id", table_name="timetable_entries")
    op.drop_table("timetable_entries")
    op.drop_index("ix_subjects_school_id", table_name="subjects")
    op.drop_table("subjects")
    op.drop_index("ix_teachers_school_id", table_name="teachers")
    op.drop_table("teachers")
    op.drop_index("ix_school_classes_school_id", table_name="school_classes")
    op.drop_table("school_classes")
    op.drop_index("ix_timetable_structures_school_id", table_name="timetable_structures")
    op.drop_table("timetable_structures")
    day_of_week.drop(op.get_bind(), checkfirst=True)
