"""create scope locks, write holds, notifications and activity logs

Revision ID: 20261018_0003
Revises: 20261018_0002
Create Date: 2026-10-18 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261018_0003"
down_revision = "20261018_0002"
branch_labels = None
depends_on = None


notification_type = postgresql.ENUM(
    "substitution", "timetable", "system", name="notification_type", create_type=False
)


def upgrade() -> None:
    notification_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "timetable_scope_locks",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("class_id", sa.String(length=36), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("holder_id", sa.String(length=36), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("class_id", "week_start", name="uq_timetable_scope_locks_scope"),
    )
    op.create_index("ix_timetable_scope_locks_class_id", "timetable_scope_locks", ["class_id"], unique=False)

    op.create_table(
        "class_write_holds",
        sa.Column("class_id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("recipient_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", notification_type, nullable=False, server_default="system"),
        sa.Column("change_id", sa.String(length=36), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"], unique=False)
    op.create_index("ix_notifications_change_id", "notifications", ["change_id"], unique=False)

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("actor_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_activity_logs_action", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_notifications_change_id", table_name="notifications")
    op.drop_index("ix_notifications_recipient_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("class_write_holds")
    op.drop_index("ix_timetable_scope_locks_class_id", table_name="timetable_scope_locks")
    op.drop_table("timetable_scope_locks")
    notification_type.drop(op.get_bind(), checkfirst=True)
