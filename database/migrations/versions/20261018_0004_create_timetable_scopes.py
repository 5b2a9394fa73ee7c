"""create timetable scope revisions

Revision ID: 20261018_0004
Revises: 20261018_0003
Create Date: 2026-10-18 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "20261018_0004"
down_revision = "20261018_0003"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "timetable_scopes",
        sa.Column("class_id", sa.String(length=36), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("class_id", "week_start"),
    )


def downgrade() -> None:
    op.drop_table("timetable_scopes")
