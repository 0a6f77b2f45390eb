"""Initial schema: schedules.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "schedules",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("week_from", sa.DateTime(), nullable=False),
        sa.Column("week_to", sa.DateTime(), nullable=False),
        sa.Column("day_offset", sa.Integer(), nullable=False),
        sa.Column("time_offset", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("package_id", sa.String(), nullable=True),
        sa.Column("services", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("total_price", sa.Integer(), nullable=True),
        sa.Column("total_paid", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payments", sa.JSON(), nullable=False),
        sa.Column("active_signature", sa.String(), nullable=True),
        sa.Column("request_signature", sa.String(), nullable=True),
        sa.Column("capacity_seat", sa.Integer(), nullable=True),
        sa.Column("idempotency_key", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "week_from",
            "day_offset",
            "time_offset",
            "package_id",
            "capacity_seat",
            name="uq_schedules_package_seat",
        ),
        sa.UniqueConstraint("active_signature"),
        sa.UniqueConstraint("idempotency_key"),
    )
    op.create_index(op.f("ix_schedules_user_id"), "schedules", ["user_id"], unique=False)
    op.create_index(op.f("ix_schedules_week_from"), "schedules", ["week_from"], unique=False)
    op.create_index(op.f("ix_schedules_package_id"), "schedules", ["package_id"], unique=False)
    op.create_index(op.f("ix_schedules_status"), "schedules", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_schedules_status"), table_name="schedules")
    op.drop_index(op.f("ix_schedules_package_id"), table_name="schedules")
    op.drop_index(op.f("ix_schedules_week_from"), table_name="schedules")
    op.drop_index(op.f("ix_schedules_user_id"), table_name="schedules")
    op.drop_table("schedules")
