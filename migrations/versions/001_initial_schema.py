"""Initial schema: users, errands, commissions.

Revision ID: 001
Revises: None
Create Date: 2025-01-01

Task tables as they stood before queue-based dispatch: offers were
tracked with notified_* columns and timeout_runner_ids only. The queue
columns arrive in 002.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _task_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.VARCHAR(), nullable=False),
        sa.Column("requester_id", sa.VARCHAR(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.VARCHAR(), nullable=False, server_default=""),
        sa.Column("categories", sa.VARCHAR(), nullable=True),
        sa.Column("status", sa.VARCHAR(), nullable=False, server_default="pending"),
        sa.Column("runner_id", sa.VARCHAR(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("notified_runner_id", sa.VARCHAR(), nullable=True),
        sa.Column("notified_at", sa.DATETIME(), nullable=True),
        sa.Column("notified_expires_at", sa.DATETIME(), nullable=True),
        sa.Column("is_notified", sa.BOOLEAN(), nullable=False, server_default="0"),
        sa.Column("timeout_runner_ids", sa.VARCHAR(), nullable=True),
        sa.Column("created_at", sa.DATETIME(), nullable=False),
        sa.Column("updated_at", sa.DATETIME(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    ]


def _task_indexes(table: str) -> None:
    for column in ("requester_id", "status", "runner_id", "notified_runner_id", "notified_at"):
        op.create_index(f"ix_{table}_{column}", table, [column])


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.VARCHAR(), nullable=False),
        sa.Column("name", sa.VARCHAR(), nullable=False),
        sa.Column("role", sa.VARCHAR(), nullable=False, server_default="caller"),
        sa.Column("latitude", sa.FLOAT(), nullable=True),
        sa.Column("longitude", sa.FLOAT(), nullable=True),
        sa.Column("last_seen_at", sa.DATETIME(), nullable=True),
        sa.Column("location_updated_at", sa.DATETIME(), nullable=True),
        sa.Column("is_available", sa.BOOLEAN(), nullable=False, server_default="0"),
        sa.Column("average_rating", sa.FLOAT(), nullable=True),
        sa.Column("created_at", sa.DATETIME(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_last_seen_at", "users", ["last_seen_at"])
    op.create_index("ix_users_is_available", "users", ["is_available"])

    op.create_table("errands", *_task_columns())
    _task_indexes("errands")

    op.create_table(
        "commissions",
        *_task_columns(),
        sa.Column("declined_runner_id", sa.VARCHAR(), nullable=True),
    )
    _task_indexes("commissions")


def downgrade() -> None:
    op.drop_table("commissions")
    op.drop_table("errands")
    op.drop_table("users")
