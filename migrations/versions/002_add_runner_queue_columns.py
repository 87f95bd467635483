"""Add ranked runner queue columns to errands and commissions.

Revision ID: 002
Revises: 001
Create Date: 2025-01-02

ranked_runner_ids holds the queue computed once at dispatch;
current_queue_index points at the runner currently holding the offer.
Rows created before this revision keep a NULL queue and are served by
the legacy re-rank path.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

_TABLES = ("errands", "commissions")


def upgrade() -> None:
    for table in _TABLES:
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.add_column(sa.Column("ranked_runner_ids", sa.VARCHAR(), nullable=True))
            batch_op.add_column(
                sa.Column("current_queue_index", sa.INTEGER(), nullable=False, server_default="0")
            )
            batch_op.create_check_constraint(
                f"{table}_queue_index_valid", "current_queue_index >= 0"
            )


def downgrade() -> None:
    for table in _TABLES:
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.drop_constraint(f"{table}_queue_index_valid", type_="check")
            batch_op.drop_column("current_queue_index")
            batch_op.drop_column("ranked_runner_ids")
