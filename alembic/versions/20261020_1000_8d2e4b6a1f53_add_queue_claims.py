"""add_queue_claims

Revision ID: 8d2e4b6a1f53
Revises: 3c1f7a9e2b40
Create Date: 2026-10-20 10:00:00.000000

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8d2e4b6a1f53"
down_revision: str | None = "3c1f7a9e2b40"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

PENDING_REMINDER = sa.text("kind = 'reminder' AND state = 'pending'")


def upgrade() -> None:
    """Add the processor lease column and the pending-reminder unique index."""
    with op.batch_alter_table("notification_queue") as batch_op:
        batch_op.add_column(sa.Column("claimed_until", sa.DateTime(timezone=True), nullable=True))

    op.create_index(
        "uq_notification_queue_pending_reminder",
        "notification_queue",
        ["user_id", "related_task_id"],
        unique=True,
        postgresql_where=PENDING_REMINDER,
        sqlite_where=PENDING_REMINDER,
    )


def downgrade() -> None:
    """Drop the pending-reminder index and the lease column."""
    op.drop_index("uq_notification_queue_pending_reminder", table_name="notification_queue")
    with op.batch_alter_table("notification_queue") as batch_op:
        batch_op.drop_column("claimed_until")
