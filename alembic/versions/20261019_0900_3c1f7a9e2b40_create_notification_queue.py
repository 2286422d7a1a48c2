"""create_notification_queue

Revision ID: 3c1f7a9e2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3c1f7a9e2b40"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the notification queue table."""
    op.create_table(
        "notification_queue",
        # Primary key (UUID v7 for time-ordering)
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("related_task_id", sa.String(length=255), nullable=True),
        sa.Column("payload", sa.Text(), nullable=False),
        # Delivery state
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("state", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        # Timestamps
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_notification_queue")),
    )

    op.create_index(
        "idx_notification_queue_scheduled_state",
        "notification_queue",
        ["scheduled_for", "state"],
    )
    op.create_index(
        "idx_notification_queue_user_state_sent",
        "notification_queue",
        ["user_id", "state", "sent_at"],
    )
    op.create_index(
        "idx_notification_queue_user_task_kind_state",
        "notification_queue",
        ["user_id", "related_task_id", "kind", "state"],
    )
    op.create_index("idx_notification_queue_created", "notification_queue", ["created_at"])


def downgrade() -> None:
    """Drop the notification queue table."""
    op.drop_index("idx_notification_queue_created", table_name="notification_queue")
    op.drop_index("idx_notification_queue_user_task_kind_state", table_name="notification_queue")
    op.drop_index("idx_notification_queue_user_state_sent", table_name="notification_queue")
    op.drop_index("idx_notification_queue_scheduled_state", table_name="notification_queue")
    op.drop_table("notification_queue")
