"""Initial schema with queue_jobs table

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create queue jobs table; state is a plain string column
    op.create_table(
        "queue_jobs",
        sa.Column("id", sa.Integer, autoincrement=True, nullable=False),
        sa.Column("job_id", sa.String(255), nullable=False),
        sa.Column("queue_name", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("subject_id", sa.String(255), nullable=False),
        sa.Column("payload", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("state", sa.String(32), nullable=False, server_default="waiting"),
        sa.Column("progress", sa.Integer, nullable=False, server_default="0"),
        sa.Column("attempts_made", sa.Integer, nullable=False, server_default="0"),
        sa.Column("delay_until", sa.DateTime, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime,
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("processed_at", sa.DateTime, nullable=True),
        sa.Column("finished_at", sa.DateTime, nullable=True),
        sa.Column("result", postgresql.JSONB, nullable=True),
        sa.Column("failure_reason", sa.Text, nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("job_id", name="uq_queue_jobs_job_id"),
        sa.CheckConstraint(
            "state IN ('waiting', 'delayed', 'active', 'completed', 'failed')",
            name="queue_job_state",
        ),
    )

    # Create indexes
    op.create_index("ix_queue_jobs_queue_state", "queue_jobs", ["queue_name", "state", "id"])
    op.create_index("ix_queue_jobs_queue_subject", "queue_jobs", ["queue_name", "subject_id", "state"])
    op.create_index("ix_queue_jobs_queue_finished", "queue_jobs", ["queue_name", "state", "finished_at"])

    # Create partial index for claiming the next waiting job
    op.execute("""
        CREATE INDEX ix_queue_jobs_waiting
        ON queue_jobs (queue_name, id)
        WHERE state = 'waiting'
    """)

    # Create partial index for stalled job lookups
    op.execute("""
        CREATE INDEX ix_queue_jobs_active_processed
        ON queue_jobs (processed_at)
        WHERE state = 'active'
    """)


def downgrade() -> None:
    # Drop indexes
    op.execute("DROP INDEX IF EXISTS ix_queue_jobs_active_processed")
    op.execute("DROP INDEX IF EXISTS ix_queue_jobs_waiting")
    op.drop_index("ix_queue_jobs_queue_finished")
    op.drop_index("ix_queue_jobs_queue_subject")
    op.drop_index("ix_queue_jobs_queue_state")

    # Drop table
    op.drop_table("queue_jobs")
