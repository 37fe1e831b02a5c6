"""Automation runs and events

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Check if tables already exist and skip if so
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if "automation_runs" in existing_tables:
        return

    json_type = sa.JSON().with_variant(JSONB(), "postgresql")

    # Create automation_runs table
    op.create_table(
        "automation_runs",
        sa.Column("run_id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("scheduler_invocation_at", sa.DateTime(timezone=True)),
        sa.Column("channels_planned", sa.Integer, nullable=False, server_default="0"),
        sa.Column("channels_processed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("jobs_created", sa.Integer, nullable=False, server_default="0"),
        sa.Column("errors_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error_message", sa.Text),
        sa.Column("timezone", sa.Text, nullable=False),
    )
    op.create_index("idx_automation_runs_started_at", "automation_runs", ["started_at"])
    op.create_index("idx_automation_runs_status", "automation_runs", ["status"])

    # Create automation_events table
    op.create_table(
        "automation_events",
        sa.Column("event_pk", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "run_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("automation_runs.run_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("level", sa.Text, nullable=False),
        sa.Column("step", sa.Text, nullable=False),
        sa.Column("channel_id", sa.Text),
        sa.Column("channel_name", sa.Text),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("details", json_type),
    )
    op.create_index("idx_automation_events_run_id", "automation_events", ["run_id", "created_at"])
    op.create_index("idx_automation_events_level", "automation_events", ["level"])


def downgrade() -> None:
    op.drop_index("idx_automation_events_level", table_name="automation_events")
    op.drop_index("idx_automation_events_run_id", table_name="automation_events")
    op.drop_table("automation_events")
    op.drop_index("idx_automation_runs_status", table_name="automation_runs")
    op.drop_index("idx_automation_runs_started_at", table_name="automation_runs")
    op.drop_table("automation_runs")
