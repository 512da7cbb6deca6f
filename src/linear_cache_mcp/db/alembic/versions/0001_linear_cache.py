"""Linear cache tables, recorded previews and entity history.

Revision ID: 0001_linear_cache
Revises:
Create Date: 2026-10-18 12:00:00
"""

import sqlalchemy as sa
from alembic import op

revision = "0001_linear_cache"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "linear_projects",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("state", sa.String(), nullable=True),
        sa.Column("progress", sa.Float(), nullable=True),
        sa.Column("target_date", sa.String(), nullable=True),
        sa.Column("start_date", sa.String(), nullable=True),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("lead_id", sa.String(), nullable=True),
        sa.Column("lead_name", sa.String(), nullable=True),
        sa.Column("member_ids", sa.JSON(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("synced_at", sa.DateTime(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("summary_generated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_linear_projects_name", "linear_projects", ["name"])
    op.create_index("ix_linear_projects_state", "linear_projects", ["state"])
    op.create_index("ix_linear_projects_is_deleted", "linear_projects", ["is_deleted"])
    op.create_index("ix_linear_projects_synced_at", "linear_projects", ["synced_at"])

    op.create_table(
        "linear_issues",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("identifier", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=True),
        sa.Column("state_id", sa.String(), nullable=True),
        sa.Column("state_name", sa.String(), nullable=True),
        sa.Column("assignee_id", sa.String(), nullable=True),
        sa.Column("assignee_name", sa.String(), nullable=True),
        sa.Column("team_id", sa.String(), nullable=True),
        sa.Column("team_name", sa.String(), nullable=True),
        sa.Column("team_key", sa.String(), nullable=True),
        sa.Column("project_id", sa.String(), nullable=True),
        sa.Column("project_name", sa.String(), nullable=True),
        sa.Column("parent_id", sa.String(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("synced_at", sa.DateTime(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("summary_generated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_linear_issues_identifier", "linear_issues", ["identifier"])
    op.create_index("ix_linear_issues_title", "linear_issues", ["title"])
    op.create_index("ix_linear_issues_state_name", "linear_issues", ["state_name"])
    op.create_index("ix_linear_issues_assignee_id", "linear_issues", ["assignee_id"])
    op.create_index("ix_linear_issues_project_id", "linear_issues", ["project_id"])
    op.create_index("ix_linear_issues_is_deleted", "linear_issues", ["is_deleted"])
    op.create_index("ix_linear_issues_synced_at", "linear_issues", ["synced_at"])

    op.create_table(
        "sync_previews",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("generated_at", sa.DateTime(), nullable=False),
        sa.Column("include_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("stats", sa.JSON(), nullable=False),
        sa.Column("changes", sa.JSON(), nullable=False),
        sa.Column("change_states", sa.JSON(), nullable=False),
        sa.Column("last_applied_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_sync_previews_generated_at", "sync_previews", ["generated_at"])

    op.create_table(
        "linear_entity_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("timestamp", sa.DateTime(), nullable=True),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("snapshot", sa.JSON(), nullable=False),
        sa.Column("change_source", sa.String(), nullable=True),
        sa.UniqueConstraint("entity_type", "entity_id", "version", name="_entity_version_uc"),
    )
    op.create_index("ix_linear_entity_history_timestamp", "linear_entity_history", ["timestamp"])
    op.create_index("ix_linear_entity_history_entity_type", "linear_entity_history", ["entity_type"])
    op.create_index("ix_linear_entity_history_entity_id", "linear_entity_history", ["entity_id"])


def downgrade() -> None:
    op.drop_table("linear_entity_history")
    op.drop_table("sync_previews")
    op.drop_table("linear_issues")
    op.drop_table("linear_projects")
