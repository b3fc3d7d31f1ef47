"""grant ledger core tables

Revision ID: 0001_grant_ledger_core
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_grant_ledger_core"
down_revision = None
branch_labels = None
depends_on = None

JSON_PAYLOAD = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    # ─────────── WORKSPACE DIRECTORY ───────────
    op.create_table(
        "workspaces",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_address", sa.String(length=128), nullable=False),
        sa.Column("metadata_hash", sa.String(length=256), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_visible", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("custody_address", sa.String(length=256), nullable=True),
        sa.Column("custody_chain_id", sa.Integer(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "workspace_members",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id"), nullable=False),
        sa.Column("address", sa.String(length=128), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("metadata_hash", sa.String(length=256), nullable=False, server_default=""),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("workspace_id", "address", name="uq_workspace_member_address"),
    )
    op.create_index("ix_workspace_members_address", "workspace_members", ["address"])

    # ─────────── GRANTS ───────────
    op.create_table(
        "grants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id"), nullable=False),
        sa.Column("metadata_hash", sa.String(length=256), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("num_applicants", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rubric_metadata_hash", sa.String(length=256), nullable=True),
        sa.Column("num_reviews_submitted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("auto_assign_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("num_reviewers_per_application", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_assigned_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("assignment_slots", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_grants_workspace_id", "grants", ["workspace_id"])

    op.create_table(
        "grant_reviewer_pool",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("grant_id", sa.Integer(), sa.ForeignKey("grants.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("reviewer_address", sa.String(length=128), nullable=False),
        sa.UniqueConstraint("grant_id", "position", name="uq_grant_pool_position"),
    )

    op.create_table(
        "reviewer_assignment_counts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("grant_id", sa.Integer(), sa.ForeignKey("grants.id"), nullable=False),
        sa.Column("reviewer_address", sa.String(length=128), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("grant_id", "reviewer_address", name="uq_grant_reviewer_count"),
    )

    # ─────────── APPLICATIONS ───────────
    op.create_table(
        "applications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("grant_id", sa.Integer(), sa.ForeignKey("grants.id"), nullable=False),
        sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id"), nullable=False),
        sa.Column("applicant_address", sa.String(length=128), nullable=False),
        sa.Column("metadata_hash", sa.String(length=256), nullable=False),
        sa.Column("state", sa.String(length=16), nullable=False),
        sa.Column("milestone_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("milestones_completed", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_applications_grant_applicant", "applications", ["grant_id", "applicant_address"])
    op.create_index("ix_applications_applicant", "applications", ["applicant_address"])

    op.create_table(
        "application_milestones",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("application_id", sa.Integer(), sa.ForeignKey("applications.id"), nullable=False),
        sa.Column("milestone_index", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(length=16), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("application_id", "milestone_index", name="uq_application_milestone"),
    )

    # ─────────── REVIEWS ───────────
    op.create_table(
        "reviews",
        sa.Column("pk", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("review_id", sa.Integer(), nullable=False),
        sa.Column("reviewer_address", sa.String(length=128), nullable=False),
        sa.Column("application_id", sa.Integer(), sa.ForeignKey("applications.id"), nullable=False),
        sa.Column("workspace_id", sa.Integer(), sa.ForeignKey("workspaces.id"), nullable=False),
        sa.Column("grant_id", sa.Integer(), sa.ForeignKey("grants.id"), nullable=False),
        sa.Column("feedback_metadata_hash", sa.String(length=256), nullable=True),
        sa.Column("has_submitted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("payment_done", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("migrated_to", sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("reviewer_address", "review_id", name="uq_review_reviewer_id"),
    )
    op.create_index("ix_reviews_application", "reviews", ["application_id"])
    op.create_index("ix_reviews_grant", "reviews", ["grant_id"])

    # ─────────── CONTROL / EVENTS ───────────
    op.create_table(
        "ledger_controls",
        sa.Column("ledger", sa.String(length=32), primary_key=True),
        sa.Column("paused", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("updated_by", sa.String(length=128), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "event_logs",
        sa.Column("seq", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ledger", sa.String(length=32), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("actor_address", sa.String(length=128), nullable=False),
        sa.Column("workspace_id", sa.Integer(), nullable=True),
        sa.Column("grant_id", sa.Integer(), nullable=True),
        sa.Column("application_id", sa.Integer(), nullable=True),
        sa.Column("payload_json", JSON_PAYLOAD, nullable=False),
        sa.Column("prev_hash", sa.String(length=64), nullable=False),
        sa.Column("entry_hash", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_event_logs_workspace", "event_logs", ["workspace_id"])
    op.create_index("ix_event_logs_type", "event_logs", ["event_type"])


def downgrade():
    op.drop_index("ix_event_logs_type", table_name="event_logs")
    op.drop_index("ix_event_logs_workspace", table_name="event_logs")
    op.drop_table("event_logs")
    op.drop_table("ledger_controls")

    op.drop_index("ix_reviews_grant", table_name="reviews")
    op.drop_index("ix_reviews_application", table_name="reviews")
    op.drop_table("reviews")

    op.drop_table("application_milestones")
    op.drop_index("ix_applications_applicant", table_name="applications")
    op.drop_index("ix_applications_grant_applicant", table_name="applications")
    op.drop_table("applications")

    op.drop_table("reviewer_assignment_counts")
    op.drop_table("grant_reviewer_pool")
    op.drop_index("ix_grants_workspace_id", table_name="grants")
    op.drop_table("grants")

    op.drop_index("ix_workspace_members_address", table_name="workspace_members")
    op.drop_table("workspace_members")
    op.drop_table("workspaces")
