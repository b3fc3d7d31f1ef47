# grantledger/models/grant.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from grantledger.db.base import Base


class Grant(Base):
    """
    One funding program inside a workspace, plus the auto-assignment state
    the review ledger keeps for it (pool lives in GrantReviewerPoolEntry).
    """
    __tablename__ = "grants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id"), nullable=False, index=True)

    metadata_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    num_applicants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ─────────── REVIEW CONFIG ───────────
    rubric_metadata_hash: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    num_reviews_submitted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ─────────── AUTO ASSIGNMENT ───────────
    auto_assign_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    num_reviewers_per_application: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_assigned_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # slots consumed since the current pool was configured
    assignment_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class GrantReviewerPoolEntry(Base):
    __tablename__ = "grant_reviewer_pool"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    grant_id: Mapped[int] = mapped_column(ForeignKey("grants.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    reviewer_address: Mapped[str] = mapped_column(String(128), nullable=False)

    __table_args__ = (
        UniqueConstraint("grant_id", "position", name="uq_grant_pool_position"),
    )


class ReviewerAssignmentCount(Base):
    __tablename__ = "reviewer_assignment_counts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    grant_id: Mapped[int] = mapped_column(ForeignKey("grants.id"), nullable=False)
    reviewer_address: Mapped[str] = mapped_column(String(128), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("grant_id", "reviewer_address", name="uq_grant_reviewer_count"),
    )
