# grantledger/models/review.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from grantledger.db.base import Base


class Review(Base):
    """
    Reviewer assignment + feedback record, keyed by (reviewer_address, review_id).

    - Never deleted: unassignment and wallet migration only flip is_active
    - A migrated record keeps its review_id under the new reviewer key and
      the old row points at the new owner via migrated_to
    """
    __tablename__ = "reviews"

    pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    review_id: Mapped[int] = mapped_column(Integer, nullable=False)
    reviewer_address: Mapped[str] = mapped_column(String(128), nullable=False)

    application_id: Mapped[int] = mapped_column(ForeignKey("applications.id"), nullable=False)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id"), nullable=False)
    grant_id: Mapped[int] = mapped_column(ForeignKey("grants.id"), nullable=False)

    feedback_metadata_hash: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    has_submitted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    payment_done: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    migrated_to: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("reviewer_address", "review_id", name="uq_review_reviewer_id"),
        Index("ix_reviews_application", "application_id"),
        Index("ix_reviews_grant", "grant_id"),
    )
