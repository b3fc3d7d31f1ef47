# grantledger/models/application.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from grantledger.db.base import Base


class Application(Base):
    __tablename__ = "applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    grant_id: Mapped[int] = mapped_column(ForeignKey("grants.id"), nullable=False)
    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id"), nullable=False)
    applicant_address: Mapped[str] = mapped_column(String(128), nullable=False)

    metadata_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    state: Mapped[str] = mapped_column(
        String(16), nullable=False, doc="submitted | resubmit | approved | rejected | completed"
    )

    milestone_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    milestones_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_applications_grant_applicant", "grant_id", "applicant_address"),
        Index("ix_applications_applicant", "applicant_address"),
    )


class ApplicationMilestone(Base):
    """
    Sparse milestone state: a row exists only once the milestone has been
    requested or approved.
    """
    __tablename__ = "application_milestones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(ForeignKey("applications.id"), nullable=False)
    milestone_index: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[str] = mapped_column(String(16), nullable=False, doc="requested | approved")

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("application_id", "milestone_index", name="uq_application_milestone"),
    )
