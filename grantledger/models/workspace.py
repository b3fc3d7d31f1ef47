# grantledger/models/workspace.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from grantledger.db.base import Base


class Workspace(Base):
    __tablename__ = "workspaces"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # first admin; only the owner may demote the owner
    owner_address: Mapped[str] = mapped_column(String(128), nullable=False)
    metadata_hash: Mapped[str] = mapped_column(String(256), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # external custody account (multisig safe etc.)
    custody_address: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    custody_chain_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class WorkspaceMember(Base):
    __tablename__ = "workspace_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    workspace_id: Mapped[int] = mapped_column(ForeignKey("workspaces.id"), nullable=False)
    address: Mapped[str] = mapped_column(String(128), nullable=False)

    role: Mapped[str] = mapped_column(String(16), nullable=False, doc="ADMIN | REVIEWER")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    metadata_hash: Mapped[str] = mapped_column(String(256), nullable=False, default="")

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("workspace_id", "address", name="uq_workspace_member_address"),
        Index("ix_workspace_members_address", "address"),
    )
