#grantledger/models/event_log.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from grantledger.db.base import Base, JsonType


class EventLog(Base):
    """
    Append-only notification stream for off-chain indexers.
    entry_hash = SHA256(prev_hash + canonical(payload))
    """
    __tablename__ = "event_logs"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    ledger: Mapped[str] = mapped_column(String(32), nullable=False)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_address: Mapped[str] = mapped_column(String(128), nullable=False)

    workspace_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    grant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    application_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    payload_json: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)

    prev_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_event_logs_workspace", "workspace_id"),
        Index("ix_event_logs_type", "event_type"),
    )
