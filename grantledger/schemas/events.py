# grantledger/schemas/events.py
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EventResponse(BaseModel):
    seq: int
    ledger: str
    event_type: str
    actor: str
    workspace_id: Optional[int] = None
    grant_id: Optional[int] = None
    application_id: Optional[int] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    prev_hash: str
    entry_hash: str
    created_at_iso: Optional[str] = None


class LedgerControlResponse(BaseModel):
    ledger: str
    paused: bool
    updated_by: Optional[str] = None
