# grantledger/api/v1/events.py
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from grantledger.api.v1.deps import ledgers
from grantledger.db.session import get_db
from grantledger.schemas.events import EventResponse
from grantledger.services.registry import Ledgers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


def _iso(dt):
    return dt.isoformat() if dt else None


@router.get("", response_model=List[EventResponse])
def list_events(
    after_seq: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    workspace_id: Optional[int] = None,
    event_type: Optional[str] = None,
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    """
    Indexer feed: events strictly after `after_seq`, oldest first.
    """
    rows = svc.events.list_after(
        db,
        after_seq=after_seq,
        limit=limit,
        workspace_id=workspace_id,
        event_type=event_type,
    )
    return [
        {
            "seq": e.seq,
            "ledger": e.ledger,
            "event_type": e.event_type,
            "actor": e.actor_address,
            "workspace_id": e.workspace_id,
            "grant_id": e.grant_id,
            "application_id": e.application_id,
            "payload": e.payload_json or {},
            "prev_hash": e.prev_hash,
            "entry_hash": e.entry_hash,
            "created_at_iso": _iso(e.created_at),
        }
        for e in rows
    ]


@router.get("/verify")
def verify_events(
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    ok = svc.events.verify_chain(db)
    logger.info("[events] chain verification ok=%s", ok)
    return {"valid": ok}
