# grantledger/services/event_service.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from grantledger.core.hashing import GENESIS_HASH, chain_hash, links_to
from grantledger.models.event_log import EventLog

logger = logging.getLogger(__name__)


class EventService:
    """
    Append-only event stream.
    Rows are written inside the caller's transaction, so a rolled back
    operation leaves no event behind.
    """

    # ─────────────────────────────────────────────
    # INTERNAL HELPERS
    # ─────────────────────────────────────────────

    def _get_last_entry(self, db: Session) -> Optional[EventLog]:
        return db.execute(
            select(EventLog).order_by(EventLog.seq.desc()).limit(1)
        ).scalar_one_or_none()

    @staticmethod
    def _hash_body(row: EventLog) -> Dict[str, Any]:
        return {
            "ledger": row.ledger,
            "event_type": row.event_type,
            "actor": row.actor_address,
            "workspace_id": row.workspace_id,
            "grant_id": row.grant_id,
            "application_id": row.application_id,
            "payload": row.payload_json or {},
        }

    # ─────────────────────────────────────────────
    # PUBLIC API
    # ─────────────────────────────────────────────

    def emit(
        self,
        db: Session,
        *,
        ledger: str,
        event_type: str,
        actor: str,
        workspace_id: Optional[int] = None,
        grant_id: Optional[int] = None,
        application_id: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> EventLog:
        last = self._get_last_entry(db)
        prev_hash = last.entry_hash if last else GENESIS_HASH

        row = EventLog(
            ledger=ledger,
            event_type=event_type,
            actor_address=actor,
            workspace_id=workspace_id,
            grant_id=grant_id,
            application_id=application_id,
            payload_json=payload or {},
            prev_hash=prev_hash,
        )
        row.entry_hash = chain_hash(prev_hash, self._hash_body(row))

        db.add(row)
        db.flush()

        logger.debug(
            "event emitted",
            extra={"event_type": event_type, "seq": row.seq, "workspace_id": workspace_id},
        )
        return row

    def list_after(
        self,
        db: Session,
        *,
        after_seq: int = 0,
        limit: int = 100,
        workspace_id: Optional[int] = None,
        event_type: Optional[str] = None,
    ) -> List[EventLog]:
        q = select(EventLog).where(EventLog.seq > after_seq)
        if workspace_id is not None:
            q = q.where(EventLog.workspace_id == workspace_id)
        if event_type is not None:
            q = q.where(EventLog.event_type == event_type)
        return list(db.execute(q.order_by(EventLog.seq.asc()).limit(limit)).scalars().all())

    def verify_chain(self, db: Session) -> bool:
        """
        Recomputes every entry hash in sequence order.
        """
        prev = GENESIS_HASH
        for row in db.execute(select(EventLog).order_by(EventLog.seq.asc())).scalars():
            if row.prev_hash != prev:
                return False
            if not links_to(prev, self._hash_body(row), row.entry_hash):
                return False
            prev = row.entry_hash
        return True
