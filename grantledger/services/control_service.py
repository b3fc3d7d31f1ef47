# grantledger/services/control_service.py
from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy.orm import Session

from grantledger.core.addresses import normalize_address
from grantledger.core.errors import AuthorizationError, PausedError
from grantledger.core.tx import atomic
from grantledger.models.enums import LedgerName
from grantledger.models.ledger_control import LedgerControl
from grantledger.services.event_service import EventService

logger = logging.getLogger(__name__)


class LedgerControlService:
    """
    Per-ledger pause switch. While a ledger is paused every mutating entry
    point of that ledger fails fast with PausedError.
    """

    def __init__(self, *, operators: Iterable[str], events: EventService):
        self.operators = {normalize_address(a) for a in operators}
        self.events = events

    def is_operator(self, address: str) -> bool:
        return normalize_address(address) in self.operators

    def is_paused(self, db: Session, ledger: LedgerName) -> bool:
        row = db.get(LedgerControl, ledger.value)
        return bool(row and row.paused)

    def ensure_not_paused(self, db: Session, *ledgers: LedgerName) -> None:
        for ledger in ledgers:
            if self.is_paused(db, ledger):
                raise PausedError(f"Pausable: paused ({ledger.value})")

    def set_paused(
        self,
        db: Session,
        *,
        caller: str,
        ledger: LedgerName,
        paused: bool,
    ) -> LedgerControl:
        caller = normalize_address(caller)
        if caller not in self.operators:
            raise AuthorizationError("Unauthorised: Not an operator")

        with atomic(db):
            row = db.get(LedgerControl, ledger.value)
            if row is None:
                row = LedgerControl(ledger=ledger.value, paused=paused, updated_by=caller)
                db.add(row)
            else:
                row.paused = paused
                row.updated_by = caller
            db.flush()

            self.events.emit(
                db,
                ledger=ledger.value,
                event_type="Paused" if paused else "Unpaused",
                actor=caller,
                payload={"ledger": ledger.value},
            )

        logger.info("ledger pause toggled", extra={"ledger": ledger.value, "paused": paused})
        return row
