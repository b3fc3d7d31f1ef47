# grantledger/api/v1/controls.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from grantledger.api.v1.deps import ledgers, to_http
from grantledger.core.auth_deps import get_current_principal
from grantledger.core.errors import LedgerError
from grantledger.db.session import get_db
from grantledger.models.enums import LedgerName
from grantledger.policies.rbac import Principal
from grantledger.schemas.events import LedgerControlResponse
from grantledger.services.registry import Ledgers

router = APIRouter(prefix="/controls", tags=["controls"])


def _set(db: Session, svc: Ledgers, principal: Principal, ledger: LedgerName, paused: bool):
    try:
        row = svc.control.set_paused(db, caller=principal.address, ledger=ledger, paused=paused)
    except LedgerError as e:
        raise to_http(e)
    return {"ledger": row.ledger, "paused": row.paused, "updated_by": row.updated_by}


@router.get("/{ledger}", response_model=LedgerControlResponse)
def get_control(
    ledger: LedgerName,
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    return {"ledger": ledger.value, "paused": svc.control.is_paused(db, ledger)}


@router.post("/{ledger}/pause", response_model=LedgerControlResponse)
def pause(
    ledger: LedgerName,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    return _set(db, svc, principal, ledger, True)


@router.post("/{ledger}/unpause", response_model=LedgerControlResponse)
def unpause(
    ledger: LedgerName,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    return _set(db, svc, principal, ledger, False)
