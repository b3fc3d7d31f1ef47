from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from grantledger.api.v1.deps import ledgers
from grantledger.db.session import get_db
from grantledger.models.enums import LedgerName
from grantledger.services.registry import Ledgers

router = APIRouter()


@router.get("/health")
def health(
    request: Request,
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    rid = getattr(request.state, "request_id", None)
    paused = [name.value for name in LedgerName if svc.control.is_paused(db, name)]
    return {"status": "ok", "request_id": rid, "paused_ledgers": paused}
