# grantledger/api/v1/migrations.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from grantledger.api.v1.deps import ledgers, to_http
from grantledger.core.auth_deps import get_current_principal
from grantledger.core.errors import LedgerError
from grantledger.db.session import get_db
from grantledger.policies.rbac import Principal
from grantledger.schemas.migrations import WalletMigrationRequest, WalletMigrationResponse
from grantledger.services.registry import Ledgers

router = APIRouter(prefix="/migrations", tags=["migrations"])


@router.post("/wallet", response_model=WalletMigrationResponse)
def migrate_wallet(
    body: WalletMigrationRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    """
    Self-service: the authenticated wallet is always the old wallet.
    """
    try:
        return svc.migrations.migrate_wallet(
            db,
            caller=principal.address,
            old_address=principal.address,
            new_address=body.new_address,
        )
    except LedgerError as e:
        raise to_http(e)
