# grantledger/api/v1/deps.py
from __future__ import annotations

from fastapi import HTTPException

from grantledger.core.errors import (
    AuthorizationError,
    ConsistencyError,
    ExternalCallError,
    LedgerError,
    NotFoundError,
    ParameterError,
    StateError,
)
from grantledger.services.registry import Ledgers, get_ledgers


def ledgers() -> Ledgers:
    return get_ledgers()


def to_http(e: LedgerError) -> HTTPException:
    """
    Ledger failure -> HTTP status. Order matters: named conditions are
    StateError subclasses.
    """
    if isinstance(e, AuthorizationError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ParameterError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, (StateError, ConsistencyError)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ExternalCallError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))
