#grantledger/core/auth_deps.py
from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from grantledger.core.addresses import normalize_address
from grantledger.core.errors import ParameterError
from grantledger.core.security import decode_token
from grantledger.policies.rbac import Principal

bearer = HTTPBearer(auto_error=True)


def get_current_principal(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> Principal:
    """
    Canonical authentication dependency.

    Guarantees:
    - JWT is valid and unexpired
    - `sub` is present and is a usable address (normalised)
    Roles are never read from the token; every ledger asks the workspace
    directory.
    """

    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Token missing required claims.")

    try:
        address = normalize_address(str(subject))
    except ParameterError:
        raise HTTPException(status_code=401, detail="Invalid subject in token.")

    principal = Principal(address=address)
    request.state.principal = principal
    return principal
