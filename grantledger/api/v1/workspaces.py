# grantledger/api/v1/workspaces.py
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from grantledger.api.v1.deps import ledgers, to_http
from grantledger.core.auth_deps import get_current_principal
from grantledger.core.errors import LedgerError
from grantledger.db.session import get_db
from grantledger.policies.rbac import Principal
from grantledger.schemas.workspaces import (
    MemberResponse,
    MembersUpdateRequest,
    WorkspaceCreateRequest,
    WorkspaceMetadataRequest,
    WorkspaceResponse,
    WorkspaceSafeRequest,
    WorkspaceVisibilityRequest,
)
from grantledger.services.registry import Ledgers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


@router.post("", response_model=WorkspaceResponse, status_code=201)
def create_workspace(
    body: WorkspaceCreateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.workspaces.create_workspace(
            db,
            caller=principal.address,
            metadata_hash=body.metadata_hash,
            custody_address=body.custody_address,
            custody_chain_id=body.custody_chain_id,
        )
    except LedgerError as e:
        raise to_http(e)


@router.get("/{workspace_id}", response_model=WorkspaceResponse)
def get_workspace(
    workspace_id: int,
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.workspaces.get_workspace(db, workspace_id)
    except LedgerError as e:
        raise to_http(e)


@router.get("/{workspace_id}/members", response_model=List[MemberResponse])
def list_members(
    workspace_id: int,
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    try:
        svc.workspaces.get_workspace(db, workspace_id)
    except LedgerError as e:
        raise to_http(e)
    return svc.workspaces.list_members(db, workspace_id)


@router.post("/{workspace_id}/members", response_model=List[MemberResponse])
def update_members(
    workspace_id: int,
    body: MembersUpdateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.workspaces.update_members(
            db,
            caller=principal.address,
            workspace_id=workspace_id,
            addresses=body.addresses,
            roles=body.roles,
            active=body.active,
            metadata=body.metadata,
        )
    except LedgerError as e:
        raise to_http(e)


@router.get("/{workspace_id}/permissions/{address}")
def get_permissions(
    workspace_id: int,
    address: str,
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return {
            "workspace_id": workspace_id,
            "address": address.strip().lower(),
            "is_admin": svc.workspaces.is_admin(db, workspace_id, address),
            "is_admin_or_reviewer": svc.workspaces.is_admin_or_reviewer(db, workspace_id, address),
        }
    except LedgerError as e:
        raise to_http(e)


@router.patch("/{workspace_id}/metadata", response_model=WorkspaceResponse)
def update_workspace_metadata(
    workspace_id: int,
    body: WorkspaceMetadataRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.workspaces.update_workspace_metadata(
            db,
            caller=principal.address,
            workspace_id=workspace_id,
            metadata_hash=body.metadata_hash,
        )
    except LedgerError as e:
        raise to_http(e)


@router.patch("/{workspace_id}/safe", response_model=WorkspaceResponse)
def update_workspace_safe(
    workspace_id: int,
    body: WorkspaceSafeRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.workspaces.update_workspace_safe(
            db,
            caller=principal.address,
            workspace_id=workspace_id,
            custody_address=body.custody_address,
            custody_chain_id=body.custody_chain_id,
        )
    except LedgerError as e:
        raise to_http(e)


@router.post("/visibility", response_model=List[WorkspaceResponse])
def update_workspaces_visible(
    body: WorkspaceVisibilityRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.workspaces.update_workspaces_visible(
            db,
            caller=principal.address,
            workspace_ids=body.workspace_ids,
            visible=body.visible,
        )
    except LedgerError as e:
        raise to_http(e)
