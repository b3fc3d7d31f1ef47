# grantledger/api/v1/grants.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from grantledger.api.v1.deps import ledgers, to_http
from grantledger.core.auth_deps import get_current_principal
from grantledger.core.errors import LedgerError
from grantledger.db.session import get_db
from grantledger.policies.rbac import Principal
from grantledger.schemas.applications import ApplicationResponse
from grantledger.schemas.grants import (
    AutoAssignmentStateResponse,
    DisburseRequest,
    DisburseResponse,
    GrantAccessibilityRequest,
    GrantCreateRequest,
    GrantMetadataRequest,
    GrantResponse,
)
from grantledger.services.registry import Ledgers

router = APIRouter(prefix="/grants", tags=["grants"])


@router.post("", response_model=GrantResponse, status_code=201)
def create_grant(
    body: GrantCreateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.grants.create_grant(
            db,
            caller=principal.address,
            workspace_id=body.workspace_id,
            metadata_hash=body.metadata_hash,
            rubric_metadata_hash=body.rubric_metadata_hash,
            reviewers=body.reviewers,
            num_reviewers_per_application=body.num_reviewers_per_application,
        )
    except LedgerError as e:
        raise to_http(e)


@router.get("", response_model=List[GrantResponse])
def list_grants(
    workspace_id: int,
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    return svc.grants.list_for_workspace(db, workspace_id)


@router.get("/{grant_id}", response_model=GrantResponse)
def get_grant(
    grant_id: int,
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.grants.get_grant(db, grant_id)
    except LedgerError as e:
        raise to_http(e)


@router.get("/{grant_id}/applications", response_model=List[ApplicationResponse])
def list_grant_applications(
    grant_id: int,
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    try:
        svc.grants.get_grant(db, grant_id)
    except LedgerError as e:
        raise to_http(e)
    return svc.applications.list_for_grant(db, grant_id)


@router.get("/{grant_id}/auto-assignment", response_model=AutoAssignmentStateResponse)
def get_auto_assignment(
    grant_id: int,
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    try:
        grant = svc.grants.get_grant(db, grant_id)
    except LedgerError as e:
        raise to_http(e)
    return {
        "grant_id": grant.id,
        "enabled": grant.auto_assign_enabled,
        "reviewers": svc.reviews.pool(db, grant.id),
        "num_reviewers_per_application": grant.num_reviewers_per_application,
        "last_assigned_index": grant.last_assigned_index,
        "assignment_counts": svc.reviews.assignment_counts(db, grant.id),
    }


@router.patch("/{grant_id}/metadata", response_model=GrantResponse)
def update_grant(
    grant_id: int,
    body: GrantMetadataRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.grants.update_grant(
            db, caller=principal.address, grant_id=grant_id, metadata_hash=body.metadata_hash
        )
    except LedgerError as e:
        raise to_http(e)


@router.patch("/{grant_id}/accessibility", response_model=GrantResponse)
def update_grant_accessibility(
    grant_id: int,
    body: GrantAccessibilityRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.grants.update_grant_accessibility(
            db, caller=principal.address, grant_id=grant_id, active=body.active
        )
    except LedgerError as e:
        raise to_http(e)


@router.post("/{grant_id}/disburse", response_model=DisburseResponse)
def disburse_reward(
    grant_id: int,
    body: DisburseRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        tx_hash = svc.grants.disburse_reward_p2p(
            db,
            caller=principal.address,
            grant_id=grant_id,
            application_id=body.application_id,
            milestone_id=body.milestone_id,
            token=body.token,
            amount=body.amount,
        )
    except LedgerError as e:
        raise to_http(e)
    return {
        "grant_id": grant_id,
        "application_id": body.application_id,
        "milestone_id": body.milestone_id,
        "transaction_hash": tx_hash,
    }
