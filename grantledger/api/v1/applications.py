# grantledger/api/v1/applications.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from grantledger.api.v1.deps import ledgers, to_http
from grantledger.core.auth_deps import get_current_principal
from grantledger.core.errors import LedgerError
from grantledger.db.session import get_db
from grantledger.policies.rbac import Principal
from grantledger.schemas.applications import (
    ApplicationCompleteRequest,
    ApplicationMetadataRequest,
    ApplicationResponse,
    ApplicationStateRequest,
    ApplicationSubmitRequest,
    MilestoneApproveRequest,
    MilestoneRequest,
    MilestoneStatesResponse,
)
from grantledger.schemas.reviews import ReviewResponse
from grantledger.services.registry import Ledgers

router = APIRouter(prefix="/applications", tags=["applications"])


@router.post("", response_model=ApplicationResponse, status_code=201)
def submit_application(
    body: ApplicationSubmitRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.applications.submit_application(
            db,
            caller=principal.address,
            grant_id=body.grant_id,
            metadata_hash=body.metadata_hash,
            milestone_count=body.milestone_count,
        )
    except LedgerError as e:
        raise to_http(e)


@router.get("/mine", response_model=List[ApplicationResponse])
def my_applications(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    return svc.applications.list_for_applicant(db, principal.address)


@router.get("/{application_id}", response_model=ApplicationResponse)
def get_application(
    application_id: int,
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.applications.get_application(db, application_id)
    except LedgerError as e:
        raise to_http(e)


@router.get("/{application_id}/milestones", response_model=MilestoneStatesResponse)
def get_milestones(
    application_id: int,
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    try:
        svc.applications.get_application(db, application_id)
    except LedgerError as e:
        raise to_http(e)
    return {
        "application_id": application_id,
        "milestones": svc.applications.milestone_states(db, application_id),
    }


@router.get("/{application_id}/reviews", response_model=List[ReviewResponse])
def get_application_reviews(
    application_id: int,
    db: Session = Depends(get_db),
    svc: Ledgers = Depends(ledgers),
):
    return svc.reviews.reviews_for_application(db, application_id)


@router.patch("/{application_id}/metadata", response_model=ApplicationResponse)
def update_application_metadata(
    application_id: int,
    body: ApplicationMetadataRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.applications.update_application_metadata(
            db,
            caller=principal.address,
            application_id=application_id,
            metadata_hash=body.metadata_hash,
            milestone_count=body.milestone_count,
        )
    except LedgerError as e:
        raise to_http(e)


@router.post("/{application_id}/state", response_model=ApplicationResponse)
def update_application_state(
    application_id: int,
    body: ApplicationStateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.applications.update_application_state(
            db,
            caller=principal.address,
            application_id=application_id,
            workspace_id=body.workspace_id,
            state=body.state,
            reason_metadata_hash=body.reason_metadata_hash,
        )
    except LedgerError as e:
        raise to_http(e)


@router.post("/{application_id}/milestones/{milestone_id}/request")
def request_milestone_approval(
    application_id: int,
    milestone_id: int,
    body: MilestoneRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        row = svc.applications.request_milestone_approval(
            db,
            caller=principal.address,
            application_id=application_id,
            milestone_id=milestone_id,
            reason_metadata_hash=body.reason_metadata_hash,
        )
    except LedgerError as e:
        raise to_http(e)
    return {"application_id": application_id, "milestone_id": milestone_id, "state": row.state}


@router.post("/{application_id}/milestones/{milestone_id}/approve")
def approve_milestone(
    application_id: int,
    milestone_id: int,
    body: MilestoneApproveRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        row = svc.applications.approve_milestone(
            db,
            caller=principal.address,
            application_id=application_id,
            milestone_id=milestone_id,
            workspace_id=body.workspace_id,
            reason_metadata_hash=body.reason_metadata_hash,
        )
    except LedgerError as e:
        raise to_http(e)
    return {"application_id": application_id, "milestone_id": milestone_id, "state": row.state}


@router.post("/{application_id}/complete", response_model=ApplicationResponse)
def complete_application(
    application_id: int,
    body: ApplicationCompleteRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.applications.complete_application(
            db,
            caller=principal.address,
            application_id=application_id,
            workspace_id=body.workspace_id,
            reason_metadata_hash=body.reason_metadata_hash,
        )
    except LedgerError as e:
        raise to_http(e)
