# grantledger/api/v1/reviews.py
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
from grantledger.schemas.grants import GrantResponse
from grantledger.schemas.reviews import (
    AssignReviewersRequest,
    AutoAssignmentPreviewResponse,
    AutoAssignmentRequest,
    AutoAssignmentUpdateRequest,
    MarkPaymentDoneRequest,
    PaymentRequest,
    ReviewResponse,
    ReviewSubmitRequest,
    RubricsRequest,
    WorkspaceScopedRequest,
)
from grantledger.services.registry import Ledgers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["reviews"])


# ─────────────────────────────────────────────
# GRANT REVIEW CONFIG
# ─────────────────────────────────────────────

@router.post("/grants/{grant_id}/rubrics", response_model=GrantResponse)
def set_rubrics(
    grant_id: int,
    body: RubricsRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.reviews.set_rubrics(
            db,
            caller=principal.address,
            workspace_id=body.workspace_id,
            grant_id=grant_id,
            rubric_metadata_hash=body.rubric_metadata_hash,
        )
    except LedgerError as e:
        raise to_http(e)


@router.post("/grants/{grant_id}/auto-assignment", response_model=List[ReviewResponse])
def enable_auto_assignment(
    grant_id: int,
    body: AutoAssignmentRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    """
    Returns the reviews created by the backfill.
    """
    try:
        return svc.reviews.set_rubrics_and_enable_auto_assignment(
            db,
            caller=principal.address,
            workspace_id=body.workspace_id,
            grant_id=grant_id,
            reviewers=body.reviewers,
            num_reviewers_per_application=body.num_reviewers_per_application,
            rubric_metadata_hash=body.rubric_metadata_hash,
        )
    except LedgerError as e:
        raise to_http(e)


@router.put("/grants/{grant_id}/auto-assignment", response_model=AutoAssignmentPreviewResponse)
def update_auto_assignment(
    grant_id: int,
    body: AutoAssignmentUpdateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.reviews.update_auto_assignment(
            db,
            caller=principal.address,
            workspace_id=body.workspace_id,
            grant_id=grant_id,
            reviewers=body.reviewers,
            num_reviewers_per_application=body.num_reviewers_per_application,
            dry_run=body.dry_run,
        )
    except LedgerError as e:
        raise to_http(e)


@router.post("/grants/{grant_id}/auto-assignment/disable", response_model=GrantResponse)
def disable_auto_assignment(
    grant_id: int,
    body: WorkspaceScopedRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.reviews.disable_auto_assignment(
            db, caller=principal.address, workspace_id=body.workspace_id, grant_id=grant_id
        )
    except LedgerError as e:
        raise to_http(e)


# ─────────────────────────────────────────────
# ASSIGNMENT / SUBMISSION
# ─────────────────────────────────────────────

@router.post("/applications/{application_id}/assign", response_model=List[ReviewResponse])
def assign_reviewers(
    application_id: int,
    body: AssignReviewersRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.reviews.assign_reviewers(
            db,
            caller=principal.address,
            workspace_id=body.workspace_id,
            application_id=application_id,
            grant_id=body.grant_id,
            reviewers=body.reviewers,
            active=body.active,
        )
    except LedgerError as e:
        raise to_http(e)


@router.post("/applications/{application_id}/submit", response_model=List[ReviewResponse])
def submit_review(
    application_id: int,
    body: ReviewSubmitRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.reviews.submit_review(
            db,
            caller=principal.address,
            application_id=application_id,
            workspace_id=body.workspace_id,
            grant_id=body.grant_id,
            feedback_metadata_hash=body.feedback_metadata_hash,
        )
    except LedgerError as e:
        raise to_http(e)


@router.get("/mine", response_model=List[ReviewResponse])
def my_reviews(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    return svc.reviews.reviews_for_reviewer(db, principal.address)


# ─────────────────────────────────────────────
# REVIEWER PAYMENTS
# ─────────────────────────────────────────────

@router.post("/payments/mark-done", response_model=List[ReviewResponse])
def mark_payment_done(
    body: MarkPaymentDoneRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.reviews.mark_payment_done(
            db,
            caller=principal.address,
            workspace_id=body.workspace_id,
            application_ids=body.application_ids,
            reviewer=body.reviewer,
            review_ids=body.review_ids,
            token=body.token,
            amount=body.amount,
            transaction_hash=body.transaction_hash,
        )
    except LedgerError as e:
        raise to_http(e)


@router.post("/payments/fulfill", response_model=List[ReviewResponse])
def fulfill_payment(
    body: PaymentRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    svc: Ledgers = Depends(ledgers),
):
    try:
        return svc.reviews.fulfill_payment(
            db,
            caller=principal.address,
            workspace_id=body.workspace_id,
            application_ids=body.application_ids,
            reviewer=body.reviewer,
            review_ids=body.review_ids,
            token=body.token,
            amount=body.amount,
        )
    except LedgerError as e:
        raise to_http(e)
