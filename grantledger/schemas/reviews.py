# grantledger/schemas/reviews.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RubricsRequest(BaseModel):
    workspace_id: int
    rubric_metadata_hash: str = Field(..., min_length=1)


class AutoAssignmentRequest(BaseModel):
    workspace_id: int
    reviewers: List[str]
    num_reviewers_per_application: int
    rubric_metadata_hash: Optional[str] = None


class AutoAssignmentUpdateRequest(BaseModel):
    workspace_id: int
    reviewers: List[str]
    num_reviewers_per_application: int
    dry_run: bool = False


class WorkspaceScopedRequest(BaseModel):
    workspace_id: int


class AssignReviewersRequest(BaseModel):
    workspace_id: int
    grant_id: int
    reviewers: List[str]
    active: List[bool]


class ReviewSubmitRequest(BaseModel):
    workspace_id: int
    grant_id: int
    feedback_metadata_hash: str = Field(..., min_length=1)


class PaymentRequest(BaseModel):
    workspace_id: int
    application_ids: List[int]
    reviewer: str
    review_ids: List[int]
    token: str = Field(..., min_length=1)
    amount: int


class MarkPaymentDoneRequest(PaymentRequest):
    transaction_hash: str = Field(..., min_length=1)


class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    review_id: int
    reviewer_address: str
    application_id: int
    workspace_id: int
    grant_id: int
    feedback_metadata_hash: Optional[str] = None
    has_submitted: bool
    is_active: bool
    payment_done: bool
    migrated_to: Optional[str] = None


class AutoAssignmentPreviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    grant_id: int
    reviewers: List[str]
    num_reviewers_per_application: int
    next_application_reviewers: List[str]
    applied: bool
