# grantledger/schemas/grants.py
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class GrantCreateRequest(BaseModel):
    workspace_id: int
    metadata_hash: str = Field(..., min_length=1)

    # optional review setup, applied by the grant factory
    rubric_metadata_hash: Optional[str] = None
    reviewers: Optional[List[str]] = None
    num_reviewers_per_application: Optional[int] = Field(default=None, gt=0)


class GrantMetadataRequest(BaseModel):
    metadata_hash: str = Field(..., min_length=1)


class GrantAccessibilityRequest(BaseModel):
    active: bool


class DisburseRequest(BaseModel):
    application_id: int
    milestone_id: int = Field(..., ge=0)
    token: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)


class DisburseResponse(BaseModel):
    grant_id: int
    application_id: int
    milestone_id: int
    transaction_hash: str


class GrantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    workspace_id: int
    metadata_hash: str
    is_active: bool
    num_applicants: int
    rubric_metadata_hash: Optional[str] = None
    num_reviews_submitted: int
    auto_assign_enabled: bool
    num_reviewers_per_application: int
    last_assigned_index: int


class AutoAssignmentStateResponse(BaseModel):
    grant_id: int
    enabled: bool
    reviewers: List[str]
    num_reviewers_per_application: int
    last_assigned_index: int
    assignment_counts: Dict[str, int] = Field(default_factory=dict)
