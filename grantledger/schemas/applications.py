# grantledger/schemas/applications.py
from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from grantledger.models.enums import ApplicationState, MilestoneState


class ApplicationSubmitRequest(BaseModel):
    grant_id: int
    metadata_hash: str = Field(..., min_length=1)
    milestone_count: int = Field(..., ge=0)


class ApplicationMetadataRequest(BaseModel):
    metadata_hash: str = Field(..., min_length=1)
    milestone_count: Optional[int] = Field(default=None, ge=0)


class ApplicationStateRequest(BaseModel):
    workspace_id: int
    state: ApplicationState
    reason_metadata_hash: str = ""


class MilestoneRequest(BaseModel):
    reason_metadata_hash: str = ""


class MilestoneApproveRequest(BaseModel):
    workspace_id: int
    reason_metadata_hash: str = ""


class ApplicationCompleteRequest(BaseModel):
    workspace_id: int
    reason_metadata_hash: str = ""


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    grant_id: int
    workspace_id: int
    applicant_address: str
    metadata_hash: str
    state: ApplicationState
    milestone_count: int
    milestones_completed: int


class MilestoneStatesResponse(BaseModel):
    application_id: int
    milestones: Dict[int, MilestoneState] = Field(default_factory=dict)
