# grantledger/schemas/workspaces.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from grantledger.models.enums import WorkspaceRole


class WorkspaceCreateRequest(BaseModel):
    metadata_hash: str = Field(..., min_length=1)
    custody_address: Optional[str] = None
    custody_chain_id: Optional[int] = Field(default=None, ge=0)


class WorkspaceMetadataRequest(BaseModel):
    metadata_hash: str = Field(..., min_length=1)


class WorkspaceSafeRequest(BaseModel):
    custody_address: str = Field(..., min_length=1)
    custody_chain_id: int = Field(..., ge=0)


class WorkspaceVisibilityRequest(BaseModel):
    workspace_ids: List[int]
    visible: List[bool]


class MembersUpdateRequest(BaseModel):
    """
    Parallel arrays; lengths are checked by the directory, not here, so the
    mismatch surfaces with the ledger's own error.
    """
    addresses: List[str]
    roles: List[WorkspaceRole]
    active: List[bool]
    metadata: List[str]


class WorkspaceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_address: str
    metadata_hash: str
    is_active: bool
    is_visible: bool
    custody_address: Optional[str] = None
    custody_chain_id: Optional[int] = None


class MemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    workspace_id: int
    address: str
    role: WorkspaceRole
    is_active: bool
    metadata_hash: str
