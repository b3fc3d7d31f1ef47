# grantledger/schemas/migrations.py
from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class WalletMigrationRequest(BaseModel):
    new_address: str = Field(..., min_length=1)


class WalletMigrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    old_address: str
    new_address: str
    workspaces: List[int]
    applications: List[int]
    grants: List[int]
    reviews: List[int]
