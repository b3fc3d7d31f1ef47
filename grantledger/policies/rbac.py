#grantledger/policies/rbac.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Set

from grantledger.models.enums import WorkspaceRole


@dataclass(frozen=True)
class Principal:
    address: str


# --- Workspace action constants ---
ACTION_MANAGE_MEMBERS = "MANAGE_MEMBERS"
ACTION_UPDATE_OWN_MEMBER_METADATA = "UPDATE_OWN_MEMBER_METADATA"


def allowed_actions(role: Optional[WorkspaceRole]) -> Set[str]:
    """
    Pure RBAC: which workspace actions an (active) role may attempt.
    """

    if role == WorkspaceRole.ADMIN:
        return {
            ACTION_MANAGE_MEMBERS,
            ACTION_UPDATE_OWN_MEMBER_METADATA,
        }

    if role == WorkspaceRole.REVIEWER:
        return {
            ACTION_UPDATE_OWN_MEMBER_METADATA,
        }

    return set()


def role_rank(role: WorkspaceRole) -> int:
    # used when two membership entries merge during wallet migration
    return 2 if role == WorkspaceRole.ADMIN else 1
