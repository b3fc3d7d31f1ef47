# grantledger/services/workspace_service.py
from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from grantledger.core.addresses import normalize_address, normalize_addresses
from grantledger.core.errors import (
    AuthorizationError,
    NotFoundError,
    ParameterError,
    StateError,
)
from grantledger.core.tx import atomic
from grantledger.models.enums import LedgerName, WorkspaceRole
from grantledger.models.workspace import Workspace, WorkspaceMember
from grantledger.policies.rbac import (
    ACTION_MANAGE_MEMBERS,
    ACTION_UPDATE_OWN_MEMBER_METADATA,
    allowed_actions,
    role_rank,
)
from grantledger.services.control_service import LedgerControlService
from grantledger.services.event_service import EventService

logger = logging.getLogger(__name__)

LEDGER = LedgerName.workspace


def _as_role(value: Union[WorkspaceRole, str]) -> WorkspaceRole:
    try:
        return WorkspaceRole(value)
    except ValueError:
        raise ParameterError(f"Unknown workspace role: {value!r}")


class WorkspaceService:
    """
    Workspace directory: workspace records, membership roles, and the
    permission predicates every other ledger calls.

    Public methods:
    - is_admin / is_admin_or_reviewer (PermissionOracle)
    - create_workspace, update_workspace_metadata, update_workspace_safe,
      update_workspaces_visible, update_members
    - migrate_identity (step 1 of wallet migration)
    """

    def __init__(self, *, control: LedgerControlService, events: EventService):
        self.control = control
        self.events = events

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def get_workspace(self, db: Session, workspace_id: int) -> Workspace:
        ws = db.get(Workspace, workspace_id)
        if ws is None:
            raise NotFoundError(f"Workspace {workspace_id} not found.")
        return ws

    def get_member(self, db: Session, workspace_id: int, address: str) -> Optional[WorkspaceMember]:
        return db.execute(
            select(WorkspaceMember).where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.address == normalize_address(address),
            )
        ).scalar_one_or_none()

    def list_members(self, db: Session, workspace_id: int) -> List[WorkspaceMember]:
        return list(
            db.execute(
                select(WorkspaceMember)
                .where(WorkspaceMember.workspace_id == workspace_id)
                .order_by(WorkspaceMember.id.asc())
            ).scalars().all()
        )

    def active_role(self, db: Session, workspace_id: int, address: str) -> Optional[WorkspaceRole]:
        member = self.get_member(db, workspace_id, address)
        if member is None or not member.is_active:
            return None
        return WorkspaceRole(member.role)

    def is_admin(self, db: Session, workspace_id: int, address: str) -> bool:
        return self.active_role(db, workspace_id, address) == WorkspaceRole.ADMIN

    def is_admin_or_reviewer(self, db: Session, workspace_id: int, address: str) -> bool:
        return self.active_role(db, workspace_id, address) is not None

    def count_active_admins(self, db: Session, workspace_id: int) -> int:
        return db.execute(
            select(func.count(WorkspaceMember.id)).where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.role == WorkspaceRole.ADMIN.value,
                WorkspaceMember.is_active.is_(True),
            )
        ).scalar_one()

    def workspaces_for_address(self, db: Session, address: str) -> List[WorkspaceMember]:
        """
        Active memberships of an address across all workspaces.
        """
        return list(
            db.execute(
                select(WorkspaceMember)
                .where(
                    WorkspaceMember.address == normalize_address(address),
                    WorkspaceMember.is_active.is_(True),
                )
                .order_by(WorkspaceMember.workspace_id.asc())
            ).scalars().all()
        )

    def require_admin(self, db: Session, workspace_id: int, address: str, message: str = "Unauthorised: Not an admin") -> None:
        if not self.is_admin(db, workspace_id, address):
            raise AuthorizationError(message)

    def require_admin_or_reviewer(
        self,
        db: Session,
        workspace_id: int,
        address: str,
        message: str = "Unauthorised: Neither an admin nor a reviewer",
    ) -> None:
        if not self.is_admin_or_reviewer(db, workspace_id, address):
            raise AuthorizationError(message)

    # ─────────────────────────────────────────────
    # MUTATIONS
    # ─────────────────────────────────────────────

    def create_workspace(
        self,
        db: Session,
        *,
        caller: str,
        metadata_hash: str,
        custody_address: Optional[str] = None,
        custody_chain_id: Optional[int] = None,
    ) -> Workspace:
        """
        Caller becomes owner and first admin.
        """
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        with atomic(db):
            ws = Workspace(
                owner_address=caller,
                metadata_hash=metadata_hash,
                is_active=True,
                is_visible=False,
                custody_address=custody_address,
                custody_chain_id=custody_chain_id,
            )
            db.add(ws)
            db.flush()

            db.add(
                WorkspaceMember(
                    workspace_id=ws.id,
                    address=caller,
                    role=WorkspaceRole.ADMIN.value,
                    is_active=True,
                    metadata_hash="",
                )
            )
            db.flush()

            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="WorkspaceCreated",
                actor=caller,
                workspace_id=ws.id,
                payload={"owner": caller, "metadata_hash": metadata_hash},
            )
            if custody_address:
                self.events.emit(
                    db,
                    ledger=LEDGER.value,
                    event_type="WorkspaceSafeUpdated",
                    actor=caller,
                    workspace_id=ws.id,
                    payload={"custody_address": custody_address, "custody_chain_id": custody_chain_id},
                )

        logger.info("workspace created", extra={"workspace_id": ws.id, "owner": caller})
        return ws

    def update_workspace_metadata(
        self,
        db: Session,
        *,
        caller: str,
        workspace_id: int,
        metadata_hash: str,
    ) -> Workspace:
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        ws = self.get_workspace(db, workspace_id)
        self.require_admin_or_reviewer(db, workspace_id, caller)

        with atomic(db):
            ws.metadata_hash = metadata_hash
            db.flush()
            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="WorkspaceUpdated",
                actor=caller,
                workspace_id=workspace_id,
                payload={"metadata_hash": metadata_hash},
            )
        return ws

    def update_workspace_safe(
        self,
        db: Session,
        *,
        caller: str,
        workspace_id: int,
        custody_address: str,
        custody_chain_id: int,
    ) -> Workspace:
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        ws = self.get_workspace(db, workspace_id)
        self.require_admin(db, workspace_id, caller)

        with atomic(db):
            ws.custody_address = custody_address
            ws.custody_chain_id = custody_chain_id
            db.flush()
            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="WorkspaceSafeUpdated",
                actor=caller,
                workspace_id=workspace_id,
                payload={"custody_address": custody_address, "custody_chain_id": custody_chain_id},
            )
        return ws

    def update_workspaces_visible(
        self,
        db: Session,
        *,
        caller: str,
        workspace_ids: Sequence[int],
        visible: Sequence[bool],
    ) -> List[Workspace]:
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        if not self.control.is_operator(caller):
            raise AuthorizationError("Unauthorised: Not a platform operator")
        if len(workspace_ids) != len(visible):
            raise ParameterError("UpdateWorkspacesVisible: Parameters length mismatch")

        rows = [self.get_workspace(db, wid) for wid in workspace_ids]

        with atomic(db):
            for ws, flag in zip(rows, visible):
                ws.is_visible = bool(flag)
            db.flush()
            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="WorkspacesVisibleUpdated",
                actor=caller,
                payload={"workspace_ids": list(workspace_ids), "visible": [bool(v) for v in visible]},
            )
        return rows

    def update_members(
        self,
        db: Session,
        *,
        caller: str,
        workspace_id: int,
        addresses: Sequence[str],
        roles: Sequence[Union[WorkspaceRole, str]],
        active: Sequence[bool],
        metadata: Sequence[str],
    ) -> List[WorkspaceMember]:
        """
        Bulk role mutation.

        Rules:
        - Admins may update anyone, except that only the owner may demote
          or deactivate the owner
        - Reviewers may only resubmit their own entry with unchanged
          role/active (metadata update)
        - The workspace always keeps at least one active admin
        - Every check runs before the first write
        """
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        if not (len(addresses) == len(roles) == len(active) == len(metadata)):
            raise ParameterError("UpdateWorkspaceMembers: Parameters length mismatch")

        ws = self.get_workspace(db, workspace_id)
        addrs = normalize_addresses(addresses)
        parsed_roles = [_as_role(r) for r in roles]

        caller_actions = allowed_actions(self.active_role(db, workspace_id, caller))

        if ACTION_MANAGE_MEMBERS not in caller_actions:
            if ACTION_UPDATE_OWN_MEMBER_METADATA not in caller_actions:
                raise AuthorizationError("Unauthorised: Not an admin")
            own = self.get_member(db, workspace_id, caller)
            for addr, role, flag in zip(addrs, parsed_roles, active):
                if addr != caller or role.value != own.role or bool(flag) != own.is_active:
                    raise AuthorizationError("UpdateWorkspaceMembers: Reviewer can only update themselves")

        for addr, role, flag in zip(addrs, parsed_roles, active):
            demotes_owner = role != WorkspaceRole.ADMIN or not flag
            if addr == ws.owner_address and demotes_owner and caller != ws.owner_address:
                raise AuthorizationError("WorkspaceOwner: Cannot disable owner admin role")

        updated: List[WorkspaceMember] = []
        with atomic(db):
            for addr, role, flag, meta in zip(addrs, parsed_roles, active, metadata):
                member = self.get_member(db, workspace_id, addr)
                if member is None:
                    member = WorkspaceMember(workspace_id=workspace_id, address=addr)
                    db.add(member)
                member.role = role.value
                member.is_active = bool(flag)
                member.metadata_hash = meta or ""
                db.flush()
                updated.append(member)

                self.events.emit(
                    db,
                    ledger=LEDGER.value,
                    event_type="WorkspaceMemberUpdated",
                    actor=caller,
                    workspace_id=workspace_id,
                    payload={
                        "member": addr,
                        "role": role.value,
                        "active": bool(flag),
                        "metadata_hash": meta or "",
                    },
                )

            if self.count_active_admins(db, workspace_id) == 0:
                raise StateError("WorkspaceOwner: Workspace must keep at least one active admin")

        logger.info(
            "workspace members updated",
            extra={"workspace_id": workspace_id, "count": len(updated), "caller": caller},
        )
        return updated

    def migrate_identity(
        self,
        db: Session,
        *,
        caller: str,
        old_address: str,
        new_address: str,
    ) -> List[int]:
        """
        Moves every active role of old_address onto new_address.

        - The old entry is deactivated, never deleted
        - If new_address already holds an active role in a workspace the
          entries merge and the stronger role wins
        - Ownership follows the wallet
        Returns the affected workspace ids.
        """
        caller = normalize_address(caller)
        old_address = normalize_address(old_address)
        new_address = normalize_address(new_address)

        if caller != old_address:
            raise AuthorizationError("Only fromWallet/owner can migrate")
        self.control.ensure_not_paused(db, LEDGER)

        affected: List[int] = []
        with atomic(db):
            for old_member in self.workspaces_for_address(db, old_address):
                ws_id = old_member.workspace_id
                old_role = WorkspaceRole(old_member.role)

                new_member = self.get_member(db, ws_id, new_address)
                if new_member is None:
                    new_member = WorkspaceMember(
                        workspace_id=ws_id,
                        address=new_address,
                        role=old_role.value,
                        is_active=True,
                        metadata_hash=old_member.metadata_hash,
                    )
                    db.add(new_member)
                elif new_member.is_active:
                    if role_rank(old_role) > role_rank(WorkspaceRole(new_member.role)):
                        new_member.role = old_role.value
                else:
                    new_member.role = old_role.value
                    new_member.is_active = True
                    new_member.metadata_hash = old_member.metadata_hash

                old_member.is_active = False

                ws = self.get_workspace(db, ws_id)
                if ws.owner_address == old_address:
                    ws.owner_address = new_address
                db.flush()

                self.events.emit(
                    db,
                    ledger=LEDGER.value,
                    event_type="WorkspaceMemberMigrate",
                    actor=caller,
                    workspace_id=ws_id,
                    payload={"from": old_address, "to": new_address, "role": new_member.role},
                )
                affected.append(ws_id)

        logger.info(
            "workspace roles migrated",
            extra={"from": old_address, "to": new_address, "workspaces": affected},
        )
        return affected
