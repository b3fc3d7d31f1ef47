# grantledger/services/grant_service.py
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from grantledger.core.addresses import normalize_address
from grantledger.core.errors import AuthorizationError, ConsistencyError, NotFoundError, ParameterError, StateError
from grantledger.core.tx import atomic
from grantledger.models.enums import ApplicationState, LedgerName
from grantledger.models.grant import Grant
from grantledger.policies.capabilities import PermissionOracle
from grantledger.services.control_service import LedgerControlService
from grantledger.services.event_service import EventService
from grantledger.services.token_gateway import TokenGateway

if TYPE_CHECKING:
    from grantledger.services.application_service import ApplicationService
    from grantledger.services.review_service import ReviewService

logger = logging.getLogger(__name__)

LEDGER = LedgerName.grant_factory

DISBURSABLE_STATES = {ApplicationState.approved.value, ApplicationState.completed.value}


class GrantService:
    """
    Grant records and the grant factory.

    The factory is the one trusted caller allowed to set rubrics and enable
    auto-assignment on the review ledger at creation time without holding a
    workspace role; it acts under `factory_address`.
    """

    def __init__(
        self,
        *,
        control: LedgerControlService,
        events: EventService,
        permissions: PermissionOracle,
        token_gateway: TokenGateway,
        factory_address: str,
    ):
        self.control = control
        self.events = events
        self.permissions = permissions
        self.token_gateway = token_gateway
        self.factory_address = normalize_address(factory_address)
        self.reviews: Optional["ReviewService"] = None
        self.applications: Optional["ApplicationService"] = None

    def bind(self, *, reviews: "ReviewService", applications: "ApplicationService") -> None:
        self.reviews = reviews
        self.applications = applications

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def get_grant(self, db: Session, grant_id: int) -> Grant:
        grant = db.get(Grant, grant_id)
        if grant is None:
            raise NotFoundError(f"Grant {grant_id} not found.")
        return grant

    def list_for_workspace(self, db: Session, workspace_id: int) -> List[Grant]:
        return list(
            db.execute(
                select(Grant).where(Grant.workspace_id == workspace_id).order_by(Grant.id.asc())
            ).scalars().all()
        )

    def _require_admin(self, db: Session, grant: Grant, caller: str) -> None:
        if not self.permissions.is_admin(db, grant.workspace_id, caller):
            raise AuthorizationError("Unauthorised: Not an admin")

    # ─────────────────────────────────────────────
    # INTERNAL (application ledger only)
    # ─────────────────────────────────────────────

    def increment_applicant(self, db: Session, *, grant: Grant) -> None:
        grant.num_applicants += 1
        db.flush()

    # ─────────────────────────────────────────────
    # FACTORY
    # ─────────────────────────────────────────────

    def create_grant(
        self,
        db: Session,
        *,
        caller: str,
        workspace_id: int,
        metadata_hash: str,
        rubric_metadata_hash: Optional[str] = None,
        reviewers: Optional[Sequence[str]] = None,
        num_reviewers_per_application: Optional[int] = None,
    ) -> Grant:
        """
        Rules:
        - Caller must be an admin of the workspace
        - Optional rubric / auto-assignment are configured through the review
          ledger inside the same transaction
        """
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        if not self.permissions.is_admin(db, workspace_id, caller):
            raise AuthorizationError("GrantCreate: Unauthorised")
        if reviewers and not num_reviewers_per_application:
            raise ParameterError("GrantCreate: Number of reviewers per application is required")

        with atomic(db):
            grant = Grant(
                workspace_id=workspace_id,
                metadata_hash=metadata_hash,
                is_active=True,
                num_applicants=0,
            )
            db.add(grant)
            db.flush()

            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="GrantCreated",
                actor=caller,
                workspace_id=workspace_id,
                grant_id=grant.id,
                payload={"metadata_hash": metadata_hash},
            )

            if reviewers:
                self.reviews.set_rubrics_and_enable_auto_assignment(
                    db,
                    caller=self.factory_address,
                    workspace_id=workspace_id,
                    grant_id=grant.id,
                    reviewers=reviewers,
                    num_reviewers_per_application=num_reviewers_per_application,
                    rubric_metadata_hash=rubric_metadata_hash,
                )
            elif rubric_metadata_hash:
                self.reviews.set_rubrics(
                    db,
                    caller=self.factory_address,
                    workspace_id=workspace_id,
                    grant_id=grant.id,
                    rubric_metadata_hash=rubric_metadata_hash,
                )

        logger.info("grant created", extra={"grant_id": grant.id, "workspace_id": workspace_id})
        return grant

    # ─────────────────────────────────────────────
    # GRANT ADMIN
    # ─────────────────────────────────────────────

    def update_grant(self, db: Session, *, caller: str, grant_id: int, metadata_hash: str) -> Grant:
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)
        grant = self.get_grant(db, grant_id)
        self._require_admin(db, grant, caller)
        if grant.num_applicants != 0:
            raise StateError("GrantUpdate: Applicants have already started applying")

        with atomic(db):
            grant.metadata_hash = metadata_hash
            db.flush()
            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="GrantUpdated",
                actor=caller,
                workspace_id=grant.workspace_id,
                grant_id=grant.id,
                payload={"metadata_hash": metadata_hash},
            )
        return grant

    def update_grant_accessibility(self, db: Session, *, caller: str, grant_id: int, active: bool) -> Grant:
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)
        grant = self.get_grant(db, grant_id)
        self._require_admin(db, grant, caller)

        with atomic(db):
            grant.is_active = bool(active)
            db.flush()
            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="GrantUpdated",
                actor=caller,
                workspace_id=grant.workspace_id,
                grant_id=grant.id,
                payload={"active": grant.is_active},
            )
        return grant

    def disburse_reward_p2p(
        self,
        db: Session,
        *,
        caller: str,
        grant_id: int,
        application_id: int,
        milestone_id: int,
        token: str,
        amount: int,
    ) -> str:
        """
        Pays an applicant straight from the admin's wallet. The event row and
        the transfer share one transaction: a failed transfer leaves nothing.
        """
        caller = normalize_address(caller)
        if amount <= 0:
            raise ParameterError("Disbursal amount must be positive.")
        self.control.ensure_not_paused(db, LEDGER)

        grant = self.get_grant(db, grant_id)
        self._require_admin(db, grant, caller)

        app = self.applications.get_application(db, application_id)
        if app.grant_id != grant.id:
            raise ConsistencyError("Disburse: Application does not belong to grant")
        if app.state not in DISBURSABLE_STATES:
            raise StateError("Disburse: Application is not approved")
        if milestone_id < 0 or milestone_id >= app.milestone_count:
            raise ParameterError(f"Milestone {milestone_id} does not exist on application {app.id}.")

        with atomic(db):
            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="DisburseRewardP2P",
                actor=caller,
                workspace_id=grant.workspace_id,
                grant_id=grant.id,
                application_id=app.id,
                payload={
                    "milestone_id": milestone_id,
                    "token": token,
                    "recipient": app.applicant_address,
                    "amount": str(amount),
                },
            )
            tx_hash = self.token_gateway.transfer_from(
                token=token,
                sender=caller,
                recipient=app.applicant_address,
                amount=amount,
            )

        logger.info(
            "reward disbursed",
            extra={"grant_id": grant.id, "application_id": app.id, "milestone_id": milestone_id},
        )
        return tx_hash
