# grantledger/services/application_service.py
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from grantledger.core.addresses import normalize_address
from grantledger.core.application_states import (
    PRE_REVIEW_STATES,
    TERMINAL_STATES,
    can_admin_transition,
    can_applicant_transition,
)
from grantledger.core.errors import (
    AuthorizationError,
    ConsistencyError,
    MilestonesIncompleteError,
    NotFoundError,
    ParameterError,
    StateError,
)
from grantledger.core.tx import atomic
from grantledger.models.application import Application, ApplicationMilestone
from grantledger.models.enums import ApplicationState, LedgerName, MilestoneState
from grantledger.policies.capabilities import ApplicationEventSink, PermissionOracle
from grantledger.services.control_service import LedgerControlService
from grantledger.services.event_service import EventService
from grantledger.services.grant_service import GrantService

logger = logging.getLogger(__name__)

LEDGER = LedgerName.application

OPEN_STATES = sorted(s.value for s in ApplicationState if s not in TERMINAL_STATES)


def _as_state(value: Union[ApplicationState, str]) -> ApplicationState:
    try:
        return ApplicationState(value)
    except ValueError:
        raise ParameterError(f"Unknown application state: {value!r}")


class ApplicationService:
    """
    Application ledger: applications, their state machine and milestones.

    Transition graph:
        submitted --admin--> resubmit | approved | rejected
        resubmit  --applicant (metadata update)--> submitted
        approved  --admin (all milestones approved)--> completed
    rejected and completed are terminal.
    """

    def __init__(
        self,
        *,
        control: LedgerControlService,
        events: EventService,
        permissions: PermissionOracle,
        grants: GrantService,
    ):
        self.control = control
        self.events = events
        self.permissions = permissions
        self.grants = grants
        self.event_sink: Optional[ApplicationEventSink] = None

    def bind_event_sink(self, sink: ApplicationEventSink) -> None:
        self.event_sink = sink

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def get_application(self, db: Session, application_id: int) -> Application:
        app = db.get(Application, application_id)
        if app is None:
            raise NotFoundError(f"Application {application_id} not found.")
        return app

    def list_for_grant(
        self,
        db: Session,
        grant_id: int,
        states: Optional[Iterable[ApplicationState]] = None,
    ) -> List[Application]:
        q = select(Application).where(Application.grant_id == grant_id)
        if states is not None:
            q = q.where(Application.state.in_([s.value for s in states]))
        return list(db.execute(q.order_by(Application.id.asc())).scalars().all())

    def pending_review(self, db: Session, grant_id: int) -> List[Application]:
        """
        Applications the auto-assignment backfill should cover, in id order.
        """
        return self.list_for_grant(db, grant_id, states=PRE_REVIEW_STATES)

    def list_for_applicant(self, db: Session, address: str) -> List[Application]:
        return list(
            db.execute(
                select(Application)
                .where(Application.applicant_address == normalize_address(address))
                .order_by(Application.id.asc())
            ).scalars().all()
        )

    def milestone_states(self, db: Session, application_id: int) -> Dict[int, MilestoneState]:
        rows = db.execute(
            select(ApplicationMilestone).where(ApplicationMilestone.application_id == application_id)
        ).scalars().all()
        return {r.milestone_index: MilestoneState(r.state) for r in rows}

    def _get_milestone(self, db: Session, application_id: int, milestone_id: int) -> Optional[ApplicationMilestone]:
        return db.execute(
            select(ApplicationMilestone).where(
                ApplicationMilestone.application_id == application_id,
                ApplicationMilestone.milestone_index == milestone_id,
            )
        ).scalar_one_or_none()

    def _has_open_application(self, db: Session, grant_id: int, applicant: str) -> bool:
        return (
            db.execute(
                select(Application.id).where(
                    Application.grant_id == grant_id,
                    Application.applicant_address == applicant,
                    Application.state.in_(OPEN_STATES),
                )
            ).first()
            is not None
        )

    # ─────────────────────────────────────────────
    # GUARDS
    # ─────────────────────────────────────────────

    def _load_scoped(self, db: Session, application_id: int, workspace_id: int) -> Application:
        app = self.get_application(db, application_id)
        if app.workspace_id != workspace_id:
            raise ConsistencyError("Application does not belong to the given workspace.")
        return app

    def _require_owner(self, app: Application, caller: str) -> None:
        if app.applicant_address != caller:
            raise AuthorizationError("Unauthorised: Not the application owner")

    def _check_milestone_index(self, app: Application, milestone_id: int) -> None:
        if milestone_id < 0 or milestone_id >= app.milestone_count:
            raise ParameterError(f"Milestone {milestone_id} does not exist on application {app.id}.")

    # ─────────────────────────────────────────────
    # APPLICANT OPERATIONS
    # ─────────────────────────────────────────────

    def submit_application(
        self,
        db: Session,
        *,
        caller: str,
        grant_id: int,
        metadata_hash: str,
        milestone_count: int,
    ) -> Application:
        """
        Rules:
        - Grant must be active
        - No other open application by the same applicant on this grant
        - Auto-assignment (if enabled) runs inside the same transaction; if
          it fails the application is not recorded
        """
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        if milestone_count < 0:
            raise ParameterError("Milestone count must not be negative.")

        grant = self.grants.get_grant(db, grant_id)
        if not grant.is_active:
            raise StateError("ApplicationSubmit: Invalid grant")
        if self._has_open_application(db, grant_id, caller):
            raise StateError("ApplicationSubmit: Already applied to grant once")

        with atomic(db):
            app = Application(
                grant_id=grant.id,
                workspace_id=grant.workspace_id,
                applicant_address=caller,
                metadata_hash=metadata_hash,
                state=ApplicationState.submitted.value,
                milestone_count=milestone_count,
                milestones_completed=0,
            )
            db.add(app)
            db.flush()

            self.grants.increment_applicant(db, grant=grant)

            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="ApplicationSubmitted",
                actor=caller,
                workspace_id=app.workspace_id,
                grant_id=grant.id,
                application_id=app.id,
                payload={"metadata_hash": metadata_hash, "milestone_count": milestone_count},
            )

            if self.event_sink is not None:
                self.event_sink.on_application_submitted(db, application=app)

        logger.info(
            "application submitted",
            extra={"application_id": app.id, "grant_id": grant.id, "applicant": caller},
        )
        return app

    def update_application_metadata(
        self,
        db: Session,
        *,
        caller: str,
        application_id: int,
        metadata_hash: str,
        milestone_count: Optional[int] = None,
    ) -> Application:
        """
        Applicant resubmission: resubmit -> submitted.
        """
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        app = self.get_application(db, application_id)
        self._require_owner(app, caller)

        if not can_applicant_transition(ApplicationState(app.state), ApplicationState.submitted):
            raise StateError("ApplicationUpdate: Invalid state")
        if milestone_count is not None and milestone_count < 0:
            raise ParameterError("Milestone count must not be negative.")

        with atomic(db):
            app.metadata_hash = metadata_hash
            if milestone_count is not None:
                app.milestone_count = milestone_count
            app.state = ApplicationState.submitted.value
            db.flush()

            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="ApplicationUpdated",
                actor=caller,
                workspace_id=app.workspace_id,
                grant_id=app.grant_id,
                application_id=app.id,
                payload={
                    "metadata_hash": metadata_hash,
                    "state": app.state,
                    "milestone_count": app.milestone_count,
                },
            )
        return app

    def request_milestone_approval(
        self,
        db: Session,
        *,
        caller: str,
        application_id: int,
        milestone_id: int,
        reason_metadata_hash: str = "",
    ) -> ApplicationMilestone:
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        app = self.get_application(db, application_id)
        self._require_owner(app, caller)
        if app.state != ApplicationState.approved.value:
            raise StateError("MilestoneStateUpdate: Invalid application state")
        self._check_milestone_index(app, milestone_id)
        if self._get_milestone(db, app.id, milestone_id) is not None:
            raise StateError("MilestoneStateUpdate: Invalid milestone state")

        with atomic(db):
            row = ApplicationMilestone(
                application_id=app.id,
                milestone_index=milestone_id,
                state=MilestoneState.requested.value,
            )
            db.add(row)
            db.flush()

            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="MilestoneUpdated",
                actor=caller,
                workspace_id=app.workspace_id,
                grant_id=app.grant_id,
                application_id=app.id,
                payload={
                    "milestone_id": milestone_id,
                    "state": row.state,
                    "reason_metadata_hash": reason_metadata_hash,
                },
            )
        return row

    # ─────────────────────────────────────────────
    # ADMIN OPERATIONS
    # ─────────────────────────────────────────────

    def update_application_state(
        self,
        db: Session,
        *,
        caller: str,
        application_id: int,
        workspace_id: int,
        state: Union[ApplicationState, str],
        reason_metadata_hash: str = "",
    ) -> Application:
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        target = _as_state(state)
        app = self._load_scoped(db, application_id, workspace_id)
        if not self.permissions.is_admin(db, app.workspace_id, caller):
            raise AuthorizationError("Unauthorised: Not an admin")

        current = ApplicationState(app.state)
        if not can_admin_transition(current, target):
            raise StateError(f"ApplicationStateUpdate: Invalid state transition {current.value} -> {target.value}")

        with atomic(db):
            app.state = target.value
            db.flush()

            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="ApplicationUpdated",
                actor=caller,
                workspace_id=app.workspace_id,
                grant_id=app.grant_id,
                application_id=app.id,
                payload={"from": current.value, "state": target.value, "reason_metadata_hash": reason_metadata_hash},
            )

        logger.info(
            "application state changed",
            extra={"application_id": app.id, "from_state": current.value, "to_state": target.value},
        )
        return app

    def approve_milestone(
        self,
        db: Session,
        *,
        caller: str,
        application_id: int,
        milestone_id: int,
        workspace_id: int,
        reason_metadata_hash: str = "",
    ) -> ApplicationMilestone:
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        app = self._load_scoped(db, application_id, workspace_id)
        if not self.permissions.is_admin(db, app.workspace_id, caller):
            raise AuthorizationError("Unauthorised: Not an admin")
        if app.state != ApplicationState.approved.value:
            raise StateError("MilestoneStateUpdate: Invalid application state")
        self._check_milestone_index(app, milestone_id)

        row = self._get_milestone(db, app.id, milestone_id)
        if row is not None and row.state == MilestoneState.approved.value:
            raise StateError("MilestoneStateUpdate: Milestone already approved")

        with atomic(db):
            if row is None:
                row = ApplicationMilestone(application_id=app.id, milestone_index=milestone_id)
                db.add(row)
            row.state = MilestoneState.approved.value
            app.milestones_completed += 1
            db.flush()

            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="MilestoneUpdated",
                actor=caller,
                workspace_id=app.workspace_id,
                grant_id=app.grant_id,
                application_id=app.id,
                payload={
                    "milestone_id": milestone_id,
                    "state": row.state,
                    "reason_metadata_hash": reason_metadata_hash,
                },
            )
        return row

    def complete_application(
        self,
        db: Session,
        *,
        caller: str,
        application_id: int,
        workspace_id: int,
        reason_metadata_hash: str = "",
    ) -> Application:
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        app = self._load_scoped(db, application_id, workspace_id)
        if not self.permissions.is_admin(db, app.workspace_id, caller):
            raise AuthorizationError("Unauthorised: Not an admin")
        if app.state != ApplicationState.approved.value:
            raise StateError("CompleteApplication: Invalid application state")

        approved = [
            idx for idx, st in self.milestone_states(db, app.id).items() if st == MilestoneState.approved
        ]
        if len(approved) != app.milestone_count:
            raise MilestonesIncompleteError("CompleteApplication: Milestones incomplete")

        with atomic(db):
            app.state = ApplicationState.completed.value
            db.flush()

            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="ApplicationUpdated",
                actor=caller,
                workspace_id=app.workspace_id,
                grant_id=app.grant_id,
                application_id=app.id,
                payload={"state": app.state, "reason_metadata_hash": reason_metadata_hash},
            )
        return app

    # ─────────────────────────────────────────────
    # WALLET MIGRATION
    # ─────────────────────────────────────────────

    def migrate_applicant(
        self,
        db: Session,
        *,
        caller: str,
        old_address: str,
        new_address: str,
    ) -> List[int]:
        """
        Re-owns every application of old_address. Fails if the new wallet
        already has an open application on a grant the old wallet also has
        an open application on.
        """
        caller = normalize_address(caller)
        old_address = normalize_address(old_address)
        new_address = normalize_address(new_address)

        if caller != old_address:
            raise AuthorizationError("Only fromWallet/owner can migrate")
        self.control.ensure_not_paused(db, LEDGER)

        moved: List[int] = []
        with atomic(db):
            for app in self.list_for_applicant(db, old_address):
                if app.state in OPEN_STATES and self._has_open_application(db, app.grant_id, new_address):
                    raise StateError(
                        f"Migration: {new_address} already has an open application on grant {app.grant_id}"
                    )
                app.applicant_address = new_address
                db.flush()

                self.events.emit(
                    db,
                    ledger=LEDGER.value,
                    event_type="ApplicationMigrate",
                    actor=caller,
                    workspace_id=app.workspace_id,
                    grant_id=app.grant_id,
                    application_id=app.id,
                    payload={"from": old_address, "to": new_address},
                )
                moved.append(app.id)
        return moved
