# grantledger/services/review_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from grantledger.core.addresses import normalize_address, normalize_addresses
from grantledger.core.errors import (
    AuthorizationError,
    ConsistencyError,
    NotFoundError,
    ParameterError,
    ReviewAlreadySubmittedError,
    ReviewerNotEligibleError,
    StateError,
)
from grantledger.core.tx import atomic
from grantledger.models.application import Application
from grantledger.models.enums import LedgerName
from grantledger.models.grant import Grant, GrantReviewerPoolEntry, ReviewerAssignmentCount
from grantledger.models.review import Review
from grantledger.policies.capabilities import PermissionOracle
from grantledger.services import round_robin
from grantledger.services.application_service import ApplicationService
from grantledger.services.control_service import LedgerControlService
from grantledger.services.event_service import EventService
from grantledger.services.token_gateway import TokenGateway

logger = logging.getLogger(__name__)

LEDGER = LedgerName.review


@dataclass
class AutoAssignmentPreview:
    grant_id: int
    reviewers: List[str]
    num_reviewers_per_application: int
    next_application_reviewers: List[str]
    applied: bool


@dataclass
class ReviewerMigration:
    grants: List[int] = field(default_factory=list)
    reviews: List[int] = field(default_factory=list)


class ReviewService:
    """
    Review ledger: reviewer assignments, rubric config, auto-assignment
    state and reviewer payment flags.

    Auto-assignment per grant:
    - pool order is fixed by the admin; slot k of an application goes to
      pool[(last_assigned_index + k) % len(pool)]
    - last_assigned_index == assignment_slots % len(pool) after every call
    - reviewer_assignment_counts accumulate per reviewer across pool changes
    """

    def __init__(
        self,
        *,
        control: LedgerControlService,
        events: EventService,
        permissions: PermissionOracle,
        applications: ApplicationService,
        token_gateway: TokenGateway,
        trusted_callers: Iterable[str] = (),
    ):
        self.control = control
        self.events = events
        self.permissions = permissions
        self.applications = applications
        self.token_gateway = token_gateway
        self.trusted_callers = {normalize_address(a) for a in trusted_callers}

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def get_review(self, db: Session, reviewer: str, review_id: int) -> Review:
        row = db.execute(
            select(Review).where(
                Review.reviewer_address == normalize_address(reviewer),
                Review.review_id == review_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Review {review_id} of {reviewer} not found.")
        return row

    def reviews_for_application(self, db: Session, application_id: int, active_only: bool = False) -> List[Review]:
        q = select(Review).where(Review.application_id == application_id)
        if active_only:
            q = q.where(Review.is_active.is_(True))
        return list(db.execute(q.order_by(Review.review_id.asc(), Review.pk.asc())).scalars().all())

    def reviews_for_reviewer(self, db: Session, reviewer: str, active_only: bool = False) -> List[Review]:
        q = select(Review).where(Review.reviewer_address == normalize_address(reviewer))
        if active_only:
            q = q.where(Review.is_active.is_(True))
        return list(db.execute(q.order_by(Review.review_id.asc())).scalars().all())

    def _pair_reviews(self, db: Session, reviewer: str, application_id: int) -> List[Review]:
        return list(
            db.execute(
                select(Review)
                .where(
                    Review.reviewer_address == reviewer,
                    Review.application_id == application_id,
                )
                .order_by(Review.review_id.asc())
            ).scalars().all()
        )

    def pool(self, db: Session, grant_id: int) -> List[str]:
        return list(
            db.execute(
                select(GrantReviewerPoolEntry.reviewer_address)
                .where(GrantReviewerPoolEntry.grant_id == grant_id)
                .order_by(GrantReviewerPoolEntry.position.asc())
            ).scalars().all()
        )

    def assignment_counts(self, db: Session, grant_id: int) -> Dict[str, int]:
        rows = db.execute(
            select(ReviewerAssignmentCount).where(ReviewerAssignmentCount.grant_id == grant_id)
        ).scalars().all()
        return {r.reviewer_address: r.count for r in rows}

    def _get_grant(self, db: Session, grant_id: int) -> Grant:
        grant = db.get(Grant, grant_id)
        if grant is None:
            raise NotFoundError(f"Grant {grant_id} not found.")
        return grant

    def _next_review_id(self, db: Session) -> int:
        last = db.execute(select(func.max(Review.review_id))).scalar_one_or_none()
        return 1 if last is None else last + 1

    # ─────────────────────────────────────────────
    # GUARDS
    # ─────────────────────────────────────────────

    def _require_admin_or_factory(self, db: Session, workspace_id: int, caller: str) -> None:
        if caller in self.trusted_callers:
            return
        if not self.permissions.is_admin(db, workspace_id, caller):
            raise AuthorizationError("Unauthorised: Not an admin nor grantFactory")

    def _load_grant_scoped(self, db: Session, grant_id: int, workspace_id: int, message: str) -> Grant:
        grant = self._get_grant(db, grant_id)
        if grant.workspace_id != workspace_id:
            raise ConsistencyError(message)
        return grant

    def _validate_pool(
        self,
        db: Session,
        *,
        workspace_id: int,
        reviewers: Sequence[str],
        num_reviewers_per_application: int,
    ) -> List[str]:
        if num_reviewers_per_application is None or num_reviewers_per_application <= 0:
            raise ParameterError("AutoAssign: Number of reviewers per application must be positive")
        pool = normalize_addresses(reviewers)
        if not pool:
            raise ParameterError("AutoAssign: Reviewer pool must not be empty")
        if len(set(pool)) != len(pool):
            raise ParameterError("AutoAssign: Reviewer pool contains duplicates")
        for reviewer in pool:
            if not self.permissions.is_admin_or_reviewer(db, workspace_id, reviewer):
                raise ReviewerNotEligibleError(f"AutoAssign: {reviewer} is not a reviewer of workspace {workspace_id}")
        return pool

    # ─────────────────────────────────────────────
    # INTERNAL WRITES
    # ─────────────────────────────────────────────

    def _store_pool(self, db: Session, grant: Grant, pool: Sequence[str], num_reviewers_per_application: int) -> None:
        db.execute(delete(GrantReviewerPoolEntry).where(GrantReviewerPoolEntry.grant_id == grant.id))
        for position, reviewer in enumerate(pool):
            db.add(GrantReviewerPoolEntry(grant_id=grant.id, position=position, reviewer_address=reviewer))
        grant.num_reviewers_per_application = num_reviewers_per_application
        grant.assignment_slots = 0
        grant.last_assigned_index = 0
        db.flush()

    def _bump_count(self, db: Session, grant_id: int, reviewer: str, by: int = 1) -> None:
        row = db.execute(
            select(ReviewerAssignmentCount).where(
                ReviewerAssignmentCount.grant_id == grant_id,
                ReviewerAssignmentCount.reviewer_address == reviewer,
            )
        ).scalar_one_or_none()
        if row is None:
            row = ReviewerAssignmentCount(grant_id=grant_id, reviewer_address=reviewer, count=0)
            db.add(row)
        row.count += by
        db.flush()

    def _create_review(self, db: Session, *, reviewer: str, application: Application, actor: str) -> Review:
        review = Review(
            review_id=self._next_review_id(db),
            reviewer_address=reviewer,
            application_id=application.id,
            workspace_id=application.workspace_id,
            grant_id=application.grant_id,
            is_active=True,
            has_submitted=False,
            payment_done=False,
        )
        db.add(review)
        db.flush()

        self.events.emit(
            db,
            ledger=LEDGER.value,
            event_type="ReviewerAssigned",
            actor=actor,
            workspace_id=application.workspace_id,
            grant_id=application.grant_id,
            application_id=application.id,
            payload={"reviewer": reviewer, "review_id": review.review_id, "active": True},
        )
        return review

    def _assign_pass(self, db: Session, *, grant: Grant, application: Application, pool: Sequence[str], actor: str) -> List[Review]:
        """
        One round-robin pass: num_reviewers_per_application slots for one
        application, cursor carried on the grant.
        """
        k = grant.num_reviewers_per_application
        positions = round_robin.slot_positions(grant.last_assigned_index, len(pool), k)

        created: List[Review] = []
        for position in positions:
            reviewer = pool[position]
            if not self.permissions.is_admin_or_reviewer(db, grant.workspace_id, reviewer):
                raise ReviewerNotEligibleError(
                    f"AutoAssign: Reviewer {reviewer} no longer eligible in workspace {grant.workspace_id}"
                )
            created.append(self._create_review(db, reviewer=reviewer, application=application, actor=actor))
            self._bump_count(db, grant.id, reviewer)

        grant.assignment_slots += k
        grant.last_assigned_index = round_robin.cursor_for(grant.assignment_slots, len(pool))
        db.flush()
        return created

    # ─────────────────────────────────────────────
    # RUBRICS
    # ─────────────────────────────────────────────

    def set_rubrics(
        self,
        db: Session,
        *,
        caller: str,
        workspace_id: int,
        grant_id: int,
        rubric_metadata_hash: str,
    ) -> Grant:
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        self._require_admin_or_factory(db, workspace_id, caller)
        grant = self._load_grant_scoped(db, grant_id, workspace_id, "RubricsSet: Unauthorised")
        if grant.num_reviews_submitted > 0:
            raise StateError("RubricsSet: Reviews non-zero")

        with atomic(db):
            grant.rubric_metadata_hash = rubric_metadata_hash
            db.flush()
            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="RubricsSet",
                actor=caller,
                workspace_id=workspace_id,
                grant_id=grant.id,
                payload={"rubric_metadata_hash": rubric_metadata_hash},
            )
        return grant

    # ─────────────────────────────────────────────
    # AUTO ASSIGNMENT
    # ─────────────────────────────────────────────

    def enable_auto_assignment(
        self,
        db: Session,
        *,
        caller: str,
        workspace_id: int,
        grant_id: int,
        reviewers: Sequence[str],
        num_reviewers_per_application: int,
    ) -> List[Review]:
        """
        Rules:
        - Caller is a workspace admin or the trusted grant factory
        - Auto-assignment currently disabled
        - 0 < num_reviewers_per_application <= len(reviewers)
        - Every pool member is an active admin/reviewer of the workspace

        Backfill: every pre-review application of the grant without an active
        review gets a full pass, in application-id order, cursor carried over.
        """
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        self._require_admin_or_factory(db, workspace_id, caller)
        grant = self._load_grant_scoped(db, grant_id, workspace_id, "AutoAssign: Unauthorised")
        if grant.auto_assign_enabled:
            raise StateError("AutoAssign: Already enabled")

        pool = self._validate_pool(
            db,
            workspace_id=workspace_id,
            reviewers=reviewers,
            num_reviewers_per_application=num_reviewers_per_application,
        )
        if len(pool) < num_reviewers_per_application:
            raise ParameterError("AutoAssign: Reviewer pool smaller than reviewers per application")

        created: List[Review] = []
        with atomic(db):
            self._store_pool(db, grant, pool, num_reviewers_per_application)
            grant.auto_assign_enabled = True
            db.flush()

            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="AutoAssignmentEnabled",
                actor=caller,
                workspace_id=workspace_id,
                grant_id=grant.id,
                payload={"reviewers": pool, "num_reviewers_per_application": num_reviewers_per_application},
            )

            for app in self.applications.pending_review(db, grant.id):
                if self.reviews_for_application(db, app.id, active_only=True):
                    continue
                created.extend(self._assign_pass(db, grant=grant, application=app, pool=pool, actor=caller))

        logger.info(
            "auto assignment enabled",
            extra={"grant_id": grant.id, "pool_size": len(pool), "backfilled_reviews": len(created)},
        )
        return created

    def set_rubrics_and_enable_auto_assignment(
        self,
        db: Session,
        *,
        caller: str,
        workspace_id: int,
        grant_id: int,
        reviewers: Sequence[str],
        num_reviewers_per_application: int,
        rubric_metadata_hash: Optional[str],
    ) -> List[Review]:
        with atomic(db):
            if rubric_metadata_hash:
                self.set_rubrics(
                    db,
                    caller=caller,
                    workspace_id=workspace_id,
                    grant_id=grant_id,
                    rubric_metadata_hash=rubric_metadata_hash,
                )
            return self.enable_auto_assignment(
                db,
                caller=caller,
                workspace_id=workspace_id,
                grant_id=grant_id,
                reviewers=reviewers,
                num_reviewers_per_application=num_reviewers_per_application,
            )

    def update_auto_assignment(
        self,
        db: Session,
        *,
        caller: str,
        workspace_id: int,
        grant_id: int,
        reviewers: Sequence[str],
        num_reviewers_per_application: int,
        dry_run: bool = False,
    ) -> AutoAssignmentPreview:
        """
        Replaces pool and per-application count and restarts the cursor at 0.
        Existing reviews are left alone; counts keep accumulating per reviewer.
        With dry_run nothing is written; the preview shows who the next
        application would get.
        """
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        self._require_admin_or_factory(db, workspace_id, caller)
        grant = self._load_grant_scoped(db, grant_id, workspace_id, "AutoAssign: Unauthorised")
        if not grant.auto_assign_enabled:
            raise StateError("AutoAssign: Not enabled")

        pool = self._validate_pool(
            db,
            workspace_id=workspace_id,
            reviewers=reviewers,
            num_reviewers_per_application=num_reviewers_per_application,
        )
        next_batch, _ = round_robin.plan(
            pool, cursor=0, num_per_application=num_reviewers_per_application, num_applications=1
        )
        preview = AutoAssignmentPreview(
            grant_id=grant.id,
            reviewers=pool,
            num_reviewers_per_application=num_reviewers_per_application,
            next_application_reviewers=next_batch[0],
            applied=not dry_run,
        )
        if dry_run:
            return preview

        with atomic(db):
            self._store_pool(db, grant, pool, num_reviewers_per_application)
            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="AutoAssignmentUpdated",
                actor=caller,
                workspace_id=workspace_id,
                grant_id=grant.id,
                payload={"reviewers": pool, "num_reviewers_per_application": num_reviewers_per_application},
            )

        logger.info("auto assignment updated", extra={"grant_id": grant.id, "pool_size": len(pool)})
        return preview

    def disable_auto_assignment(self, db: Session, *, caller: str, workspace_id: int, grant_id: int) -> Grant:
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        self._require_admin_or_factory(db, workspace_id, caller)
        grant = self._load_grant_scoped(db, grant_id, workspace_id, "AutoAssign: Unauthorised")
        if not grant.auto_assign_enabled:
            raise StateError("AutoAssign: Not enabled")

        with atomic(db):
            grant.auto_assign_enabled = False
            db.flush()
            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="AutoAssignmentDisabled",
                actor=caller,
                workspace_id=workspace_id,
                grant_id=grant.id,
            )
        return grant

    def on_application_submitted(self, db: Session, *, application: Application) -> None:
        grant = self._get_grant(db, application.grant_id)
        if not grant.auto_assign_enabled:
            return
        self.control.ensure_not_paused(db, LEDGER)
        pool = self.pool(db, grant.id)
        with atomic(db):
            self._assign_pass(
                db,
                grant=grant,
                application=application,
                pool=pool,
                actor=application.applicant_address,
            )

    # ─────────────────────────────────────────────
    # MANUAL ASSIGNMENT
    # ─────────────────────────────────────────────

    def assign_reviewers(
        self,
        db: Session,
        *,
        caller: str,
        workspace_id: int,
        application_id: int,
        grant_id: int,
        reviewers: Sequence[str],
        active: Sequence[bool],
    ) -> List[Review]:
        """
        Rules:
        - Caller is an admin of the workspace, which must own the application
        - Activating requires the reviewer to hold a workspace role
        - Unassigning a reviewer who already submitted is refused
        - Reactivating reuses the reviewer's previous record for the application
        """
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        if len(reviewers) != len(active):
            raise ParameterError("AssignReviewer: Parameters length mismatch")
        if not self.permissions.is_admin(db, workspace_id, caller):
            raise AuthorizationError("Unauthorised: Not an admin")

        app = self.applications.get_application(db, application_id)
        if app.workspace_id != workspace_id:
            raise ConsistencyError("AssignReviewer: Unauthorized")
        if app.grant_id != grant_id:
            raise ConsistencyError("AssignReviewer: Application does not belong to grant")

        addrs = normalize_addresses(reviewers)

        for reviewer, flag in zip(addrs, active):
            pair = self._pair_reviews(db, reviewer, app.id)
            if flag:
                if not self.permissions.is_admin_or_reviewer(db, workspace_id, reviewer):
                    raise ReviewerNotEligibleError(f"AssignReviewer: {reviewer} is not a workspace reviewer")
            else:
                live = [r for r in pair if r.is_active]
                if not live:
                    raise StateError(f"AssignReviewer: {reviewer} is not assigned")
                if any(r.has_submitted for r in live):
                    raise ReviewAlreadySubmittedError("AssignReviewer: Review already submitted")

        touched: List[Review] = []
        with atomic(db):
            for reviewer, flag in zip(addrs, active):
                pair = self._pair_reviews(db, reviewer, app.id)
                if flag:
                    live = [r for r in pair if r.is_active]
                    if live:
                        touched.extend(live)
                        continue
                    dormant = [r for r in pair if r.migrated_to is None]
                    if dormant:
                        review = dormant[-1]
                        review.is_active = True
                        db.flush()
                        self.events.emit(
                            db,
                            ledger=LEDGER.value,
                            event_type="ReviewerAssigned",
                            actor=caller,
                            workspace_id=workspace_id,
                            grant_id=app.grant_id,
                            application_id=app.id,
                            payload={"reviewer": reviewer, "review_id": review.review_id, "active": True},
                        )
                    else:
                        review = self._create_review(db, reviewer=reviewer, application=app, actor=caller)
                    touched.append(review)
                else:
                    for review in pair:
                        if not review.is_active:
                            continue
                        review.is_active = False
                        db.flush()
                        self.events.emit(
                            db,
                            ledger=LEDGER.value,
                            event_type="ReviewerUnassigned",
                            actor=caller,
                            workspace_id=workspace_id,
                            grant_id=app.grant_id,
                            application_id=app.id,
                            payload={"reviewer": reviewer, "review_id": review.review_id, "active": False},
                        )
                        touched.append(review)

        logger.info(
            "reviewers assigned",
            extra={"application_id": app.id, "workspace_id": workspace_id, "count": len(touched)},
        )
        return touched

    # ─────────────────────────────────────────────
    # REVIEW SUBMISSION
    # ─────────────────────────────────────────────

    def submit_review(
        self,
        db: Session,
        *,
        caller: str,
        application_id: int,
        workspace_id: int,
        grant_id: int,
        feedback_metadata_hash: str,
    ) -> List[Review]:
        """
        Resubmission overwrites the feedback hash; the grant's submitted-review
        counter moves only on a reviewer's first submission for the application.
        """
        caller = normalize_address(caller)
        self.control.ensure_not_paused(db, LEDGER)

        app = self.applications.get_application(db, application_id)
        if app.workspace_id != workspace_id:
            raise ConsistencyError("ReviewSubmit: Application does not belong to workspace")
        if app.grant_id != grant_id:
            raise ConsistencyError("ReviewSubmit: Application does not belong to grant")
        if not self.permissions.is_admin_or_reviewer(db, workspace_id, caller):
            raise AuthorizationError("Unauthorised: Neither an admin nor a reviewer")

        pair = self._pair_reviews(db, caller, app.id)
        live = [r for r in pair if r.is_active]
        if not live:
            if pair:
                raise AuthorizationError("ReviewSubmit: Revoked access")
            raise AuthorizationError("ReviewSubmit: Not assigned")

        first_submission = not any(r.has_submitted for r in live)
        grant = self._get_grant(db, app.grant_id)

        with atomic(db):
            for review in live:
                review.feedback_metadata_hash = feedback_metadata_hash
                review.has_submitted = True
            if first_submission:
                grant.num_reviews_submitted += 1
            db.flush()

            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="ReviewSubmitted",
                actor=caller,
                workspace_id=workspace_id,
                grant_id=app.grant_id,
                application_id=app.id,
                payload={
                    "review_ids": [r.review_id for r in live],
                    "feedback_metadata_hash": feedback_metadata_hash,
                    "resubmission": not first_submission,
                },
            )
        return live

    # ─────────────────────────────────────────────
    # REVIEWER PAYMENTS
    # ─────────────────────────────────────────────

    def _load_payable_reviews(
        self,
        db: Session,
        *,
        caller: str,
        workspace_id: int,
        application_ids: Sequence[int],
        reviewer: str,
        review_ids: Sequence[int],
    ) -> List[Review]:
        if len(application_ids) != len(review_ids):
            raise ParameterError("ChangePaymentStatus: Parameters length mismatch")
        if not self.permissions.is_admin(db, workspace_id, caller):
            raise AuthorizationError("Unauthorised: Not an admin")

        rows: List[Review] = []
        for application_id, review_id in zip(application_ids, review_ids):
            review = self.get_review(db, reviewer, review_id)
            # authority comes from the review's own workspace, not the argument
            if not self.permissions.is_admin(db, review.workspace_id, caller):
                raise AuthorizationError("ChangePaymentStatus: Unauthorised")
            if review.application_id != application_id:
                raise ConsistencyError("ChangePaymentStatus: Review does not belong to application")
            rows.append(review)
        return rows

    def mark_payment_done(
        self,
        db: Session,
        *,
        caller: str,
        workspace_id: int,
        application_ids: Sequence[int],
        reviewer: str,
        review_ids: Sequence[int],
        token: str,
        amount: int,
        transaction_hash: str,
    ) -> List[Review]:
        """
        Records a payment made outside the ledger.
        """
        caller = normalize_address(caller)
        reviewer = normalize_address(reviewer)
        self.control.ensure_not_paused(db, LEDGER)

        rows = self._load_payable_reviews(
            db,
            caller=caller,
            workspace_id=workspace_id,
            application_ids=application_ids,
            reviewer=reviewer,
            review_ids=review_ids,
        )

        with atomic(db):
            for review in rows:
                review.payment_done = True
            db.flush()
            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="ReviewPaymentMarkedDone",
                actor=caller,
                workspace_id=workspace_id,
                payload={
                    "reviewer": reviewer,
                    "review_ids": list(review_ids),
                    "application_ids": list(application_ids),
                    "token": token,
                    "amount": str(amount),
                    "transaction_hash": transaction_hash,
                },
            )
        return rows

    def fulfill_payment(
        self,
        db: Session,
        *,
        caller: str,
        workspace_id: int,
        application_ids: Sequence[int],
        reviewer: str,
        review_ids: Sequence[int],
        token: str,
        amount: int,
    ) -> List[Review]:
        """
        Transfers `amount` from the caller to the reviewer and flags the
        reviews paid. Flag update and transfer commit or fail together.
        """
        caller = normalize_address(caller)
        reviewer = normalize_address(reviewer)
        self.control.ensure_not_paused(db, LEDGER)

        if amount <= 0:
            raise ParameterError("ChangePaymentStatus: Amount must be positive")

        rows = self._load_payable_reviews(
            db,
            caller=caller,
            workspace_id=workspace_id,
            application_ids=application_ids,
            reviewer=reviewer,
            review_ids=review_ids,
        )
        if any(r.payment_done for r in rows):
            raise StateError("ChangePaymentStatus: Review already paid")

        with atomic(db):
            for review in rows:
                review.payment_done = True
            db.flush()

            tx_hash = self.token_gateway.transfer_from(
                token=token,
                sender=caller,
                recipient=reviewer,
                amount=amount,
            )

            self.events.emit(
                db,
                ledger=LEDGER.value,
                event_type="ReviewPaymentFulfilled",
                actor=caller,
                workspace_id=workspace_id,
                payload={
                    "reviewer": reviewer,
                    "review_ids": list(review_ids),
                    "application_ids": list(application_ids),
                    "token": token,
                    "amount": str(amount),
                    "transaction_hash": tx_hash,
                },
            )

        logger.info(
            "reviewer payment fulfilled",
            extra={"workspace_id": workspace_id, "reviewer": reviewer, "reviews": len(rows)},
        )
        return rows

    # ─────────────────────────────────────────────
    # WALLET MIGRATION
    # ─────────────────────────────────────────────

    def migrate_reviewer(
        self,
        db: Session,
        *,
        caller: str,
        old_address: str,
        new_address: str,
    ) -> ReviewerMigration:
        """
        - Pool entries are replaced in place (position, hence cursor meaning,
          is preserved)
        - Assignment counts move additively onto the new wallet
        - Reviews are re-keyed: a copy under the new wallet with the same
          review_id, the old row deactivated and pointing at the new wallet;
          a wallet migrating back gets its own earlier row restored in place
        Refuses to merge if both wallets hold an active review for the same
        application, or share a reviewer pool.
        """
        caller = normalize_address(caller)
        old_address = normalize_address(old_address)
        new_address = normalize_address(new_address)

        if caller != old_address:
            raise AuthorizationError("Only fromWallet/owner can migrate")
        self.control.ensure_not_paused(db, LEDGER)

        old_reviews = [r for r in self.reviews_for_reviewer(db, old_address) if r.migrated_to is None]
        new_active_apps = {r.application_id for r in self.reviews_for_reviewer(db, new_address, active_only=True)}
        for review in old_reviews:
            if review.is_active and review.application_id in new_active_apps:
                raise StateError(
                    f"Migration: {new_address} already has an active review for application {review.application_id}"
                )

        pool_entries = list(
            db.execute(
                select(GrantReviewerPoolEntry).where(GrantReviewerPoolEntry.reviewer_address == old_address)
            ).scalars().all()
        )
        for entry in pool_entries:
            if new_address in self.pool(db, entry.grant_id):
                raise StateError(f"Migration: {new_address} is already in the reviewer pool of grant {entry.grant_id}")

        result = ReviewerMigration()
        with atomic(db):
            for entry in pool_entries:
                entry.reviewer_address = new_address
                result.grants.append(entry.grant_id)
            db.flush()

            old_counts = db.execute(
                select(ReviewerAssignmentCount).where(ReviewerAssignmentCount.reviewer_address == old_address)
            ).scalars().all()
            for row in old_counts:
                moved, row.count = row.count, 0
                self._bump_count(db, row.grant_id, new_address, by=moved)
                if row.grant_id not in result.grants:
                    result.grants.append(row.grant_id)

            for grant_id in result.grants:
                grant = self._get_grant(db, grant_id)
                self.events.emit(
                    db,
                    ledger=LEDGER.value,
                    event_type="ReviewerPoolMigrate",
                    actor=caller,
                    workspace_id=grant.workspace_id,
                    grant_id=grant_id,
                    payload={"from": old_address, "to": new_address},
                )

            for review in old_reviews:
                existing = db.execute(
                    select(Review).where(
                        Review.reviewer_address == new_address,
                        Review.review_id == review.review_id,
                    )
                ).scalar_one_or_none()
                if existing is None:
                    db.add(
                        Review(
                            review_id=review.review_id,
                            reviewer_address=new_address,
                            application_id=review.application_id,
                            workspace_id=review.workspace_id,
                            grant_id=review.grant_id,
                            feedback_metadata_hash=review.feedback_metadata_hash,
                            has_submitted=review.has_submitted,
                            is_active=review.is_active,
                            payment_done=review.payment_done,
                        )
                    )
                elif existing.migrated_to == old_address:
                    # the wallet is returning to a key it previously migrated away from
                    existing.feedback_metadata_hash = review.feedback_metadata_hash
                    existing.has_submitted = review.has_submitted
                    existing.is_active = review.is_active
                    existing.payment_done = review.payment_done
                    existing.migrated_to = None
                else:
                    raise ConsistencyError(f"Migration: review id {review.review_id} already exists for {new_address}")
                review.is_active = False
                review.migrated_to = new_address
                db.flush()

                self.events.emit(
                    db,
                    ledger=LEDGER.value,
                    event_type="ReviewMigrate",
                    actor=caller,
                    workspace_id=review.workspace_id,
                    grant_id=review.grant_id,
                    application_id=review.application_id,
                    payload={"review_id": review.review_id, "from": old_address, "to": new_address},
                )
                result.reviews.append(review.review_id)

        logger.info(
            "reviewer migrated",
            extra={"from": old_address, "to": new_address, "reviews": len(result.reviews)},
        )
        return result
