# grantledger/services/migration_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from sqlalchemy.orm import Session

from grantledger.core.addresses import normalize_address
from grantledger.core.errors import AuthorizationError, ParameterError
from grantledger.core.tx import atomic
from grantledger.models.enums import LedgerName
from grantledger.services.application_service import ApplicationService
from grantledger.services.control_service import LedgerControlService
from grantledger.services.event_service import EventService
from grantledger.services.review_service import ReviewService
from grantledger.services.workspace_service import WorkspaceService

logger = logging.getLogger(__name__)


@dataclass
class WalletMigrationResult:
    old_address: str
    new_address: str
    workspaces: List[int] = field(default_factory=list)
    applications: List[int] = field(default_factory=list)
    grants: List[int] = field(default_factory=list)
    reviews: List[int] = field(default_factory=list)


class MigrationService:
    """
    Self-service wallet migration across the workspace, application and
    review ledgers. One transaction: any failing step leaves every ledger
    exactly as it was.
    """

    def __init__(
        self,
        *,
        control: LedgerControlService,
        events: EventService,
        workspaces: WorkspaceService,
        applications: ApplicationService,
        reviews: ReviewService,
    ):
        self.control = control
        self.events = events
        self.workspaces = workspaces
        self.applications = applications
        self.reviews = reviews

    def migrate_wallet(
        self,
        db: Session,
        *,
        caller: str,
        old_address: str,
        new_address: str,
    ) -> WalletMigrationResult:
        caller = normalize_address(caller)
        old_address = normalize_address(old_address)
        new_address = normalize_address(new_address)

        # only the holder of the old key can prove control of it
        if caller != old_address:
            raise AuthorizationError("Only fromWallet/owner can migrate")
        if old_address == new_address:
            raise ParameterError("Migration: New wallet must differ from the old wallet")

        self.control.ensure_not_paused(db, LedgerName.workspace, LedgerName.application, LedgerName.review)

        result = WalletMigrationResult(old_address=old_address, new_address=new_address)
        with atomic(db):
            result.workspaces = self.workspaces.migrate_identity(
                db, caller=caller, old_address=old_address, new_address=new_address
            )
            result.applications = self.applications.migrate_applicant(
                db, caller=caller, old_address=old_address, new_address=new_address
            )
            moved = self.reviews.migrate_reviewer(
                db, caller=caller, old_address=old_address, new_address=new_address
            )
            result.grants = moved.grants
            result.reviews = moved.reviews

            self.events.emit(
                db,
                ledger=LedgerName.workspace.value,
                event_type="WalletMigrated",
                actor=caller,
                payload={
                    "from": old_address,
                    "to": new_address,
                    "workspaces": result.workspaces,
                    "applications": result.applications,
                    "grants": result.grants,
                    "reviews": result.reviews,
                },
            )

        logger.info(
            "wallet migrated",
            extra={
                "from": old_address,
                "to": new_address,
                "workspaces": len(result.workspaces),
                "reviews": len(result.reviews),
            },
        )
        return result
