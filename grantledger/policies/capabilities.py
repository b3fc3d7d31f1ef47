# grantledger/policies/capabilities.py
from __future__ import annotations

from typing import Protocol

from sqlalchemy.orm import Session

from grantledger.models.application import Application


class PermissionOracle(Protocol):
    """
    The single authorization gate every ledger calls.
    Implemented by the workspace directory; no other component decides roles.
    """

    def is_admin(self, db: Session, workspace_id: int, address: str) -> bool:
        ...

    def is_admin_or_reviewer(self, db: Session, workspace_id: int, address: str) -> bool:
        ...


class ApplicationEventSink(Protocol):
    """
    Notified synchronously, inside the submitting transaction, whenever the
    application ledger accepts a new application.
    """

    def on_application_submitted(self, db: Session, *, application: Application) -> None:
        ...
