import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# FORCE model registration
import grantledger.models  # noqa

from grantledger.core.config import Settings
from grantledger.core.errors import ExternalCallError
from grantledger.db.base import Base
from grantledger.models.enums import WorkspaceRole
from grantledger.services.registry import build_ledgers

ADMIN = "0xadmin"
OPERATOR = "0xoperator"
FACTORY = "grant-factory"
REVIEWERS = ["0xr1", "0xr2", "0xr3", "0xr4", "0xr5"]
APPLICANT = "0xapplicant"


class RecordingTokenGateway:
    """
    Stands in for the payment rail: records transfers, or fails every
    transfer when `fail` is set.
    """

    def __init__(self):
        self.transfers = []
        self.fail = False

    def transfer_from(self, *, token, sender, recipient, amount):
        if self.fail:
            raise ExternalCallError("Token transfer rejected (400): insufficient allowance")
        self.transfers.append({"token": token, "from": sender, "to": recipient, "amount": amount})
        return f"0xtx{len(self.transfers)}"


@pytest.fixture(scope="function")
def engine():
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(eng)
        eng.dispose()


@pytest.fixture(scope="function")
def db(engine):
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite+pysqlite:///:memory:",
        jwt_secret_key="test-secret-key",
        grant_factory_address=FACTORY,
        operator_addresses=[OPERATOR],
    )


@pytest.fixture
def gateway():
    return RecordingTokenGateway()


@pytest.fixture
def ledgers(settings, gateway):
    return build_ledgers(settings, token_gateway=gateway)


# ─────────────────────────────────────────────
# FACTORIES
# ─────────────────────────────────────────────

@pytest.fixture
def make_workspace(db, ledgers):
    def _make(owner=ADMIN, reviewers=(), admins=()):
        ws = ledgers.workspaces.create_workspace(db, caller=owner, metadata_hash="ipfs://workspace")
        members = list(reviewers) + list(admins)
        if members:
            ledgers.workspaces.update_members(
                db,
                caller=owner,
                workspace_id=ws.id,
                addresses=members,
                roles=[WorkspaceRole.REVIEWER] * len(reviewers) + [WorkspaceRole.ADMIN] * len(admins),
                active=[True] * len(members),
                metadata=[""] * len(members),
            )
        return ws

    return _make


@pytest.fixture
def make_grant(db, ledgers):
    def _make(workspace, caller=ADMIN, **kwargs):
        return ledgers.grants.create_grant(
            db,
            caller=caller,
            workspace_id=workspace.id,
            metadata_hash="ipfs://grant",
            **kwargs,
        )

    return _make


@pytest.fixture
def submit_app(db, ledgers):
    def _submit(grant, applicant=APPLICANT, milestone_count=2):
        return ledgers.applications.submit_application(
            db,
            caller=applicant,
            grant_id=grant.id,
            metadata_hash=f"ipfs://application/{applicant}",
            milestone_count=milestone_count,
        )

    return _submit
