import pytest

from grantledger.core.errors import (
    AuthorizationError,
    ConsistencyError,
    ExternalCallError,
    ParameterError,
    StateError,
)

ADMIN = "0xadmin"
R1 = "0xr1"
APPLICANT = "0xapplicant"


@pytest.fixture
def ws(make_workspace):
    return make_workspace(reviewers=[R1])


def _approve(db, ledgers, ws, app):
    return ledgers.applications.update_application_state(
        db, caller=ADMIN, application_id=app.id, workspace_id=ws.id, state="approved"
    )


def _disburse(db, ledgers, grant, app, caller=ADMIN, milestone_id=0, amount=500):
    return ledgers.grants.disburse_reward_p2p(
        db,
        caller=caller,
        grant_id=grant.id,
        application_id=app.id,
        milestone_id=milestone_id,
        token="0xusdc",
        amount=amount,
    )


def test_only_admins_create_grants(db, ledgers, ws, make_grant):
    with pytest.raises(AuthorizationError, match="GrantCreate: Unauthorised"):
        make_grant(ws, caller=R1)

    grant = make_grant(ws)
    assert grant.workspace_id == ws.id
    assert grant.is_active is True
    assert grant.num_applicants == 0
    assert ledgers.grants.list_for_workspace(db, ws.id)[0].id == grant.id


def test_reviewers_without_count_rejected(ws, make_grant):
    with pytest.raises(ParameterError):
        make_grant(ws, reviewers=[R1])


def test_failed_review_setup_discards_grant(db, ledgers, ws, make_grant):
    with pytest.raises(ParameterError):
        make_grant(ws, reviewers=[R1], num_reviewers_per_application=2)
    assert ledgers.grants.list_for_workspace(db, ws.id) == []


def test_update_grant_only_before_applicants(db, ledgers, ws, make_grant, submit_app):
    grant = make_grant(ws)
    grant = ledgers.grants.update_grant(db, caller=ADMIN, grant_id=grant.id, metadata_hash="ipfs://v2")
    assert grant.metadata_hash == "ipfs://v2"

    with pytest.raises(AuthorizationError):
        ledgers.grants.update_grant(db, caller=R1, grant_id=grant.id, metadata_hash="ipfs://v3")

    submit_app(grant)
    with pytest.raises(StateError, match="Applicants have already started applying"):
        ledgers.grants.update_grant(db, caller=ADMIN, grant_id=grant.id, metadata_hash="ipfs://v3")


def test_accessibility_toggle(db, ledgers, ws, make_grant, submit_app):
    grant = make_grant(ws)
    ledgers.grants.update_grant_accessibility(db, caller=ADMIN, grant_id=grant.id, active=False)
    with pytest.raises(StateError):
        submit_app(grant)

    ledgers.grants.update_grant_accessibility(db, caller=ADMIN, grant_id=grant.id, active=True)
    assert submit_app(grant).grant_id == grant.id


def test_disburse_pays_applicant(db, ledgers, gateway, ws, make_grant, submit_app):
    grant = make_grant(ws)
    app = _approve(db, ledgers, ws, submit_app(grant))

    tx_hash = _disburse(db, ledgers, grant, app)

    assert tx_hash == "0xtx1"
    assert gateway.transfers == [{"token": "0xusdc", "from": ADMIN, "to": APPLICANT, "amount": 500}]
    assert len(ledgers.events.list_after(db, event_type="DisburseRewardP2P")) == 1


def test_disburse_rules(db, ledgers, ws, make_grant, submit_app):
    grant = make_grant(ws)
    other = make_grant(ws)
    app = submit_app(grant)

    with pytest.raises(StateError):
        _disburse(db, ledgers, grant, app)

    _approve(db, ledgers, ws, app)
    with pytest.raises(ConsistencyError):
        _disburse(db, ledgers, other, app)
    with pytest.raises(AuthorizationError):
        _disburse(db, ledgers, grant, app, caller=R1)
    with pytest.raises(ParameterError):
        _disburse(db, ledgers, grant, app, milestone_id=5)
    with pytest.raises(ParameterError):
        _disburse(db, ledgers, grant, app, amount=0)


def test_failed_transfer_leaves_no_disbursal(db, ledgers, gateway, ws, make_grant, submit_app):
    grant = make_grant(ws)
    app = _approve(db, ledgers, ws, submit_app(grant))
    gateway.fail = True

    with pytest.raises(ExternalCallError):
        _disburse(db, ledgers, grant, app)

    assert ledgers.events.list_after(db, event_type="DisburseRewardP2P") == []
