import pytest

from grantledger.core.errors import AuthorizationError, NotFoundError, ParameterError, PausedError, StateError
from grantledger.models.enums import LedgerName, WorkspaceRole

ADMIN = "0xadmin"
OPERATOR = "0xoperator"
R1, R2 = "0xr1", "0xr2"
OUTSIDER = "0xoutsider"


def _members(ledgers, db, ws, caller, rows):
    return ledgers.workspaces.update_members(
        db,
        caller=caller,
        workspace_id=ws.id,
        addresses=[r[0] for r in rows],
        roles=[r[1] for r in rows],
        active=[r[2] for r in rows],
        metadata=[r[3] if len(r) > 3 else "" for r in rows],
    )


def test_creator_becomes_owner_and_admin(db, ledgers):
    ws = ledgers.workspaces.create_workspace(db, caller="0xADMIN ", metadata_hash="ipfs://ws")

    assert ws.owner_address == ADMIN
    assert ledgers.workspaces.is_admin(db, ws.id, ADMIN)
    assert ledgers.workspaces.is_admin_or_reviewer(db, ws.id, "0xAdmin")
    assert ledgers.workspaces.count_active_admins(db, ws.id) == 1

    events = ledgers.events.list_after(db, workspace_id=ws.id)
    assert [e.event_type for e in events] == ["WorkspaceCreated"]


def test_workspace_ids_are_sequential(db, ledgers):
    a = ledgers.workspaces.create_workspace(db, caller=ADMIN, metadata_hash="ipfs://a")
    b = ledgers.workspaces.create_workspace(db, caller=ADMIN, metadata_hash="ipfs://b")
    assert b.id == a.id + 1


def test_admin_adds_reviewers(db, ledgers, make_workspace):
    ws = make_workspace(reviewers=[R1, R2])

    assert ledgers.workspaces.is_admin_or_reviewer(db, ws.id, R1)
    assert not ledgers.workspaces.is_admin(db, ws.id, R1)
    assert ledgers.workspaces.active_role(db, ws.id, R2) == WorkspaceRole.REVIEWER
    assert not ledgers.workspaces.is_admin_or_reviewer(db, ws.id, OUTSIDER)


def test_length_mismatch_is_parameter_error(db, ledgers, make_workspace):
    ws = make_workspace()
    with pytest.raises(ParameterError, match="Parameters length mismatch"):
        ledgers.workspaces.update_members(
            db,
            caller=ADMIN,
            workspace_id=ws.id,
            addresses=[R1, R2],
            roles=[WorkspaceRole.REVIEWER],
            active=[True, True],
            metadata=["", ""],
        )


def test_outsider_cannot_update_members(db, ledgers, make_workspace):
    ws = make_workspace()
    with pytest.raises(AuthorizationError, match="Not an admin"):
        _members(ledgers, db, ws, OUTSIDER, [(OUTSIDER, WorkspaceRole.ADMIN, True)])
    assert not ledgers.workspaces.is_admin(db, ws.id, OUTSIDER)


def test_unknown_workspace(db, ledgers):
    with pytest.raises(NotFoundError):
        ledgers.workspaces.get_workspace(db, 999)


def test_reviewer_may_only_update_own_metadata(db, ledgers, make_workspace):
    ws = make_workspace(reviewers=[R1, R2])

    updated = _members(ledgers, db, ws, R1, [(R1, WorkspaceRole.REVIEWER, True, "ipfs://me")])
    assert updated[0].metadata_hash == "ipfs://me"

    with pytest.raises(AuthorizationError, match="Reviewer can only update themselves"):
        _members(ledgers, db, ws, R1, [(R1, WorkspaceRole.ADMIN, True)])
    with pytest.raises(AuthorizationError, match="Reviewer can only update themselves"):
        _members(ledgers, db, ws, R1, [(R2, WorkspaceRole.REVIEWER, False)])

    assert ledgers.workspaces.active_role(db, ws.id, R1) == WorkspaceRole.REVIEWER
    assert ledgers.workspaces.is_admin_or_reviewer(db, ws.id, R2)


def test_non_owner_admin_cannot_demote_owner(db, ledgers, make_workspace):
    ws = make_workspace(admins=["0xadmin2"])

    with pytest.raises(AuthorizationError, match="Cannot disable owner admin role"):
        _members(ledgers, db, ws, "0xadmin2", [(ADMIN, WorkspaceRole.ADMIN, False)])
    with pytest.raises(AuthorizationError, match="Cannot disable owner admin role"):
        _members(ledgers, db, ws, "0xadmin2", [(ADMIN, WorkspaceRole.REVIEWER, True)])

    assert ledgers.workspaces.is_admin(db, ws.id, ADMIN)


def test_sole_admin_cannot_leave(db, ledgers, make_workspace):
    ws = make_workspace(reviewers=[R1])

    with pytest.raises(StateError):
        _members(ledgers, db, ws, ADMIN, [(ADMIN, WorkspaceRole.ADMIN, False)])

    assert ledgers.workspaces.is_admin(db, ws.id, ADMIN)
    assert ledgers.workspaces.count_active_admins(db, ws.id) == 1


def test_owner_may_step_down_while_another_admin_remains(db, ledgers, make_workspace):
    ws = make_workspace(admins=["0xadmin2"])

    _members(ledgers, db, ws, ADMIN, [(ADMIN, WorkspaceRole.REVIEWER, True)])

    assert not ledgers.workspaces.is_admin(db, ws.id, ADMIN)
    assert ledgers.workspaces.is_admin(db, ws.id, "0xadmin2")


def test_no_sequence_of_updates_leaves_zero_admins(db, ledgers, make_workspace):
    ws = make_workspace(reviewers=[R1], admins=["0xadmin2"])
    attempts = [
        (ADMIN, [("0xadmin2", WorkspaceRole.REVIEWER, True)]),
        (ADMIN, [(ADMIN, WorkspaceRole.ADMIN, False)]),
        (ADMIN, [(R1, WorkspaceRole.ADMIN, True), (ADMIN, WorkspaceRole.REVIEWER, True)]),
        (R1, [(R1, WorkspaceRole.REVIEWER, False)]),
        (R1, [(R1, WorkspaceRole.ADMIN, False)]),
    ]
    for caller, rows in attempts:
        try:
            _members(ledgers, db, ws, caller, rows)
        except (AuthorizationError, StateError):
            pass
        assert ledgers.workspaces.count_active_admins(db, ws.id) >= 1


def test_failed_update_writes_nothing(db, ledgers, make_workspace):
    ws = make_workspace()
    before = len(ledgers.events.list_after(db))

    with pytest.raises(StateError):
        _members(
            ledgers,
            db,
            ws,
            ADMIN,
            [(R1, WorkspaceRole.REVIEWER, True), (ADMIN, WorkspaceRole.ADMIN, False)],
        )

    assert ledgers.workspaces.get_member(db, ws.id, R1) is None
    assert len(ledgers.events.list_after(db)) == before


def test_workspace_metadata_admin_or_reviewer(db, ledgers, make_workspace):
    ws = make_workspace(reviewers=[R1])

    ledgers.workspaces.update_workspace_metadata(db, caller=R1, workspace_id=ws.id, metadata_hash="ipfs://v2")
    assert ledgers.workspaces.get_workspace(db, ws.id).metadata_hash == "ipfs://v2"

    with pytest.raises(AuthorizationError, match="Neither an admin nor a reviewer"):
        ledgers.workspaces.update_workspace_metadata(db, caller=OUTSIDER, workspace_id=ws.id, metadata_hash="x")

    _members(ledgers, db, ws, ADMIN, [(R1, WorkspaceRole.REVIEWER, False)])
    with pytest.raises(AuthorizationError):
        ledgers.workspaces.update_workspace_metadata(db, caller=R1, workspace_id=ws.id, metadata_hash="ipfs://v3")
    assert ledgers.workspaces.get_workspace(db, ws.id).metadata_hash == "ipfs://v2"


def test_workspace_safe_admin_only(db, ledgers, make_workspace):
    ws = make_workspace(reviewers=[R1])

    with pytest.raises(AuthorizationError):
        ledgers.workspaces.update_workspace_safe(
            db, caller=R1, workspace_id=ws.id, custody_address="0xsafe", custody_chain_id=10
        )

    ws = ledgers.workspaces.update_workspace_safe(
        db, caller=ADMIN, workspace_id=ws.id, custody_address="0xsafe", custody_chain_id=10
    )
    assert ws.custody_address == "0xsafe"
    assert ws.custody_chain_id == 10


def test_visibility_is_operator_only(db, ledgers, make_workspace):
    ws = make_workspace()

    with pytest.raises(AuthorizationError):
        ledgers.workspaces.update_workspaces_visible(db, caller=ADMIN, workspace_ids=[ws.id], visible=[True])
    with pytest.raises(ParameterError):
        ledgers.workspaces.update_workspaces_visible(db, caller=OPERATOR, workspace_ids=[ws.id], visible=[])

    rows = ledgers.workspaces.update_workspaces_visible(db, caller=OPERATOR, workspace_ids=[ws.id], visible=[True])
    assert rows[0].is_visible is True


def test_paused_workspace_ledger_rejects_writes(db, ledgers, make_workspace):
    ws = make_workspace()
    ledgers.control.set_paused(db, caller=OPERATOR, ledger=LedgerName.workspace, paused=True)

    with pytest.raises(PausedError):
        ledgers.workspaces.create_workspace(db, caller=ADMIN, metadata_hash="ipfs://x")
    with pytest.raises(PausedError):
        _members(ledgers, db, ws, ADMIN, [(R1, WorkspaceRole.REVIEWER, True)])

    # reads are unaffected
    assert ledgers.workspaces.is_admin(db, ws.id, ADMIN)
