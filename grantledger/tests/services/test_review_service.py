import pytest

from grantledger.core.errors import (
    AuthorizationError,
    ExternalCallError,
    ParameterError,
    PausedError,
    ReviewAlreadySubmittedError,
    ReviewerNotEligibleError,
    StateError,
)
from grantledger.models.enums import LedgerName, WorkspaceRole

ADMIN = "0xadmin"
OPERATOR = "0xoperator"
FACTORY = "grant-factory"
REVIEWERS = ["0xr1", "0xr2", "0xr3", "0xr4", "0xr5"]
R1, R2, R3, R4, R5 = REVIEWERS


def _enable(db, ledgers, ws, grant, pool, k, caller=ADMIN):
    return ledgers.reviews.enable_auto_assignment(
        db,
        caller=caller,
        workspace_id=ws.id,
        grant_id=grant.id,
        reviewers=pool,
        num_reviewers_per_application=k,
    )


def _update(db, ledgers, ws, grant, pool, k, dry_run=False):
    return ledgers.reviews.update_auto_assignment(
        db,
        caller=ADMIN,
        workspace_id=ws.id,
        grant_id=grant.id,
        reviewers=pool,
        num_reviewers_per_application=k,
        dry_run=dry_run,
    )


def _active_reviewers(db, ledgers, app):
    return [r.reviewer_address for r in ledgers.reviews.reviews_for_application(db, app.id, active_only=True)]


def _assert_cursor(db, ledgers, grant):
    g = ledgers.grants.get_grant(db, grant.id)
    pool = ledgers.reviews.pool(db, grant.id)
    assert g.last_assigned_index == g.assignment_slots % len(pool)


@pytest.fixture
def ws(make_workspace):
    return make_workspace(reviewers=REVIEWERS)


@pytest.fixture
def grant(ws, make_grant):
    return make_grant(ws)


# ─────────────────────────────────────────────
# AUTO ASSIGNMENT
# ─────────────────────────────────────────────

def test_enable_backfills_existing_application(db, ledgers, ws, grant, submit_app):
    app = submit_app(grant)
    assert ledgers.reviews.reviews_for_application(db, app.id) == []

    created = _enable(db, ledgers, ws, grant, REVIEWERS, 2)

    assert len(created) == 2
    assert _active_reviewers(db, ledgers, app) == [R1, R2]
    assert ledgers.grants.get_grant(db, grant.id).last_assigned_index == 2
    assert ledgers.reviews.assignment_counts(db, grant.id) == {R1: 1, R2: 1}


def test_backfill_carries_cursor_across_applications(db, ledgers, ws, grant, submit_app):
    apps = [submit_app(grant, applicant=f"0xapplicant{i}") for i in range(3)]

    _enable(db, ledgers, ws, grant, REVIEWERS, 2)

    assert _active_reviewers(db, ledgers, apps[0]) == [R1, R2]
    assert _active_reviewers(db, ledgers, apps[1]) == [R3, R4]
    assert _active_reviewers(db, ledgers, apps[2]) == [R5, R1]
    assert ledgers.grants.get_grant(db, grant.id).last_assigned_index == 1


def test_backfill_skips_closed_and_already_reviewed(db, ledgers, ws, grant, submit_app):
    rejected = submit_app(grant, applicant="0xa1")
    ledgers.applications.update_application_state(
        db, caller=ADMIN, application_id=rejected.id, workspace_id=ws.id, state="rejected"
    )
    manual = submit_app(grant, applicant="0xa2")
    ledgers.reviews.assign_reviewers(
        db,
        caller=ADMIN,
        workspace_id=ws.id,
        application_id=manual.id,
        grant_id=grant.id,
        reviewers=[R5],
        active=[True],
    )
    pending = submit_app(grant, applicant="0xa3")

    created = _enable(db, ledgers, ws, grant, REVIEWERS, 2)

    assert [r.application_id for r in created] == [pending.id, pending.id]
    assert _active_reviewers(db, ledgers, rejected) == []
    assert _active_reviewers(db, ledgers, manual) == [R5]


def test_new_submissions_assigned_round_robin(db, ledgers, ws, grant, submit_app):
    _enable(db, ledgers, ws, grant, REVIEWERS, 2)

    apps = [submit_app(grant, applicant=f"0xapplicant{i}") for i in range(7)]

    assert _active_reviewers(db, ledgers, apps[0]) == [R1, R2]
    assert _active_reviewers(db, ledgers, apps[2]) == [R5, R1]
    counts = ledgers.reviews.assignment_counts(db, grant.id)
    assert sum(counts.values()) == 14
    assert max(counts.values()) - min(counts.values()) <= 1
    _assert_cursor(db, ledgers, grant)


def test_mixed_backfill_and_hook_stay_balanced(db, ledgers, ws, grant, submit_app):
    for i in range(2):
        submit_app(grant, applicant=f"0xearly{i}")
    _enable(db, ledgers, ws, grant, [R1, R2, R3], 2)
    for i in range(4):
        submit_app(grant, applicant=f"0xlate{i}")
        _assert_cursor(db, ledgers, grant)

    counts = ledgers.reviews.assignment_counts(db, grant.id)
    assert counts == {R1: 4, R2: 4, R3: 4}
    assert ledgers.grants.get_grant(db, grant.id).last_assigned_index == 0


def test_more_slots_than_reviewers_wraps_pool(db, ledgers, ws, grant, submit_app):
    pool = [R1, R2, R3]
    _enable(db, ledgers, ws, grant, pool, 2)
    _update(db, ledgers, ws, grant, pool, 4)

    first = submit_app(grant, applicant="0xa1")
    assert _active_reviewers(db, ledgers, first) == [R1, R2, R3, R1]
    assert ledgers.grants.get_grant(db, grant.id).last_assigned_index == 1

    for i in range(2):
        submit_app(grant, applicant=f"0xa{i + 2}")
        counts = ledgers.reviews.assignment_counts(db, grant.id)
        assert max(counts.values()) - min(counts.values()) <= 1
        _assert_cursor(db, ledgers, grant)

    assert ledgers.reviews.assignment_counts(db, grant.id) == {R1: 4, R2: 4, R3: 4}


def test_enable_requires_pool_at_least_per_application(db, ledgers, ws, grant):
    with pytest.raises(ParameterError):
        _enable(db, ledgers, ws, grant, [R1, R2], 3)
    assert ledgers.grants.get_grant(db, grant.id).auto_assign_enabled is False


@pytest.mark.parametrize(
    "pool,k,error",
    [
        ([], 1, ParameterError),
        ([R1, R2], 0, ParameterError),
        ([R1, R1], 1, ParameterError),
        ([R1, "0xstranger"], 1, ReviewerNotEligibleError),
    ],
)
def test_enable_validates_parameters(db, ledgers, ws, grant, pool, k, error):
    with pytest.raises(error):
        _enable(db, ledgers, ws, grant, pool, k)


def test_enable_twice_rejected(db, ledgers, ws, grant):
    _enable(db, ledgers, ws, grant, REVIEWERS, 2)
    with pytest.raises(StateError):
        _enable(db, ledgers, ws, grant, REVIEWERS, 2)


def test_enable_needs_admin_or_factory(db, ledgers, ws, grant):
    with pytest.raises(AuthorizationError, match="Not an admin nor grantFactory"):
        _enable(db, ledgers, ws, grant, REVIEWERS, 2, caller=R1)

    _enable(db, ledgers, ws, grant, REVIEWERS, 2, caller=FACTORY)
    assert ledgers.grants.get_grant(db, grant.id).auto_assign_enabled is True


def test_update_resets_cursor_and_keeps_counts(db, ledgers, ws, grant, submit_app):
    _enable(db, ledgers, ws, grant, [R1, R2, R3], 2)
    submit_app(grant, applicant="0xa1")
    assert ledgers.grants.get_grant(db, grant.id).last_assigned_index == 2

    preview = _update(db, ledgers, ws, grant, [R4, R5], 1)
    assert preview.applied is True
    assert ledgers.grants.get_grant(db, grant.id).last_assigned_index == 0
    assert ledgers.reviews.pool(db, grant.id) == [R4, R5]

    third = submit_app(grant, applicant="0xa2")
    assert _active_reviewers(db, ledgers, third) == [R4]
    assert ledgers.reviews.assignment_counts(db, grant.id) == {R1: 1, R2: 1, R4: 1}
    _assert_cursor(db, ledgers, grant)


def test_update_does_not_touch_existing_reviews(db, ledgers, ws, grant, submit_app):
    _enable(db, ledgers, ws, grant, [R1, R2], 2)
    app = submit_app(grant)

    _update(db, ledgers, ws, grant, [R3], 1)

    assert _active_reviewers(db, ledgers, app) == [R1, R2]


def test_dry_run_previews_without_writing(db, ledgers, ws, grant, submit_app):
    _enable(db, ledgers, ws, grant, [R1, R2, R3], 2)
    submit_app(grant)
    events_before = len(ledgers.events.list_after(db))

    preview = _update(db, ledgers, ws, grant, [R4, R5, R1], 2, dry_run=True)

    assert preview.applied is False
    assert preview.next_application_reviewers == [R4, R5]
    assert ledgers.reviews.pool(db, grant.id) == [R1, R2, R3]
    assert ledgers.grants.get_grant(db, grant.id).last_assigned_index == 2
    assert len(ledgers.events.list_after(db)) == events_before


def test_dry_run_still_validates(db, ledgers, ws, grant):
    _enable(db, ledgers, ws, grant, [R1, R2], 2)
    with pytest.raises(ReviewerNotEligibleError):
        _update(db, ledgers, ws, grant, ["0xstranger"], 1, dry_run=True)
    with pytest.raises(ParameterError):
        _update(db, ledgers, ws, grant, [], 1, dry_run=True)


def test_update_requires_enabled(db, ledgers, ws, grant):
    with pytest.raises(StateError):
        _update(db, ledgers, ws, grant, [R1], 1)


def test_disable_stops_assignment(db, ledgers, ws, grant, submit_app):
    _enable(db, ledgers, ws, grant, [R1, R2], 1)
    submit_app(grant, applicant="0xa1")

    ledgers.reviews.disable_auto_assignment(db, caller=ADMIN, workspace_id=ws.id, grant_id=grant.id)
    later = submit_app(grant, applicant="0xa2")

    assert _active_reviewers(db, ledgers, later) == []
    assert ledgers.reviews.assignment_counts(db, grant.id) == {R1: 1}
    with pytest.raises(StateError):
        ledgers.reviews.disable_auto_assignment(db, caller=ADMIN, workspace_id=ws.id, grant_id=grant.id)


def test_ineligible_reviewer_fails_submission(db, ledgers, ws, grant, submit_app):
    _enable(db, ledgers, ws, grant, [R1, R2], 2)
    ledgers.workspaces.update_members(
        db,
        caller=ADMIN,
        workspace_id=ws.id,
        addresses=[R2],
        roles=[WorkspaceRole.REVIEWER],
        active=[False],
        metadata=[""],
    )

    with pytest.raises(ReviewerNotEligibleError):
        submit_app(grant)

    assert ledgers.applications.list_for_grant(db, grant.id) == []
    assert ledgers.grants.get_grant(db, grant.id).num_applicants == 0
    assert ledgers.reviews.assignment_counts(db, grant.id) == {}


def test_paused_review_ledger_fails_auto_assigned_submission(db, ledgers, ws, grant, submit_app):
    _enable(db, ledgers, ws, grant, [R1, R2, R3], 2)
    ledgers.control.set_paused(db, caller=OPERATOR, ledger=LedgerName.review, paused=True)

    with pytest.raises(PausedError):
        submit_app(grant)

    assert ledgers.applications.list_for_grant(db, grant.id) == []
    assert ledgers.reviews.assignment_counts(db, grant.id) == {}
    assert ledgers.reviews.reviews_for_reviewer(db, R1) == []
    assert ledgers.grants.get_grant(db, grant.id).last_assigned_index == 0

    ledgers.control.set_paused(db, caller=OPERATOR, ledger=LedgerName.review, paused=False)
    app = submit_app(grant)
    assigned = [r.reviewer_address for r in ledgers.reviews.reviews_for_application(db, app.id)]
    assert assigned == [R1, R2]


def test_paused_review_ledger_ignored_without_auto_assignment(db, ledgers, grant, submit_app):
    ledgers.control.set_paused(db, caller=OPERATOR, ledger=LedgerName.review, paused=True)
    assert submit_app(grant).grant_id == grant.id


def test_grant_factory_configures_review_at_creation(db, ledgers, ws, make_grant, submit_app):
    grant = make_grant(
        ws,
        rubric_metadata_hash="ipfs://rubric",
        reviewers=[R1, R2, R3],
        num_reviewers_per_application=2,
    )
    assert grant.auto_assign_enabled is True
    assert grant.rubric_metadata_hash == "ipfs://rubric"

    app = submit_app(grant)
    assert _active_reviewers(db, ledgers, app) == [R1, R2]

    actors = {e.actor_address for e in ledgers.events.list_after(db, event_type="AutoAssignmentEnabled")}
    assert actors == {FACTORY}


# ─────────────────────────────────────────────
# MANUAL ASSIGNMENT / SUBMISSION
# ─────────────────────────────────────────────

def _assign(db, ledgers, ws, grant, app, reviewers, active, caller=ADMIN):
    return ledgers.reviews.assign_reviewers(
        db,
        caller=caller,
        workspace_id=ws.id,
        application_id=app.id,
        grant_id=grant.id,
        reviewers=reviewers,
        active=active,
    )


def _submit_review(db, ledgers, ws, grant, app, reviewer, feedback="ipfs://feedback"):
    return ledgers.reviews.submit_review(
        db,
        caller=reviewer,
        application_id=app.id,
        workspace_id=ws.id,
        grant_id=grant.id,
        feedback_metadata_hash=feedback,
    )


def test_cannot_unassign_after_submission(db, ledgers, ws, grant, submit_app):
    app = submit_app(grant)
    _assign(db, ledgers, ws, grant, app, [R1, R2], [True, True])
    _submit_review(db, ledgers, ws, grant, app, R1)

    with pytest.raises(ReviewAlreadySubmittedError, match="Review already submitted"):
        _assign(db, ledgers, ws, grant, app, [R1], [False])

    _assign(db, ledgers, ws, grant, app, [R2], [False])

    assert _active_reviewers(db, ledgers, app) == [R1]


def test_manual_assignment_rules(db, ledgers, ws, grant, submit_app):
    app = submit_app(grant)

    with pytest.raises(AuthorizationError):
        _assign(db, ledgers, ws, grant, app, [R1], [True], caller=R2)
    with pytest.raises(ParameterError):
        _assign(db, ledgers, ws, grant, app, [R1, R2], [True])
    with pytest.raises(ReviewerNotEligibleError):
        _assign(db, ledgers, ws, grant, app, ["0xstranger"], [True])
    with pytest.raises(StateError):
        _assign(db, ledgers, ws, grant, app, [R1], [False])


def test_reactivation_reuses_review_id(db, ledgers, ws, grant, submit_app):
    app = submit_app(grant)
    first = _assign(db, ledgers, ws, grant, app, [R1], [True])[0]
    review_id = first.review_id

    _assign(db, ledgers, ws, grant, app, [R1], [False])
    again = _assign(db, ledgers, ws, grant, app, [R1], [True])[0]

    assert again.review_id == review_id
    assert len(ledgers.reviews.reviews_for_application(db, app.id)) == 1


def test_review_ids_are_sequential(db, ledgers, ws, grant, submit_app):
    app = submit_app(grant)
    rows = _assign(db, ledgers, ws, grant, app, [R1, R2, R3], [True, True, True])
    assert [r.review_id for r in rows] == [1, 2, 3]


def test_resubmission_does_not_double_count(db, ledgers, ws, grant, submit_app):
    app = submit_app(grant)
    _assign(db, ledgers, ws, grant, app, [R1, R2], [True, True])

    _submit_review(db, ledgers, ws, grant, app, R1, feedback="ipfs://v1")
    _submit_review(db, ledgers, ws, grant, app, R1, feedback="ipfs://v2")

    review = ledgers.reviews.reviews_for_application(db, app.id)[0]
    assert review.feedback_metadata_hash == "ipfs://v2"
    assert review.has_submitted is True
    assert ledgers.grants.get_grant(db, grant.id).num_reviews_submitted == 1

    _submit_review(db, ledgers, ws, grant, app, R2)
    assert ledgers.grants.get_grant(db, grant.id).num_reviews_submitted == 2


def test_submit_requires_active_assignment(db, ledgers, ws, grant, submit_app):
    app = submit_app(grant)
    _assign(db, ledgers, ws, grant, app, [R1], [True])
    _assign(db, ledgers, ws, grant, app, [R1], [False])

    with pytest.raises(AuthorizationError, match="Revoked access"):
        _submit_review(db, ledgers, ws, grant, app, R1)
    with pytest.raises(AuthorizationError, match="Not assigned"):
        _submit_review(db, ledgers, ws, grant, app, R2)
    with pytest.raises(AuthorizationError, match="Neither an admin nor a reviewer"):
        _submit_review(db, ledgers, ws, grant, app, "0xstranger")


def test_rubrics_locked_once_reviews_exist(db, ledgers, ws, grant, submit_app):
    ledgers.reviews.set_rubrics(
        db, caller=ADMIN, workspace_id=ws.id, grant_id=grant.id, rubric_metadata_hash="ipfs://r1"
    )
    app = submit_app(grant)
    _assign(db, ledgers, ws, grant, app, [R1], [True])
    _submit_review(db, ledgers, ws, grant, app, R1)

    with pytest.raises(StateError, match="Reviews non-zero"):
        ledgers.reviews.set_rubrics(
            db, caller=ADMIN, workspace_id=ws.id, grant_id=grant.id, rubric_metadata_hash="ipfs://r2"
        )
    assert ledgers.grants.get_grant(db, grant.id).rubric_metadata_hash == "ipfs://r1"


# ─────────────────────────────────────────────
# PAYMENTS
# ─────────────────────────────────────────────

@pytest.fixture
def reviewed(db, ledgers, ws, grant, submit_app):
    app = submit_app(grant)
    rows = _assign(db, ledgers, ws, grant, app, [R1], [True])
    _submit_review(db, ledgers, ws, grant, app, R1)
    return app, rows[0].review_id


def _fulfill(db, ledgers, ws_id, app_ids, review_ids, caller=ADMIN, amount=100):
    return ledgers.reviews.fulfill_payment(
        db,
        caller=caller,
        workspace_id=ws_id,
        application_ids=app_ids,
        reviewer=R1,
        review_ids=review_ids,
        token="0xusdc",
        amount=amount,
    )


def test_fulfill_payment_transfers_and_flags(db, ledgers, gateway, ws, reviewed):
    app, review_id = reviewed

    rows = _fulfill(db, ledgers, ws.id, [app.id], [review_id])

    assert rows[0].payment_done is True
    assert gateway.transfers == [{"token": "0xusdc", "from": ADMIN, "to": R1, "amount": 100}]
    with pytest.raises(StateError):
        _fulfill(db, ledgers, ws.id, [app.id], [review_id])


def test_failed_transfer_leaves_review_unpaid(db, ledgers, gateway, ws, reviewed):
    app, review_id = reviewed
    gateway.fail = True

    with pytest.raises(ExternalCallError):
        _fulfill(db, ledgers, ws.id, [app.id], [review_id])

    assert ledgers.reviews.get_review(db, R1, review_id).payment_done is False
    assert ledgers.events.list_after(db, event_type="ReviewPaymentFulfilled") == []


def test_payment_parameter_checks(db, ledgers, ws, reviewed):
    app, review_id = reviewed

    with pytest.raises(ParameterError, match="Parameters length mismatch"):
        _fulfill(db, ledgers, ws.id, [app.id, app.id], [review_id])
    with pytest.raises(AuthorizationError, match="Not an admin"):
        _fulfill(db, ledgers, ws.id, [app.id], [review_id], caller=R2)
    with pytest.raises(ParameterError):
        _fulfill(db, ledgers, ws.id, [app.id], [review_id], amount=0)


def test_payment_authority_comes_from_review_workspace(db, ledgers, make_workspace, reviewed):
    app, review_id = reviewed
    foreign = make_workspace(owner="0xotheradmin")

    with pytest.raises(AuthorizationError, match="ChangePaymentStatus: Unauthorised"):
        _fulfill(db, ledgers, foreign.id, [app.id], [review_id], caller="0xotheradmin")
    with pytest.raises(AuthorizationError, match="ChangePaymentStatus: Unauthorised"):
        ledgers.reviews.mark_payment_done(
            db,
            caller="0xotheradmin",
            workspace_id=foreign.id,
            application_ids=[app.id],
            reviewer=R1,
            review_ids=[review_id],
            token="0xusdc",
            amount=100,
            transaction_hash="0xabc",
        )


def test_mark_payment_done_records_without_transfer(db, ledgers, gateway, ws, reviewed):
    app, review_id = reviewed

    rows = ledgers.reviews.mark_payment_done(
        db,
        caller=ADMIN,
        workspace_id=ws.id,
        application_ids=[app.id],
        reviewer=R1,
        review_ids=[review_id],
        token="0xusdc",
        amount=100,
        transaction_hash="0xabc",
    )

    assert rows[0].payment_done is True
    assert gateway.transfers == []
    event = ledgers.events.list_after(db, event_type="ReviewPaymentMarkedDone")[0]
    assert event.payload_json["transaction_hash"] == "0xabc"
