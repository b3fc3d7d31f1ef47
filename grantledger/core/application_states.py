# grantledger/core/application_states.py
from grantledger.models.enums import ApplicationState

# admin-driven transitions (updateApplicationState)
ADMIN_TRANSITIONS = {
    ApplicationState.submitted: {
        ApplicationState.resubmit,
        ApplicationState.approved,
        ApplicationState.rejected,
    },
    ApplicationState.resubmit: set(),
    ApplicationState.approved: set(),
    ApplicationState.rejected: set(),
    ApplicationState.completed: set(),
}

# applicant-driven transitions (updateApplicationMetadata)
APPLICANT_TRANSITIONS = {
    ApplicationState.resubmit: {ApplicationState.submitted},
}

TERMINAL_STATES = {ApplicationState.rejected, ApplicationState.completed}

# states the auto-assignment backfill still picks up
PRE_REVIEW_STATES = {ApplicationState.submitted, ApplicationState.resubmit}


def can_admin_transition(current: ApplicationState, target: ApplicationState) -> bool:
    return target in ADMIN_TRANSITIONS.get(current, set())


def can_applicant_transition(current: ApplicationState, target: ApplicationState) -> bool:
    return target in APPLICANT_TRANSITIONS.get(current, set())
