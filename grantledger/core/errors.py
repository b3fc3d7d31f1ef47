# grantledger/core/errors.py
from __future__ import annotations


class LedgerError(Exception):
    """Base for every failure a ledger operation can surface."""


class AuthorizationError(LedgerError, PermissionError):
    """Caller lacks the role (or trusted-caller status) the operation needs."""


class StateError(LedgerError, ValueError):
    """Operation is invalid for the entity's current state."""


class ParameterError(LedgerError, ValueError):
    """Malformed arguments: length mismatches, zero counts, empty pools."""


class ConsistencyError(LedgerError, ValueError):
    """A passed reference disagrees with what the entity has stored."""


class NotFoundError(LedgerError, LookupError):
    pass


class ExternalCallError(LedgerError, RuntimeError):
    """The token transfer boundary failed or refused the transfer."""


# ─────────────────────────────────────────────
# NAMED CONDITIONS
# ─────────────────────────────────────────────

class PausedError(StateError):
    pass


class MilestonesIncompleteError(StateError):
    pass


class ReviewAlreadySubmittedError(StateError):
    pass


class ReviewerNotEligibleError(StateError):
    pass
