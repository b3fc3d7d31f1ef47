# grantledger/models/enums.py
from __future__ import annotations
from enum import Enum


class WorkspaceRole(str, Enum):
    ADMIN = "ADMIN"
    REVIEWER = "REVIEWER"


class ApplicationState(str, Enum):
    submitted = "submitted"
    resubmit = "resubmit"
    approved = "approved"
    rejected = "rejected"
    completed = "completed"


class MilestoneState(str, Enum):
    # absent row == not yet requested
    requested = "requested"
    approved = "approved"


class LedgerName(str, Enum):
    workspace = "workspace"
    application = "application"
    review = "review"
    grant_factory = "grant_factory"
