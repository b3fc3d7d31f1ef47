from grantledger.models.workspace import Workspace, WorkspaceMember  # noqa: F401
from grantledger.models.grant import Grant, GrantReviewerPoolEntry, ReviewerAssignmentCount  # noqa: F401
from grantledger.models.application import Application, ApplicationMilestone  # noqa: F401
from grantledger.models.review import Review  # noqa: F401
from grantledger.models.ledger_control import LedgerControl  # noqa: F401
from grantledger.models.event_log import EventLog  # noqa: F401
