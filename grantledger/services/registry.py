# grantledger/services/registry.py
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from grantledger.core.config import Settings, get_settings
from grantledger.services.application_service import ApplicationService
from grantledger.services.control_service import LedgerControlService
from grantledger.services.event_service import EventService
from grantledger.services.grant_service import GrantService
from grantledger.services.migration_service import MigrationService
from grantledger.services.review_service import ReviewService
from grantledger.services.token_gateway import HttpTokenGateway, TokenGateway, UnconfiguredTokenGateway
from grantledger.services.workspace_service import WorkspaceService


@dataclass
class Ledgers:
    events: EventService
    control: LedgerControlService
    workspaces: WorkspaceService
    grants: GrantService
    applications: ApplicationService
    reviews: ReviewService
    migrations: MigrationService


def build_token_gateway(settings: Settings) -> TokenGateway:
    if not settings.token_gateway_url:
        return UnconfiguredTokenGateway()
    return HttpTokenGateway(settings.token_gateway_url, timeout=settings.token_gateway_timeout_seconds)


def build_ledgers(settings: Settings, token_gateway: Optional[TokenGateway] = None) -> Ledgers:
    """
    Wires the ledgers together. The workspace directory is the permission
    oracle for everyone; the review ledger listens for new applications;
    the grant factory is the review ledger's only trusted caller.
    """
    gateway = token_gateway or build_token_gateway(settings)

    events = EventService()
    control = LedgerControlService(operators=settings.operator_addresses, events=events)
    workspaces = WorkspaceService(control=control, events=events)
    grants = GrantService(
        control=control,
        events=events,
        permissions=workspaces,
        token_gateway=gateway,
        factory_address=settings.grant_factory_address,
    )
    applications = ApplicationService(control=control, events=events, permissions=workspaces, grants=grants)
    reviews = ReviewService(
        control=control,
        events=events,
        permissions=workspaces,
        applications=applications,
        token_gateway=gateway,
        trusted_callers=[settings.grant_factory_address],
    )

    applications.bind_event_sink(reviews)
    grants.bind(reviews=reviews, applications=applications)

    migrations = MigrationService(
        control=control,
        events=events,
        workspaces=workspaces,
        applications=applications,
        reviews=reviews,
    )
    return Ledgers(
        events=events,
        control=control,
        workspaces=workspaces,
        grants=grants,
        applications=applications,
        reviews=reviews,
        migrations=migrations,
    )


@lru_cache(maxsize=1)
def get_ledgers() -> Ledgers:
    return build_ledgers(get_settings())
