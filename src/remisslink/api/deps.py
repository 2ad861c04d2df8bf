"""
FastAPI dependencies for the API.

Provides:
- A registry bound to one request-scoped database session
- The reviewer identity for review actions
- Job and workbench services built on the registry
"""

import logging
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, Header, Request

from remisslink.db.base import Registry
from remisslink.db.repositories import SQLRegistry
from remisslink.linking.bootstrap import BootstrapJob
from remisslink.linking.orchestrator import LinkingOrchestrator
from remisslink.review.workbench import ReviewWorkbench
from remisslink.rules.rule_list import RuleCurator

logger = logging.getLogger(__name__)


async def get_registry(request: Request) -> AsyncGenerator[Registry, None]:
    """
    Get a registry from request state.

    Uses the session factory stored during app startup. Every atomic()
    unit commits on its own, so a batch run that is cut short keeps the
    mentions it already wrote. Writes outside a unit are committed when
    the request succeeds and rolled back otherwise.
    """
    async with request.app.state.db_session() as session:
        try:
            yield SQLRegistry(session, commit_units=True)
            await session.commit()
        except Exception:
            await session.rollback()
            raise


RegistryDep = Annotated[Registry, Depends(get_registry)]


async def get_reviewer(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """
    Reviewer recorded on decisions.

    Authentication happens upstream; this only reads the forwarded id.
    """
    return x_user_id.strip() if x_user_id and x_user_id.strip() else "anonymous"


Reviewer = Annotated[str, Depends(get_reviewer)]


def get_orchestrator(registry: RegistryDep) -> LinkingOrchestrator:
    return LinkingOrchestrator(registry)


def get_bootstrap_job(registry: RegistryDep) -> BootstrapJob:
    return BootstrapJob(registry)


def get_workbench(registry: RegistryDep) -> ReviewWorkbench:
    return ReviewWorkbench(registry)


def get_curator(registry: RegistryDep) -> RuleCurator:
    return RuleCurator(registry.rules)


# Type aliases for dependency injection
Orchestrator = Annotated[LinkingOrchestrator, Depends(get_orchestrator)]
Bootstrap = Annotated[BootstrapJob, Depends(get_bootstrap_job)]
Workbench = Annotated[ReviewWorkbench, Depends(get_workbench)]
Curator = Annotated[RuleCurator, Depends(get_curator)]
