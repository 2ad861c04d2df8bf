"""
Batch job routes: linking runs, reprocessing and bootstrap.

Jobs run inside the request. Callers page through large backlogs with
``after_id`` / ``next_after_id``.
"""

from fastapi import APIRouter

from remisslink.api.deps import Bootstrap, Orchestrator
from remisslink.schemas.linking import (
    BootstrapRequest,
    BootstrapSummary,
    LinkRequest,
    LinkSummary,
    ReprocessRequest,
    ReprocessSummary,
)

router = APIRouter()


@router.post("/linking/run", response_model=LinkSummary)
async def run_linking(request: LinkRequest, orchestrator: Orchestrator):
    """
    Link a batch of unresolved mentions.

    With ``dry_run`` nothing is written and the summary shows what would
    have happened.
    """
    return await orchestrator.run(request)


@router.post("/linking/reprocess", response_model=ReprocessSummary)
async def reprocess(request: ReprocessRequest, orchestrator: Orchestrator):
    """Send mentions back to unresolved so the next run picks them up."""
    return await orchestrator.request_reprocessing(request)


@router.post("/bootstrap/run", response_model=BootstrapSummary)
async def run_bootstrap(request: BootstrapRequest, job: Bootstrap):
    return await job.run(request)
