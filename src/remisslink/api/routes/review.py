"""
Review workbench routes.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from remisslink.api.deps import Reviewer, Workbench
from remisslink.schemas.mention import ConfidenceTier, RawMention
from remisslink.schemas.review import (
    BatchApprovalResult,
    QueueStats,
    ReviewActionRequest,
    ReviewQueuePage,
)

router = APIRouter(prefix="/review")


class BatchApprovalRequest(BaseModel):
    """Mentions whose suggested entity is confirmed as-is."""

    mention_ids: list[UUID] = Field(..., min_length=1, max_length=500)


@router.get("/queue", response_model=ReviewQueuePage)
async def get_review_queue(
    workbench: Workbench,
    tier: Optional[ConfidenceTier] = Query(None, description="Only this confidence tier"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """
    Get mentions waiting for review, most confident first.

    A 503 with state "reload_failed" means the queue could not be read,
    which is not the same as an empty queue.
    """
    return await workbench.list_queue(tier=tier, limit=limit, offset=offset)


@router.get("/stats", response_model=QueueStats)
async def get_review_stats(workbench: Workbench):
    return await workbench.stats()


@router.post("/decide", response_model=RawMention)
async def decide(request: ReviewActionRequest, workbench: Workbench, reviewer: Reviewer):
    """Record a review decision and return the updated mention."""
    return await workbench.decide(request, reviewer)


@router.post("/approve-batch", response_model=BatchApprovalResult)
async def approve_batch(
    request: BatchApprovalRequest, workbench: Workbench, reviewer: Reviewer
):
    return await workbench.approve_many(request.mention_ids, reviewer)
