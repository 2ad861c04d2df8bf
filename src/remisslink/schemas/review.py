"""
Review workbench schemas.

Human decisions are first-class records (one current decision per mention
plus a history) rather than ad hoc field edits on the mention.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from remisslink.schemas.mention import ConfidenceTier, ResolutionState


class ReviewVerdict(str, Enum):
    """Outcome of a human review."""

    CONFIRMED = "confirmed"  # Suggested entity was right
    CORRECTED = "corrected"  # Linked to a different existing entity
    CREATED_NEW = "created_new"  # New entity minted from operator text
    REJECTED = "rejected"  # No link


VERDICT_STATES: dict[ReviewVerdict, ResolutionState] = {
    ReviewVerdict.CONFIRMED: ResolutionState.REVIEWED_CONFIRMED,
    ReviewVerdict.CORRECTED: ResolutionState.REVIEWED_CORRECTED,
    ReviewVerdict.CREATED_NEW: ResolutionState.ENTITY_CREATED,
    ReviewVerdict.REJECTED: ResolutionState.REVIEWED_REJECTED,
}


class ReviewDecision(BaseModel):
    """Current human judgment on a mention."""

    model_config = ConfigDict(from_attributes=True)

    mention_id: UUID
    verdict: ReviewVerdict
    entity_id: Optional[UUID] = None  # Entity the mention ended up linked to
    corrected_entity_id: Optional[UUID] = None
    notes: Optional[str] = None
    reviewer: str = "anonymous"
    decided_at: datetime = Field(default_factory=datetime.utcnow)


class ReviewActionRequest(BaseModel):
    """Request to record a review decision."""

    mention_id: UUID
    verdict: ReviewVerdict
    corrected_entity_id: Optional[UUID] = None
    new_entity_name: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    suggested_alias: list[str] = Field(default_factory=list)
    reopen: bool = False


class QueueItem(BaseModel):
    """A queued mention with enough context for side-by-side comparison."""

    mention_id: UUID
    raw_text: str
    normalized_text: str
    source_reference: str
    source_batch: Optional[str] = None
    confidence_tier: Optional[ConfidenceTier] = None
    similarity_score: Optional[float] = None
    suggested_entity_id: Optional[UUID] = None
    suggested_entity_name: Optional[str] = None
    created_at: datetime


class ReviewQueuePage(BaseModel):
    """One page of the review queue."""

    items: list[QueueItem]
    total: int
    by_tier: dict[str, int]
    limit: int
    offset: int


class BatchApprovalResult(BaseModel):
    """Outcome of approving several suggestions at once."""

    approved: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[dict[str, str]] = Field(default_factory=list)


class QueueStats(BaseModel):
    """Counts shown above the review queue."""

    queued: int = 0
    by_tier: dict[str, int] = Field(default_factory=dict)
    reviewed: dict[str, int] = Field(default_factory=dict)
    unmatched: int = 0
    approval_rate: float = 0.0  # Confirmed share of reviewed mentions
    correction_rate: float = 0.0
    rejection_rate: float = 0.0
