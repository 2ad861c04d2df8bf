"""
Mention schemas.

Mentions are raw observations of organization names in consultation
documents, before they are resolved to a canonical entity.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ResolutionState(str, Enum):
    """Lifecycle state of a mention."""

    UNRESOLVED = "unresolved"  # Not yet processed
    AUTO_LINKED = "auto_linked"  # Linked by the orchestrator
    QUEUED_FOR_REVIEW = "queued_for_review"  # Waiting for a human
    REVIEWED_CONFIRMED = "reviewed_confirmed"  # Human confirmed suggestion
    REVIEWED_CORRECTED = "reviewed_corrected"  # Human picked another entity
    REVIEWED_REJECTED = "reviewed_rejected"  # Human rejected, no link
    ENTITY_CREATED = "entity_created"  # Human minted a new entity
    UNMATCHED = "unmatched"  # Processed, nothing to link


REVIEWED_STATES = frozenset(
    {
        ResolutionState.REVIEWED_CONFIRMED,
        ResolutionState.REVIEWED_CORRECTED,
        ResolutionState.REVIEWED_REJECTED,
        ResolutionState.ENTITY_CREATED,
    }
)

# Allowed forward transitions. Reprocessing is the only way back.
FORWARD_TRANSITIONS: dict[ResolutionState, frozenset[ResolutionState]] = {
    ResolutionState.UNRESOLVED: frozenset(
        {
            ResolutionState.AUTO_LINKED,
            ResolutionState.QUEUED_FOR_REVIEW,
            ResolutionState.UNMATCHED,
        }
    ),
    ResolutionState.QUEUED_FOR_REVIEW: REVIEWED_STATES,
}


def can_transition(current: ResolutionState, target: ResolutionState) -> bool:
    """Check whether a forward transition is allowed."""
    return target in FORWARD_TRANSITIONS.get(current, frozenset())


class ConfidenceTier(str, Enum):
    """Discrete confidence bucket derived from a similarity score."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNMATCHED = "unmatched"

    @property
    def rank(self) -> int:
        """Ordering where a larger rank means more confidence."""
        return _TIER_RANK[self]

    def at_least(self, other: "ConfidenceTier") -> bool:
        """True if this tier is as confident as ``other`` or more."""
        return self.rank >= other.rank


_TIER_RANK = {
    ConfidenceTier.UNMATCHED: 0,
    ConfidenceTier.LOW: 1,
    ConfidenceTier.MEDIUM: 2,
    ConfidenceTier.HIGH: 3,
}


class RawMentionCreate(BaseModel):
    """Schema for ingesting a new mention."""

    raw_text: Optional[str] = None  # Exact text as scraped
    source_reference: str  # Document URL or file reference
    source_batch: Optional[str] = None  # e.g. the consultation (remiss) id
    entity_kind: str = "organization"


class RawMention(BaseModel):
    """Full mention with resolution fields."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    raw_text: str = ""
    normalized_text: str = ""
    source_reference: str
    source_batch: Optional[str] = None
    entity_kind: str = "organization"

    resolution_state: ResolutionState = ResolutionState.UNRESOLVED
    entity_id: Optional[UUID] = None

    # Last match attempt, kept for the review workbench
    confidence_tier: Optional[ConfidenceTier] = None
    similarity_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    suggested_entity_id: Optional[UUID] = None
    suggested_entity_name: Optional[str] = None

    resolution_method: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None  # 'system' or reviewer id

    created_at: datetime

    @property
    def is_linked(self) -> bool:
        """Check if the mention points at an entity."""
        return self.entity_id is not None


class MentionUpdate(BaseModel):
    """Fields written together with a state transition."""

    normalized_text: Optional[str] = None
    entity_id: Optional[UUID] = None
    confidence_tier: Optional[ConfidenceTier] = None
    similarity_score: Optional[float] = None
    suggested_entity_id: Optional[UUID] = None
    suggested_entity_name: Optional[str] = None
    resolution_method: Optional[str] = None
    resolved_by: str = "system"


class MatchResult(BaseModel):
    """Outcome of one resolution attempt. Never persisted as-is."""

    mention_id: Optional[UUID] = None
    entity_id: Optional[UUID] = None
    confidence_tier: ConfidenceTier = ConfidenceTier.UNMATCHED
    similarity_score: Optional[float] = None
    matched_name: Optional[str] = None
    method: str = "none"

    @property
    def is_match(self) -> bool:
        return self.entity_id is not None
