"""
Batch job schemas: linking runs, reprocessing and bootstrap.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from remisslink.schemas.mention import ConfidenceTier, ResolutionState


class LinkRequest(BaseModel):
    """Parameters for one linking run. None means the configured default."""

    scope_filter: Optional[str] = None  # Only mentions from this source batch
    limit: Optional[int] = None
    create_entities: bool = False
    dry_run: bool = False
    min_confidence_tier: Optional[ConfidenceTier] = None  # Lowest tier linked without review
    after_id: Optional[UUID] = None
    entity_kind: Optional[str] = None


class LinkError(BaseModel):
    mention_id: UUID
    error: str


class MatchSample(BaseModel):
    """A queued match, for operator preview."""

    mention_id: UUID
    raw_text: str
    normalized_text: str
    confidence_tier: ConfidenceTier
    similarity_score: Optional[float] = None
    suggested_entity_id: Optional[UUID] = None
    suggested_entity_name: Optional[str] = None


class NameCount(BaseModel):
    name: str
    count: int


class LinkSummary(BaseModel):
    """Outcome of a linking run. Same shape for dry runs."""

    processed: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    unmatched: int = 0
    linked: int = 0
    queued: int = 0
    blocked: int = 0
    skipped: int = 0
    entities_created: int = 0
    errors: list[LinkError] = Field(default_factory=list)
    low_confidence_samples: list[MatchSample] = Field(default_factory=list)
    top_unmatched_names: list[NameCount] = Field(default_factory=list)
    next_after_id: Optional[UUID] = None
    dry_run: bool = False
    rule_list_version: Optional[str] = None
    duration_ms: int = 0


class ReprocessRequest(BaseModel):
    """Send mentions back to unresolved."""

    mention_ids: list[UUID] = Field(default_factory=list)
    scope_filter: Optional[str] = None
    states: list[ResolutionState] = Field(
        default_factory=lambda: [ResolutionState.UNMATCHED]
    )
    limit: int = Field(1000, ge=1, le=10000)


class ReprocessSummary(BaseModel):
    requested: int = 0
    reset: int = 0
    skipped: int = 0
    decisions_cleared: int = 0
    errors: list[LinkError] = Field(default_factory=list)


class BootstrapRequest(BaseModel):
    """Parameters for seeding the registry from the mention corpus."""

    min_occurrences: Optional[int] = None
    limit: Optional[int] = None  # Maximum entities created
    dry_run: bool = False
    scope_filter: Optional[str] = None
    entity_kind: Optional[str] = None
    role: Optional[str] = None


class BootstrapSummary(BaseModel):
    """Outcome of a bootstrap run."""

    mentions_fetched: int = 0
    pages_fetched: int = 0
    unique_raw_names: int = 0
    unique_normalized_names: int = 0
    entities_created: int = 0
    entities_already_exist: int = 0
    invalid_rejected: int = 0
    rejected_too_short: int = 0
    rejected_too_long: int = 0
    rejected_contact_info: int = 0
    rejected_blocked_phrase: int = 0
    skipped_low_occurrence: int = 0
    sample_created: list[NameCount] = Field(default_factory=list)
    sample_skipped_invalid: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    dry_run: bool = False
    rule_list_version: Optional[str] = None
