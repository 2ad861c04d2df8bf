"""
Pydantic schemas for API request/response validation.
"""

from remisslink.schemas.entity import CanonicalEntity, EntityCreate, name_key
from remisslink.schemas.linking import (
    BootstrapRequest,
    BootstrapSummary,
    LinkError,
    LinkRequest,
    LinkSummary,
    MatchSample,
    NameCount,
    ReprocessRequest,
    ReprocessSummary,
)
from remisslink.schemas.mention import (
    ConfidenceTier,
    MatchResult,
    MentionUpdate,
    RawMention,
    RawMentionCreate,
    ResolutionState,
    can_transition,
)
from remisslink.schemas.review import (
    BatchApprovalResult,
    QueueItem,
    QueueStats,
    ReviewActionRequest,
    ReviewDecision,
    ReviewQueuePage,
    ReviewVerdict,
)
from remisslink.schemas.rule import RuleEntry, RuleEntryCreate, RuleKind, RuleStatus

__all__ = [
    # Mentions
    "RawMention",
    "RawMentionCreate",
    "MentionUpdate",
    "MatchResult",
    "ResolutionState",
    "ConfidenceTier",
    "can_transition",
    # Entities
    "CanonicalEntity",
    "EntityCreate",
    "name_key",
    # Jobs
    "LinkRequest",
    "LinkSummary",
    "LinkError",
    "MatchSample",
    "NameCount",
    "ReprocessRequest",
    "ReprocessSummary",
    "BootstrapRequest",
    "BootstrapSummary",
    # Review
    "ReviewVerdict",
    "ReviewDecision",
    "ReviewActionRequest",
    "QueueItem",
    "ReviewQueuePage",
    "BatchApprovalResult",
    "QueueStats",
    # Rules
    "RuleEntry",
    "RuleEntryCreate",
    "RuleKind",
    "RuleStatus",
]
