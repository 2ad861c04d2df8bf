"""
Rule list schemas.

Rules short-circuit matching for recurring noise (blocklist) and for known
equivalent names (alias). Only approved rules are live.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RuleKind(str, Enum):
    BLOCKLIST = "blocklist"
    ALIAS = "alias"


class RuleStatus(str, Enum):
    PENDING = "pending"  # Suggested from review, awaiting a curator
    APPROVED = "approved"
    REJECTED = "rejected"


class RuleEntryCreate(BaseModel):
    """Schema for proposing or curating a rule."""

    pattern: str = Field(..., min_length=1, max_length=500)
    rule_kind: RuleKind
    target: Optional[str] = None  # Canonical name an alias points at
    status: RuleStatus = RuleStatus.PENDING
    source: str = "curator"
    source_mention_id: Optional[UUID] = None
    created_by: Optional[str] = None

    @field_validator("pattern")
    @classmethod
    def strip_pattern(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("pattern cannot be blank")
        return v


class RuleEntry(RuleEntryCreate):
    """Stored rule."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    decided_at: Optional[datetime] = None
