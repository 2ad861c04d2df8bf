"""
SQLAlchemy models for the remisslink registry.

Tables:
- raw_mentions: observed names and their resolution state
- canonical_entities: one row per real-world organization
- review_decisions / review_decision_history: human judgments
- rule_entries: blocklist and alias rules

Column types are dialect-neutral (Uuid, JSON with a JSONB variant) so the
same models run on PostgreSQL and SQLite.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from remisslink.schemas.mention import ConfidenceTier, ResolutionState
from remisslink.schemas.review import ReviewVerdict
from remisslink.schemas.rule import RuleKind, RuleStatus

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _enum(enum_cls: type) -> SQLEnum:
    """Store enum values, not member names, in a VARCHAR column."""
    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=30,
        values_callable=lambda members: [m.value for m in members],
    )


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class CanonicalEntityRow(Base):
    """
    Registry record for one organization.

    name_key is the casefolded canonical name; the unique constraint on
    (entity_kind, name_key) is what makes concurrent creation safe.
    """

    __tablename__ = "canonical_entities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    canonical_name: Mapped[str] = mapped_column(String(500), nullable=False)
    name_key: Mapped[str] = mapped_column(String(500), nullable=False)
    entity_kind: Mapped[str] = mapped_column(String(50), nullable=False, default="organization")
    role: Mapped[Optional[str]] = mapped_column(String(100))
    provenance: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("entity_kind", "name_key", name="uq_canonical_entities_kind_name"),
        Index("idx_canonical_entities_kind_created", "entity_kind", "created_at"),
    )


class RawMentionRow(Base):
    """An observed organization name in a source document."""

    __tablename__ = "raw_mentions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    raw_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    normalized_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source_reference: Mapped[str] = mapped_column(Text, nullable=False)
    source_batch: Mapped[Optional[str]] = mapped_column(String(200))
    entity_kind: Mapped[str] = mapped_column(String(50), nullable=False, default="organization")

    resolution_state: Mapped[ResolutionState] = mapped_column(
        _enum(ResolutionState), nullable=False, default=ResolutionState.UNRESOLVED
    )
    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("canonical_entities.id")
    )

    # Last match attempt
    confidence_tier: Mapped[Optional[ConfidenceTier]] = mapped_column(_enum(ConfidenceTier))
    similarity_score: Mapped[Optional[float]] = mapped_column(Float)
    suggested_entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("canonical_entities.id")
    )
    suggested_entity_name: Mapped[Optional[str]] = mapped_column(String(500))

    resolution_method: Mapped[Optional[str]] = mapped_column(String(50))
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_raw_mentions_state", "resolution_state"),
        Index("idx_raw_mentions_batch", "source_batch"),
        Index("idx_raw_mentions_entity", "entity_id"),
    )


class ReviewDecisionRow(Base):
    """Current human decision for a mention (one row per mention)."""

    __tablename__ = "review_decisions"

    mention_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("raw_mentions.id"), primary_key=True
    )
    verdict: Mapped[ReviewVerdict] = mapped_column(_enum(ReviewVerdict), nullable=False)
    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    corrected_entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    reviewer: Mapped[str] = mapped_column(String(100), nullable=False)
    decided_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ReviewDecisionHistoryRow(Base):
    """Append-only log of every decision ever recorded."""

    __tablename__ = "review_decision_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    mention_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("raw_mentions.id"), nullable=False, index=True
    )
    verdict: Mapped[ReviewVerdict] = mapped_column(_enum(ReviewVerdict), nullable=False)
    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    corrected_entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    reviewer: Mapped[str] = mapped_column(String(100), nullable=False)
    decided_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class RuleEntryRow(Base):
    """Blocklist or alias rule."""

    __tablename__ = "rule_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    pattern: Mapped[str] = mapped_column(String(500), nullable=False)
    rule_kind: Mapped[RuleKind] = mapped_column(_enum(RuleKind), nullable=False)
    target: Mapped[Optional[str]] = mapped_column(String(500))
    status: Mapped[RuleStatus] = mapped_column(
        _enum(RuleStatus), nullable=False, default=RuleStatus.PENDING
    )
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="curator")
    source_mention_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    created_by: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (Index("idx_rule_entries_status_kind", "status", "rule_kind"),)
