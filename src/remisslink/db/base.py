"""
Storage interfaces for the registry.

Jobs and the review workbench talk to these interfaces only, so the same
code runs against PostgreSQL (db.repositories) and the in-memory store
(db.memory) used by tests and dry tooling.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Optional, Sequence
from uuid import UUID

from remisslink.schemas.entity import CanonicalEntity, EntityCreate
from remisslink.schemas.mention import (
    ConfidenceTier,
    MentionUpdate,
    RawMention,
    RawMentionCreate,
    ResolutionState,
)
from remisslink.schemas.review import ReviewDecision
from remisslink.schemas.rule import RuleEntry, RuleEntryCreate, RuleKind, RuleStatus


class MentionStore(ABC):
    """Raw mentions and their resolution state."""

    @abstractmethod
    async def add_many(self, mentions: Sequence[RawMentionCreate]) -> list[RawMention]:
        """Ingest mentions in state unresolved."""

    @abstractmethod
    async def get(self, mention_id: UUID) -> Optional[RawMention]:
        """Get a mention by id."""

    @abstractmethod
    async def fetch_batch(
        self,
        states: Sequence[ResolutionState],
        limit: int,
        scope: Optional[str] = None,
        after_id: Optional[UUID] = None,
        entity_kind: Optional[str] = None,
        unlinked_only: bool = False,
    ) -> list[RawMention]:
        """
        Fetch mentions in the given states, ordered by id.

        Args:
            states: Resolution states to include
            limit: Maximum number of mentions
            scope: Only mentions from this source batch
            after_id: Cursor, only ids strictly greater than this
            entity_kind: Only mentions of this kind
            unlinked_only: Only mentions without an entity link
        """

    @abstractmethod
    async def transition(
        self,
        mention_id: UUID,
        from_states: Sequence[ResolutionState],
        to_state: ResolutionState,
        changes: MentionUpdate,
    ) -> Optional[RawMention]:
        """
        Compare-and-set state change.

        Writes ``changes`` and ``to_state`` only if the mention is currently
        in one of ``from_states``. Returns None when it was not, which
        callers treat as "somebody else got there first".
        """

    @abstractmethod
    async def reset(self, mention_id: UUID, from_states: Sequence[ResolutionState]) -> bool:
        """Move a mention back to unresolved and clear link and suggestion."""

    @abstractmethod
    async def list_queue(
        self,
        tier: Optional[ConfidenceTier] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[RawMention]:
        """Queued mentions, most confident tier first, then by id."""

    @abstractmethod
    async def count_queue_by_tier(self) -> dict[str, int]:
        """Number of queued mentions per confidence tier."""

    @abstractmethod
    async def count_by_state(self) -> dict[str, int]:
        """Number of mentions per resolution state."""


class EntityStore(ABC):
    """Canonical entities."""

    @abstractmethod
    async def list_kind(self, entity_kind: str) -> list[CanonicalEntity]:
        """All entities of a kind ordered by (created_at, id)."""

    @abstractmethod
    async def get(self, entity_id: UUID) -> Optional[CanonicalEntity]:
        """Get an entity by id."""

    @abstractmethod
    async def find_by_name(self, entity_kind: str, name: str) -> Optional[CanonicalEntity]:
        """Case-insensitive lookup of a canonical name."""

    @abstractmethod
    async def create(self, data: EntityCreate) -> tuple[CanonicalEntity, bool]:
        """
        Conflict-safe create.

        Returns the entity and whether this call created it. When another
        writer already holds the name the existing entity is returned with
        created=False.
        """


class ReviewStore(ABC):
    """Review decisions, one current per mention plus history."""

    @abstractmethod
    async def save_decision(self, decision: ReviewDecision) -> ReviewDecision:
        """Upsert the current decision and append it to history."""

    @abstractmethod
    async def get_decision(self, mention_id: UUID) -> Optional[ReviewDecision]:
        """Current decision for a mention."""

    @abstractmethod
    async def clear_decision(self, mention_id: UUID) -> bool:
        """Drop the current decision (history is kept)."""

    @abstractmethod
    async def history(self, mention_id: UUID) -> list[ReviewDecision]:
        """All decisions ever recorded for a mention, oldest first."""

    @abstractmethod
    async def count_by_verdict(self) -> dict[str, int]:
        """Number of current decisions per verdict."""


class RuleStore(ABC):
    """Blocklist and alias rules."""

    @abstractmethod
    async def list_rules(
        self,
        status: Optional[RuleStatus] = None,
        kind: Optional[RuleKind] = None,
    ) -> list[RuleEntry]:
        """Rules ordered by (created_at, id)."""

    @abstractmethod
    async def add_rule(self, data: RuleEntryCreate) -> RuleEntry:
        """Store a new rule."""

    @abstractmethod
    async def get(self, rule_id: UUID) -> Optional[RuleEntry]:
        """Get a rule by id."""

    @abstractmethod
    async def set_status(self, rule_id: UUID, status: RuleStatus) -> Optional[RuleEntry]:
        """Change a rule's status. Returns None if the rule does not exist."""


class Registry(ABC):
    """Bundle of stores sharing one unit of work."""

    mentions: MentionStore
    entities: EntityStore
    reviews: ReviewStore
    rules: RuleStore

    @abstractmethod
    def atomic(self) -> AbstractAsyncContextManager:
        """
        Scope in which writes succeed or fail together.

        Batch jobs open one per mention, so a failed write is rolled back
        without touching the rest of the batch. Scopes may nest; an
        implementation may make the outermost scope durable on exit.
        """
