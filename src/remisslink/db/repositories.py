"""
SQL repositories for the registry.

Async SQLAlchemy implementations of the storage interfaces. All
repositories share one AsyncSession. The caller owns commit/rollback
(see api.deps.get_registry) unless the registry commits per unit.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from remisslink.db.base import (
    EntityStore,
    MentionStore,
    Registry,
    ReviewStore,
    RuleStore,
)
from remisslink.db.orm import (
    CanonicalEntityRow,
    RawMentionRow,
    ReviewDecisionHistoryRow,
    ReviewDecisionRow,
    RuleEntryRow,
)
from remisslink.errors import PersistenceError
from remisslink.matching.normalizer import normalize_organization_name
from remisslink.schemas.entity import CanonicalEntity, EntityCreate, name_key
from remisslink.schemas.mention import (
    ConfidenceTier,
    MentionUpdate,
    RawMention,
    RawMentionCreate,
    ResolutionState,
)
from remisslink.schemas.review import ReviewDecision
from remisslink.schemas.rule import RuleEntry, RuleEntryCreate, RuleKind, RuleStatus

logger = logging.getLogger(__name__)

# Queue order: most confident first
TIER_ORDER = case(
    (RawMentionRow.confidence_tier == ConfidenceTier.HIGH, 0),
    (RawMentionRow.confidence_tier == ConfidenceTier.MEDIUM, 1),
    (RawMentionRow.confidence_tier == ConfidenceTier.LOW, 2),
    else_=3,
)


@asynccontextmanager
async def persistence_guard(action: str) -> AsyncIterator[None]:
    """Translate driver errors into PersistenceError."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"{action} failed: {e}")
        raise PersistenceError(f"{action} failed: {e.__class__.__name__}") from e


class MentionRepository(MentionStore):
    """Repository for raw mentions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_many(self, mentions: Sequence[RawMentionCreate]) -> list[RawMention]:
        rows = []
        for data in mentions:
            raw_text = data.raw_text or ""
            rows.append(
                RawMentionRow(
                    id=uuid4(),
                    raw_text=raw_text,
                    normalized_text=normalize_organization_name(raw_text),
                    source_reference=data.source_reference,
                    source_batch=data.source_batch,
                    entity_kind=data.entity_kind,
                    resolution_state=ResolutionState.UNRESOLVED,
                    created_at=datetime.utcnow(),
                )
            )
        async with persistence_guard("Mention ingest"):
            self.session.add_all(rows)
            await self.session.flush()
        return [RawMention.model_validate(row) for row in rows]

    async def get(self, mention_id: UUID) -> Optional[RawMention]:
        async with persistence_guard(f"Read of mention {mention_id}"):
            result = await self.session.execute(
                select(RawMentionRow)
                .where(RawMentionRow.id == mention_id)
                .execution_options(populate_existing=True)
            )
        row = result.scalar_one_or_none()
        return RawMention.model_validate(row) if row else None

    async def fetch_batch(
        self,
        states: Sequence[ResolutionState],
        limit: int,
        scope: Optional[str] = None,
        after_id: Optional[UUID] = None,
        entity_kind: Optional[str] = None,
        unlinked_only: bool = False,
    ) -> list[RawMention]:
        stmt = select(RawMentionRow).where(RawMentionRow.resolution_state.in_(list(states)))
        if scope is not None:
            stmt = stmt.where(RawMentionRow.source_batch == scope)
        if after_id is not None:
            stmt = stmt.where(RawMentionRow.id > after_id)
        if entity_kind is not None:
            stmt = stmt.where(RawMentionRow.entity_kind == entity_kind)
        if unlinked_only:
            stmt = stmt.where(RawMentionRow.entity_id.is_(None))

        stmt = stmt.order_by(RawMentionRow.id).limit(limit)
        async with persistence_guard("Mention fetch"):
            result = await self.session.execute(stmt)
        return [RawMention.model_validate(row) for row in result.scalars().all()]

    async def transition(
        self,
        mention_id: UUID,
        from_states: Sequence[ResolutionState],
        to_state: ResolutionState,
        changes: MentionUpdate,
    ) -> Optional[RawMention]:
        values = changes.model_dump(exclude={"normalized_text"})
        if changes.normalized_text is not None:
            values["normalized_text"] = changes.normalized_text
        values["resolution_state"] = to_state
        values["resolved_at"] = datetime.utcnow()

        stmt = (
            update(RawMentionRow)
            .where(
                RawMentionRow.id == mention_id,
                RawMentionRow.resolution_state.in_(list(from_states)),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with persistence_guard(f"Transition of mention {mention_id}"):
            result = await self.session.execute(stmt)
        if result.rowcount != 1:
            return None
        return await self.get(mention_id)

    async def reset(self, mention_id: UUID, from_states: Sequence[ResolutionState]) -> bool:
        stmt = (
            update(RawMentionRow)
            .where(
                RawMentionRow.id == mention_id,
                RawMentionRow.resolution_state.in_(list(from_states)),
            )
            .values(
                resolution_state=ResolutionState.UNRESOLVED,
                entity_id=None,
                confidence_tier=None,
                similarity_score=None,
                suggested_entity_id=None,
                suggested_entity_name=None,
                resolution_method=None,
                resolved_at=None,
                resolved_by=None,
            )
            .execution_options(synchronize_session=False)
        )
        async with persistence_guard(f"Reset of mention {mention_id}"):
            result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def list_queue(
        self,
        tier: Optional[ConfidenceTier] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[RawMention]:
        stmt = select(RawMentionRow).where(
            RawMentionRow.resolution_state == ResolutionState.QUEUED_FOR_REVIEW
        )
        if tier is not None:
            stmt = stmt.where(RawMentionRow.confidence_tier == tier)
        stmt = stmt.order_by(TIER_ORDER, RawMentionRow.id).offset(offset).limit(limit)

        async with persistence_guard("Review queue load"):
            result = await self.session.execute(stmt)
        return [RawMention.model_validate(row) for row in result.scalars().all()]

    async def count_queue_by_tier(self) -> dict[str, int]:
        stmt = (
            select(RawMentionRow.confidence_tier, func.count())
            .where(RawMentionRow.resolution_state == ResolutionState.QUEUED_FOR_REVIEW)
            .group_by(RawMentionRow.confidence_tier)
        )
        async with persistence_guard("Review queue count"):
            result = await self.session.execute(stmt)
        return {
            (tier.value if tier else ConfidenceTier.UNMATCHED.value): count
            for tier, count in result.all()
        }

    async def count_by_state(self) -> dict[str, int]:
        stmt = select(RawMentionRow.resolution_state, func.count()).group_by(
            RawMentionRow.resolution_state
        )
        async with persistence_guard("Mention count"):
            result = await self.session.execute(stmt)
        return {state.value: count for state, count in result.all()}


class EntityRepository(EntityStore):
    """Repository for canonical entities."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_kind(self, entity_kind: str) -> list[CanonicalEntity]:
        stmt = (
            select(CanonicalEntityRow)
            .where(CanonicalEntityRow.entity_kind == entity_kind)
            .order_by(CanonicalEntityRow.created_at, CanonicalEntityRow.id)
        )
        async with persistence_guard("Entity pool load"):
            result = await self.session.execute(stmt)
        return [CanonicalEntity.model_validate(row) for row in result.scalars().all()]

    async def get(self, entity_id: UUID) -> Optional[CanonicalEntity]:
        async with persistence_guard(f"Read of entity {entity_id}"):
            row = await self.session.get(CanonicalEntityRow, entity_id)
        return CanonicalEntity.model_validate(row) if row else None

    async def find_by_name(self, entity_kind: str, name: str) -> Optional[CanonicalEntity]:
        async with persistence_guard(f"Lookup of entity '{name}'"):
            result = await self.session.execute(
                select(CanonicalEntityRow).where(
                    CanonicalEntityRow.entity_kind == entity_kind,
                    CanonicalEntityRow.name_key == name_key(name),
                )
            )
        row = result.scalar_one_or_none()
        return CanonicalEntity.model_validate(row) if row else None

    async def create(self, data: EntityCreate) -> tuple[CanonicalEntity, bool]:
        new_id = uuid4()
        values = {
            "id": new_id,
            "canonical_name": data.canonical_name,
            "name_key": data.name_key,
            "entity_kind": data.entity_kind,
            "role": data.role,
            "provenance": dict(data.provenance),
            "created_at": datetime.utcnow(),
        }

        async with persistence_guard(f"Create of entity '{data.canonical_name}'"):
            dialect = self.session.get_bind().dialect.name
            if dialect in ("postgresql", "sqlite"):
                await self._insert_ignoring_conflict(dialect, values)
            else:
                await self._insert_with_savepoint(values)

            existing = await self.find_by_name(data.entity_kind, data.canonical_name)

        if existing is None:
            raise PersistenceError(f"Entity '{data.canonical_name}' vanished after insert")
        created = existing.id == new_id
        if not created:
            logger.info(
                f"Entity '{data.canonical_name}' already existed, reusing {existing.id}"
            )
        return existing, created

    async def _insert_ignoring_conflict(self, dialect: str, values: dict) -> None:
        """INSERT ... ON CONFLICT DO NOTHING on the (entity_kind, name_key) key."""
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert

        stmt = (
            insert(CanonicalEntityRow)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["entity_kind", "name_key"])
        )
        await self.session.execute(stmt)

    async def _insert_with_savepoint(self, values: dict) -> None:
        try:
            async with self.session.begin_nested():
                self.session.add(CanonicalEntityRow(**values))
        except IntegrityError:
            logger.debug(f"Unique conflict on '{values['canonical_name']}'")


class ReviewRepository(ReviewStore):
    """Repository for review decisions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save_decision(self, decision: ReviewDecision) -> ReviewDecision:
        fields = decision.model_dump(exclude={"mention_id"})
        async with persistence_guard(f"Decision save for mention {decision.mention_id}"):
            row = await self.session.get(ReviewDecisionRow, decision.mention_id)
            if row is None:
                self.session.add(ReviewDecisionRow(mention_id=decision.mention_id, **fields))
            else:
                for key, value in fields.items():
                    setattr(row, key, value)
            self.session.add(
                ReviewDecisionHistoryRow(id=uuid4(), mention_id=decision.mention_id, **fields)
            )
            await self.session.flush()
        return decision

    async def get_decision(self, mention_id: UUID) -> Optional[ReviewDecision]:
        async with persistence_guard(f"Decision read for mention {mention_id}"):
            row = await self.session.get(ReviewDecisionRow, mention_id)
        return ReviewDecision.model_validate(row) if row else None

    async def clear_decision(self, mention_id: UUID) -> bool:
        async with persistence_guard(f"Decision clear for mention {mention_id}"):
            row = await self.session.get(ReviewDecisionRow, mention_id)
            if row is None:
                return False
            await self.session.delete(row)
            await self.session.flush()
        return True

    async def history(self, mention_id: UUID) -> list[ReviewDecision]:
        stmt = (
            select(ReviewDecisionHistoryRow)
            .where(ReviewDecisionHistoryRow.mention_id == mention_id)
            .order_by(ReviewDecisionHistoryRow.decided_at, ReviewDecisionHistoryRow.id)
        )
        async with persistence_guard(f"Decision history for mention {mention_id}"):
            result = await self.session.execute(stmt)
        return [ReviewDecision.model_validate(row) for row in result.scalars().all()]

    async def count_by_verdict(self) -> dict[str, int]:
        stmt = select(ReviewDecisionRow.verdict, func.count()).group_by(ReviewDecisionRow.verdict)
        async with persistence_guard("Verdict count"):
            result = await self.session.execute(stmt)
        return {verdict.value: count for verdict, count in result.all()}


class RuleRepository(RuleStore):
    """Repository for blocklist and alias rules."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_rules(
        self,
        status: Optional[RuleStatus] = None,
        kind: Optional[RuleKind] = None,
    ) -> list[RuleEntry]:
        stmt = select(RuleEntryRow)
        if status is not None:
            stmt = stmt.where(RuleEntryRow.status == status)
        if kind is not None:
            stmt = stmt.where(RuleEntryRow.rule_kind == kind)
        stmt = stmt.order_by(RuleEntryRow.created_at, RuleEntryRow.id)

        async with persistence_guard("Rule load"):
            result = await self.session.execute(stmt)
        return [RuleEntry.model_validate(row) for row in result.scalars().all()]

    async def add_rule(self, data: RuleEntryCreate) -> RuleEntry:
        now = datetime.utcnow()
        row = RuleEntryRow(
            id=uuid4(),
            created_at=now,
            decided_at=now if data.status != RuleStatus.PENDING else None,
            **data.model_dump(),
        )
        async with persistence_guard("Rule add"):
            self.session.add(row)
            await self.session.flush()
        return RuleEntry.model_validate(row)

    async def get(self, rule_id: UUID) -> Optional[RuleEntry]:
        async with persistence_guard(f"Read of rule {rule_id}"):
            row = await self.session.get(RuleEntryRow, rule_id)
        return RuleEntry.model_validate(row) if row else None

    async def set_status(self, rule_id: UUID, status: RuleStatus) -> Optional[RuleEntry]:
        async with persistence_guard(f"Status change of rule {rule_id}"):
            row = await self.session.get(RuleEntryRow, rule_id)
            if row is None:
                return None
            row.status = status
            row.decided_at = datetime.utcnow()
            await self.session.flush()
        return RuleEntry.model_validate(row)


class SQLRegistry(Registry):
    """
    All repositories bound to one session.

    With ``commit_units`` the outermost atomic() scope commits the session
    transaction on exit and rolls it back on error, so each mention a batch
    job writes is durable on its own. Nested scopes are savepoints. Without
    it every scope is a savepoint and the caller commits.
    """

    def __init__(self, session: AsyncSession, commit_units: bool = False):
        self.session = session
        self.commit_units = commit_units
        self._depth = 0
        self.mentions = MentionRepository(session)
        self.entities = EntityRepository(session)
        self.reviews = ReviewRepository(session)
        self.rules = RuleRepository(session)

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        outermost = self._depth == 0
        self._depth += 1
        try:
            if self.commit_units and outermost:
                async with self._unit():
                    yield
            else:
                async with self.session.begin_nested():
                    yield
        finally:
            self._depth -= 1

    @asynccontextmanager
    async def _unit(self) -> AsyncIterator[None]:
        try:
            yield
            async with persistence_guard("Commit"):
                await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
