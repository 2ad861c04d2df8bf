"""
In-memory registry.

Implements the storage interfaces with plain dicts guarded by one
asyncio.Lock, with atomic() backed by a per-task undo journal. Used by
the test suite and for local experiments; the uniqueness and
compare-and-set guarantees match the SQL repositories.
"""

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Optional, Sequence
from uuid import UUID, uuid4

from remisslink.db.base import (
    EntityStore,
    MentionStore,
    Registry,
    ReviewStore,
    RuleStore,
)
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

# Cleared when a mention is sent back for reprocessing
RESET_FIELDS = {
    "entity_id": None,
    "confidence_tier": None,
    "similarity_score": None,
    "suggested_entity_id": None,
    "suggested_entity_name": None,
    "resolution_method": None,
    "resolved_at": None,
    "resolved_by": None,
}


def queue_sort_key(mention: RawMention) -> tuple[int, UUID]:
    rank = mention.confidence_tier.rank if mention.confidence_tier else 0
    return (-rank, mention.id)


_MISSING = object()

# Undo entries of the innermost atomic() scope in the current task
_undo_log: ContextVar[Optional[list[Callable[[], None]]]] = ContextVar(
    "remisslink_undo_log", default=None
)


def _journal(undo: Callable[[], None]) -> None:
    log = _undo_log.get()
    if log is not None:
        log.append(undo)


def _restore(table: dict, key: Any, written: Any, previous: Any) -> None:
    # A row another task replaced after this scope wrote it is left alone
    if table.get(key, _MISSING) is not written:
        return
    if previous is _MISSING:
        del table[key]
    else:
        table[key] = previous


def _put(table: dict, key: Any, value: Any) -> None:
    previous = table.get(key, _MISSING)
    table[key] = value
    _journal(lambda: _restore(table, key, value, previous))


def _drop(table: dict, key: Any) -> Any:
    previous = table.pop(key, _MISSING)
    if previous is not _MISSING:
        _journal(lambda: _restore(table, key, _MISSING, previous))
    return previous


def _discard(items: list, item: Any) -> None:
    for i, existing in enumerate(items):
        if existing is item:
            del items[i]
            return


class InMemoryMentionStore(MentionStore):
    def __init__(self, lock: asyncio.Lock):
        self._lock = lock
        self.rows: dict[UUID, RawMention] = {}

    async def add_many(self, mentions: Sequence[RawMentionCreate]) -> list[RawMention]:
        created = []
        async with self._lock:
            for data in mentions:
                raw_text = data.raw_text or ""
                mention = RawMention(
                    id=uuid4(),
                    raw_text=raw_text,
                    normalized_text=normalize_organization_name(raw_text),
                    source_reference=data.source_reference,
                    source_batch=data.source_batch,
                    entity_kind=data.entity_kind,
                    created_at=datetime.utcnow(),
                )
                _put(self.rows, mention.id, mention)
                created.append(mention)
        return created

    async def get(self, mention_id: UUID) -> Optional[RawMention]:
        return self.rows.get(mention_id)

    async def fetch_batch(
        self,
        states: Sequence[ResolutionState],
        limit: int,
        scope: Optional[str] = None,
        after_id: Optional[UUID] = None,
        entity_kind: Optional[str] = None,
        unlinked_only: bool = False,
    ) -> list[RawMention]:
        wanted = set(states)
        selected = [
            m
            for m in self.rows.values()
            if m.resolution_state in wanted
            and (scope is None or m.source_batch == scope)
            and (after_id is None or m.id > after_id)
            and (entity_kind is None or m.entity_kind == entity_kind)
            and (not unlinked_only or m.entity_id is None)
        ]
        selected.sort(key=lambda m: m.id)
        return selected[:limit]

    async def transition(
        self,
        mention_id: UUID,
        from_states: Sequence[ResolutionState],
        to_state: ResolutionState,
        changes: MentionUpdate,
    ) -> Optional[RawMention]:
        async with self._lock:
            current = self.rows.get(mention_id)
            if current is None or current.resolution_state not in from_states:
                return None
            values = changes.model_dump(exclude={"normalized_text"})
            if changes.normalized_text is not None:
                values["normalized_text"] = changes.normalized_text
            values["resolution_state"] = to_state
            values["resolved_at"] = datetime.utcnow()
            updated = current.model_copy(update=values)
            _put(self.rows, mention_id, updated)
            return updated

    async def reset(self, mention_id: UUID, from_states: Sequence[ResolutionState]) -> bool:
        async with self._lock:
            current = self.rows.get(mention_id)
            if current is None or current.resolution_state not in from_states:
                return False
            _put(
                self.rows,
                mention_id,
                current.model_copy(
                    update={**RESET_FIELDS, "resolution_state": ResolutionState.UNRESOLVED}
                ),
            )
            return True

    async def list_queue(
        self,
        tier: Optional[ConfidenceTier] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[RawMention]:
        queued = [
            m
            for m in self.rows.values()
            if m.resolution_state == ResolutionState.QUEUED_FOR_REVIEW
            and (tier is None or m.confidence_tier == tier)
        ]
        queued.sort(key=queue_sort_key)
        return queued[offset : offset + limit]

    async def count_queue_by_tier(self) -> dict[str, int]:
        counts = Counter(
            m.confidence_tier.value if m.confidence_tier else ConfidenceTier.UNMATCHED.value
            for m in self.rows.values()
            if m.resolution_state == ResolutionState.QUEUED_FOR_REVIEW
        )
        return dict(counts)

    async def count_by_state(self) -> dict[str, int]:
        return dict(Counter(m.resolution_state.value for m in self.rows.values()))


class InMemoryEntityStore(EntityStore):
    def __init__(self, lock: asyncio.Lock):
        self._lock = lock
        self.rows: dict[UUID, CanonicalEntity] = {}
        self._by_key: dict[tuple[str, str], UUID] = {}

    async def list_kind(self, entity_kind: str) -> list[CanonicalEntity]:
        entities = [e for e in self.rows.values() if e.entity_kind == entity_kind]
        entities.sort(key=lambda e: (e.created_at, e.id))
        return entities

    async def get(self, entity_id: UUID) -> Optional[CanonicalEntity]:
        return self.rows.get(entity_id)

    async def find_by_name(self, entity_kind: str, name: str) -> Optional[CanonicalEntity]:
        entity_id = self._by_key.get((entity_kind, name_key(name)))
        return self.rows.get(entity_id) if entity_id else None

    async def create(self, data: EntityCreate) -> tuple[CanonicalEntity, bool]:
        key = (data.entity_kind, data.name_key)
        async with self._lock:
            existing_id = self._by_key.get(key)
            if existing_id is not None:
                logger.debug(f"Entity '{data.canonical_name}' already exists")
                return self.rows[existing_id], False

            entity = CanonicalEntity(
                id=uuid4(),
                canonical_name=data.canonical_name,
                entity_kind=data.entity_kind,
                role=data.role,
                provenance=dict(data.provenance),
                created_at=datetime.utcnow(),
            )
            _put(self.rows, entity.id, entity)
            _put(self._by_key, key, entity.id)
            return entity, True


class InMemoryReviewStore(ReviewStore):
    def __init__(self, lock: asyncio.Lock):
        self._lock = lock
        self.current: dict[UUID, ReviewDecision] = {}
        self._history: list[ReviewDecision] = []

    async def save_decision(self, decision: ReviewDecision) -> ReviewDecision:
        async with self._lock:
            _put(self.current, decision.mention_id, decision)
            self._history.append(decision)
            _journal(lambda: _discard(self._history, decision))
        return decision

    async def get_decision(self, mention_id: UUID) -> Optional[ReviewDecision]:
        return self.current.get(mention_id)

    async def clear_decision(self, mention_id: UUID) -> bool:
        async with self._lock:
            return _drop(self.current, mention_id) is not _MISSING

    async def history(self, mention_id: UUID) -> list[ReviewDecision]:
        return [d for d in self._history if d.mention_id == mention_id]

    async def count_by_verdict(self) -> dict[str, int]:
        return dict(Counter(d.verdict.value for d in self.current.values()))


class InMemoryRuleStore(RuleStore):
    def __init__(self, lock: asyncio.Lock):
        self._lock = lock
        self.rows: dict[UUID, RuleEntry] = {}

    async def list_rules(
        self,
        status: Optional[RuleStatus] = None,
        kind: Optional[RuleKind] = None,
    ) -> list[RuleEntry]:
        rules = [
            r
            for r in self.rows.values()
            if (status is None or r.status == status)
            and (kind is None or r.rule_kind == kind)
        ]
        rules.sort(key=lambda r: (r.created_at, r.id))
        return rules

    async def add_rule(self, data: RuleEntryCreate) -> RuleEntry:
        now = datetime.utcnow()
        rule = RuleEntry(
            id=uuid4(),
            created_at=now,
            decided_at=now if data.status != RuleStatus.PENDING else None,
            **data.model_dump(),
        )
        async with self._lock:
            _put(self.rows, rule.id, rule)
        return rule

    async def get(self, rule_id: UUID) -> Optional[RuleEntry]:
        return self.rows.get(rule_id)

    async def set_status(self, rule_id: UUID, status: RuleStatus) -> Optional[RuleEntry]:
        async with self._lock:
            rule = self.rows.get(rule_id)
            if rule is None:
                return None
            updated = rule.model_copy(
                update={"status": status, "decided_at": datetime.utcnow()}
            )
            _put(self.rows, rule_id, updated)
            return updated


class InMemoryRegistry(Registry):
    """All stores backed by process memory."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self.mentions = InMemoryMentionStore(self._lock)
        self.entities = InMemoryEntityStore(self._lock)
        self.reviews = InMemoryReviewStore(self._lock)
        self.rules = InMemoryRuleStore(self._lock)

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        """
        Undo this task's writes if the scope raises.

        Writes are journaled per task, so a rollback never discards rows
        that other tasks wrote meanwhile. A nested scope hands its journal
        to the enclosing one on success.
        """
        log: list[Callable[[], None]] = []
        parent = _undo_log.get()
        token = _undo_log.set(log)
        try:
            yield
        except Exception:
            async with self._lock:
                for undo in reversed(log):
                    undo()
            raise
        else:
            if parent is not None:
                parent.extend(log)
        finally:
            _undo_log.reset(token)
