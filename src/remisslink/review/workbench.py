"""
Review workbench.

Human-in-loop decisions on queued mentions. Every action is a
compare-and-set from queued_for_review (or, when reopening, from a
reviewed state) and writes the mention, the ReviewDecision and any
suggested rules in one atomic scope.
"""

import logging
from typing import Optional, Sequence
from uuid import UUID

from pydantic import ValidationError

from remisslink.config import Settings, settings
from remisslink.db.base import Registry
from remisslink.errors import (
    ConfigurationError,
    EntityNotFoundError,
    InvalidTransitionError,
    MentionNotFoundError,
    PersistenceError,
    QueueUnavailableError,
)
from remisslink.review.stats import collect_queue_stats
from remisslink.rules.rule_list import RuleCurator
from remisslink.schemas.entity import CanonicalEntity, EntityCreate
from remisslink.schemas.mention import (
    REVIEWED_STATES,
    ConfidenceTier,
    MentionUpdate,
    RawMention,
    ResolutionState,
)
from remisslink.schemas.review import (
    VERDICT_STATES,
    BatchApprovalResult,
    QueueItem,
    QueueStats,
    ReviewActionRequest,
    ReviewDecision,
    ReviewQueuePage,
    ReviewVerdict,
)
from remisslink.schemas.rule import RuleKind

logger = logging.getLogger(__name__)

QUEUED = [ResolutionState.QUEUED_FOR_REVIEW]


def _queue_item(mention: RawMention) -> QueueItem:
    return QueueItem(
        mention_id=mention.id,
        raw_text=mention.raw_text,
        normalized_text=mention.normalized_text,
        source_reference=mention.source_reference,
        source_batch=mention.source_batch,
        confidence_tier=mention.confidence_tier,
        similarity_score=mention.similarity_score,
        suggested_entity_id=mention.suggested_entity_id,
        suggested_entity_name=mention.suggested_entity_name,
        created_at=mention.created_at,
    )


class ReviewWorkbench:
    """Queue listing and review actions for operators."""

    def __init__(self, registry: Registry, config: Optional[Settings] = None):
        self.registry = registry
        self.config = config or settings
        self.curator = RuleCurator(registry.rules)

    async def list_queue(
        self,
        tier: Optional[ConfidenceTier] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> ReviewQueuePage:
        """
        One page of the queue, most confident tier first.

        Raises:
            QueueUnavailableError: The queue could not be read. An empty
                queue is returned as an empty page instead.
        """
        limit = limit if limit is not None else self.config.review_page_size
        if limit < 1 or offset < 0:
            raise ConfigurationError(
                "limit must be positive and offset non-negative",
                {"limit": limit, "offset": offset},
            )

        try:
            mentions = await self.registry.mentions.list_queue(tier=tier, limit=limit, offset=offset)
            by_tier = await self.registry.mentions.count_queue_by_tier()
        except PersistenceError as e:
            logger.error(f"Review queue load failed: {e}")
            raise QueueUnavailableError("Review queue could not be loaded") from e

        total = by_tier.get(tier.value, 0) if tier else sum(by_tier.values())
        return ReviewQueuePage(
            items=[_queue_item(m) for m in mentions],
            total=total,
            by_tier=by_tier,
            limit=limit,
            offset=offset,
        )

    async def stats(self) -> QueueStats:
        try:
            return await collect_queue_stats(self.registry)
        except PersistenceError as e:
            logger.error(f"Review stats load failed: {e}")
            raise QueueUnavailableError("Review statistics could not be loaded") from e

    async def approve(
        self,
        mention_id: UUID,
        reviewer: str,
        corrected_entity_id: Optional[UUID] = None,
        notes: Optional[str] = None,
        suggested_aliases: Sequence[str] = (),
        reopen: bool = False,
    ) -> RawMention:
        """
        Link a queued mention.

        Without ``corrected_entity_id`` the suggested entity is confirmed;
        with a different entity the verdict is "corrected".
        """
        mention = await self._get_mention(mention_id)

        entity_id = corrected_entity_id or mention.suggested_entity_id
        if entity_id is None:
            raise ConfigurationError(
                "Mention has no suggested entity; a corrected_entity_id is required",
                {"mention_id": str(mention_id)},
            )
        entity = await self._get_entity(entity_id)

        verdict = ReviewVerdict.CONFIRMED
        if corrected_entity_id and corrected_entity_id != mention.suggested_entity_id:
            verdict = ReviewVerdict.CORRECTED

        async with self.registry.atomic():
            updated = await self._apply(
                mention, verdict, reviewer, entity=entity, notes=notes, reopen=reopen
            )
            await self._suggest_rules(mention, RuleKind.ALIAS, suggested_aliases, reviewer, entity)

        logger.info(f"Mention {mention_id} {verdict.value} -> {entity.id} by {reviewer}")
        return updated

    async def reject(
        self,
        mention_id: UUID,
        reviewer: str,
        notes: Optional[str] = None,
        suggested_aliases: Sequence[str] = (),
        reopen: bool = False,
    ) -> RawMention:
        """Mark a mention as not linkable. Rejecting twice is a no-op."""
        mention = await self._get_mention(mention_id)
        if mention.resolution_state == ResolutionState.REVIEWED_REJECTED:
            logger.debug(f"Mention {mention_id} already rejected")
            return mention

        async with self.registry.atomic():
            updated = await self._apply(
                mention, ReviewVerdict.REJECTED, reviewer, notes=notes, reopen=reopen
            )
            await self._suggest_rules(mention, RuleKind.BLOCKLIST, suggested_aliases, reviewer)

        logger.info(f"Mention {mention_id} rejected by {reviewer}")
        return updated

    async def create_new(
        self,
        mention_id: UUID,
        name: Optional[str],
        reviewer: str,
        notes: Optional[str] = None,
        suggested_aliases: Sequence[str] = (),
        reopen: bool = False,
    ) -> RawMention:
        """
        Mint an entity for a respondent that is not in the registry yet.

        Falls back to the normalized mention text when no name is given.
        If another writer already created the name, the mention is linked
        to that entity.
        """
        mention = await self._get_mention(mention_id)
        self._check_state(mention, ReviewVerdict.CREATED_NEW, reopen)

        try:
            data = EntityCreate(
                canonical_name=name or mention.normalized_text or mention.raw_text,
                entity_kind=mention.entity_kind,
                role=self.config.default_entity_role,
                provenance={
                    "source": "uninvited_respondent",
                    "mention_id": str(mention.id),
                    "source_reference": mention.source_reference,
                    "created_by": reviewer,
                },
            )
        except ValidationError as e:
            raise ConfigurationError("Invalid entity name", {"errors": e.errors()}) from e

        async with self.registry.atomic():
            entity, created = await self.registry.entities.create(data)
            updated = await self._apply(
                mention, ReviewVerdict.CREATED_NEW, reviewer, entity=entity, notes=notes, reopen=reopen
            )
            await self._suggest_rules(mention, RuleKind.ALIAS, suggested_aliases, reviewer, entity)

        logger.info(
            f"Mention {mention_id} linked to {'new' if created else 'existing'} "
            f"entity '{entity.canonical_name}' by {reviewer}"
        )
        return updated

    async def decide(self, request: ReviewActionRequest, reviewer: str) -> RawMention:
        """Dispatch a review request on its verdict."""
        common = {
            "reviewer": reviewer,
            "notes": request.notes,
            "suggested_aliases": request.suggested_alias,
            "reopen": request.reopen,
        }
        if request.verdict == ReviewVerdict.REJECTED:
            return await self.reject(request.mention_id, **common)
        if request.verdict == ReviewVerdict.CREATED_NEW:
            return await self.create_new(request.mention_id, request.new_entity_name, **common)
        if request.verdict == ReviewVerdict.CORRECTED and request.corrected_entity_id is None:
            raise ConfigurationError("A corrected verdict needs corrected_entity_id")
        return await self.approve(
            request.mention_id, corrected_entity_id=request.corrected_entity_id, **common
        )

    async def approve_many(self, mention_ids: Sequence[UUID], reviewer: str) -> BatchApprovalResult:
        """
        Confirm the suggested entity for several mentions.

        Each mention is its own atomic scope. Mentions that are no longer
        queued or have no suggestion are skipped; anything else that goes
        wrong is counted as failed.
        """
        result = BatchApprovalResult()
        for mention_id in dict.fromkeys(mention_ids):
            try:
                await self.approve(mention_id, reviewer)
                result.approved += 1
            except (InvalidTransitionError, ConfigurationError) as e:
                result.skipped += 1
                result.errors.append({"mention_id": str(mention_id), "error": str(e)})
            except (MentionNotFoundError, EntityNotFoundError, PersistenceError) as e:
                logger.error(f"Batch approval of {mention_id} failed: {e}")
                result.failed += 1
                result.errors.append({"mention_id": str(mention_id), "error": str(e)})

        logger.info(
            f"Batch approval by {reviewer}: approved={result.approved}, "
            f"skipped={result.skipped}, failed={result.failed}"
        )
        return result

    async def _get_mention(self, mention_id: UUID) -> RawMention:
        mention = await self.registry.mentions.get(mention_id)
        if mention is None:
            raise MentionNotFoundError(f"Mention {mention_id} not found")
        return mention

    async def _get_entity(self, entity_id: UUID) -> CanonicalEntity:
        entity = await self.registry.entities.get(entity_id)
        if entity is None:
            raise EntityNotFoundError(f"Entity {entity_id} not found")
        return entity

    @staticmethod
    def _from_states(reopen: bool) -> list[ResolutionState]:
        if reopen:
            return QUEUED + sorted(REVIEWED_STATES, key=lambda s: s.value)
        return QUEUED

    def _check_state(self, mention: RawMention, verdict: ReviewVerdict, reopen: bool) -> None:
        if mention.resolution_state not in self._from_states(reopen):
            raise InvalidTransitionError(
                mention.id, mention.resolution_state.value, VERDICT_STATES[verdict].value
            )

    async def _apply(
        self,
        mention: RawMention,
        verdict: ReviewVerdict,
        reviewer: str,
        entity: Optional[CanonicalEntity] = None,
        notes: Optional[str] = None,
        reopen: bool = False,
    ) -> RawMention:
        """Transition the mention and record the decision. Caller holds atomic()."""
        self._check_state(mention, verdict, reopen)
        target = VERDICT_STATES[verdict]

        # Suggestion fields are kept so a reopened mention still shows them
        updated = await self.registry.mentions.transition(
            mention.id,
            self._from_states(reopen),
            target,
            MentionUpdate(
                normalized_text=mention.normalized_text,
                entity_id=entity.id if entity else None,
                confidence_tier=mention.confidence_tier,
                similarity_score=mention.similarity_score,
                suggested_entity_id=mention.suggested_entity_id,
                suggested_entity_name=mention.suggested_entity_name,
                resolution_method=f"review_{verdict.value}",
                resolved_by=reviewer,
            ),
        )
        if updated is None:
            current = await self.registry.mentions.get(mention.id)
            raise InvalidTransitionError(
                mention.id,
                current.resolution_state.value if current else "missing",
                target.value,
            )

        await self.registry.reviews.save_decision(
            ReviewDecision(
                mention_id=mention.id,
                verdict=verdict,
                entity_id=entity.id if entity else None,
                corrected_entity_id=entity.id if verdict == ReviewVerdict.CORRECTED else None,
                notes=notes,
                reviewer=reviewer,
            )
        )
        return updated

    async def _suggest_rules(
        self,
        mention: RawMention,
        kind: RuleKind,
        patterns: Sequence[str],
        reviewer: str,
        entity: Optional[CanonicalEntity] = None,
    ) -> None:
        """Record pending rule candidates. Nothing goes live until a curator approves."""
        for pattern in dict.fromkeys(p.strip() for p in patterns):
            if not pattern:
                continue
            await self.curator.suggest(
                pattern,
                kind,
                target=entity.canonical_name if entity else None,
                source_mention_id=mention.id,
                created_by=reviewer,
            )
