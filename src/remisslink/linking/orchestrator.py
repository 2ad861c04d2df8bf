"""
Linking orchestrator.

Batch job that moves unresolved mentions forward:
1. Load the rule snapshot and the candidate pool once per run
2. Normalize each mention and apply the blocklist
3. Resolve against the pool
4. Auto-link, queue for review, create an entity, or mark unmatched

Every write is a compare-and-set from unresolved inside its own savepoint,
so re-running a batch, or two runs racing on the same mentions, never
links a mention twice.
"""

import logging
import time
from collections import Counter
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from pydantic import ValidationError

from remisslink.config import Settings, settings
from remisslink.db.base import Registry
from remisslink.errors import ConfigurationError, InvalidTransitionError, PersistenceError
from remisslink.matching.normalizer import normalize_organization_name
from remisslink.matching.resolver import CandidatePool, CandidateResolver, TierThresholds
from remisslink.rules.rule_list import RuleList, RuleListSnapshot
from remisslink.schemas.entity import EntityCreate
from remisslink.schemas.linking import (
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
    ResolutionState,
)

logger = logging.getLogger(__name__)

UNRESOLVED = [ResolutionState.UNRESOLVED]
MAX_SAMPLES = 50
TOP_UNMATCHED = 20


@dataclass(frozen=True)
class RunConfig:
    """Validated parameters of one run."""

    limit: int
    auto_link_tier: ConfidenceTier
    create_entities: bool
    dry_run: bool
    scope: Optional[str]
    after_id: Optional[UUID]
    entity_kind: str
    role: str


class LinkingOrchestrator:
    """
    Resolve unresolved mentions in bounded batches.

    Stateless between runs: each run() builds its own rule snapshot and
    candidate pool.
    """

    def __init__(
        self,
        registry: Registry,
        config: Optional[Settings] = None,
        thresholds: Optional[TierThresholds] = None,
    ):
        self.registry = registry
        self.config = config or settings
        self.thresholds = thresholds or TierThresholds.from_settings(self.config)

    def validate(self, request: LinkRequest) -> RunConfig:
        """
        Check run parameters before anything is read or written.

        Raises:
            ConfigurationError: limit out of bounds or an unusable tier
        """
        limit = request.limit if request.limit is not None else self.config.default_batch_size
        if limit < 1:
            raise ConfigurationError("limit must be at least 1", {"limit": limit})
        if limit > self.config.max_batch_size:
            raise ConfigurationError(
                f"limit cannot exceed {self.config.max_batch_size}",
                {"limit": limit, "max_batch_size": self.config.max_batch_size},
            )

        tier = request.min_confidence_tier or ConfidenceTier(self.config.default_auto_link_tier)
        if tier == ConfidenceTier.UNMATCHED:
            raise ConfigurationError(
                "min_confidence_tier must be high, medium or low",
                {"min_confidence_tier": tier.value},
            )

        return RunConfig(
            limit=limit,
            auto_link_tier=tier,
            create_entities=request.create_entities,
            dry_run=request.dry_run,
            scope=request.scope_filter,
            after_id=request.after_id,
            entity_kind=request.entity_kind or self.config.default_entity_kind,
            role=self.config.default_entity_role,
        )

    async def run(self, request: LinkRequest) -> LinkSummary:
        """
        Process one batch of unresolved mentions.

        Args:
            request: Run parameters

        Returns:
            LinkSummary with per-tier counts, errors and samples

        Raises:
            ConfigurationError: Before any mention is touched
        """
        run = self.validate(request)
        start = time.time()
        logger.info(
            f"Linking run: limit={run.limit}, tier>={run.auto_link_tier.value}, "
            f"create_entities={run.create_entities}, dry_run={run.dry_run}, "
            f"scope={run.scope}, after_id={run.after_id}"
        )

        snapshot = await RuleList(self.registry.rules).load()
        pool = CandidatePool(await self.registry.entities.list_kind(run.entity_kind))
        resolver = CandidateResolver(
            thresholds=self.thresholds,
            rules=snapshot,
            abbreviation_max_length=self.config.abbreviation_max_length,
        )
        mentions = await self.registry.mentions.fetch_batch(
            UNRESOLVED,
            limit=run.limit,
            scope=run.scope,
            after_id=run.after_id,
            entity_kind=run.entity_kind,
        )
        logger.info(f"Fetched {len(mentions)} mentions, pool of {len(pool)} entities")

        summary = LinkSummary(dry_run=run.dry_run, rule_list_version=snapshot.version)
        unmatched_names: Counter = Counter()

        for mention in mentions:
            summary.next_after_id = mention.id
            try:
                async with self.registry.atomic():
                    await self._process(
                        mention, run, resolver, pool, snapshot, summary, unmatched_names
                    )
            except (PersistenceError, ValidationError) as e:
                logger.error(f"Mention {mention.id} failed: {e}")
                summary.errors.append(LinkError(mention_id=mention.id, error=str(e)))

        summary.top_unmatched_names = [
            NameCount(name=name, count=count)
            for name, count in sorted(unmatched_names.items(), key=lambda kv: (-kv[1], kv[0]))[
                :TOP_UNMATCHED
            ]
        ]
        summary.duration_ms = int((time.time() - start) * 1000)

        logger.info(
            f"Linking complete: processed={summary.processed}, linked={summary.linked}, "
            f"queued={summary.queued}, unmatched={summary.unmatched}, "
            f"created={summary.entities_created}, skipped={summary.skipped}, "
            f"errors={len(summary.errors)}"
        )
        return summary

    async def _process(
        self,
        mention: RawMention,
        run: RunConfig,
        resolver: CandidateResolver,
        pool: CandidatePool,
        snapshot: RuleListSnapshot,
        summary: LinkSummary,
        unmatched_names: Counter,
    ) -> None:
        """Resolve and write one mention. Runs inside the caller's atomic() unit."""
        current = await self.registry.mentions.get(mention.id)
        if current is None or current.resolution_state != ResolutionState.UNRESOLVED:
            summary.skipped += 1
            return

        summary.processed += 1
        normalized = normalize_organization_name(current.raw_text)

        if not normalized or snapshot.is_blocked(normalized):
            method = "empty" if not normalized else "blocked"
            if normalized:
                summary.blocked += 1
                logger.debug(f"Blocked '{normalized}' ({snapshot.block_reason(normalized)})")
            summary.unmatched += 1
            await self._write(
                current,
                run,
                summary,
                ResolutionState.UNMATCHED,
                MentionUpdate(
                    normalized_text=normalized,
                    confidence_tier=ConfidenceTier.UNMATCHED,
                    resolution_method=method,
                ),
            )
            return

        match = resolver.resolve(normalized, pool, mention_id=current.id)
        self._count_tier(summary, match.confidence_tier)

        if match.is_match and match.confidence_tier.at_least(run.auto_link_tier):
            if await self._write(
                current,
                run,
                summary,
                ResolutionState.AUTO_LINKED,
                MentionUpdate(
                    normalized_text=normalized,
                    entity_id=match.entity_id,
                    confidence_tier=match.confidence_tier,
                    similarity_score=match.similarity_score,
                    resolution_method=match.method,
                ),
            ):
                summary.linked += 1
            return

        if match.confidence_tier != ConfidenceTier.UNMATCHED:
            await self._queue(current, normalized, match, run, summary)
            return

        unmatched_names[normalized] += 1
        if run.create_entities and not run.dry_run:
            await self._create_and_link(current, normalized, match, run, summary)
            return

        await self._write(
            current,
            run,
            summary,
            ResolutionState.UNMATCHED,
            MentionUpdate(
                normalized_text=normalized,
                confidence_tier=ConfidenceTier.UNMATCHED,
                similarity_score=match.similarity_score,
                resolution_method=match.method,
            ),
        )

    async def _queue(
        self,
        mention: RawMention,
        normalized: str,
        match: MatchResult,
        run: RunConfig,
        summary: LinkSummary,
    ) -> None:
        written = await self._write(
            mention,
            run,
            summary,
            ResolutionState.QUEUED_FOR_REVIEW,
            MentionUpdate(
                normalized_text=normalized,
                confidence_tier=match.confidence_tier,
                similarity_score=match.similarity_score,
                suggested_entity_id=match.entity_id,
                suggested_entity_name=match.matched_name,
                resolution_method=match.method,
            ),
        )
        if not written:
            return
        summary.queued += 1
        if len(summary.low_confidence_samples) < MAX_SAMPLES:
            summary.low_confidence_samples.append(
                MatchSample(
                    mention_id=mention.id,
                    raw_text=mention.raw_text,
                    normalized_text=normalized,
                    confidence_tier=match.confidence_tier,
                    similarity_score=match.similarity_score,
                    suggested_entity_id=match.entity_id,
                    suggested_entity_name=match.matched_name,
                )
            )

    async def _create_and_link(
        self,
        mention: RawMention,
        normalized: str,
        match: MatchResult,
        run: RunConfig,
        summary: LinkSummary,
    ) -> None:
        """Create an entity for the name and link to it; the create is undone if the link fails."""
        try:
            async with self.registry.atomic():
                entity, created = await self.registry.entities.create(
                    EntityCreate(
                        canonical_name=normalized,
                        entity_kind=run.entity_kind,
                        role=run.role,
                        provenance={
                            "source": "linker_auto_create",
                            "original_names": [mention.raw_text],
                        },
                    )
                )
                updated = await self.registry.mentions.transition(
                    mention.id,
                    UNRESOLVED,
                    ResolutionState.AUTO_LINKED,
                    MentionUpdate(
                        normalized_text=normalized,
                        entity_id=entity.id,
                        confidence_tier=ConfidenceTier.UNMATCHED,
                        similarity_score=match.similarity_score,
                        resolution_method="auto_create",
                    ),
                )
                if updated is None:
                    current = await self.registry.mentions.get(mention.id)
                    raise InvalidTransitionError(
                        mention.id,
                        current.resolution_state.value if current else "missing",
                        ResolutionState.AUTO_LINKED.value,
                    )
        except InvalidTransitionError:
            logger.debug(f"Mention {mention.id} left unresolved concurrently, entity not kept")
            summary.skipped += 1
            return

        if created:
            summary.entities_created += 1
            logger.info(f"Created entity '{entity.canonical_name}' ({entity.id})")
        summary.linked += 1

    async def _write(
        self,
        mention: RawMention,
        run: RunConfig,
        summary: LinkSummary,
        state: ResolutionState,
        changes: MentionUpdate,
    ) -> bool:
        """Compare-and-set from unresolved. False if the mention already moved on."""
        if run.dry_run:
            return True

        updated = await self.registry.mentions.transition(mention.id, UNRESOLVED, state, changes)
        if updated is None:
            logger.debug(f"Mention {mention.id} left unresolved concurrently, skipping")
            summary.skipped += 1
            return False
        return True

    @staticmethod
    def _count_tier(summary: LinkSummary, tier: ConfidenceTier) -> None:
        if tier == ConfidenceTier.HIGH:
            summary.high += 1
        elif tier == ConfidenceTier.MEDIUM:
            summary.medium += 1
        elif tier == ConfidenceTier.LOW:
            summary.low += 1
        else:
            summary.unmatched += 1

    async def request_reprocessing(self, request: ReprocessRequest) -> ReprocessSummary:
        """
        Send mentions back to unresolved.

        Either explicit mention_ids or every mention in ``states`` (within
        scope_filter). Link, suggestion and current review decision are
        cleared together per mention; decision history is kept.
        """
        states = list(request.states)
        if not states:
            raise ConfigurationError("states cannot be empty")
        if ResolutionState.UNRESOLVED in states:
            raise ConfigurationError("unresolved mentions cannot be reprocessed")

        if request.mention_ids:
            mention_ids = list(dict.fromkeys(request.mention_ids))
        else:
            batch = await self.registry.mentions.fetch_batch(
                states, limit=request.limit, scope=request.scope_filter
            )
            mention_ids = [m.id for m in batch]

        summary = ReprocessSummary(requested=len(mention_ids))
        for mention_id in mention_ids:
            try:
                async with self.registry.atomic():
                    reset = await self.registry.mentions.reset(mention_id, states)
                    cleared = reset and await self.registry.reviews.clear_decision(mention_id)
            except PersistenceError as e:
                summary.errors.append(LinkError(mention_id=mention_id, error=str(e)))
                continue

            if reset:
                summary.reset += 1
                summary.decisions_cleared += int(cleared)
            else:
                summary.skipped += 1

        logger.info(
            f"Reprocessing: requested={summary.requested}, reset={summary.reset}, "
            f"skipped={summary.skipped}"
        )
        return summary
