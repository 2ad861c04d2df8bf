"""
Registry bootstrap from the mention corpus.

Seeds canonical entities before mentions have anything to link to. Uses
occurrence counts over the complete corpus instead of per-mention
confidence, so every page is aggregated before anything is created.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from remisslink.config import Settings, settings
from remisslink.db.base import Registry
from remisslink.errors import ConfigurationError, PersistenceError
from remisslink.matching.normalizer import normalize_organization_name
from remisslink.rules.rule_list import RuleList, RuleListSnapshot
from remisslink.schemas.entity import EntityCreate, name_key
from remisslink.schemas.linking import BootstrapRequest, BootstrapSummary, NameCount
from remisslink.schemas.mention import ResolutionState

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 100
SAMPLE_SIZE = 10


@dataclass
class NameGroup:
    """Occurrences of one normalized name."""

    name: str  # First-seen spelling
    count: int = 0
    original_names: list[str] = field(default_factory=list)


def validate_candidate(raw: str, snapshot: RuleListSnapshot) -> Optional[str]:
    """
    Return the rejection reason for a raw name, or None if acceptable.

    Reasons: too_short, too_long, contact_info, blocked_phrase.
    """
    text = raw.strip()
    if len(text) < MIN_NAME_LENGTH:
        return "too_short"
    if len(text) > MAX_NAME_LENGTH:
        return "too_long"

    reason = snapshot.block_reason(normalize_organization_name(text))
    if reason == "contact_info":
        return "contact_info"
    if reason is not None:
        return "blocked_phrase"
    return None


class BootstrapJob:
    """Create entities for recurring names that have no entity yet."""

    def __init__(self, registry: Registry, config: Optional[Settings] = None):
        self.registry = registry
        self.config = config or settings

    async def run(self, request: BootstrapRequest) -> BootstrapSummary:
        min_occurrences = (
            request.min_occurrences
            if request.min_occurrences is not None
            else self.config.bootstrap_min_occurrences
        )
        limit = request.limit if request.limit is not None else self.config.bootstrap_max_create
        if min_occurrences < 1:
            raise ConfigurationError(
                "min_occurrences must be at least 1", {"min_occurrences": min_occurrences}
            )
        if limit < 0:
            raise ConfigurationError("limit cannot be negative", {"limit": limit})

        entity_kind = request.entity_kind or self.config.default_entity_kind
        role = request.role or self.config.default_entity_role

        logger.info(
            f"Bootstrap run: min_occurrences={min_occurrences}, limit={limit}, "
            f"dry_run={request.dry_run}, scope={request.scope_filter}"
        )

        snapshot = await RuleList(self.registry.rules).load()
        summary = BootstrapSummary(dry_run=request.dry_run, rule_list_version=snapshot.version)

        groups = await self._aggregate(request, entity_kind, snapshot, summary)

        candidates = []
        for group in groups.values():
            if group.count < min_occurrences:
                summary.skipped_low_occurrence += 1
                continue
            try:
                async with self.registry.atomic():
                    existing = await self.registry.entities.find_by_name(entity_kind, group.name)
            except PersistenceError as e:
                logger.error(f"Bootstrap lookup of '{group.name}' failed: {e}")
                summary.errors.append(f"{group.name}: {e}")
                continue
            if existing:
                summary.entities_already_exist += 1
                continue
            candidates.append(group)

        # Most frequent first; sort is stable so ties keep first-seen order
        candidates.sort(key=lambda g: -g.count)

        for group in candidates[:limit]:
            if request.dry_run:
                summary.entities_created += 1
                self._sample(summary, group)
                continue

            try:
                async with self.registry.atomic():
                    _, created = await self.registry.entities.create(
                        EntityCreate(
                            canonical_name=group.name,
                            entity_kind=entity_kind,
                            role=role,
                            provenance={
                                "source": "bootstrap",
                                "occurrence_count": group.count,
                                "original_names": group.original_names[:SAMPLE_SIZE],
                            },
                        )
                    )
            except PersistenceError as e:
                logger.error(f"Bootstrap create of '{group.name}' failed: {e}")
                summary.errors.append(f"{group.name}: {e}")
                continue
            if created:
                summary.entities_created += 1
                self._sample(summary, group)
            else:
                summary.entities_already_exist += 1

        logger.info(
            f"Bootstrap complete: fetched={summary.mentions_fetched}, "
            f"unique={summary.unique_normalized_names}, created={summary.entities_created}, "
            f"existing={summary.entities_already_exist}, invalid={summary.invalid_rejected}, "
            f"low_occurrence={summary.skipped_low_occurrence}"
        )
        return summary

    async def _aggregate(
        self,
        request: BootstrapRequest,
        entity_kind: str,
        snapshot: RuleListSnapshot,
        summary: BootstrapSummary,
    ) -> dict[str, NameGroup]:
        """Page through every unlinked mention and group by normalized name."""
        groups: dict[str, NameGroup] = {}
        raw_names = set()
        rejected: Counter = Counter()
        after_id = None

        while True:
            page = await self.registry.mentions.fetch_batch(
                list(ResolutionState),
                limit=self.config.bootstrap_page_size,
                scope=request.scope_filter,
                after_id=after_id,
                entity_kind=entity_kind,
                unlinked_only=True,
            )
            if not page:
                break
            summary.pages_fetched += 1
            summary.mentions_fetched += len(page)
            after_id = page[-1].id

            for mention in page:
                raw = mention.raw_text
                raw_names.add(raw)

                reason = validate_candidate(raw, snapshot)
                normalized = normalize_organization_name(raw)
                if reason is None and len(normalized) < MIN_NAME_LENGTH:
                    reason = "too_short"
                if reason is not None:
                    rejected[reason] += 1
                    if len(summary.sample_skipped_invalid) < SAMPLE_SIZE:
                        summary.sample_skipped_invalid.append(raw)
                    continue

                key = name_key(normalized)
                group = groups.get(key)
                if group is None:
                    group = groups[key] = NameGroup(name=normalized)
                group.count += 1
                if raw not in group.original_names:
                    group.original_names.append(raw)

            logger.debug(f"Bootstrap page {summary.pages_fetched}: {len(page)} mentions")
            if len(page) < self.config.bootstrap_page_size:
                break

        summary.unique_raw_names = len(raw_names)
        summary.unique_normalized_names = len(groups)
        summary.rejected_too_short = rejected["too_short"]
        summary.rejected_too_long = rejected["too_long"]
        summary.rejected_contact_info = rejected["contact_info"]
        summary.rejected_blocked_phrase = rejected["blocked_phrase"]
        summary.invalid_rejected = sum(rejected.values())
        return groups

    @staticmethod
    def _sample(summary: BootstrapSummary, group: NameGroup) -> None:
        if len(summary.sample_created) < SAMPLE_SIZE:
            summary.sample_created.append(NameCount(name=group.name, count=group.count))
