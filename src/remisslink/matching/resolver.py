"""
Candidate resolution for organization mentions.

Given a normalized name and the pool of canonical entities of one kind,
pick the best candidate and a confidence tier:
1. Alias rules (SKR -> Sveriges Kommuner och Regioner)
2. Exact match, case and hyphen/space insensitive
3. Parenthetical abbreviation ("MSB" -> "... beredskap (MSB)")
4. Full scan with the similarity scorer over precomputed keys
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence
from uuid import UUID

from remisslink.config import Settings, settings
from remisslink.errors import ConfigurationError
from remisslink.matching.keys import NameKeys, is_abbreviation
from remisslink.matching.scorer import similarity
from remisslink.schemas.entity import CanonicalEntity
from remisslink.schemas.mention import ConfidenceTier, MatchResult

logger = logging.getLogger(__name__)


class AliasLookup(Protocol):
    """The part of a rule snapshot the resolver needs."""

    def alias_target(self, name: str) -> Optional[str]: ...


@dataclass(frozen=True)
class TierThresholds:
    """Score thresholds for confidence tiers."""

    high: float = 0.9
    medium: float = 0.7
    low: float = 0.5

    def __post_init__(self):
        for name in ("high", "medium", "low"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(
                    f"Tier threshold '{name}' must be between 0 and 1",
                    {name: value},
                )
        if not self.high >= self.medium >= self.low:
            raise ConfigurationError(
                "Tier thresholds must satisfy high >= medium >= low",
                {"high": self.high, "medium": self.medium, "low": self.low},
            )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "TierThresholds":
        config = config or settings
        return cls(
            high=config.tier_high_threshold,
            medium=config.tier_medium_threshold,
            low=config.tier_low_threshold,
        )

    def tier_for(self, score: float) -> ConfidenceTier:
        """Map a score to a tier. Monotonic in score."""
        if score >= self.high:
            return ConfidenceTier.HIGH
        if score >= self.medium:
            return ConfidenceTier.MEDIUM
        if score >= self.low:
            return ConfidenceTier.LOW
        return ConfidenceTier.UNMATCHED


@dataclass(frozen=True)
class Candidate:
    """Entity with precomputed comparison keys."""

    entity: CanonicalEntity
    keys: NameKeys
    upper_name: str


class CandidatePool:
    """
    Entities of one kind, sorted by (created_at, id).

    Built once per batch run. Earlier entities win every tie, so results
    do not depend on how the pool was fetched.
    """

    def __init__(self, entities: Sequence[CanonicalEntity]):
        ordered = sorted(entities, key=lambda e: (e.created_at, e.id))
        self.candidates = [
            Candidate(
                entity=e,
                keys=NameKeys.of(e.canonical_name),
                upper_name=e.canonical_name.upper(),
            )
            for e in ordered
        ]
        self._by_casefold: dict[str, Candidate] = {}
        self._by_compact: dict[str, Candidate] = {}
        for candidate in self.candidates:
            self._by_casefold.setdefault(candidate.keys.casefolded, candidate)
            self._by_compact.setdefault(candidate.keys.compact, candidate)

    def __len__(self) -> int:
        return len(self.candidates)

    def __bool__(self) -> bool:
        return bool(self.candidates)

    def find_exact(self, name: str) -> Optional[Candidate]:
        """Case-insensitive, then hyphen/space-insensitive lookup."""
        keys = NameKeys.of(name)
        return self._by_casefold.get(keys.casefolded) or self._by_compact.get(keys.compact)

    def find_abbreviation(self, abbreviation: str) -> Optional[Candidate]:
        """Earliest entity whose name contains "(ABBR)"."""
        needle = f"({abbreviation.upper()})"
        for candidate in self.candidates:
            if needle in candidate.upper_name:
                return candidate
        return None


class CandidateResolver:
    """
    Resolve normalized names against a candidate pool.

    Pure with respect to its inputs: the same name, pool and rules always
    give an identical MatchResult.
    """

    def __init__(
        self,
        thresholds: Optional[TierThresholds] = None,
        rules: Optional[AliasLookup] = None,
        abbreviation_max_length: Optional[int] = None,
    ):
        self.thresholds = thresholds or TierThresholds.from_settings()
        self.rules = rules
        self.abbreviation_max_length = (
            abbreviation_max_length
            if abbreviation_max_length is not None
            else settings.abbreviation_max_length
        )

    def resolve(
        self,
        name: str,
        pool: CandidatePool,
        mention_id: Optional[UUID] = None,
    ) -> MatchResult:
        """
        Find the best candidate for a normalized name.

        Args:
            name: Normalized mention text
            pool: Candidate pool for the mention's entity kind
            mention_id: Copied onto the result

        Returns:
            MatchResult; unmatched results never carry an entity
        """
        if not name or not pool:
            return MatchResult(mention_id=mention_id, method="empty" if not name else "empty_pool")

        query = name
        if self.rules is not None:
            target = self.rules.alias_target(name)
            if target:
                hit = pool.find_exact(target)
                if hit:
                    logger.debug(f"Alias match: '{name}' -> '{hit.entity.canonical_name}'")
                    return self._matched(mention_id, hit, 1.0, ConfidenceTier.HIGH, "alias")
                # Alias target not registered yet, score it instead
                query = target

        hit = pool.find_exact(query)
        if hit:
            return self._matched(mention_id, hit, 1.0, ConfidenceTier.HIGH, "exact")

        if is_abbreviation(query, self.abbreviation_max_length):
            hit = pool.find_abbreviation(query)
            if hit:
                logger.debug(f"Abbreviation match: '{query}' -> '{hit.entity.canonical_name}'")
                return self._matched(mention_id, hit, 1.0, ConfidenceTier.HIGH, "abbreviation")
            # Unknown acronym: no sensible fuzzy score, let a human map it
            return MatchResult(
                mention_id=mention_id,
                confidence_tier=ConfidenceTier.LOW,
                similarity_score=0.0,
                method="unknown_abbreviation",
            )

        return self._best_fuzzy(query, pool, mention_id)

    def _best_fuzzy(
        self,
        query: str,
        pool: CandidatePool,
        mention_id: Optional[UUID],
    ) -> MatchResult:
        keys = NameKeys.of(query)
        best: Optional[Candidate] = None
        best_score = -1.0

        for candidate in pool.candidates:
            score = max(
                similarity(keys.plain, candidate.keys.plain),
                similarity(keys.variant, candidate.keys.variant),
            )
            # Strict: ties keep the earlier candidate
            if score > best_score:
                best, best_score = candidate, score

        tier = self.thresholds.tier_for(best_score)
        if tier == ConfidenceTier.UNMATCHED or best is None:
            return MatchResult(
                mention_id=mention_id,
                confidence_tier=ConfidenceTier.UNMATCHED,
                similarity_score=best_score,
                method="fuzzy",
            )
        return self._matched(mention_id, best, best_score, tier, "fuzzy")

    @staticmethod
    def _matched(
        mention_id: Optional[UUID],
        candidate: Candidate,
        score: float,
        tier: ConfidenceTier,
        method: str,
    ) -> MatchResult:
        return MatchResult(
            mention_id=mention_id,
            entity_id=candidate.entity.id,
            confidence_tier=tier,
            similarity_score=score,
            matched_name=candidate.entity.canonical_name,
            method=method,
        )
