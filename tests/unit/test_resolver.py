"""
Unit tests for candidate resolution and confidence tiers.
"""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from remisslink.errors import ConfigurationError
from remisslink.matching.resolver import CandidatePool, CandidateResolver, TierThresholds
from remisslink.rules.rule_list import RuleListSnapshot
from remisslink.schemas.entity import CanonicalEntity
from remisslink.schemas.mention import ConfidenceTier

EPOCH = datetime(2025, 1, 1)


def make_entity(name: str, age: int = 0) -> CanonicalEntity:
    """Entity created ``age`` seconds after the epoch."""
    return CanonicalEntity(
        id=uuid4(),
        canonical_name=name,
        created_at=EPOCH + timedelta(seconds=age),
    )


def make_pool(*names: str) -> CandidatePool:
    return CandidatePool([make_entity(name, i) for i, name in enumerate(names)])


@pytest.fixture
def resolver() -> CandidateResolver:
    return CandidateResolver(thresholds=TierThresholds(), abbreviation_max_length=5)


class TestExactMatch:
    """Exact and near-exact lookups."""

    def test_case_insensitive_exact(self, resolver):
        pool = make_pool("Naturvårdsverket", "Boverket")
        result = resolver.resolve("NATURVÅRDSVERKET", pool)
        assert result.confidence_tier == ConfidenceTier.HIGH
        assert result.similarity_score == 1.0
        assert result.matched_name == "Naturvårdsverket"
        assert result.method == "exact"

    def test_hyphen_and_space_insensitive(self, resolver):
        pool = make_pool("Dals-Eds kommun")
        result = resolver.resolve("Dals Eds kommun", pool)
        assert result.is_match
        assert result.method == "exact"

    def test_earliest_entity_wins_duplicate_names(self, resolver):
        older = make_entity("Sametinget", 0)
        newer = make_entity("SAMETINGET", 10)
        result = resolver.resolve("Sametinget", CandidatePool([newer, older]))
        assert result.entity_id == older.id


class TestContainment:
    def test_abbreviated_candidate_is_high(self, resolver):
        pool = make_pool("Naturvårdsverket (NV)")
        result = resolver.resolve("Naturvårdsverket", pool)
        assert result.similarity_score >= 0.8
        assert result.confidence_tier == ConfidenceTier.HIGH

    def test_long_candidate_is_medium(self, resolver):
        """Containment in a much longer name drops to medium."""
        pool = make_pool("Naturvårdsverket (NV) Stockholmskontoret")
        result = resolver.resolve("Naturvårdsverket", pool)
        assert 0.8 <= result.similarity_score < 0.9
        assert result.confidence_tier == ConfidenceTier.MEDIUM
        assert result.method == "fuzzy"


class TestUnmatched:
    def test_empty_pool(self, resolver):
        result = resolver.resolve("Riksdagens ombudsmän (JO)", CandidatePool([]))
        assert result.confidence_tier == ConfidenceTier.UNMATCHED
        assert result.entity_id is None
        assert result.method == "empty_pool"

    def test_empty_name(self, resolver):
        result = resolver.resolve("", make_pool("Boverket"))
        assert result.confidence_tier == ConfidenceTier.UNMATCHED
        assert result.entity_id is None

    def test_low_score_has_no_entity(self, resolver):
        result = resolver.resolve("Boverket", make_pool("Kustbevakningen"))
        assert result.confidence_tier == ConfidenceTier.UNMATCHED
        assert result.entity_id is None
        assert result.similarity_score < 0.5


class TestSwedishVariants:
    def test_stad_matches_kommun(self, resolver):
        pool = make_pool("Malmö kommun")
        result = resolver.resolve("Malmö stad", pool)
        assert result.confidence_tier == ConfidenceTier.HIGH
        assert result.similarity_score == 1.0

    def test_legal_form_folding(self, resolver):
        pool = make_pool("Svenska Kraftnät Aktiebolag")
        result = resolver.resolve("Svenska Kraftnät AB", pool)
        assert result.confidence_tier == ConfidenceTier.HIGH


class TestAbbreviations:
    def test_parenthetical_abbreviation(self, resolver):
        pool = make_pool("Boverket", "Myndigheten för samhällsskydd och beredskap (MSB)")
        result = resolver.resolve("MSB", pool)
        assert result.confidence_tier == ConfidenceTier.HIGH
        assert result.method == "abbreviation"

    def test_unknown_abbreviation_goes_to_review(self, resolver):
        """Short acronyms with no known expansion are low, never auto-linked."""
        result = resolver.resolve("XYZ", make_pool("Boverket"))
        assert result.confidence_tier == ConfidenceTier.LOW
        assert result.entity_id is None
        assert result.method == "unknown_abbreviation"

    def test_alias_rule(self):
        resolver = CandidateResolver(
            thresholds=TierThresholds(), rules=RuleListSnapshot.builtin()
        )
        pool = make_pool("Boverket", "Sveriges Kommuner och Regioner")
        result = resolver.resolve("SKR", pool)
        assert result.method == "alias"
        assert result.matched_name == "Sveriges Kommuner och Regioner"

    def test_alias_target_not_registered_is_scored(self):
        resolver = CandidateResolver(
            thresholds=TierThresholds(), rules=RuleListSnapshot.builtin()
        )
        pool = make_pool("Sveriges Kommuner och Regioner (SKR)")
        result = resolver.resolve("SKR", pool)
        assert result.method in ("fuzzy", "abbreviation")
        assert result.confidence_tier == ConfidenceTier.HIGH


class TestDeterminism:
    def test_same_input_same_result(self, resolver):
        pool = make_pool("Lunds universitet", "Umeå universitet", "Uppsala universitet")
        first = resolver.resolve("Lunds universitetet", pool, mention_id=None)
        second = resolver.resolve("Lunds universitetet", pool, mention_id=None)
        assert first.model_dump_json() == second.model_dump_json()

    def test_pool_order_does_not_matter(self, resolver):
        entities = [make_entity(n, i) for i, n in enumerate(["Region Skåne", "Region Stockholm"])]
        forward = resolver.resolve("Region Sk", CandidatePool(entities))
        backward = resolver.resolve("Region Sk", CandidatePool(list(reversed(entities))))
        assert forward == backward


class TestTierThresholds:
    """Tests for threshold validation and tiering."""

    def test_defaults(self):
        thresholds = TierThresholds()
        assert thresholds.tier_for(0.9) == ConfidenceTier.HIGH
        assert thresholds.tier_for(0.89) == ConfidenceTier.MEDIUM
        assert thresholds.tier_for(0.7) == ConfidenceTier.MEDIUM
        assert thresholds.tier_for(0.5) == ConfidenceTier.LOW
        assert thresholds.tier_for(0.49) == ConfidenceTier.UNMATCHED

    def test_monotonic(self):
        thresholds = TierThresholds()
        scores = [i / 100 for i in range(101)]
        ranks = [thresholds.tier_for(s).rank for s in scores]
        assert ranks == sorted(ranks)

    def test_out_of_order_rejected(self):
        with pytest.raises(ConfigurationError):
            TierThresholds(high=0.6, medium=0.7, low=0.5)

    def test_out_of_range_rejected(self):
        with pytest.raises(ConfigurationError):
            TierThresholds(high=1.5)

    def test_custom_thresholds_change_tier(self):
        pool = make_pool("Naturvårdsverket (NV)")
        strict = CandidateResolver(thresholds=TierThresholds(high=0.99, medium=0.9, low=0.5))
        result = strict.resolve("Naturvårdsverket", pool)
        assert result.confidence_tier == ConfidenceTier.MEDIUM
