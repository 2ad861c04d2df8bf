"""
Name matching: normalization, scoring and candidate resolution.
"""

from remisslink.matching.keys import NameKeys, comparison_key, is_abbreviation, variant_key
from remisslink.matching.normalizer import normalize_organization_name
from remisslink.matching.resolver import (
    CandidatePool,
    CandidateResolver,
    TierThresholds,
)
from remisslink.matching.scorer import dice_coefficient, similarity

__all__ = [
    "normalize_organization_name",
    "similarity",
    "dice_coefficient",
    "comparison_key",
    "variant_key",
    "is_abbreviation",
    "NameKeys",
    "CandidatePool",
    "CandidateResolver",
    "TierThresholds",
]
