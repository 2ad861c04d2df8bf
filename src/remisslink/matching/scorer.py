"""
String similarity for normalized organization names.

Three tiers, evaluated in order:
1. Exact equality
2. Containment ("naturvårdsverket" inside "naturvårdsverket (nv)")
3. Bigram Dice coefficient over character shingle multisets
"""

from collections import Counter


def bigrams(text: str) -> Counter:
    """Multiset of 2-character shingles."""
    return Counter(text[i : i + 2] for i in range(len(text) - 1))


def dice_coefficient(a: str, b: str) -> float:
    """
    Dice coefficient over bigram multisets.

    Returns 0.0 when either string is shorter than two characters.
    """
    bigrams_a = bigrams(a)
    bigrams_b = bigrams(b)
    total = sum(bigrams_a.values()) + sum(bigrams_b.values())
    if not bigrams_a or not bigrams_b:
        return 0.0
    overlap = sum((bigrams_a & bigrams_b).values())
    return 2.0 * overlap / total


def similarity(a: str, b: str) -> float:
    """
    Similarity between two normalized, lower-cased names.

    Symmetric and bounded to [0, 1]. Containment scores land in
    [0.8, 1.0) so that an abbreviation-style match beats any partial
    overlap while staying below an exact match.

    Args:
        a: First name
        b: Second name

    Returns:
        Score between 0.0 and 1.0
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    if a in b or b in a:
        shorter, longer = sorted((len(a), len(b)))
        return 0.8 + 0.2 * (shorter / longer)

    return dice_coefficient(a, b)
