"""
Comparison keys for Swedish organization names.

Keys are the lower-cased forms the scorer actually compares. Two variants
are produced for each name:
- plain key: case and hyphen/space insensitive
- variant key: additionally folds municipal naming (stad -> kommun) and
  legal-form words (Aktiebolag -> ab, Stiftelsen -> stift)
"""

import re
from dataclasses import dataclass

# Legal form words folded to their abbreviations
LEGAL_FORMS = {
    "aktiebolaget": "ab",
    "aktiebolag": "ab",
    "handelsbolaget": "hb",
    "handelsbolag": "hb",
    "kommanditbolaget": "kb",
    "kommanditbolag": "kb",
    "ekonomiska föreningen": "ek för",
    "ekonomisk förening": "ek för",
    "bostadsrättsföreningen": "brf",
    "bostadsrättsförening": "brf",
    "ideell förening": "ideell för",
    "stiftelsen": "stift",
    "stiftelse": "stift",
}

_LEGAL_FORM_PATTERNS = [
    (re.compile(rf"\b{re.escape(full)}\b"), abbrev)
    for full, abbrev in LEGAL_FORMS.items()
]

_MUNICIPAL = re.compile(r"\bstad\b")
_HYPHEN = re.compile(r"[-\u2010-\u2014]")
_WHITESPACE = re.compile(r"\s+")
_SEPARATORS = re.compile(r"[\s\-\u2010-\u2014]+")


def comparison_key(name: str) -> str:
    """Lower-case key with hyphens treated as spaces."""
    key = _HYPHEN.sub(" ", name.lower())
    return _WHITESPACE.sub(" ", key).strip()


def variant_key(name: str) -> str:
    """
    Comparison key with Swedish naming variants folded.

    "Helsingborgs stad" and "Helsingborgs kommun" share a variant key.
    """
    key = _MUNICIPAL.sub("kommun", comparison_key(name))
    for pattern, abbrev in _LEGAL_FORM_PATTERNS:
        key = pattern.sub(abbrev, key)
    return _WHITESPACE.sub(" ", key).strip()


def compact_key(name: str) -> str:
    """Key with every space and hyphen removed ("Dals Eds" == "Dals-Eds")."""
    return _SEPARATORS.sub("", name.casefold())


def is_abbreviation(name: str, max_length: int = 5) -> bool:
    """
    Check if a name looks like an acronym such as "MSB" or "SKR".

    Short, a single token, with at least one letter and no lower case.
    """
    return (
        0 < len(name) <= max_length
        and " " not in name
        and any(ch.isalpha() for ch in name)
        and name == name.upper()
    )


@dataclass(frozen=True)
class NameKeys:
    """Precomputed keys for one name."""

    casefolded: str
    compact: str
    plain: str
    variant: str

    @classmethod
    def of(cls, name: str) -> "NameKeys":
        return cls(
            casefolded=_WHITESPACE.sub(" ", name).strip().casefold(),
            compact=compact_key(name),
            plain=comparison_key(name),
            variant=variant_key(name),
        )
