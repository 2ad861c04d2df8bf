"""
Blocklist and alias rules consulted before matching.
"""

from remisslink.rules.builtin import (
    ABBREVIATION_ALIASES,
    builtin_block_reason,
    has_contact_info,
    is_document_title,
)
from remisslink.rules.rule_list import RuleCurator, RuleList, RuleListSnapshot, rule_key

__all__ = [
    "ABBREVIATION_ALIASES",
    "builtin_block_reason",
    "has_contact_info",
    "is_document_title",
    "RuleCurator",
    "RuleList",
    "RuleListSnapshot",
    "rule_key",
]
