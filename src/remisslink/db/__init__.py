"""
Database module for remisslink.
"""

from remisslink.db.base import EntityStore, MentionStore, Registry, ReviewStore, RuleStore
from remisslink.db.memory import InMemoryRegistry
from remisslink.db.orm import (
    Base,
    CanonicalEntityRow,
    RawMentionRow,
    ReviewDecisionHistoryRow,
    ReviewDecisionRow,
    RuleEntryRow,
)
from remisslink.db.repositories import SQLRegistry

__all__ = [
    "Base",
    "CanonicalEntityRow",
    "RawMentionRow",
    "ReviewDecisionRow",
    "ReviewDecisionHistoryRow",
    "RuleEntryRow",
    "Registry",
    "MentionStore",
    "EntityStore",
    "ReviewStore",
    "RuleStore",
    "InMemoryRegistry",
    "SQLRegistry",
]
