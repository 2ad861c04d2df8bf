"""
Versioned rule list.

Approved blocklist and alias rules from the store, merged with the
built-in Swedish rules, frozen into a snapshot. Batch jobs load one
snapshot per run so every mention in a run sees the same rules.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional
from uuid import UUID

from remisslink.db.base import RuleStore
from remisslink.errors import RuleNotFoundError
from remisslink.rules.builtin import ABBREVIATION_ALIASES, builtin_block_reason
from remisslink.schemas.rule import RuleEntry, RuleEntryCreate, RuleKind, RuleStatus

logger = logging.getLogger(__name__)

BUILTIN_VERSION = "builtin-1"


def rule_key(text: str) -> str:
    """Lookup key for rule patterns: whitespace-collapsed, casefolded."""
    return " ".join(text.split()).casefold()


@dataclass(frozen=True)
class RuleListSnapshot:
    """Immutable view of the live rules."""

    version: str
    blocked: frozenset = field(default_factory=frozenset)
    aliases: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    use_builtins: bool = True

    @classmethod
    def builtin(cls) -> "RuleListSnapshot":
        """Snapshot with only the built-in rules."""
        return cls.from_rules([])

    @classmethod
    def from_rules(cls, rules: list[RuleEntry], use_builtins: bool = True) -> "RuleListSnapshot":
        """Build a snapshot from approved rules, ignoring anything else."""
        blocked = set()
        aliases: dict[str, str] = {}
        if use_builtins:
            aliases.update({rule_key(abbr): target for abbr, target in ABBREVIATION_ALIASES.items()})

        live = [r for r in rules if r.status == RuleStatus.APPROVED]
        for rule in live:
            if rule.rule_kind == RuleKind.BLOCKLIST:
                blocked.add(rule_key(rule.pattern))
            elif rule.target:
                aliases[rule_key(rule.pattern)] = rule.target

        digest = hashlib.sha256()
        digest.update((BUILTIN_VERSION if use_builtins else "none").encode("utf-8"))
        for key in sorted(blocked):
            digest.update(f"\x00b:{key}".encode("utf-8"))
        for key in sorted(aliases):
            digest.update(f"\x00a:{key}={aliases[key]}".encode("utf-8"))

        return cls(
            version=digest.hexdigest()[:16],
            blocked=frozenset(blocked),
            aliases=MappingProxyType(aliases),
            use_builtins=use_builtins,
        )

    def block_reason(self, name: str) -> Optional[str]:
        """
        Why a normalized name is blocked, or None.

        Returns "blocklist" for curated entries, otherwise the built-in
        reason ("contact_info", "document_title", "blocked_phrase").
        """
        if rule_key(name) in self.blocked:
            return "blocklist"
        if self.use_builtins:
            return builtin_block_reason(name)
        return None

    def is_blocked(self, name: str) -> bool:
        return self.block_reason(name) is not None

    def alias_target(self, name: str) -> Optional[str]:
        """Canonical name an alias points at."""
        return self.aliases.get(rule_key(name))


class RuleList:
    """
    Read-through loader for rule snapshots.

    Create one per job run: the first load() reads the store, later calls
    return the same snapshot until refresh=True.
    """

    def __init__(self, store: RuleStore, use_builtins: bool = True):
        self.store = store
        self.use_builtins = use_builtins
        self._snapshot: Optional[RuleListSnapshot] = None

    async def load(self, refresh: bool = False) -> RuleListSnapshot:
        if self._snapshot is None or refresh:
            rules = await self.store.list_rules(status=RuleStatus.APPROVED)
            self._snapshot = RuleListSnapshot.from_rules(rules, self.use_builtins)
            logger.info(
                f"Loaded rule list {self._snapshot.version}: "
                f"{len(self._snapshot.blocked)} blocked, {len(self._snapshot.aliases)} aliases"
            )
        return self._snapshot


class RuleCurator:
    """
    Curation of rules.

    Review actions only ever propose rules (status pending); a curator
    decides which of them become live.
    """

    def __init__(self, store: RuleStore):
        self.store = store

    async def add(self, data: RuleEntryCreate, created_by: Optional[str] = None) -> RuleEntry:
        """Add a curated rule, approved immediately unless stated otherwise."""
        payload = data.model_copy(
            update={
                "created_by": created_by or data.created_by,
                "status": data.status if "status" in data.model_fields_set else RuleStatus.APPROVED,
            }
        )
        rule = await self.store.add_rule(payload)
        logger.info(f"Rule {rule.id} added: {rule.rule_kind.value} '{rule.pattern}' ({rule.status.value})")
        return rule

    async def suggest(
        self,
        pattern: str,
        rule_kind: RuleKind,
        target: Optional[str] = None,
        source_mention_id: Optional[UUID] = None,
        created_by: Optional[str] = None,
    ) -> RuleEntry:
        """Record a pending rule candidate from a review action."""
        return await self.store.add_rule(
            RuleEntryCreate(
                pattern=pattern,
                rule_kind=rule_kind,
                target=target,
                status=RuleStatus.PENDING,
                source="review",
                source_mention_id=source_mention_id,
                created_by=created_by,
            )
        )

    async def approve(self, rule_id: UUID) -> RuleEntry:
        return await self._decide(rule_id, RuleStatus.APPROVED)

    async def reject(self, rule_id: UUID) -> RuleEntry:
        return await self._decide(rule_id, RuleStatus.REJECTED)

    async def list_rules(
        self,
        status: Optional[RuleStatus] = None,
        kind: Optional[RuleKind] = None,
    ) -> list[RuleEntry]:
        return await self.store.list_rules(status=status, kind=kind)

    async def _decide(self, rule_id: UUID, status: RuleStatus) -> RuleEntry:
        rule = await self.store.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(f"Rule {rule_id} not found")
        if rule.status == status:
            return rule

        updated = await self.store.set_status(rule_id, status)
        if updated is None:
            raise RuleNotFoundError(f"Rule {rule_id} not found")
        logger.info(f"Rule {rule_id} '{rule.pattern}' {status.value}")
        return updated
