"""
Error taxonomy for the entity resolution engine.

Validation problems (empty names) are not errors: they resolve to
"unmatched". Everything below is raised and handled at the seams named
in each docstring.
"""

from typing import Any, Optional
from uuid import UUID


class RemisslinkError(Exception):
    """Base exception for remisslink."""

    pass


class ConfigurationError(RemisslinkError):
    """
    Invalid or missing run parameters.

    Raised before any mention is touched, so a failed invocation has no
    partial effects.
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class PersistenceError(RemisslinkError):
    """Registry unreachable or a write failed."""

    pass


class EntityConflictError(PersistenceError):
    """
    Entity creation lost a uniqueness race.

    Never reaches callers: the repositories resolve it by re-reading the
    winning entity.
    """

    def __init__(self, entity_kind: str, canonical_name: str):
        super().__init__(
            f"Entity '{canonical_name}' of kind '{entity_kind}' already exists"
        )
        self.entity_kind = entity_kind
        self.canonical_name = canonical_name


class InvalidTransitionError(RemisslinkError):
    """A mention cannot move from its current state to the requested one."""

    def __init__(self, mention_id: UUID, current: str, requested: str):
        super().__init__(
            f"Mention {mention_id} cannot move from '{current}' to '{requested}'"
        )
        self.mention_id = mention_id
        self.current = current
        self.requested = requested


class MentionNotFoundError(RemisslinkError):
    """No mention with the given id."""

    pass


class EntityNotFoundError(RemisslinkError):
    """No canonical entity with the given id."""

    pass


class RuleNotFoundError(RemisslinkError):
    """No rule entry with the given id."""

    pass


class QueueUnavailableError(RemisslinkError):
    """
    The review queue could not be loaded.

    Distinct from an empty queue: callers must show a reload-failed state.
    """

    pass
