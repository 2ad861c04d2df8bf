"""
Canonical entity schemas.

A canonical entity is the single registry record that mentions of one
real-world organization resolve to.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


def name_key(name: str) -> str:
    """
    Uniqueness key for canonical names.

    Casefolded so that "Naturvårdsverket" and "NATURVÅRDSVERKET" collide
    within an entity kind.
    """
    return " ".join(name.split()).casefold()


class EntityCreate(BaseModel):
    """Schema for creating a canonical entity."""

    canonical_name: str = Field(..., min_length=1, max_length=500)
    entity_kind: str = "organization"
    role: Optional[str] = None
    provenance: dict[str, Any] = Field(default_factory=dict)

    @field_validator("canonical_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("canonical_name cannot be blank")
        return v

    @property
    def name_key(self) -> str:
        return name_key(self.canonical_name)


class CanonicalEntity(BaseModel):
    """Registry record for one organization."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    canonical_name: str
    entity_kind: str = "organization"
    role: Optional[str] = None
    provenance: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @property
    def name_key(self) -> str:
        return name_key(self.canonical_name)
