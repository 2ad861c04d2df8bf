"""
Pytest configuration and shared fixtures for remisslink tests.
"""

from typing import Optional

import pytest

from remisslink.config import Settings
from remisslink.db.memory import InMemoryRegistry
from remisslink.schemas.entity import CanonicalEntity, EntityCreate
from remisslink.schemas.mention import RawMention, RawMentionCreate


@pytest.fixture
def test_settings() -> Settings:
    """Settings with the documented defaults, independent of the environment."""
    return Settings(
        _env_file=None,
        environment="development",
        database_url="sqlite+aiosqlite://",
        tier_high_threshold=0.9,
        tier_medium_threshold=0.7,
        tier_low_threshold=0.5,
        default_batch_size=100,
        max_batch_size=1000,
        default_auto_link_tier="high",
        bootstrap_page_size=2,  # Small pages so pagination is exercised
        bootstrap_min_occurrences=1,
        bootstrap_max_create=500,
    )


@pytest.fixture
def registry() -> InMemoryRegistry:
    return InMemoryRegistry()


@pytest.fixture
def add_mentions(registry: InMemoryRegistry):
    """Ingest one mention per name."""

    async def _add(
        *names: Optional[str],
        source_batch: Optional[str] = "remiss-1",
    ) -> list[RawMention]:
        return await registry.mentions.add_many(
            [
                RawMentionCreate(
                    raw_text=name,
                    source_reference=f"https://example.org/remissvar/{i}.pdf",
                    source_batch=source_batch,
                )
                for i, name in enumerate(names)
            ]
        )

    return _add


@pytest.fixture
def add_entities(registry: InMemoryRegistry):
    async def _add(*names: str) -> list[CanonicalEntity]:
        created = []
        for name in names:
            entity, _ = await registry.entities.create(
                EntityCreate(canonical_name=name, role="remissinstans")
            )
            created.append(entity)
        return created

    return _add
