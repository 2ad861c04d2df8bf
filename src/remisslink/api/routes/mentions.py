"""
Mention ingestion and lookup routes.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, status

from remisslink.api.deps import RegistryDep
from remisslink.config import settings
from remisslink.errors import ConfigurationError, MentionNotFoundError
from remisslink.schemas.mention import RawMention, RawMentionCreate
from remisslink.schemas.review import ReviewDecision

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=list[RawMention], status_code=status.HTTP_201_CREATED)
async def ingest_mentions(mentions: list[RawMentionCreate], registry: RegistryDep):
    """Ingest raw mentions. They start out unresolved."""
    if len(mentions) > settings.max_batch_size:
        raise ConfigurationError(
            f"At most {settings.max_batch_size} mentions per request",
            {"received": len(mentions)},
        )
    created = await registry.mentions.add_many(mentions)
    logger.info(f"Ingested {len(created)} mentions")
    return created


@router.get("/{mention_id}", response_model=RawMention)
async def get_mention(mention_id: UUID, registry: RegistryDep):
    mention = await registry.mentions.get(mention_id)
    if mention is None:
        raise MentionNotFoundError(f"Mention {mention_id} not found")
    return mention


@router.get("/{mention_id}/decisions", response_model=list[ReviewDecision])
async def get_decision_history(mention_id: UUID, registry: RegistryDep):
    """Every review decision recorded for a mention, oldest first."""
    if await registry.mentions.get(mention_id) is None:
        raise MentionNotFoundError(f"Mention {mention_id} not found")
    return await registry.reviews.history(mention_id)
