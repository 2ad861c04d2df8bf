"""
Rule curation routes.

Rules suggested from review actions arrive as pending and only affect
linking once approved here.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from remisslink.api.deps import Curator, Reviewer
from remisslink.schemas.rule import RuleEntry, RuleEntryCreate, RuleKind, RuleStatus

router = APIRouter(prefix="/rules")


@router.get("", response_model=list[RuleEntry])
async def list_rules(
    curator: Curator,
    status_filter: Optional[RuleStatus] = Query(None, alias="status"),
    kind: Optional[RuleKind] = Query(None),
):
    return await curator.list_rules(status=status_filter, kind=kind)


@router.post("", response_model=RuleEntry, status_code=status.HTTP_201_CREATED)
async def add_rule(data: RuleEntryCreate, curator: Curator, reviewer: Reviewer):
    """Add a curated rule. It is live immediately unless a status is given."""
    return await curator.add(data, created_by=reviewer)


@router.post("/{rule_id}/approve", response_model=RuleEntry)
async def approve_rule(rule_id: UUID, curator: Curator):
    return await curator.approve(rule_id)


@router.post("/{rule_id}/reject", response_model=RuleEntry)
async def reject_rule(rule_id: UUID, curator: Curator):
    return await curator.reject(rule_id)
