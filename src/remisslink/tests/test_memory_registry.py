"""
Tests for atomic() scopes of the in-memory registry.
"""

import asyncio

import pytest

from remisslink.schemas.entity import EntityCreate
from remisslink.schemas.mention import MentionUpdate, ResolutionState
from remisslink.schemas.review import ReviewDecision, ReviewVerdict

UNRESOLVED = [ResolutionState.UNRESOLVED]


async def mark_unmatched(registry, mention_id):
    return await registry.mentions.transition(
        mention_id, UNRESOLVED, ResolutionState.UNMATCHED, MentionUpdate()
    )


def state_of(registry, mention):
    return registry.mentions.rows[mention.id].resolution_state


class TestAtomic:
    @pytest.mark.asyncio
    async def test_rollback_undoes_every_store(self, registry, add_mentions):
        (mention,) = await add_mentions("Sametinget")

        with pytest.raises(RuntimeError):
            async with registry.atomic():
                await mark_unmatched(registry, mention.id)
                await registry.entities.create(EntityCreate(canonical_name="Sametinget"))
                raise RuntimeError("abort")

        assert state_of(registry, mention) == ResolutionState.UNRESOLVED
        assert registry.entities.rows == {}
        assert await registry.entities.find_by_name("organization", "Sametinget") is None

    @pytest.mark.asyncio
    async def test_rollback_keeps_other_tasks_writes(self, registry, add_mentions):
        ours, theirs = await add_mentions("Boverket", "Sametinget")
        we_wrote = asyncio.Event()
        they_wrote = asyncio.Event()

        async def failing_unit():
            async with registry.atomic():
                await mark_unmatched(registry, ours.id)
                we_wrote.set()
                await they_wrote.wait()
                raise RuntimeError("abort")

        async def concurrent_unit():
            await we_wrote.wait()
            async with registry.atomic():
                await mark_unmatched(registry, theirs.id)
                await registry.entities.create(EntityCreate(canonical_name="Sametinget"))
            they_wrote.set()

        results = await asyncio.gather(failing_unit(), concurrent_unit(), return_exceptions=True)

        assert isinstance(results[0], RuntimeError)
        assert results[1] is None
        assert state_of(registry, ours) == ResolutionState.UNRESOLVED
        assert state_of(registry, theirs) == ResolutionState.UNMATCHED
        assert len(registry.entities.rows) == 1

    @pytest.mark.asyncio
    async def test_failed_inner_scope_keeps_outer_writes(self, registry, add_mentions):
        outer, inner = await add_mentions("Boverket", "Sametinget")

        async with registry.atomic():
            await mark_unmatched(registry, outer.id)
            with pytest.raises(RuntimeError):
                async with registry.atomic():
                    await mark_unmatched(registry, inner.id)
                    raise RuntimeError("abort")

        assert state_of(registry, outer) == ResolutionState.UNMATCHED
        assert state_of(registry, inner) == ResolutionState.UNRESOLVED

    @pytest.mark.asyncio
    async def test_failed_outer_scope_undoes_inner_writes(self, registry, add_mentions):
        (mention,) = await add_mentions("Boverket")

        with pytest.raises(RuntimeError):
            async with registry.atomic():
                async with registry.atomic():
                    await mark_unmatched(registry, mention.id)
                raise RuntimeError("abort")

        assert state_of(registry, mention) == ResolutionState.UNRESOLVED

    @pytest.mark.asyncio
    async def test_cleared_decision_restored(self, registry, add_mentions):
        """Decision history and the current decision roll back together."""
        (mention,) = await add_mentions("Boverket")
        decision = ReviewDecision(
            mention_id=mention.id, verdict=ReviewVerdict.REJECTED, reviewer="anna"
        )
        await registry.reviews.save_decision(decision)

        with pytest.raises(RuntimeError):
            async with registry.atomic():
                await registry.reviews.clear_decision(mention.id)
                await registry.reviews.save_decision(
                    decision.model_copy(update={"verdict": ReviewVerdict.CONFIRMED})
                )
                raise RuntimeError("abort")

        assert (await registry.reviews.get_decision(mention.id)).verdict == ReviewVerdict.REJECTED
        assert [d.verdict for d in await registry.reviews.history(mention.id)] == [
            ReviewVerdict.REJECTED
        ]
