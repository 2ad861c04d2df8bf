"""
Tests for the linking orchestrator.

Tests:
- Tier routing (auto-link, queue, unmatched, blocked)
- Idempotence and dry runs
- Entity creation under concurrent runs
- Cursor pagination and reprocessing
- Storage failures confined to one mention
"""

import asyncio

import pytest
import pytest_asyncio

from remisslink.errors import ConfigurationError, PersistenceError
from remisslink.linking.orchestrator import LinkingOrchestrator
from remisslink.rules.rule_list import RuleCurator
from remisslink.schemas.linking import LinkRequest, ReprocessRequest
from remisslink.schemas.mention import ConfidenceTier, MentionUpdate, ResolutionState
from remisslink.schemas.review import ReviewDecision, ReviewVerdict
from remisslink.schemas.rule import RuleEntryCreate, RuleKind


@pytest.fixture
def orchestrator(registry, test_settings) -> LinkingOrchestrator:
    return LinkingOrchestrator(registry, config=test_settings)


class TestRouting:
    """Each mention ends up in exactly one outcome."""

    @pytest.mark.asyncio
    async def test_exact_match_is_auto_linked(self, registry, orchestrator, add_mentions, add_entities):
        (entity,) = await add_entities("Boverket")
        (mention,) = await add_mentions("Boverket (pdf 140 kB)")

        summary = await orchestrator.run(LinkRequest())

        stored = await registry.mentions.get(mention.id)
        assert stored.resolution_state == ResolutionState.AUTO_LINKED
        assert stored.entity_id == entity.id
        assert stored.normalized_text == "Boverket"
        assert stored.resolved_by == "system"
        assert summary.processed == 1
        assert summary.high == 1
        assert summary.linked == 1

    @pytest.mark.asyncio
    async def test_medium_match_is_queued(self, registry, orchestrator, add_mentions, add_entities):
        (entity,) = await add_entities("Naturvårdsverket (NV) Stockholmskontoret")
        (mention,) = await add_mentions("Naturvårdsverket")

        summary = await orchestrator.run(LinkRequest())

        stored = await registry.mentions.get(mention.id)
        assert stored.resolution_state == ResolutionState.QUEUED_FOR_REVIEW
        assert stored.entity_id is None
        assert stored.suggested_entity_id == entity.id
        assert stored.confidence_tier == ConfidenceTier.MEDIUM
        assert summary.queued == 1
        assert summary.medium == 1
        assert summary.low_confidence_samples[0].suggested_entity_name == entity.canonical_name

    @pytest.mark.asyncio
    async def test_lower_auto_link_tier(self, registry, orchestrator, add_mentions, add_entities):
        await add_entities("Naturvårdsverket (NV) Stockholmskontoret")
        (mention,) = await add_mentions("Naturvårdsverket")

        summary = await orchestrator.run(LinkRequest(min_confidence_tier=ConfidenceTier.MEDIUM))

        stored = await registry.mentions.get(mention.id)
        assert stored.resolution_state == ResolutionState.AUTO_LINKED
        assert summary.linked == 1

    @pytest.mark.asyncio
    async def test_unknown_abbreviation_never_auto_linked(
        self, registry, orchestrator, add_mentions, add_entities
    ):
        await add_entities("Boverket")
        (mention,) = await add_mentions("XYZ")

        await orchestrator.run(LinkRequest(min_confidence_tier=ConfidenceTier.LOW))

        stored = await registry.mentions.get(mention.id)
        assert stored.resolution_state == ResolutionState.QUEUED_FOR_REVIEW
        assert stored.entity_id is None
        assert stored.resolution_method == "unknown_abbreviation"

    @pytest.mark.asyncio
    async def test_builtin_alias(self, registry, orchestrator, add_mentions, add_entities):
        (entity,) = await add_entities("Sveriges Kommuner och Regioner")
        (mention,) = await add_mentions("SKR")

        await orchestrator.run(LinkRequest())

        stored = await registry.mentions.get(mention.id)
        assert stored.entity_id == entity.id
        assert stored.resolution_method == "alias"

    @pytest.mark.asyncio
    async def test_blocked_and_empty(self, registry, orchestrator, add_mentions, add_entities):
        await add_entities("Finansdepartementet")
        blocked, empty = await add_mentions("Finansdepartementet", None)

        summary = await orchestrator.run(LinkRequest())

        blocked = await registry.mentions.get(blocked.id)
        empty = await registry.mentions.get(empty.id)
        assert blocked.resolution_state == ResolutionState.UNMATCHED
        assert blocked.resolution_method == "blocked"
        assert blocked.entity_id is None
        assert empty.resolution_state == ResolutionState.UNMATCHED
        assert empty.resolution_method == "empty"
        assert summary.blocked == 1
        assert summary.unmatched == 2

    @pytest.mark.asyncio
    async def test_curated_blocklist(self, registry, orchestrator, add_mentions, add_entities):
        await RuleCurator(registry.rules).add(
            RuleEntryCreate(pattern="Kopia för kännedom", rule_kind=RuleKind.BLOCKLIST)
        )
        (mention,) = await add_mentions("KOPIA FÖR KÄNNEDOM")

        summary = await orchestrator.run(LinkRequest())

        stored = await registry.mentions.get(mention.id)
        assert stored.resolution_method == "blocked"
        assert summary.blocked == 1
        assert summary.rule_list_version is not None

    @pytest.mark.asyncio
    async def test_unmatched_top_names(self, registry, orchestrator, add_mentions, add_entities):
        await add_entities("Boverket")
        await add_mentions("Kustbevakningen", "Kustbevakningen", "Sametinget")

        summary = await orchestrator.run(LinkRequest())

        assert summary.unmatched == 3
        assert summary.top_unmatched_names[0].name == "Kustbevakningen"
        assert summary.top_unmatched_names[0].count == 2


class TestIdempotence:
    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(self, registry, orchestrator, add_mentions, add_entities):
        await add_entities("Boverket", "Naturvårdsverket (NV) Stockholmskontoret")
        await add_mentions("Boverket", "Naturvårdsverket", "Kustbevakningen", "")

        await orchestrator.run(LinkRequest())
        after_first = dict(registry.mentions.rows)
        summary = await orchestrator.run(LinkRequest())

        assert registry.mentions.rows == after_first
        assert summary.processed == 0
        assert summary.linked == 0

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, registry, orchestrator, add_mentions, add_entities):
        await add_entities("Boverket")
        await add_mentions("Boverket", "Kustbevakningen")
        before = dict(registry.mentions.rows)

        summary = await orchestrator.run(LinkRequest(dry_run=True, create_entities=True))

        assert registry.mentions.rows == before
        assert len(registry.entities.rows) == 1
        assert summary.dry_run is True
        assert summary.processed == 2
        assert summary.linked == 1
        assert summary.unmatched == 1
        assert summary.entities_created == 0


class TestEntityCreation:
    @pytest.mark.asyncio
    async def test_unmatched_creates_entity(self, registry, orchestrator, add_mentions):
        first, second = await add_mentions("Sametinget", "SAMETINGET")

        summary = await orchestrator.run(LinkRequest(create_entities=True))

        assert summary.entities_created == 1
        assert summary.linked == 2
        entities = list(registry.entities.rows.values())
        assert len(entities) == 1
        assert entities[0].provenance["source"] == "linker_auto_create"
        for mention_id in (first.id, second.id):
            stored = await registry.mentions.get(mention_id)
            assert stored.entity_id == entities[0].id
            assert stored.resolution_method == "auto_create"

    @pytest.mark.asyncio
    async def test_concurrent_runs_create_one_entity(self, registry, test_settings, add_mentions):
        mentions = await add_mentions("Sametinget", "Sametinget", "Kustbevakningen")
        runs = [LinkingOrchestrator(registry, config=test_settings) for _ in range(3)]

        summaries = await asyncio.gather(
            *(run.run(LinkRequest(create_entities=True)) for run in runs)
        )

        names = sorted(e.canonical_name for e in registry.entities.rows.values())
        assert names == ["Kustbevakningen", "Sametinget"]
        assert sum(s.linked for s in summaries) == len(mentions)
        for mention in mentions:
            stored = await registry.mentions.get(mention.id)
            assert stored.resolution_state == ResolutionState.AUTO_LINKED


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "request_",
        [
            LinkRequest(limit=0),
            LinkRequest(limit=5000),
            LinkRequest(min_confidence_tier=ConfidenceTier.UNMATCHED),
        ],
    )
    async def test_invalid_request_has_no_effect(self, registry, orchestrator, add_mentions, request_):
        await add_mentions("Boverket")
        before = dict(registry.mentions.rows)

        with pytest.raises(ConfigurationError):
            await orchestrator.run(request_)
        assert registry.mentions.rows == before


class TestPagination:
    @pytest.mark.asyncio
    async def test_cursor(self, registry, orchestrator, add_mentions):
        await add_mentions("Boverket", "Sametinget", "Kustbevakningen")

        first = await orchestrator.run(LinkRequest(limit=2))
        second = await orchestrator.run(LinkRequest(limit=2, after_id=first.next_after_id))

        assert first.processed == 2
        assert second.processed == 1
        states = {m.resolution_state for m in registry.mentions.rows.values()}
        assert states == {ResolutionState.UNMATCHED}

    @pytest.mark.asyncio
    async def test_scope_filter(self, registry, orchestrator, add_mentions):
        (inside,) = await add_mentions("Boverket", source_batch="remiss-a")
        (outside,) = await add_mentions("Boverket", source_batch="remiss-b")

        await orchestrator.run(LinkRequest(scope_filter="remiss-a"))

        assert (await registry.mentions.get(inside.id)).resolution_state == ResolutionState.UNMATCHED
        assert (await registry.mentions.get(outside.id)).resolution_state == ResolutionState.UNRESOLVED


class TestReprocessing:
    @pytest.mark.asyncio
    async def test_unmatched_relinked_after_entity_added(
        self, registry, orchestrator, add_mentions, add_entities
    ):
        (mention,) = await add_mentions("Sametinget")
        await orchestrator.run(LinkRequest())
        (entity,) = await add_entities("Sametinget")

        result = await orchestrator.request_reprocessing(ReprocessRequest())
        await orchestrator.run(LinkRequest())

        assert result.reset == 1
        stored = await registry.mentions.get(mention.id)
        assert stored.resolution_state == ResolutionState.AUTO_LINKED
        assert stored.entity_id == entity.id

    @pytest.mark.asyncio
    async def test_rejected_decision_cleared(self, registry, orchestrator, add_mentions):
        (mention,) = await add_mentions("Okänd förening")
        await registry.mentions.transition(
            mention.id,
            [ResolutionState.UNRESOLVED],
            ResolutionState.QUEUED_FOR_REVIEW,
            changes=MentionUpdate(resolved_by="test"),
        )
        await registry.mentions.transition(
            mention.id,
            [ResolutionState.QUEUED_FOR_REVIEW],
            ResolutionState.REVIEWED_REJECTED,
            changes=MentionUpdate(resolved_by="test"),
        )
        await registry.reviews.save_decision(
            ReviewDecision(mention_id=mention.id, verdict=ReviewVerdict.REJECTED)
        )

        result = await orchestrator.request_reprocessing(
            ReprocessRequest(mention_ids=[mention.id], states=[ResolutionState.REVIEWED_REJECTED])
        )

        assert result.reset == 1
        assert result.decisions_cleared == 1
        assert await registry.reviews.get_decision(mention.id) is None
        assert len(await registry.reviews.history(mention.id)) == 1
        stored = await registry.mentions.get(mention.id)
        assert stored.resolution_state == ResolutionState.UNRESOLVED

    @pytest.mark.asyncio
    async def test_state_mismatch_skipped(self, registry, orchestrator, add_mentions):
        (mention,) = await add_mentions("Boverket")

        result = await orchestrator.request_reprocessing(
            ReprocessRequest(mention_ids=[mention.id])
        )

        assert result.skipped == 1
        assert result.reset == 0

    @pytest.mark.asyncio
    async def test_unresolved_state_rejected(self, orchestrator):
        with pytest.raises(ConfigurationError):
            await orchestrator.request_reprocessing(
                ReprocessRequest(states=[ResolutionState.UNRESOLVED])
            )


class TestFailureIsolation:
    """A storage failure aborts only the mention it happened on."""

    @pytest_asyncio.fixture
    async def three_exact(self, add_mentions, add_entities):
        await add_entities("Boverket", "Sametinget", "Kustbevakningen")
        return await add_mentions("Boverket", "Sametinget", "Kustbevakningen")

    @pytest.mark.asyncio
    async def test_failed_write(self, registry, orchestrator, three_exact, monkeypatch):
        first, failing, last = three_exact
        transition = registry.mentions.transition

        async def flaky_transition(mention_id, *args, **kwargs):
            if mention_id == failing.id:
                raise PersistenceError("connection reset")
            return await transition(mention_id, *args, **kwargs)

        monkeypatch.setattr(registry.mentions, "transition", flaky_transition)

        summary = await orchestrator.run(LinkRequest())

        assert summary.processed == 3
        assert summary.linked == 2
        assert [e.mention_id for e in summary.errors] == [failing.id]
        assert "connection reset" in summary.errors[0].error
        assert (await registry.mentions.get(failing.id)).resolution_state == ResolutionState.UNRESOLVED
        for mention in (first, last):
            assert (await registry.mentions.get(mention.id)).resolution_state == (
                ResolutionState.AUTO_LINKED
            )

    @pytest.mark.asyncio
    async def test_failed_read(self, registry, orchestrator, three_exact, monkeypatch):
        first, failing, last = three_exact
        get = registry.mentions.get

        async def flaky_get(mention_id):
            if mention_id == failing.id:
                raise PersistenceError("connection reset")
            return await get(mention_id)

        monkeypatch.setattr(registry.mentions, "get", flaky_get)

        summary = await orchestrator.run(LinkRequest())

        assert summary.processed == 2
        assert summary.linked == 2
        assert [e.mention_id for e in summary.errors] == [failing.id]
        assert registry.mentions.rows[failing.id].resolution_state == ResolutionState.UNRESOLVED

    @pytest.mark.asyncio
    async def test_failed_link_after_create_keeps_no_entity(
        self, registry, orchestrator, add_mentions, monkeypatch
    ):
        (mention,) = await add_mentions("Sametinget")

        async def failing_transition(*args, **kwargs):
            raise PersistenceError("deadlock detected")

        monkeypatch.setattr(registry.mentions, "transition", failing_transition)

        summary = await orchestrator.run(LinkRequest(create_entities=True))

        assert [e.mention_id for e in summary.errors] == [mention.id]
        assert summary.entities_created == 0
        assert registry.entities.rows == {}
        assert await registry.entities.find_by_name("organization", "Sametinget") is None

    @pytest.mark.asyncio
    async def test_lost_race_after_create_keeps_no_entity(
        self, registry, orchestrator, add_mentions, monkeypatch
    ):
        """The mention moved on between read and link: skipped, and the new entity is undone."""
        (mention,) = await add_mentions("Sametinget")

        async def superseded_transition(*args, **kwargs):
            return None

        monkeypatch.setattr(registry.mentions, "transition", superseded_transition)

        summary = await orchestrator.run(LinkRequest(create_entities=True))

        assert summary.skipped == 1
        assert summary.linked == 0
        assert summary.entities_created == 0
        assert summary.errors == []
        assert registry.entities.rows == {}
