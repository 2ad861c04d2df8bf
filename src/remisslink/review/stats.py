"""
Review queue statistics.

Shown above the queue so operators see how much is waiting and how
often suggestions turn out to be right.
"""

from dataclasses import dataclass

from remisslink.db.base import Registry
from remisslink.schemas.mention import ConfidenceTier, ResolutionState
from remisslink.schemas.review import QueueStats, ReviewVerdict


@dataclass
class VerdictCounts:
    """Current review decisions per verdict."""

    confirmed: int = 0
    corrected: int = 0
    created_new: int = 0
    rejected: int = 0

    @classmethod
    def from_counts(cls, counts: dict[str, int]) -> "VerdictCounts":
        return cls(**{v.value: counts.get(v.value, 0) for v in ReviewVerdict})

    @property
    def total(self) -> int:
        return self.confirmed + self.corrected + self.created_new + self.rejected

    @property
    def approval_rate(self) -> float:
        """Share of reviews that confirmed the suggested entity."""
        if self.total == 0:
            return 0.0
        return self.confirmed / self.total

    @property
    def correction_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.corrected / self.total

    @property
    def rejection_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.rejected / self.total

    def as_dict(self) -> dict[str, int]:
        return {v.value: getattr(self, v.value) for v in ReviewVerdict}


async def collect_queue_stats(registry: Registry) -> QueueStats:
    """Gather queue and review counts from the registry."""
    by_tier = await registry.mentions.count_queue_by_tier()
    by_state = await registry.mentions.count_by_state()
    verdicts = VerdictCounts.from_counts(await registry.reviews.count_by_verdict())

    # Every tier is present so the UI can render zero counts
    tiers = {tier.value: by_tier.get(tier.value, 0) for tier in ConfidenceTier}

    return QueueStats(
        queued=by_state.get(ResolutionState.QUEUED_FOR_REVIEW.value, 0),
        by_tier=tiers,
        reviewed=verdicts.as_dict(),
        unmatched=by_state.get(ResolutionState.UNMATCHED.value, 0),
        approval_rate=round(verdicts.approval_rate, 4),
        correction_rate=round(verdicts.correction_rate, 4),
        rejection_rate=round(verdicts.rejection_rate, 4),
    )
