"""
Human review of queued mentions.
"""

from remisslink.review.stats import VerdictCounts, collect_queue_stats
from remisslink.review.workbench import ReviewWorkbench

__all__ = [
    "ReviewWorkbench",
    "VerdictCounts",
    "collect_queue_stats",
]
