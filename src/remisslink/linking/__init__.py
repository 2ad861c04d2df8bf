"""
Batch jobs: linking runs and registry bootstrap.
"""

from remisslink.linking.bootstrap import BootstrapJob, validate_candidate
from remisslink.linking.orchestrator import LinkingOrchestrator

__all__ = [
    "LinkingOrchestrator",
    "BootstrapJob",
    "validate_candidate",
]
