"""
API route modules.
"""

from remisslink.api.routes.linking import router as linking_router
from remisslink.api.routes.mentions import router as mentions_router
from remisslink.api.routes.review import router as review_router
from remisslink.api.routes.rules import router as rules_router

__all__ = [
    "mentions_router",
    "linking_router",
    "review_router",
    "rules_router",
]
