"""
Remisslink - entity resolution for Swedish consultation responses

Links the organization names found in remissvar documents to a registry
of canonical organizations:
- Normalizes scraped names and scores them against the registry
- Auto-links confident matches and queues the rest for human review
- Seeds the registry from recurring names in the corpus
"""

__version__ = "0.1.0"
