"""Build, search and verify memory packs from personal-data exports."""

from .ingestion.pipeline import ingest
from .retrieval.search import search_pack
from .verification.verifier import verify

__all__ = [
    "ingest",
    "search_pack",
    "verify",
]
