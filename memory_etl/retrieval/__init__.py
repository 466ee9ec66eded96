"""Retrieval module: full-text search over memory packs."""

from .search import build_match_query, search_documents, search_pack

__all__ = [
    "build_match_query",
    "search_documents",
    "search_pack",
]
