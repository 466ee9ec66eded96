"""Full-text search over a pack's documents (SQLite FTS5)."""
from pathlib import Path
from typing import List

from sqlalchemy import text
from sqlalchemy.orm import Session

from memory_etl.config import get_settings
from memory_etl.db.store import PackStore
from memory_etl.ingestion.fts_indexer import FTS_TABLE
from memory_etl.logging_config import get_logger

log = get_logger(__name__)


def build_match_query(query: str) -> str:
    """
    Turn a user token or phrase into an FTS5 MATCH expression.

    The input is quoted as a single phrase so punctuation and FTS5 operators
    (AND, NEAR, *, column filters) in user text are matched literally.
    """
    collapsed = " ".join(query.split())
    return '"' + collapsed.replace('"', '""') + '"'


def search_documents(session: Session, query: str, limit: int = 20) -> List[str]:
    """
    Document ids matching query, in FTS5's default relevance order (bm25 rank).
    """
    if not query or not query.strip():
        return []
    rows = session.execute(
        text(
            f"SELECT doc_id FROM {FTS_TABLE} "
            f"WHERE {FTS_TABLE} MATCH :match "
            "ORDER BY rank "
            "LIMIT :limit"
        ),
        {"match": build_match_query(query), "limit": limit},
    )
    return [row.doc_id for row in rows]


def search_pack(pack_dir: Path, query: str, limit: int = 20) -> List[str]:
    """Open a pack read-only and search it."""
    store = PackStore.open_read_only(Path(pack_dir) / get_settings().pack.store_filename)
    try:
        with store.session() as session:
            doc_ids = search_documents(session, query, limit)
    finally:
        store.close()
    log.debug("search_complete", pack_dir=str(pack_dir), query=query, hits=len(doc_ids))
    return doc_ids
