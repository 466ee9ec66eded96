"""
Full-text index over document text (SQLite FTS5).

documents_fts is a derived table: every live row in documents has exactly one
entry here with the same doc_id and rowid = documents.id, and nothing else
does. The store writer
reports each document change through FtsIndexer.sync inside the same
transaction as the change itself.
"""
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import text

from memory_etl.exceptions import IndexSyncError
from memory_etl.logging_config import get_logger

log = get_logger(__name__)

FTS_TABLE = "documents_fts"

# porter stemming over the default unicode61 tokenizer
FTS_DDL = (
    f"CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE} "
    "USING fts5(doc_id UNINDEXED, text, tokenize = 'porter unicode61')"
)


def ensure_fts(connection) -> None:
    """Create the FTS5 table. SQLite builds without FTS5 cannot host a pack."""
    try:
        connection.execute(text(FTS_DDL))
    except SQLAlchemyError as e:
        raise IndexSyncError(f"Failed to create full-text index: {e}")


class FtsIndexer:
    """
    Keeps documents_fts in step with the documents table.

    Entries share the document's integer id as their rowid, so replacing or
    dropping one is a point lookup. The document row must exist whenever
    sync is called: insert it first, delete it after.
    """

    def __init__(self, session: Session):
        self.session = session

    def sync(self, doc_id: str, text_value: Optional[str], is_new: bool = False) -> None:
        """
        Bring the index entry for doc_id in line with the document.

        Args:
            doc_id: Document identifier
            text_value: New document text, or None when the document is being removed
            is_new: The document did not exist before this change, so there is
                no old entry to drop
        """
        try:
            if not is_new:
                self.session.execute(
                    text(
                        f"DELETE FROM {FTS_TABLE} "
                        "WHERE rowid = (SELECT id FROM documents WHERE doc_id = :doc_id)"
                    ),
                    {"doc_id": doc_id},
                )
            if text_value is not None:
                inserted = self.session.execute(
                    text(
                        f"INSERT INTO {FTS_TABLE} (rowid, doc_id, text) "
                        "SELECT id, doc_id, :text FROM documents WHERE doc_id = :doc_id"
                    ),
                    {"doc_id": doc_id, "text": text_value},
                )
        except SQLAlchemyError as e:
            log.error("fts_sync_failed", doc_id=doc_id, error=str(e))
            raise IndexSyncError(f"Failed to index document {doc_id}: {e}", doc_id=doc_id)

        if text_value is not None and inserted.rowcount != 1:
            log.error("fts_sync_failed", doc_id=doc_id, error="no document row")
            raise IndexSyncError(f"Cannot index {doc_id}: no such document", doc_id=doc_id)
