from sqlalchemy import Column, BigInteger, Index, Integer, String, Text
from memory_etl.models.base import Base

class Document(Base):
    """
    Indexable text extracted from one source unit (a message or an activity item).

    The full-text entry for a document lives in the documents_fts virtual
    table under rowid = documents.id and is maintained by
    memory_etl.ingestion.fts_indexer only.
    """
    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_source", "source_type", "source_ref"),
        Index("idx_documents_created_at", "created_at_ms"),
    )

    # INTEGER PRIMARY KEY aliases the SQLite rowid, so it survives VACUUM
    id = Column(Integer, primary_key=True)
    doc_id = Column(String, unique=True, nullable=False)
    source_type = Column(String, nullable=False)  # message | post | comment
    source_ref = Column(String, nullable=False)   # id of the source row
    text = Column(Text, nullable=False)
    created_at_ms = Column(BigInteger)
