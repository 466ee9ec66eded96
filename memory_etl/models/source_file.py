from sqlalchemy import Column, BigInteger, String
from memory_etl.models.base import Base

class SourceFile(Base):
    """
    Fingerprint of an export file as of its last successful ingestion.
    Used for idempotency: if (size, mtime) match, we skip re-ingestion.
    Never read for content.
    """
    __tablename__ = "source_files"

    # Absolute path, forward slashes
    path = Column(String, primary_key=True)

    size_bytes = Column(BigInteger, nullable=False)
    modified_at_ms = Column(BigInteger, nullable=False)
    last_ingested_at_ms = Column(BigInteger, nullable=False)
