"""
Custom exception classes for the memory pack ingestion pipeline.
"""
from typing import Optional


class IngestionException(Exception):
    """Base exception for all ingestion-related errors."""
    pass

class InputNotFound(IngestionException):
    """Raised when the export directory to ingest does not exist."""
    pass

class WriteError(IngestionException):
    """Raised when the pack directory or store cannot be created or written."""
    pass

class IndexSyncError(IngestionException):
    """Raised when the full-text index could not follow a document change."""
    def __init__(self, message: str, doc_id: Optional[str] = None):
        super().__init__(message)
        self.doc_id = doc_id

class ParseError(IngestionException):
    """
    A single source file could not be parsed.

    Never aborts a run: the parser wraps it into a ParseFailure result and
    the file is retried on the next ingestion.
    """
    def __init__(self, path: str, cause: str):
        super().__init__(f"{path}: {cause}")
        self.path = path
        self.cause = cause


"""
Custom exception classes for pack verification.
"""
class VerificationException(Exception):
    """Base exception for all verification failures."""
    pass

class IncompletePack(VerificationException):
    """The pack has no manifest (or no store), so it was never finished."""
    pass

class ManifestMismatch(VerificationException):
    """Manifest counts disagree with the live store."""
    pass

class IndexDesyncError(VerificationException):
    """The full-text index does not reflect the documents table."""
    pass
