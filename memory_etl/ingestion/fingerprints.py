from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import Session

from memory_etl.models.source_file import SourceFile


class FingerprintTracker:
    """
    Decides whether an export file needs (re)processing from its (size, mtime).

    Storage errors are not caught here: a store we cannot read or write is
    fatal for the run.
    """

    def __init__(self, session: Session):
        self.session = session

    def needs_processing(self, path: str, size_bytes: int, modified_at_ms: int, force: bool = False) -> bool:
        if force:
            return True
        row = self.session.execute(
            select(SourceFile.size_bytes, SourceFile.modified_at_ms).where(SourceFile.path == path)
        ).one_or_none()
        if row is None:
            return True
        return (row.size_bytes, row.modified_at_ms) != (size_bytes, modified_at_ms)

    def record(self, path: str, size_bytes: int, modified_at_ms: int, ingested_at_ms: int) -> None:
        """Upsert the fingerprint. Call only once the file's rows are written."""
        stmt = insert(SourceFile).values(
            path=path,
            size_bytes=size_bytes,
            modified_at_ms=modified_at_ms,
            last_ingested_at_ms=ingested_at_ms,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[SourceFile.path],
            set_={
                "size_bytes": stmt.excluded.size_bytes,
                "modified_at_ms": stmt.excluded.modified_at_ms,
                "last_ingested_at_ms": stmt.excluded.last_ingested_at_ms,
            },
        )
        self.session.execute(stmt)
