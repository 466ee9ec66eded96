import contextlib
import sqlite3
from pathlib import Path
from typing import Dict, Iterator, Optional
from urllib.parse import quote

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import NullPool
from sqlalchemy.sql import text

from memory_etl.ingestion.fts_indexer import ensure_fts
from memory_etl.models.base import Base
# Import models so they are registered with Base metadata
from memory_etl.models.source_file import SourceFile
from memory_etl.models.conversation import Conversation
from memory_etl.models.message import Message
from memory_etl.models.activity_item import ActivityItem
from memory_etl.models.document import Document

# Manifest count key -> table
COUNTED_TABLES: Dict[str, str] = {
    "conversations": Conversation.__tablename__,
    "messages": Message.__tablename__,
    "activityItems": ActivityItem.__tablename__,
    "documents": Document.__tablename__,
}

REQUIRED_TABLES = [
    SourceFile.__tablename__,
    *COUNTED_TABLES.values(),
    "documents_fts",
]


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class PackStore:
    """
    Handle on the SQLite store of one memory pack.

    Constructed explicitly by whoever owns the run and closed by it; there is
    no process-wide instance.
    """

    def __init__(self, db_path: Path, read_only: bool = False):
        self.db_path = Path(db_path).absolute()
        self.read_only = read_only

        if read_only:
            # mode=ro makes any accidental write fail inside SQLite itself
            uri = f"file:{quote(self.db_path.as_posix(), safe='/:')}?mode=ro"
            self.engine = create_engine(
                "sqlite://",
                creator=lambda: sqlite3.connect(uri, uri=True),
                poolclass=NullPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path.as_posix()}",
                poolclass=NullPool,
            )
        event.listen(self.engine, "connect", _enable_foreign_keys)

        self.session_factory = sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autoflush=False
        )

    @classmethod
    def open_read_only(cls, db_path: Path) -> "PackStore":
        return cls(db_path, read_only=True)

    def init_schema(self) -> None:
        """Create all tables and the full-text index if they do not exist."""
        Base.metadata.create_all(self.engine)
        with self.engine.begin() as conn:
            ensure_fts(conn)

    @contextlib.contextmanager
    def session(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def count_rows(self, session: Optional[Session] = None) -> Dict[str, int]:
        """Live row counts keyed the way the manifest reports them."""
        if session is None:
            with self.session() as own:
                return self.count_rows(own)
        return {
            key: session.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar_one()
            for key, table in COUNTED_TABLES.items()
        }

    def existing_tables(self) -> set:
        with self.engine.connect() as conn:
            rows = conn.execute(
                text("SELECT name FROM sqlite_master WHERE type IN ('table', 'view')")
            ).fetchall()
        return {row[0] for row in rows}

    def close(self) -> None:
        self.engine.dispose()
