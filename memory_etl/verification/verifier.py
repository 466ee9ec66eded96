"""
Independent, read-only verification of a finished memory pack.

Checks that the guarantees made by the ingestion pipeline actually hold:
the manifest exists and matches the live store, the full-text index is in
one-to-one correspondence with the documents table, and a real search for a
known token returns something.
"""
from collections import Counter
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from memory_etl.config import Settings, get_settings
from memory_etl.db.store import REQUIRED_TABLES, PackStore
from memory_etl.exceptions import (
    IncompletePack,
    IndexDesyncError,
    ManifestMismatch,
    VerificationException,
)
from memory_etl.ingestion.fts_indexer import FTS_TABLE
from memory_etl.ingestion.manifest import read_manifest
from memory_etl.logging_config import get_logger
from memory_etl.models.document import Document
from memory_etl.retrieval.search import search_documents
from memory_etl.schemas.pack import Manifest, VerifyResult

log = get_logger(__name__)


def _describe(error: VerificationException) -> str:
    return f"{type(error).__name__}: {error}"


def load_pack_manifest(pack_dir: Path, settings: Settings) -> Manifest:
    manifest_path = pack_dir / settings.pack.manifest_filename
    store_path = pack_dir / settings.pack.store_filename
    if not manifest_path.is_file():
        raise IncompletePack(f"no manifest at {manifest_path}")
    if not store_path.is_file():
        raise IncompletePack(f"no store at {store_path}")
    try:
        return read_manifest(manifest_path)
    except (OSError, ValueError, ValidationError) as e:
        raise IncompletePack(f"unreadable manifest {manifest_path}: {e}")


def check_counts(manifest: Manifest, live: Dict[str, int], schema_version: int) -> None:
    mismatches = []
    if manifest.schema_version != schema_version:
        mismatches.append(f"schemaVersion: expected {schema_version} got {manifest.schema_version}")
    for key, expected in manifest.counts.as_dict().items():
        actual = live.get(key)
        if actual != expected:
            mismatches.append(f"{key}: manifest says {expected}, store has {actual}")
    if mismatches:
        raise ManifestMismatch("; ".join(mismatches))


def check_index_bijection(session: Session) -> None:
    """Every document has exactly one index entry and every entry has a document."""
    documents = set(session.execute(select(Document.doc_id)).scalars())
    entries = Counter(session.execute(text(f"SELECT doc_id FROM {FTS_TABLE}")).scalars())

    missing = documents - entries.keys()
    orphans = entries.keys() - documents
    duplicated = [doc_id for doc_id, n in entries.items() if n > 1]
    # Entries whose rowid points at some other document row
    misaligned = list(session.execute(text(
        f"SELECT f.doc_id FROM {FTS_TABLE} f LEFT JOIN documents d ON d.id = f.rowid "
        "WHERE f.doc_id IN (SELECT doc_id FROM documents) AND d.doc_id IS NOT f.doc_id"
    )).scalars())

    problems = []
    if missing:
        problems.append(f"{len(missing)} documents without index entry (e.g. {sorted(missing)[0]})")
    if orphans:
        problems.append(f"{len(orphans)} index entries without document (e.g. {sorted(orphans)[0]})")
    if duplicated:
        problems.append(f"{len(duplicated)} documents indexed more than once (e.g. {sorted(duplicated)[0]})")
    if misaligned:
        problems.append(f"{len(misaligned)} index entries under the wrong rowid (e.g. {sorted(misaligned)[0]})")
    if problems:
        raise IndexDesyncError("; ".join(problems))


def smoke_test(session: Session, token: str) -> str:
    """Run a live full-text query; return the first hit's document id."""
    hits = search_documents(session, token, limit=1)
    if hits:
        return hits[0]

    in_documents = session.execute(
        text("SELECT 1 FROM documents WHERE instr(lower(text), lower(:token)) > 0 LIMIT 1"),
        {"token": token},
    ).first()
    if in_documents:
        raise IndexDesyncError(f"documents contain {token!r} but the full-text index returns nothing")
    raise IndexDesyncError(f"full-text query for {token!r} returned no documents")


def verify(pack_dir: Path, token: Optional[str] = None, settings: Optional[Settings] = None) -> VerifyResult:
    """
    Verify a pack without modifying it.

    Args:
        pack_dir: Pack directory (store + manifest)
        token: Smoke-test token that must be found by full-text search

    Returns:
        VerifyResult; ok is True only when every check passed
    """
    settings = settings or get_settings()
    token = token or settings.pack.smoke_token
    pack_dir = Path(pack_dir)

    try:
        manifest = load_pack_manifest(pack_dir, settings)
    except IncompletePack as e:
        log.warning("verify_failed", pack_dir=str(pack_dir), error=str(e))
        return VerifyResult(ok=False, failures=[_describe(e)])

    failures = []
    sample_doc_id = None
    counts: Dict[str, int] = {}
    store = PackStore.open_read_only(pack_dir / settings.pack.store_filename)
    try:
        present = store.existing_tables()
        missing_tables = [t for t in REQUIRED_TABLES if t not in present]
        if missing_tables:
            raise IncompletePack(f"missing tables: {', '.join(missing_tables)}")

        with store.session() as session:
            counts = store.count_rows(session)
            try:
                check_counts(manifest, counts, settings.pack.schema_version)
            except ManifestMismatch as e:
                failures.append(_describe(e))
            try:
                check_index_bijection(session)
            except IndexDesyncError as e:
                failures.append(_describe(e))
            try:
                sample_doc_id = smoke_test(session, token)
            except IndexDesyncError as e:
                failures.append(_describe(e))
    except IncompletePack as e:
        failures.append(_describe(e))
    except SQLAlchemyError as e:
        failures.append(_describe(IncompletePack(f"store unreadable: {e}")))
    finally:
        store.close()

    result = VerifyResult(
        ok=not failures,
        pack_id=manifest.pack_id,
        fts_sample_doc_id=sample_doc_id,
        failures=failures,
        counts=counts,
    )
    if result.ok:
        log.info("verify_ok", pack_dir=str(pack_dir), pack_id=manifest.pack_id, token=token, fts_sample_doc_id=sample_doc_id)
    else:
        log.warning("verify_failed", pack_dir=str(pack_dir), failures=failures)
    return result
