"""
Ingestion pipeline: export folder in, memory pack out.

    walk -> fingerprint check -> parse (thread pool) -> per-file transaction
    (store writer + FTS sync + fingerprint record) -> manifest

The store is written by this thread only. The manifest is removed before the
first write and written last, so a directory with a manifest always holds a
complete, consistent pack.
"""
import time
from pathlib import Path
from typing import Iterable, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError

from memory_etl.config import Settings, get_settings
from memory_etl.db.store import PackStore
from memory_etl.exceptions import InputNotFound, WriteError
from memory_etl.ingestion.file_discovery import discover_files
from memory_etl.ingestion.fingerprints import FingerprintTracker
from memory_etl.ingestion.fts_indexer import FtsIndexer
from memory_etl.ingestion.manifest import (
    build_manifest,
    compute_input_fingerprint,
    compute_pack_id,
    remove_manifest,
    write_manifest,
)
from memory_etl.ingestion.parser import iter_parse_outcomes
from memory_etl.ingestion.storage import StoreWriter
from memory_etl.logging_config import get_logger
from memory_etl.schemas.files import FileInfo
from memory_etl.schemas.pack import IngestReport
from memory_etl.schemas.records import ApplyResult, ParsedFile, ParseFailure

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _files_needing_processing(
    store: PackStore,
    files: Iterable[FileInfo],
    force: bool,
    report: IngestReport,
    log,
) -> Iterator[FileInfo]:
    for file_info in files:
        report.files_found += 1
        report.bytes_found += file_info.file_size
        with store.session() as session:
            needed = FingerprintTracker(session).needs_processing(
                file_info.fingerprint_key, file_info.file_size, file_info.modified_at_ms, force
            )
        if not needed:
            report.files_skipped += 1
            log.info("file_skipped", path=file_info.relative_path, reason="unchanged")
            continue
        yield file_info


def apply_parsed_file(store: PackStore, parsed: ParsedFile) -> ApplyResult:
    """
    Write one file's rows, index entries and fingerprint in a single transaction.

    A crash before commit leaves none of them behind, so the file stays
    eligible for reprocessing.
    """
    file_info = parsed.file_info
    try:
        with store.session() as session:
            result = StoreWriter(session, FtsIndexer(session)).apply_file(parsed)
            FingerprintTracker(session).record(
                file_info.fingerprint_key,
                file_info.file_size,
                file_info.modified_at_ms,
                _now_ms(),
            )
    except SQLAlchemyError as e:
        raise WriteError(f"Failed to commit {file_info.relative_path}: {e}")
    return result


def ingest(
    input_dir: Path,
    out_dir: Path,
    force: bool = False,
    log=None,
    settings: Optional[Settings] = None,
) -> IngestReport:
    """
    Build (or incrementally update) a memory pack from an export folder.

    Args:
        input_dir: Root of the extracted export
        out_dir: Pack directory; created if missing
        force: Reprocess every file regardless of fingerprints
        log: structlog-style logger receiving progress events
        settings: Overrides get_settings()

    Returns:
        IngestReport with per-run totals and the written manifest

    Raises:
        InputNotFound: input_dir is missing
        WriteError: out_dir or the store cannot be created or written
        IndexSyncError: the full-text index could not follow a document change
    """
    settings = settings or get_settings()
    log = log or logger
    input_dir = Path(input_dir).absolute()
    out_dir = Path(out_dir).absolute()

    if not input_dir.is_dir():
        raise InputNotFound(f"Directory not found: {input_dir}")
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteError(f"Cannot create pack directory {out_dir}: {e}")

    remove_manifest(out_dir, settings.pack.manifest_filename)
    pack_id = compute_pack_id(input_dir)

    report = IngestReport()
    store = PackStore(out_dir / settings.pack.store_filename)
    try:
        store.init_schema()

        files = _files_needing_processing(store, discover_files(input_dir), force, report, log)
        outcomes = iter_parse_outcomes(
            files,
            workers=settings.ingest.parse_workers,
            seconds_threshold=settings.ingest.seconds_threshold,
            streaming_threshold_bytes=settings.ingest.streaming_threshold_bytes,
        )
        for outcome in outcomes:
            if isinstance(outcome, ParseFailure):
                report.files_failed += 1
                report.failures.append({"path": outcome.path, "cause": outcome.cause})
                log.warning("file_parse_failed", path=outcome.path, error=outcome.cause)
                continue

            result = apply_parsed_file(store, outcome)
            report.files_processed += 1
            report.messages_written += result.messages_written
            report.documents_written += result.documents_written
            log.info(
                "file_ingested",
                path=outcome.file_info.relative_path,
                category=outcome.file_info.category.value,
                **result.model_dump(),
            )

        manifest = build_manifest(
            store,
            pack_id=pack_id,
            input_fingerprint=compute_input_fingerprint(input_dir, report.files_found, report.bytes_found),
            schema_version=settings.pack.schema_version,
        )
    except SQLAlchemyError as e:
        raise WriteError(f"Store error in {store.db_path}: {e}")
    finally:
        store.close()

    write_manifest(out_dir, manifest, settings.pack.manifest_filename)
    report.manifest = manifest

    log.info(
        "ingestion_complete",
        pack_id=manifest.pack_id,
        files_found=report.files_found,
        files_processed=report.files_processed,
        files_skipped=report.files_skipped,
        files_failed=report.files_failed,
        counts=manifest.counts.as_dict(),
    )
    return report
