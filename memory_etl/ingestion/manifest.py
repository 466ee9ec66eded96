import hashlib
import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import select

from memory_etl.db.store import PackStore
from memory_etl.exceptions import WriteError
from memory_etl.logging_config import get_logger
from memory_etl.models.activity_item import ActivityItem
from memory_etl.models.document import Document
from memory_etl.models.message import Message
from memory_etl.schemas.pack import Manifest, ManifestCounts

log = get_logger(__name__)

MANIFEST_FILENAME = "manifest.json"


def compute_content_digest(store: PackStore) -> str:
    """
    sha256 over every message, activity and document in id order.

    Depends only on stored content, so an unchanged export gives an
    unchanged digest no matter how many times it is re-ingested.
    """
    digest = hashlib.sha256()
    queries = [
        ("message", select(Message.id, Message.body_text).order_by(Message.id)),
        ("activity", select(ActivityItem.id, ActivityItem.body_text).order_by(ActivityItem.id)),
        ("document", select(Document.doc_id, Document.text).order_by(Document.doc_id)),
    ]
    with store.session() as session:
        for label, query in queries:
            for row_id, body in session.execute(query):
                digest.update(f"{label}\x1f{row_id}\x1f{body or ''}\x1e".encode("utf-8"))
    return digest.hexdigest()


def compute_pack_id(input_dir: Path, now_ms: Optional[int] = None) -> str:
    """UTC timestamp of the run plus a short hash of the export path, e.g. 20251227093015-3f2a9c01de."""
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    stamp = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc).strftime("%Y%m%d%H%M%S")
    path_hash = hashlib.sha256(str(input_dir).encode("utf-8")).hexdigest()[:10]
    return f"{stamp}-{path_hash}"


def compute_input_fingerprint(input_dir: Path, file_count: int, total_bytes: int) -> str:
    """Cheap identity of the export a pack was built from: path, ingestible file count and bytes."""
    raw = f"{input_dir}|{file_count}|{total_bytes}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


def build_manifest(
    store: PackStore,
    pack_id: str,
    input_fingerprint: str,
    schema_version: int = 1,
) -> Manifest:
    """
    Describe the store as it is now.

    Counts come straight from the tables, never from running totals, so
    files skipped by fingerprint are accounted for.
    """
    counts = store.count_rows()
    return Manifest(
        schema_version=schema_version,
        pack_id=pack_id,
        input_fingerprint=input_fingerprint,
        generated_at_ms=int(time.time() * 1000),
        counts=ManifestCounts.model_validate(counts),
        content_digest=compute_content_digest(store),
        files={"store": store.db_path.name},
    )


def write_manifest(pack_dir: Path, manifest: Manifest, filename: str = MANIFEST_FILENAME) -> Path:
    """
    Atomically write the manifest: temp file, fsync, rename.

    Readers see either no manifest or a complete one, never a partial file.
    """
    target = pack_dir / filename
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=pack_dir, prefix=".manifest-", suffix=".tmp", delete=False
        ) as tmp:
            tmp_path = tmp.name
            tmp.write(manifest.to_json())
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_path, target)
    except OSError as e:
        if tmp_path and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise WriteError(f"Failed to write manifest {target}: {e}")

    log.info("manifest_written", path=str(target), counts=manifest.counts.as_dict())
    return target


def read_manifest(path: Path) -> Manifest:
    return Manifest.model_validate_json(path.read_text(encoding="utf-8"))


def remove_manifest(pack_dir: Path, filename: str = MANIFEST_FILENAME) -> bool:
    """Mark a pack incomplete before touching its store. True if one was removed."""
    target = pack_dir / filename
    try:
        target.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise WriteError(f"Failed to invalidate manifest {target}: {e}")
    log.info("manifest_invalidated", path=str(target))
    return True
