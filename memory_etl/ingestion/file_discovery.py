import os
import re
from pathlib import Path
from typing import Iterator, Optional
from memory_etl.exceptions import InputNotFound
from memory_etl.schemas.files import FileCategory, FileInfo
from memory_etl.logging_config import get_logger

log = get_logger(__name__)

MESSAGE_FILE_RE = re.compile(r"(^|/)messages/(inbox|archived_threads)/[^/]+/message_\d+\.json$")
ACTIVITY_KEYWORDS = (
    ("posts", FileCategory.POSTS),
    ("comments", FileCategory.COMMENTS),
    ("reactions", FileCategory.REACTIONS),
)


def classify(relative_path: str) -> Optional[FileCategory]:
    """
    Decide what an export file holds from its path relative to the export root.

    Returns None for files the pipeline does not ingest.
    """
    rel = relative_path.lower()
    if not rel.endswith(".json"):
        return None
    if MESSAGE_FILE_RE.search(rel):
        return FileCategory.MESSAGES
    # File name first: comments_and_reactions/likes_and_reactions_1.json holds reactions
    name = rel.rsplit("/", 1)[-1]
    for scope in (name, rel):
        for keyword, category in ACTIVITY_KEYWORDS:
            if keyword in scope:
                return category
    return None


def stat_file(file_path: Path) -> tuple:
    """(size in bytes, mtime in whole milliseconds)"""
    st = file_path.stat()
    return st.st_size, st.st_mtime_ns // 1_000_000


def discover_files(folder_path: Path) -> Iterator[FileInfo]:
    """
    Lazily walk an export folder and yield the files worth ingesting.

    Order is lexical (directories and files sorted at every level), so two
    walks of the same tree yield the same sequence.

    Args:
        folder_path: Root of the extracted export

    Yields:
        FileInfo objects
    """
    if not folder_path.is_dir():
        raise InputNotFound(f"Directory not found: {folder_path}")

    root = folder_path.absolute()
    html_seen = 0

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for file_name in sorted(filenames):
            file_path = Path(dirpath) / file_name
            relative_path = file_path.relative_to(root).as_posix()

            if file_name.lower().endswith(".html"):
                html_seen += 1
                continue

            category = classify(relative_path)
            if category is None:
                continue

            try:
                size, mtime_ms = stat_file(file_path)
            except OSError as e:
                # Vanished between listing and stat; next run will see it again
                log.warning("file_discovery_skipped", path=relative_path, error=str(e))
                continue

            yield FileInfo(
                file_path=file_path,
                relative_path=relative_path,
                category=category,
                file_size=size,
                modified_at_ms=mtime_ms,
            )

    if html_seen:
        log.warning("html_export_detected", html_files=html_seen, detail="HTML exports are not ingested")
