"""Builds a small Facebook-style export on disk for tests."""
import json
import os
from pathlib import Path

ALICE_THREAD = "messages/inbox/alice_abc"
BOB_THREAD = "messages/inbox/bob_def"
ALICE_FILE = f"{ALICE_THREAD}/message_1.json"
UNICORN_TS = 1700000060000


def write_json(path: Path, payload) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    # ensure_ascii=True reproduces the export's \u00XX escapes
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def bump_mtime(path: Path, seconds: int = 5) -> None:
    """Move a file's mtime forward without touching its content."""
    st = path.stat()
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + seconds * 1_000_000_000))


def alice_thread(unicorn_text: str = "Yes! I saw a UNICORN at the fair") -> dict:
    return {
        "title": "Alice",
        "participants": [{"name": "Alice"}, {"name": "Me"}],
        "messages": [
            {"sender_name": "Me", "timestamp_ms": 1700000180000, "content": "CafÃ© after?"},
            {
                "sender_name": "Alice",
                "timestamp_ms": 1700000120000,
                "photos": [{"uri": f"{ALICE_THREAD}/photos/1.jpg", "creation_timestamp": 1700000120}],
            },
            {"sender_name": "Me", "timestamp_ms": UNICORN_TS, "content": unicorn_text},
            {
                "sender_name": "Alice",
                "timestamp_ms": 1700000000000,
                "content": "Hey, are we still on for Saturday?",
                "reactions": [{"reaction": "â\u009d¤", "actor": "Me"}],
            },
        ],
    }


def bob_thread() -> dict:
    return {
        "title": "Bob",
        "participants": [{"name": "Bob"}, {"name": "Me"}],
        "messages": [
            {"sender_name": "Bob", "timestamp_ms": 1700001000000, "content": "Never mind, found them"},
            {"sender_name": "Bob", "timestamp_ms": 1700001000000, "content": "Did you get the tickets?"},
        ],
    }


def build_export(root: Path) -> Path:
    """A small Facebook-style export: 2 threads, posts, comments, reactions."""
    write_json(root / ALICE_THREAD / "message_1.json", alice_thread())
    write_json(root / BOB_THREAD / "message_1.json", bob_thread())
    write_json(
        root / "your_activity_across_facebook/posts/your_posts_1.json",
        [{"timestamp": 1690000000, "title": "Me updated status.", "data": [{"post": "Hiking trip photos"}]}],
    )
    write_json(
        root / "comments_and_reactions/comments.json",
        {
            "comments_v2": [
                {
                    "timestamp": 1690000100,
                    "title": "Me commented on Bob's photo.",
                    "data": [{"comment": {"timestamp": 1690000100, "comment": "Nice shot", "author": "Me"}}],
                }
            ]
        },
    )
    write_json(
        root / "comments_and_reactions/likes_and_reactions_1.json",
        [
            {
                "timestamp": 1690000200,
                "title": "Me liked Bob's post.",
                "data": [{"reaction": {"reaction": "LIKE", "actor": "Me"}}],
            }
        ],
    )
    # Present in real exports, not ingested
    write_json(root / "profile_information/profile_information.json", {"profile_v2": {"name": "Me"}})
    (root / "index.html").write_text("<html></html>", encoding="utf-8")
    return root


# Expected totals for build_export
EXPECTED_COUNTS = {
    "conversations": 2,
    "messages": 6,
    "activityItems": 3,
    # 5 messages with text + 1 post + 1 comment
    "documents": 7,
}
EXPECTED_FILES = 5


def file_info_for(root: Path, relative_path: str, category=None):
    """FileInfo for one file of an export, as the walker would produce it."""
    from memory_etl.ingestion.file_discovery import classify, stat_file
    from memory_etl.schemas.files import FileInfo

    path = root / relative_path
    size, mtime_ms = stat_file(path)
    return FileInfo(
        file_path=path.absolute(),
        relative_path=relative_path,
        category=category or classify(relative_path),
        file_size=size,
        modified_at_ms=mtime_ms,
    )


def add_document(session, doc_id: str, text: str, index: bool = True):
    """Insert a documents row (and, by default, its index entry) directly."""
    from sqlalchemy import insert

    from memory_etl.ingestion.fts_indexer import FtsIndexer
    from memory_etl.models.document import Document

    source_type, _, source_ref = doc_id.partition(":")
    session.execute(
        insert(Document).values(doc_id=doc_id, source_type=source_type, source_ref=source_ref, text=text)
    )
    if index:
        FtsIndexer(session).sync(doc_id, text, is_new=True)
