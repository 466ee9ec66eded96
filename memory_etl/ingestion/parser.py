"""
Parse export files into normalized records.

parse_file never raises for bad content: a file that cannot be read or does
not have the expected shape comes back as a ParseFailure, and the caller
decides what to do with it (log it, leave its fingerprint alone, move on).

Files above the streaming threshold are never loaded whole: ijson walks them
and yields one message or activity item at a time.
"""
import json
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from typing import Any, Iterable, Iterator, List, Optional, Tuple

import ijson

from memory_etl.exceptions import ParseError
from memory_etl.ingestion.identifiers import OrdinalCounter, activity_id, message_id
from memory_etl.ingestion.text_normalizer import (
    DEFAULT_SECONDS_THRESHOLD,
    clean_text,
    coerce_timestamp_ms,
)
from memory_etl.logging_config import get_logger
from memory_etl.schemas.files import FileCategory, FileInfo
from memory_etl.schemas.records import (
    ParsedActivity,
    ParsedConversation,
    ParsedFile,
    ParsedMessage,
    ParseFailure,
    ParseOutcome,
)

log = get_logger(__name__)

DEFAULT_STREAMING_THRESHOLD_BYTES = 200 * 1024 * 1024

MEDIA_KEYS = ("photos", "videos", "gifs", "audio_files", "files")
MESSAGE_KEYS = {"sender_name", "timestamp_ms", "timestamp", "content", "type", "is_unsent"}
ACTIVITY_KEYS = {
    "timestamp_ms", "timestamp", "creation_timestamp",
    "text", "content", "post", "title", "name",
    "actor", "author", "reaction",
    "target_ref", "target", "parent_ref", "uri",
}
# Where activity arrays live when the file is not a bare list
ARRAY_CANDIDATES = (
    ("posts", "item"),
    ("comments", "item"),
    ("reactions", "item"),
    ("data", "item"),
)
ACTIVITY_KIND = {
    FileCategory.POSTS: "post",
    FileCategory.COMMENTS: "comment",
    FileCategory.REACTIONS: "reaction",
}
# ijson events that mean "messages" holds something other than an array
NOT_AN_ARRAY = {"start_map", "string", "number", "boolean", "null"}


# --- reading: whole file ---

def _read_json(file_info: FileInfo) -> Any:
    try:
        raw = file_info.file_path.read_bytes()
    except OSError as e:
        raise ParseError(file_info.relative_path, f"unreadable: {e}")
    try:
        return json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise ParseError(file_info.relative_path, f"not UTF-8: {e}")
    except json.JSONDecodeError as e:
        raise ParseError(file_info.relative_path, f"invalid JSON: {e}")


def _detect_array(payload: Any) -> Optional[list]:
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return None
    for outer, inner in ARRAY_CANDIDATES:
        nested = payload.get(outer)
        if isinstance(nested, dict) and isinstance(nested.get(inner), list):
            return nested[inner]
    # Newer exports: {"comments_v2": [...]}, {"reactions_v2": [...]}
    for value in payload.values():
        if isinstance(value, list) and any(isinstance(v, dict) for v in value):
            return value
    return None


# --- reading: streamed ---

def _stream_items(path: Path, prefix: str) -> Iterator[Any]:
    with open(path, "rb") as fh:
        yield from ijson.items(fh, prefix, use_float=True)


def _stream_message_header(file_info: FileInfo) -> dict:
    """Title and participants of a message file, read without building its messages."""
    title = None
    participants = []
    with open(file_info.file_path, "rb") as fh:
        events = ijson.parse(fh)
        first = next(events, None)
        if first is None or first[1] != "start_map":
            raise ParseError(file_info.relative_path, "expected a JSON object at the top level")
        for prefix, event, value in events:
            if prefix == "title" and event == "string":
                title = value
            elif prefix == "participants.item.name" and event == "string":
                participants.append({"name": value})
            elif prefix == "participants.item" and event == "string":
                participants.append(value)
            elif prefix == "messages" and event in NOT_AN_ARRAY:
                raise ParseError(file_info.relative_path, "'messages' is not an array")
    return {"title": title, "participants": participants}


def _stream_array_prefix(file_info: FileInfo) -> Optional[str]:
    """The ijson prefix of a large activity file's items, found the way _detect_array finds them."""
    candidates = {f"{outer}.{inner}" for outer, inner in ARRAY_CANDIDATES}
    first_list = None
    with open(file_info.file_path, "rb") as fh:
        for prefix, event, _ in ijson.parse(fh):
            if event == "start_array":
                if prefix == "":
                    return "item"
                if prefix in candidates:
                    return f"{prefix}.item"
            elif event == "start_map" and first_list is None:
                key, _, rest = prefix.partition(".")
                if key and rest == "item":
                    first_list = prefix
    return first_list


def _load_message_payload(file_info: FileInfo, streaming: bool) -> Tuple[dict, Iterable[Any]]:
    if streaming:
        header = _stream_message_header(file_info)
        return header, _stream_items(file_info.file_path, "messages.item")

    payload = _read_json(file_info)
    if not isinstance(payload, dict):
        raise ParseError(file_info.relative_path, "expected a JSON object at the top level")
    raw_messages = payload.get("messages", [])
    if not isinstance(raw_messages, list):
        raise ParseError(file_info.relative_path, "'messages' is not an array")
    return payload, raw_messages


def _load_activity_items(file_info: FileInfo, streaming: bool) -> Optional[Iterable[Any]]:
    if streaming:
        prefix = _stream_array_prefix(file_info)
        return None if prefix is None else _stream_items(file_info.file_path, prefix)
    return _detect_array(_read_json(file_info))


# --- field extraction ---

def _first_media_uri(item: dict) -> Optional[str]:
    for key in MEDIA_KEYS:
        entries = item.get(key)
        if not isinstance(entries, list):
            continue
        for entry in entries:
            if isinstance(entry, dict) and isinstance(entry.get("uri"), str):
                return entry["uri"]
    return None


def _first_value(item: dict, *keys: str) -> Any:
    for key in keys:
        if item.get(key) is not None:
            return item[key]
    return None


def _participant_names(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    names = []
    for participant in raw:
        name = participant.get("name") if isinstance(participant, dict) else participant
        cleaned = clean_text(name)
        if cleaned:
            names.append(cleaned)
    return names


def _data_entries(item: dict) -> List[dict]:
    data = item.get("data")
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        return [d for d in data if isinstance(d, dict)]
    return []


def _best_text(item: dict) -> Optional[str]:
    for key in ("text", "content", "post"):
        text = clean_text(item.get(key))
        if text:
            return text
    for entry in _data_entries(item):
        comment = entry.get("comment")
        if isinstance(comment, dict):
            comment = comment.get("comment")
        for value in (entry.get("post"), comment, entry.get("text")):
            text = clean_text(value)
            if text:
                return text
    return None


def _best_actor(item: dict) -> Optional[str]:
    actor = clean_text(_first_value(item, "actor", "author"))
    if actor:
        return actor
    for entry in _data_entries(item):
        for candidate in (entry.get("comment"), entry.get("reaction")):
            if isinstance(candidate, dict):
                actor = clean_text(_first_value(candidate, "author", "actor"))
                if actor:
                    return actor
    return None


def _best_reaction(item: dict) -> Optional[str]:
    reaction = clean_text(item.get("reaction"))
    if reaction:
        return reaction
    for entry in _data_entries(item):
        candidate = entry.get("reaction")
        if isinstance(candidate, dict):
            reaction = clean_text(candidate.get("reaction"))
            if reaction:
                return reaction
    return None


# --- record building ---

def _parse_message_file(
    file_info: FileInfo,
    header: dict,
    raw_messages: Iterable[Any],
    seconds_threshold: int,
) -> ParsedFile:
    # Thread id = thread folder relative to the export root
    conversation_id = str(PurePosixPath(file_info.relative_path).parent)
    conversation = ParsedConversation(
        conversation_id=conversation_id,
        title=clean_text(header.get("title")),
        participants=_participant_names(header.get("participants")),
    )

    ordinals = OrdinalCounter()
    messages = []
    for item in raw_messages:
        if not isinstance(item, dict):
            continue
        sent_at_ms = coerce_timestamp_ms(_first_value(item, "timestamp_ms", "timestamp"), seconds_threshold) or 0
        sender_id = clean_text(item.get("sender_name"))
        ordinal = ordinals.next(sent_at_ms)
        messages.append(
            ParsedMessage(
                id=message_id(conversation_id, file_info.relative_path, sender_id, sent_at_ms, ordinal),
                conversation_id=conversation_id,
                sender_id=sender_id,
                sent_at_ms=sent_at_ms,
                ordinal=ordinal,
                body_text=clean_text(item.get("content")),
                msg_type=clean_text(item.get("type")),
                is_unsent=item.get("is_unsent") is True,
                media_uri=_first_media_uri(item),
                raw_meta={k: v for k, v in item.items() if k not in MESSAGE_KEYS},
            )
        )

    return ParsedFile(file_info=file_info, conversation=conversation, messages=messages)


def _parse_activity_file(file_info: FileInfo, items: Optional[Iterable[Any]], seconds_threshold: int) -> ParsedFile:
    kind = ACTIVITY_KIND[file_info.category]
    if items is None:
        log.warning("no_array_detected", path=file_info.relative_path, category=file_info.category.value)
        return ParsedFile(file_info=file_info)

    ordinals = OrdinalCounter()
    activities = []
    for item in items:
        if not isinstance(item, dict):
            continue
        created_at_ms = coerce_timestamp_ms(
            _first_value(item, "timestamp_ms", "timestamp", "creation_timestamp"),
            seconds_threshold,
        )
        ordinal = ordinals.next(created_at_ms)
        title = clean_text(_first_value(item, "title", "name"))
        body = _best_reaction(item) if kind == "reaction" else _best_text(item)
        target = _first_value(item, "target_ref", "target", "parent_ref", "uri")
        activities.append(
            ParsedActivity(
                id=activity_id(kind, file_info.relative_path, created_at_ms, ordinal),
                kind=kind,
                created_at_ms=created_at_ms,
                ordinal=ordinal,
                actor=_best_actor(item),
                title=title,
                body_text=body,
                target_ref=target if isinstance(target, str) else None,
                raw_meta={k: v for k, v in item.items() if k not in ACTIVITY_KEYS},
            )
        )

    return ParsedFile(file_info=file_info, activities=activities)


def parse_file(
    file_info: FileInfo,
    seconds_threshold: int = DEFAULT_SECONDS_THRESHOLD,
    streaming_threshold_bytes: int = DEFAULT_STREAMING_THRESHOLD_BYTES,
) -> ParseOutcome:
    """
    Parse one export file.

    Args:
        file_info: File to parse
        seconds_threshold: Numeric timestamps below this are epoch seconds
        streaming_threshold_bytes: Files larger than this are streamed with ijson

    Returns:
        ParsedFile on success, ParseFailure (path + cause) otherwise
    """
    streaming = file_info.file_size > streaming_threshold_bytes
    if streaming:
        log.info("file_streaming", path=file_info.relative_path, size_bytes=file_info.file_size)
    try:
        if file_info.category == FileCategory.MESSAGES:
            header, raw_messages = _load_message_payload(file_info, streaming)
            return _parse_message_file(file_info, header, raw_messages, seconds_threshold)
        items = _load_activity_items(file_info, streaming)
        return _parse_activity_file(file_info, items, seconds_threshold)
    except ParseError as e:
        return ParseFailure(file_info=file_info, cause=e.cause)
    # Raised by the streamed path only; whole-file reads wrap theirs in ParseError
    except (ijson.JSONError, UnicodeDecodeError) as e:
        return ParseFailure(file_info=file_info, cause=f"invalid JSON: {e}")
    except OSError as e:
        return ParseFailure(file_info=file_info, cause=f"unreadable: {e}")


def iter_parse_outcomes(
    files: Iterable[FileInfo],
    workers: int = 1,
    seconds_threshold: int = DEFAULT_SECONDS_THRESHOLD,
    streaming_threshold_bytes: int = DEFAULT_STREAMING_THRESHOLD_BYTES,
) -> Iterator[ParseOutcome]:
    """
    Parse files lazily, yielding outcomes in the order files were given.

    With workers > 1 parsing runs on a thread pool; at most 2 * workers files
    are in flight so a huge export is never read into memory at once.
    """
    if workers <= 1:
        for file_info in files:
            yield parse_file(file_info, seconds_threshold, streaming_threshold_bytes)
        return

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="parse") as pool:
        pending = deque()
        for file_info in files:
            pending.append(pool.submit(parse_file, file_info, seconds_threshold, streaming_threshold_bytes))
            if len(pending) >= workers * 2:
                yield pending.popleft().result()
        while pending:
            yield pending.popleft().result()
