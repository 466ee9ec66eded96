"""
Deterministic identifiers.

Every id is a pure function of the fields that identify the record, so
re-ingesting the same export produces the same ids and upserts replace
rows in place instead of duplicating them.
"""
import hashlib
from collections import defaultdict
from typing import Dict, Hashable, Optional


def _sha1(*parts) -> str:
    joined = "|".join("" if p is None else str(p) for p in parts)
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()


def message_id(
    conversation_id: str,
    relative_path: str,
    sender_id: Optional[str],
    sent_at_ms: int,
    ordinal: int,
) -> str:
    """
    Long threads are split over message_1.json, message_2.json, ...; the
    file path keeps ids apart when two files share (sender, timestamp).
    """
    return _sha1("message", conversation_id, relative_path, sender_id, sent_at_ms, ordinal)


def activity_id(kind: str, relative_path: str, created_at_ms: Optional[int], ordinal: int) -> str:
    return _sha1(kind, relative_path, created_at_ms, ordinal)


def document_id(source_type: str, source_ref: str) -> str:
    return f"{source_type}:{source_ref}"


class OrdinalCounter:
    """
    Hands out 0, 1, 2, ... per key, in call order.

    Used to tell apart records that share a timestamp: the n-th message of a
    file sent at the same millisecond gets ordinal n.
    """

    def __init__(self):
        self._seen: Dict[Hashable, int] = defaultdict(int)

    def next(self, key: Hashable) -> int:
        ordinal = self._seen[key]
        self._seen[key] += 1
        return ordinal
