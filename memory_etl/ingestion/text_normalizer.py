import re
from datetime import datetime, timezone
from typing import Any, Optional

DEFAULT_SECONDS_THRESHOLD = 10_000_000_000


def normalize_text(text: str) -> str:
    """
    Clean and normalize text for storage and indexing.
    """
    if not text:
        return ""

    # Remove null bytes
    text = text.replace("\x00", "")

    # Replace customized/weird whitespace characters with standard space
    # (keeps newlines intact)
    text = re.sub(r'[^\S\n]+', ' ', text)

    # Collapse explicit multiple newlines to max 2 (paragraph separation)
    text = re.sub(r'\n{3,}', '\n\n', text)

    return text.strip()


def repair_mojibake(text: str) -> str:
    """
    Undo the export's encoding bug.

    The JSON files escape each UTF-8 *byte* as its own code point, so "é"
    arrives as "\\u00c3\\u00a9" and decodes to "Ã©". Re-reading those code
    points as latin-1 bytes recovers the original UTF-8. Text that was not
    mangled this way is returned unchanged.
    """
    if not text or all(ord(ch) < 0x80 for ch in text):
        return text
    try:
        return text.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return text


def clean_text(value: Any) -> Optional[str]:
    """Repair + normalize a raw JSON value. None when there is no text."""
    if not isinstance(value, str):
        return None
    cleaned = normalize_text(repair_mojibake(value))
    return cleaned or None


def coerce_timestamp_ms(value: Any, seconds_threshold: int = DEFAULT_SECONDS_THRESHOLD) -> Optional[int]:
    """
    Coerce an export timestamp to epoch milliseconds.

    Accepts ints/floats and numeric strings (epoch seconds or milliseconds,
    told apart by magnitude) and ISO-8601 strings. Naive ISO values are UTC.
    """
    if isinstance(value, bool):
        return None

    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            value = float(raw)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            except ValueError:
                return None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return int(parsed.timestamp() * 1000)

    if isinstance(value, (int, float)):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        if abs(value) < seconds_threshold:
            return int(value * 1000)
        return int(value)

    return None
