import pytest
from memory_etl.ingestion.text_normalizer import (
    clean_text,
    coerce_timestamp_ms,
    normalize_text,
    repair_mojibake,
)

def test_normalize_empty():
    assert normalize_text("") == ""
    assert normalize_text(None) == ""

def test_normalize_whitespace():
    assert normalize_text("  hello   world  ") == "hello world"
    assert normalize_text("hello\tworld") == "hello world"

def test_normalize_newlines():
    # Single newlines preserved, multiple collapsed to 2
    text = "Line 1\nLine 2\n\n\nLine 3"
    expected = "Line 1\nLine 2\n\nLine 3"
    assert normalize_text(text) == expected

def test_normalize_null_chars():
    assert normalize_text("hello\x00world") == "helloworld"


def test_repair_mojibake_recovers_utf8():
    # "é" exported as its two UTF-8 bytes, each escaped as a code point
    assert repair_mojibake("CafÃ©") == "Café"
    assert repair_mojibake("ð\u009f\u0098\u0082") == "😂"

def test_repair_mojibake_leaves_clean_text_alone():
    assert repair_mojibake("plain ascii") == "plain ascii"
    # Already-correct unicode does not survive a latin-1 round trip
    assert repair_mojibake("Café 😂") == "Café 😂"
    # Latin-1 text that is not valid UTF-8 once re-encoded
    assert repair_mojibake("naïve") == "naïve"

def test_clean_text():
    assert clean_text("  CafÃ©   time ") == "Café time"
    assert clean_text("   ") is None
    assert clean_text(None) is None
    assert clean_text(42) is None


class TestCoerceTimestamp:
    def test_milliseconds_pass_through(self):
        assert coerce_timestamp_ms(1700000060000) == 1700000060000

    def test_seconds_scaled(self):
        assert coerce_timestamp_ms(1690000000) == 1690000000000
        assert coerce_timestamp_ms(1690000000.5) == 1690000000500

    def test_numeric_strings(self):
        assert coerce_timestamp_ms("1690000000") == 1690000000000
        assert coerce_timestamp_ms(" 1700000060000 ") == 1700000060000

    def test_iso_strings(self):
        assert coerce_timestamp_ms("2023-07-22T04:26:40Z") == 1690000000000
        # Naive values are UTC
        assert coerce_timestamp_ms("2023-07-22T04:26:40") == 1690000000000

    @pytest.mark.parametrize("value", [None, "", "yesterday", True, float("nan"), {"ts": 1}])
    def test_unusable_values(self, value):
        assert coerce_timestamp_ms(value) is None

    def test_custom_threshold(self):
        assert coerce_timestamp_ms(5000, seconds_threshold=1000) == 5000
