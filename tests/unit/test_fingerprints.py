import pytest
from sqlalchemy import select

from memory_etl.ingestion.fingerprints import FingerprintTracker
from memory_etl.models.source_file import SourceFile

PATH = "/exports/fb/messages/inbox/a/message_1.json"


def test_unknown_path_needs_processing(store):
    with store.session() as session:
        assert FingerprintTracker(session).needs_processing(PATH, 100, 1000) is True


def test_recorded_path_is_skipped(store):
    with store.session() as session:
        FingerprintTracker(session).record(PATH, 100, 1000, 5000)

    with store.session() as session:
        assert FingerprintTracker(session).needs_processing(PATH, 100, 1000) is False


@pytest.mark.parametrize("size, mtime", [(101, 1000), (100, 1001), (99, 999)])
def test_changed_size_or_mtime_needs_processing(store, size, mtime):
    with store.session() as session:
        FingerprintTracker(session).record(PATH, 100, 1000, 5000)

    with store.session() as session:
        assert FingerprintTracker(session).needs_processing(PATH, size, mtime) is True


def test_force_always_processes(store):
    with store.session() as session:
        tracker = FingerprintTracker(session)
        tracker.record(PATH, 100, 1000, 5000)
        assert tracker.needs_processing(PATH, 100, 1000, force=True) is True


def test_record_overwrites(store):
    with store.session() as session:
        FingerprintTracker(session).record(PATH, 100, 1000, 5000)
    with store.session() as session:
        FingerprintTracker(session).record(PATH, 200, 2000, 6000)

    with store.session() as session:
        rows = session.execute(select(SourceFile)).scalars().all()
    assert len(rows) == 1
    assert (rows[0].size_bytes, rows[0].modified_at_ms, rows[0].last_ingested_at_ms) == (200, 2000, 6000)


def test_rolled_back_record_is_not_kept(store):
    with pytest.raises(RuntimeError):
        with store.session() as session:
            FingerprintTracker(session).record(PATH, 100, 1000, 5000)
            raise RuntimeError("crash before commit")

    with store.session() as session:
        assert FingerprintTracker(session).needs_processing(PATH, 100, 1000) is True
