"""Unit tests for pack verification."""
import hashlib
import json

import pytest
from sqlalchemy import text

from memory_etl.db.store import PackStore
from memory_etl.ingestion.pipeline import ingest
from memory_etl.verification.verifier import verify


@pytest.fixture
def built_pack(export_dir, pack_dir, settings):
    ingest(export_dir, pack_dir, settings=settings)
    return pack_dir


def tamper(pack_dir, sql):
    """Write to a pack behind the pipeline's back."""
    store = PackStore(pack_dir / "store.sqlite")
    try:
        with store.session() as session:
            session.execute(text(sql))
    finally:
        store.close()


def test_valid_pack(built_pack, settings):
    result = verify(built_pack, "UNICORN", settings=settings)

    assert result.ok is True
    assert result.failures == []
    assert result.fts_sample_doc_id.startswith("message:")
    assert result.counts["documents"] == 7


def test_result_dict_uses_external_names(built_pack, settings):
    assert set(verify(built_pack, "UNICORN", settings=settings).to_dict()) == {
        "ok", "packId", "ftsSampleDocId", "failures", "counts",
    }


def test_result_carries_the_pack_id(built_pack, settings):
    raw = json.loads((built_pack / "manifest.json").read_text(encoding="utf-8"))

    result = verify(built_pack, "UNICORN", settings=settings)

    assert result.pack_id == raw["packId"]
    assert result.to_dict()["packId"] == raw["packId"]


def test_missing_manifest_is_incomplete(built_pack, settings):
    (built_pack / "manifest.json").unlink()

    result = verify(built_pack, "UNICORN", settings=settings)

    assert result.ok is False
    assert len(result.failures) == 1
    assert result.failures[0].startswith("IncompletePack:")
    assert "ftsSampleDocId" not in result.to_dict()


def test_missing_store_is_incomplete(built_pack, settings):
    (built_pack / "store.sqlite").unlink()

    result = verify(built_pack, "UNICORN", settings=settings)

    assert result.failures[0].startswith("IncompletePack:")


def test_corrupt_manifest_is_incomplete(built_pack, settings):
    (built_pack / "manifest.json").write_text("{", encoding="utf-8")

    result = verify(built_pack, "UNICORN", settings=settings)

    assert result.ok is False
    assert result.failures[0].startswith("IncompletePack:")


@pytest.mark.parametrize("pack_id", [None, ""])
def test_manifest_without_pack_id_is_incomplete(built_pack, settings, pack_id):
    path = built_pack / "manifest.json"
    raw = json.loads(path.read_text(encoding="utf-8"))
    if pack_id is None:
        del raw["packId"]
    else:
        raw["packId"] = pack_id
    path.write_text(json.dumps(raw), encoding="utf-8")

    result = verify(built_pack, "UNICORN", settings=settings)

    assert result.ok is False
    assert len(result.failures) == 1
    assert result.failures[0].startswith("IncompletePack:")
    assert "packId" in result.failures[0]


def test_manifest_count_mismatch(built_pack, settings):
    path = built_pack / "manifest.json"
    raw = json.loads(path.read_text(encoding="utf-8"))
    raw["counts"]["messages"] += 1
    path.write_text(json.dumps(raw), encoding="utf-8")

    result = verify(built_pack, "UNICORN", settings=settings)

    assert result.ok is False
    assert any(f.startswith("ManifestMismatch:") and "messages" in f for f in result.failures)
    # The search still ran
    assert result.fts_sample_doc_id is not None


def test_orphan_index_entry_is_desync(built_pack, settings):
    tamper(built_pack, "INSERT INTO documents_fts (doc_id, text) VALUES ('message:ghost', 'ghost')")

    result = verify(built_pack, "UNICORN", settings=settings)

    assert result.ok is False
    assert any(f.startswith("IndexDesyncError:") and "message:ghost" in f for f in result.failures)


def test_unindexed_document_is_desync(built_pack, settings):
    tamper(built_pack, "DELETE FROM documents_fts WHERE text LIKE '%UNICORN%'")

    result = verify(built_pack, "UNICORN", settings=settings)

    assert result.ok is False
    desync = [f for f in result.failures if f.startswith("IndexDesyncError:")]
    assert any("without index entry" in f for f in desync)
    assert any("full-text index returns nothing" in f for f in desync)
    assert result.fts_sample_doc_id is None


def test_index_entry_under_wrong_rowid_is_desync(built_pack, settings):
    tamper(
        built_pack,
        "INSERT INTO documents_fts (rowid, doc_id, text) "
        "SELECT rowid + 1000, doc_id, text FROM documents_fts WHERE text LIKE '%UNICORN%'",
    )
    tamper(built_pack, "DELETE FROM documents_fts WHERE rowid < 1000 AND text LIKE '%UNICORN%'")

    result = verify(built_pack, "UNICORN", settings=settings)

    assert result.ok is False
    assert len(result.failures) == 1
    assert "wrong rowid" in result.failures[0]
    # The entry itself is still searchable
    assert result.fts_sample_doc_id is not None


def test_token_absent_from_pack(built_pack, settings):
    result = verify(built_pack, "zebra", settings=settings)

    assert result.ok is False
    assert result.failures == ["IndexDesyncError: full-text query for 'zebra' returned no documents"]


def test_default_token_from_settings(built_pack, settings):
    settings.pack.smoke_token = "tickets"

    result = verify(built_pack, settings=settings)

    assert result.ok is True


def test_verify_never_mutates_the_pack(built_pack, settings):
    def snapshot():
        return {
            p.name: hashlib.sha256(p.read_bytes()).hexdigest()
            for p in sorted(built_pack.iterdir())
        }

    before = snapshot()
    verify(built_pack, "UNICORN", settings=settings)
    verify(built_pack, "zebra", settings=settings)

    assert snapshot() == before
