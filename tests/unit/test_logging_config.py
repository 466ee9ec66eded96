import json
import logging

import structlog

from memory_etl.logging_config import configure_logging, get_logger, new_run_id, run_context


def test_run_context_binds_and_unbinds():
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(outer="kept")

    with run_context(ingestion_run_id="abc123"):
        assert structlog.contextvars.get_contextvars() == {"outer": "kept", "ingestion_run_id": "abc123"}

    assert structlog.contextvars.get_contextvars() == {"outer": "kept"}
    structlog.contextvars.clear_contextvars()


def test_new_run_id_is_short_and_unique():
    ids = {new_run_id() for _ in range(20)}
    assert len(ids) == 20
    assert all(len(i) == 8 for i in ids)


def test_file_log_is_json_with_run_id(tmp_path):
    log_file = tmp_path / "ingest.log"
    configure_logging(log_level="INFO", json_format=True, log_file=str(log_file), use_stderr=True)
    try:
        with run_context(ingestion_run_id="run42"):
            get_logger("test").info("file_ingested", path="a.json")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
        event = next(line for line in lines if line["event"] == "file_ingested")
        assert event["ingestion_run_id"] == "run42"
        assert event["path"] == "a.json"
        assert event["level"] == "info"
    finally:
        root = logging.getLogger()
        for handler in list(root.handlers):
            handler.close()
            root.removeHandler(handler)
        structlog.reset_defaults()
