"""
Structured logging for ingest, search and verify runs (structlog over stdlib logging).

Usage:
    from memory_etl.logging_config import get_logger

    log = get_logger(__name__)
    log.info("file_ingested", path="messages/inbox/a/message_1.json", messages=12)

Events are snake_case names with keyword fields. Everything logged inside
run_context() carries the run's id, so one ingest can be followed through a
shared log file.
"""
import contextlib
import logging
import logging.handlers
import sys
import uuid
import structlog
from typing import Iterator, Optional

# Libraries that are chatty at INFO and say nothing about the pack itself
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool")

SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.stdlib.ExtraAdder(),
]


def _formatter(renderer) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def configure_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
    use_stderr: bool = False,
) -> None:
    """
    Route structlog and stdlib logging through one set of handlers.

    Args:
        log_level: DEBUG shows per-file apply details, INFO one line per file
        json_format: JSON lines on the console instead of colored output
        log_file: Also append JSON lines here, rotated daily, a week kept
        use_stderr: Log to stderr; the verify and query scripts print their
            results on stdout
    """
    structlog.configure(
        processors=SHARED_PROCESSORS + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    console_renderer = (
        structlog.processors.JSONRenderer() if json_format
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    console_handler = logging.StreamHandler(sys.stderr if use_stderr else sys.stdout)
    console_handler.setFormatter(_formatter(console_renderer))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.handlers.TimedRotatingFileHandler(
            log_file,
            when="midnight",
            backupCount=7,
            encoding="utf-8",
        )
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        root_logger.addHandler(file_handler)


def configure_from_settings(settings, use_stderr: bool = False) -> None:
    """Configure logging from a Settings object (see memory_etl.config)."""
    configure_logging(
        log_level=settings.log_level,
        json_format=settings.json_logs,
        log_file=settings.log_file,
        use_stderr=use_stderr,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def new_run_id() -> str:
    return uuid.uuid4().hex[:8]


@contextlib.contextmanager
def run_context(**ids: str) -> Iterator[None]:
    """
    Bind ids (e.g. ingestion_run_id) to every event logged inside the block.

    Only the keys bound here are removed on exit.
    """
    structlog.contextvars.bind_contextvars(**ids)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*ids)
