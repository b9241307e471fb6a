"""structlog configuration: JSON lines on the console, in rotating files and per source."""

from __future__ import annotations

import logging
import logging.config
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator

import structlog

LOGGER_NAME = "seedcrawl"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
CRAWLER_LOG_MAX_BYTES = 5 * 1024 * 1024
CRAWLER_LOG_BACKUPS = 3

_LOGGING_INITIALISED = False


def _default_log_dir() -> Path:
    home = os.environ.get("SEEDCRAWL_HOME")
    if home:
        return Path(home).expanduser().resolve() / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def _dict_config(log_dir: Path, verbose: bool) -> dict[str, Any]:
    level = "DEBUG" if verbose else "INFO"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": "pythonjsonlogger.jsonlogger.JsonFormatter", "fmt": JSON_FORMAT},
        },
        "handlers": {
            # Console stays quiet so `run --json` output is machine readable.
            "console": {
                "class": "logging.StreamHandler",
                "level": "DEBUG" if verbose else "WARNING",
                "formatter": "json",
            },
            "crawler_file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": "INFO",
                "filename": str(log_dir / "crawler.log"),
                "maxBytes": CRAWLER_LOG_MAX_BYTES,
                "backupCount": CRAWLER_LOG_BACKUPS,
                "formatter": "json",
                "encoding": "utf-8",
            },
            "error_file": {
                "class": "logging.FileHandler",
                "level": "ERROR",
                "filename": str(log_dir / "error.log"),
                "formatter": "json",
                "encoding": "utf-8",
            },
        },
        "loggers": {
            LOGGER_NAME: {
                "handlers": ["console", "crawler_file", "error_file"],
                "level": level,
                "propagate": False,
            },
            "httpx": {"level": "WARNING"},
            "apscheduler": {"level": "WARNING"},
        },
    }


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Set up logging once per process and return the application logger.

    Every seedcrawl event goes through structlog into the stdlib
    ``seedcrawl`` logger tree, so the JSON handlers configured here see
    fetcher, dedup, sink and orchestrator events alike.
    """

    global _LOGGING_INITIALISED
    log_dir = _default_log_dir()
    (log_dir / "sources").mkdir(parents=True, exist_ok=True)

    if not _LOGGING_INITIALISED:
        logging.config.dictConfig(_dict_config(log_dir, verbose))
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger(LOGGER_NAME)


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Attach ``values`` (run id, source) to every event logged in this thread."""

    with structlog.contextvars.bound_contextvars(**values):
        yield


def source_logger(source_name: str, verbose: bool = False) -> structlog.BoundLogger:
    """Logger bound to ``source_name`` that also appends to ``logs/sources/<name>.log``."""

    configure_logging(verbose)
    path = _default_log_dir() / "sources" / f"{source_name}.log"
    path.parent.mkdir(parents=True, exist_ok=True)

    logger_name = f"{LOGGER_NAME}.source.{source_name}"
    py_logger = logging.getLogger(logger_name)
    if not any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(path)
        for handler in py_logger.handlers
    ):
        handler = logging.FileHandler(path, encoding="utf-8")
        root_handlers = logging.getLogger(LOGGER_NAME).handlers
        if root_handlers:
            handler.setFormatter(root_handlers[0].formatter)
        handler.setLevel(logging.INFO)
        py_logger.addHandler(handler)

    return structlog.get_logger(logger_name).bind(source=source_name)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


def log_dir() -> Path:
    return _default_log_dir()


def available_source_logs() -> Iterable[Path]:
    sources_dir = _default_log_dir() / "sources"
    if not sources_dir.exists():
        return []
    return sorted(sources_dir.glob("*.log"))


__all__ = [
    "available_source_logs",
    "configure_logging",
    "log_context",
    "log_dir",
    "source_logger",
    "tail_log",
]
