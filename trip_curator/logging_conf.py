"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path

import structlog

_LOGGING_INITIALISED = False


def _default_log_dir() -> Path:
    env_root = os.environ.get("TRIP_CURATOR_HOME")
    if env_root:
        return Path(env_root).expanduser().resolve() / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return the application logger."""

    global _LOGGING_INITIALISED
    log_dir = _default_log_dir()
    error_log = log_dir / "error.log"
    pipeline_log = log_dir / "pipeline.log"
    runs_dir = log_dir / "runs"
    runs_dir.mkdir(parents=True, exist_ok=True)
    error_log.touch(exist_ok=True)
    pipeline_log.touch(exist_ok=True)

    if not _LOGGING_INITIALISED:
        level = "DEBUG" if verbose else "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "plain": {
                        "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "level": level,
                        "formatter": "plain",
                    },
                    "pipeline_file": {
                        "class": "logging.FileHandler",
                        "level": "INFO",
                        "filename": str(pipeline_log),
                        "formatter": "plain",
                    },
                    "error_file": {
                        "class": "logging.FileHandler",
                        "level": "ERROR",
                        "filename": str(error_log),
                        "formatter": "plain",
                    },
                },
                "loggers": {
                    "trip_curator": {
                        "handlers": ["console", "pipeline_file", "error_file"],
                        "level": level,
                        "propagate": False,
                    },
                },
            }
        )

        # Forward structlog events to stdlib; JSON rendering happens in the handler formatter
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
    return structlog.get_logger("trip_curator")


def _run_log_path(session_id: str, run_id: str) -> Path:
    return _default_log_dir() / "runs" / f"{session_id}__{run_id}.log"


def run_logger(session_id: str, run_id: str, verbose: bool = False) -> structlog.BoundLogger:
    """Return a logger bound to one pipeline run, mirrored into ``logs/runs/<session>__<run>.log``.

    The run file handler stays attached until ``close_run_logger`` is called.
    """

    configure_logging(verbose)
    run_log_path = _run_log_path(session_id, run_id)
    run_log_path.parent.mkdir(parents=True, exist_ok=True)

    logger_name = "trip_curator.run"
    py_logger = logging.getLogger(logger_name)
    if not any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(run_log_path)
        for handler in py_logger.handlers
    ):
        file_handler = logging.FileHandler(run_log_path, encoding="utf-8")
        global_logger = logging.getLogger("trip_curator")
        if global_logger.handlers:
            file_handler.setFormatter(global_logger.handlers[0].formatter)
        file_handler.setLevel(logging.INFO)
        file_handler.addFilter(_RunFilter(session_id, run_id))
        py_logger.addHandler(file_handler)

    return structlog.get_logger(logger_name).bind(session_id=session_id, run_id=run_id)


def close_run_logger(session_id: str, run_id: str) -> int:
    """Detach and close the run file handler(s) added by ``run_logger``."""

    run_log_path = str(_run_log_path(session_id, run_id))
    py_logger = logging.getLogger("trip_curator.run")
    removed = 0
    for handler in list(py_logger.handlers):
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == run_log_path:
            py_logger.removeHandler(handler)
            handler.close()
            removed += 1
    return removed


class _RunFilter(logging.Filter):
    """Keep only records emitted for one run in its dedicated file."""

    def __init__(self, session_id: str, run_id: str) -> None:
        super().__init__()
        self.session_id = session_id
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        event = record.msg if isinstance(record.msg, dict) else {}
        return event.get("session_id") == self.session_id and event.get("run_id") == self.run_id


__all__ = ["close_run_logger", "configure_logging", "run_logger"]
