"""
Logging Module - Conversation-aware logging
===========================================

Every record is stamped with the id of the conversation that produced it.
Engine match traces travel as a structured ``trace`` mapping rather than
inside the message text, so the JSON log keeps them queryable and the
console renders them as ``key=value`` pairs.

Usage:
    logger = get_logger(__name__)
    logger.debug("rule matched", extra={"trace": {"keyword": "my", "rank": 2}})
"""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


ROOT_LOGGER_NAME = "eliza"
NO_SESSION = "-"

_local = threading.local()


def _trace_of(record: logging.LogRecord) -> Dict[str, Any]:
    trace = getattr(record, "trace", None)
    return trace if isinstance(trace, dict) else {}


class JSONFormatter(logging.Formatter):
    """One JSON object per record: level, logger, session, message and trace."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "session": getattr(record, "session", NO_SESSION),
            "message": record.getMessage(),
        }

        trace = _trace_of(record)
        if trace:
            entry["trace"] = trace

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    """
    Terminal formatter.

    Renders ``[LEVEL] HH:MM:SS session logger | message key=value ...``
    with the level tag colored by severity.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        session = getattr(record, "session", NO_SESSION)

        line = (
            f"{color}[{record.levelname}]{self.RESET} {timestamp} "
            f"{session} {record.name} | {record.getMessage()}"
        )

        trace = _trace_of(record)
        if trace:
            line += " " + " ".join(f"{key}={value!r}" for key, value in trace.items())

        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"

        return line


class SessionFilter(logging.Filter):
    """Stamps records with the conversation id set for the current thread."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session = getattr(_local, "session", None) or NO_SESSION
        return True


_configured = False


def setup_logging(
    log_dir: Optional[str] = None,
    log_level: str = "INFO",
    json_format: bool = False,
    console_output: bool = True
) -> None:
    """
    Configure the ``eliza`` logger tree once per process.

    Args:
        log_dir: Directory for ``eliza.log`` and ``errors.log`` (optional)
        log_level: Minimum level captured
        json_format: Write ``eliza.log`` as JSON lines
        console_output: Also log to the terminal
    """
    global _configured

    if _configured:
        return

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    session_filter = SessionFilter()

    # stderr, so log lines never interleave with replies printed to stdout
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(ColoredFormatter())
        console_handler.addFilter(session_filter)
        root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path / "eliza.log", encoding="utf-8")
        if json_format:
            file_handler.setFormatter(JSONFormatter())
        else:
            file_handler.setFormatter(logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(session)s | %(name)s | %(message)s"
            ))
        file_handler.addFilter(session_filter)
        root_logger.addHandler(file_handler)

        error_handler = logging.FileHandler(log_path / "errors.log", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(JSONFormatter())
        error_handler.addFilter(session_filter)
        root_logger.addHandler(error_handler)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` inside the ``eliza`` namespace."""
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_session(session_id: Optional[str]) -> None:
    """Tag this thread's records with ``session_id``; None removes the tag."""
    _local.session = session_id
