"""
Logging Configuration — Diagnostics for synchronization runs.

Everything goes to stderr so stdout stays free for command output.
Two formats:
- text: one short line per event, for a person at a terminal
- json: one object per line, for syslog/journald collectors

## Environment Variables

- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- LOG_FORMAT: json, text (default: text)

## Usage

    from pwsync.logging_config import setup_logging

    setup_logging()  # Call once at startup
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict

# LogRecord attributes copied into JSON output when a call passes them via extra=
EXTRA_FIELDS = ("username", "path", "phase")


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Output format:
    {"ts": "...", "level": "...", "logger": "...", "message": "...", "username": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class HumanFormatter(logging.Formatter):
    """
    Terminal formatter.

    INFO lines are printed bare, the way a setuid tool talks to its user;
    other levels carry a prefix:
    pwsync: WARNING: message
    """

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if record.levelno == logging.INFO:
            return msg

        level = record.levelname
        if sys.stderr.isatty():
            level = f"{self.COLORS.get(level, '')}{level}{self.RESET}"

        if record.levelno == logging.DEBUG:
            module = record.name.split(".")[-1]
            return f"pwsync: {level} [{module}] {msg}"
        return f"pwsync: {level}: {msg}"


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
               Defaults to LOG_LEVEL env var or INFO.
        format_type: Output format (json, text).
                     Defaults to LOG_FORMAT env var or text.
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_format = (format_type or os.environ.get("LOG_FORMAT", "text")).lower()

    numeric_level = getattr(logging, log_level, logging.INFO)

    formatter: logging.Formatter
    if log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = HumanFormatter()

    # Configure only our package logger; the host application owns the root
    package_logger = logging.getLogger("pwsync")
    package_logger.setLevel(numeric_level)
    package_logger.handlers.clear()
    package_logger.propagate = False

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)
    package_logger.addHandler(handler)

    logging.getLogger(__name__).debug(
        f"Logging configured: level={log_level}, format={log_format}"
    )
