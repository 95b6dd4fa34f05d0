"""Logging setup for the product-renewal command line.

Operator-facing results go to stdout through ``print``. Logs go to stderr, so
cron jobs can keep the two apart.

Features:
    - Masking of API keys, bearer tokens and passwords
    - Optional JSON lines for log shippers
    - Chatty HTTP client loggers held at WARNING unless running at DEBUG
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any

SENSITIVE_PATTERNS = [
    (re.compile(r'api[_-]?key["\']?\s*[:=]\s*["\']?[\w-]+', re.I), "api_key=***MASKED***"),
    (re.compile(r"bearer\s+[\w.~+/-]+=*", re.I), "Bearer ***MASKED***"),
    (re.compile(r'password["\']?\s*[:=]\s*["\']?[^\s"\']+', re.I), "password=***MASKED***"),
]

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def mask_secrets(message: str) -> str:
    """Replace credentials in a message with masked placeholders."""
    for pattern, replacement in SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class SecureFormatter(logging.Formatter):
    """Plain-text formatter that masks credentials."""

    def format(self, record: logging.LogRecord) -> str:
        return mask_secrets(super().format(record))


class JSONFormatter(logging.Formatter):
    """One JSON object per line, credentials masked."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a record as a JSON line.

        Args:
            record: The log record to format.

        Returns:
            JSON object with timestamp, level, logger, module and message, plus
            the formatted traceback when the record carries one.
        """
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return mask_secrets(json.dumps(entry, default=str))


def configure_logging(
    level: str | int = "INFO",
    json_format: bool = False,
    mask_sensitive: bool = True,
) -> None:
    """Install a single stderr handler on the root logger.

    Safe to call more than once; earlier handlers are replaced.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
        json_format: Emit JSON lines instead of plain text.
        mask_sensitive: Mask credentials in plain-text output. JSON output is
            always masked.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    elif mask_sensitive:
        formatter = SecureFormatter(fmt=DEFAULT_FORMAT, datefmt=DEFAULT_DATEFMT)
    else:
        formatter = logging.Formatter(fmt=DEFAULT_FORMAT, datefmt=DEFAULT_DATEFMT)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    debug = root_logger.getEffectiveLevel() <= logging.DEBUG
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if debug else logging.WARNING)
