"""
Secure Logging Module
=====================

Logging helpers that keep credentials out of log output.

Library modules only ever call ``logging.getLogger("authkeeper.<area>")``;
applications decide where records go by calling ``configure_logging`` or
``get_secure_logger``.

Security Features:
- Automatic redaction of passwords, tokens, selectors and remember cookies
- Optional JSON output for log aggregation
- No propagation of unfiltered records from configured loggers
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Final, Optional, Pattern

from authkeeper.core.config import LoggingConfig


# Patterns for sensitive data detection
_SENSITIVE_PATTERNS: Final[list[tuple[str, Pattern[str]]]] = [
    ("password", re.compile(r'(?i)(password|passwd|pwd)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("token", re.compile(r'(?i)(token|bearer)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("selector", re.compile(r'(?i)selector\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("cookie", re.compile(r'(?i)(cookie|remember)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("secret", re.compile(r'(?i)(secret|private[_-]?key)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    # Argon2 encoded hashes
    ("hash", re.compile(r'\$argon2(?:id|i|d)\$[^\s"\']+')),
    # Base64 encoded secrets (longer than 40 chars)
    ("base64_secret", re.compile(r'[A-Za-z0-9+/_-]{40,}={0,2}')),
    # Hex encoded secrets, e.g. SHA-256 token hashes
    ("hex_secret", re.compile(r'(?i)(?:0x)?[a-f0-9]{32,}')),
]

_REDACTED_TEXT: Final[str] = "[REDACTED]"


class SecureLogFilter(logging.Filter):
    """
    Log filter that removes sensitive information from log messages.

    Scans the message and its arguments for anything that looks like a
    password, token, selector or hash and replaces it with [REDACTED].
    """

    def __init__(self, name: str = "", additional_patterns: Optional[list[Pattern[str]]] = None) -> None:
        super().__init__(name)
        self._additional_patterns = additional_patterns or []

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact the record in place. Always keeps the record."""
        if record.msg and isinstance(record.msg, str):
            record.msg = self._sanitize(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._sanitize(v) if isinstance(v, str) else v
                               for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._sanitize(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True

    def _sanitize(self, text: str) -> str:
        """Remove sensitive data from text."""
        result = text

        for name, pattern in _SENSITIVE_PATTERNS:
            result = pattern.sub(f"{name}={_REDACTED_TEXT}", result)

        for pattern in self._additional_patterns:
            result = pattern.sub(_REDACTED_TEXT, result)

        return result


class StructuredLogFormatter(logging.Formatter):
    """
    Formatter that outputs logs in JSON format for easy parsing.

    Useful for log aggregation systems and security monitoring.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def _build_handler(config: LoggingConfig, stream=None) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(logging.DEBUG)
    if config.enable_json:
        handler.setFormatter(StructuredLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(config.format, datefmt=config.date_format))
    handler.addFilter(SecureLogFilter())
    return handler


def get_secure_logger(
    name: str,
    config: Optional[LoggingConfig] = None,
    stream=None,
) -> logging.Logger:
    """
    Create a logger with automatic secret filtering.

    Args:
        name: Logger name (typically __name__)
        config: Logging settings (defaults to LoggingConfig())
        stream: Output stream (defaults to stderr)

    Returns:
        Configured logger instance
    """
    config = config or LoggingConfig()
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, config.level.upper()))

    if config.enable_console:
        logger.addHandler(_build_handler(config, stream))

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


def configure_logging(config: Optional[LoggingConfig] = None, stream=None) -> logging.Logger:
    """
    Configure the ``authkeeper`` logger hierarchy.

    Call once at application startup. Every ``authkeeper.*`` logger
    propagates to the configured parent, so all library output passes
    through the redaction filter.
    """
    config = config or LoggingConfig()
    logger = logging.getLogger("authkeeper")
    logger.setLevel(getattr(logging, config.level.upper()))
    logger.handlers.clear()

    if config.enable_console:
        logger.addHandler(_build_handler(config, stream))

    logger.propagate = False
    return logger
