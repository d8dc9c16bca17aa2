"""
Tests for log redaction and formatting.
"""

import io
import json
import logging

from authkeeper.core.config import LoggingConfig
from authkeeper.core.logging import SecureLogFilter, configure_logging


def _record(msg: str, *args) -> logging.LogRecord:
    return logging.LogRecord("authkeeper.test", logging.INFO, __file__, 1, msg, args, None)


class TestSecureLogFilter:
    """Tests for SecureLogFilter."""

    def test_redacts_password_assignments(self):
        record = _record("login with password=hunter2")
        SecureLogFilter().filter(record)

        assert "hunter2" not in record.getMessage()
        assert "[REDACTED]" in record.getMessage()

    def test_redacts_arguments(self):
        record = _record("cookie %s", "selector=abcd:efgh")
        SecureLogFilter().filter(record)

        assert "abcd" not in record.getMessage()

    def test_redacts_argon2_hashes(self):
        encoded = "$argon2id$v=19$m=65536,t=3,p=4$c2FsdHNhbHQ$aGFzaGhhc2g"
        record = _record(f"hash {encoded}")
        SecureLogFilter().filter(record)

        assert encoded not in record.getMessage()

    def test_redacts_sha256_hex(self):
        digest = "9f86d081884c7d659a2feaa0c55ad015a3bf4f1b2b0b822cd15d6c15b0f00a08"
        record = _record(digest)
        SecureLogFilter().filter(record)

        assert digest not in record.getMessage()

    def test_keeps_ordinary_messages(self):
        record = _record("User %d logged in", 7)
        SecureLogFilter().filter(record)

        assert record.getMessage() == "User 7 logged in"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_library_loggers_go_through_filter(self):
        stream = io.StringIO()
        configure_logging(LoggingConfig(level="DEBUG"), stream=stream)

        logging.getLogger("authkeeper.auth").info("token=abc123 issued")

        output = stream.getvalue()
        assert "abc123" not in output
        assert "authkeeper.auth" in output

    def test_json_output(self):
        stream = io.StringIO()
        configure_logging(LoggingConfig(enable_json=True), stream=stream)

        logging.getLogger("authkeeper.throttle").warning("Throttle engaged")

        entry = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "authkeeper.throttle"
        assert entry["message"] == "Throttle engaged"
