"""
Unit tests for SystemReporter and the emoji registry.

Usage:
    pytest shared/tests/unit/reporter/test_system_reporter.py
"""

import logging

from shared.reporter import SystemReporter
from shared.reporter.emojis import Emoji, NetworkEmoji


class TestSystemReporter:
    """Unit tests for SystemReporter."""

    # ================================================================
    # Verbose filtering tests
    # ================================================================

    def test_messages_carry_context_prefix(self, caplog):
        """Test messages are prefixed with their context."""
        reporter = SystemReporter(name="test-context", verbose=1)

        with caplog.at_level(logging.INFO, logger="test-context"):
            reporter.info("Relay started", context="Relay")

        assert "[Relay] Relay started" in caplog.text

    def test_verbose_level_filters_messages(self, caplog):
        """Test messages above the verbose level are dropped."""
        reporter = SystemReporter(name="test-verbose", level=logging.DEBUG, verbose=1)

        with caplog.at_level(logging.DEBUG, logger="test-verbose"):
            reporter.info("important", verbose_level=1)
            reporter.info("detailed", verbose_level=2)
            reporter.debug("noise")
            reporter.error("always")

        assert "important" in caplog.text
        assert "detailed" not in caplog.text
        assert "noise" not in caplog.text
        assert "always" in caplog.text

    def test_set_verbose_clamps(self):
        """Test set_verbose keeps the level within 0..3."""
        reporter = SystemReporter(name="test-clamp", verbose=1)

        reporter.set_verbose(9)
        assert reporter.verbose == 3

        reporter.set_verbose(-2)
        assert reporter.verbose == 0

    # ================================================================
    # File logging tests
    # ================================================================

    def test_file_logging(self, tmp_path):
        """Test log_file adds a file handler, creating missing directories."""
        log_file = tmp_path / "logs" / "relay.log"
        reporter = SystemReporter(name="relay-file", log_file=str(log_file))

        reporter.warning("Snapshot failed", context="StateStore")
        for handler in reporter.logger.handlers:
            handler.flush()

        assert reporter.log_file == str(log_file)
        assert "[StateStore] Snapshot failed" in log_file.read_text(encoding="utf-8")

    def test_stdout_only_without_log_file(self):
        """Test no file handler is attached without log_file."""
        reporter = SystemReporter(name="relay-stdout")

        assert reporter.log_file is None
        assert len(reporter.logger.handlers) == 1


class TestEmojiRegistry:
    """Unit tests for the Emoji registry."""

    def test_categories(self):
        """Test all categories are registered."""
        assert set(Emoji.get_all_categories()) == {
            "SYSTEM",
            "DATABASE",
            "NETWORK",
            "SECURITY",
            "ERROR",
        }

    def test_format_and_fallback(self):
        """Test format prefixes known emojis and leaves unknown ones alone."""
        assert Emoji.format("network", "broadcast", "sent") == (
            f"{NetworkEmoji.BROADCAST} sent"
        )
        assert Emoji.format("network", "missing", "sent") == "sent"
        assert Emoji.get("nope", "nope") == "❓"
