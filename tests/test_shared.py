"""
Tests for Shared Module.
========================

Tests for:
- Logging: Rich handler console, CLI console sharing, duration logging
"""

import logging

import pytest


class TestLogging:
    """Tests for the logging helpers."""

    def test_rich_handler_uses_shared_console(self):
        """The rich handler writes to the console returned by get_console()."""
        from rich.logging import RichHandler

        from library_rag.shared.logging import get_console, setup_logging

        setup_logging(level="INFO", use_rich=True, force=True)

        handlers = [h for h in logging.getLogger().handlers if isinstance(h, RichHandler)]
        assert len(handlers) == 1
        assert handlers[0].console is get_console()

    def test_plain_handler_when_rich_disabled(self):
        from rich.logging import RichHandler

        from library_rag.shared.logging import setup_logging

        setup_logging(level="WARNING", use_rich=False, force=True)

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert not any(isinstance(h, RichHandler) for h in root.handlers)

        setup_logging(force=True)

    def test_cli_prints_through_shared_console(self):
        """CLI output and log lines share one console."""
        from library_rag.cli import main as cli_main
        from library_rag.shared.logging import get_console

        assert cli_main.console is get_console()

    def test_log_duration(self, caplog: pytest.LogCaptureFixture):
        """log_duration reports the elapsed time at DEBUG."""
        from library_rag.shared.logging import log_duration

        logger = logging.getLogger("library_rag.tests.timing")
        with caplog.at_level(logging.DEBUG, logger=logger.name):
            with log_duration(logger, "Grounded generation"):
                pass

        assert any(
            record.message.startswith("Grounded generation took") and record.message.endswith("ms")
            for record in caplog.records
        )

    def test_log_duration_logs_on_error(self, caplog: pytest.LogCaptureFixture):
        from library_rag.shared.logging import log_duration

        logger = logging.getLogger("library_rag.tests.timing")
        with caplog.at_level(logging.DEBUG, logger=logger.name):
            with pytest.raises(RuntimeError):
                with log_duration(logger, "Precheck"):
                    raise RuntimeError("boom")

        assert any("Precheck took" in record.message for record in caplog.records)
