"""Tests for the centralized logging utility with contextvars support."""

from __future__ import annotations

import json
import logging
import os
from io import StringIO
from unittest.mock import patch

import structlog

from src.utils.logging import (
    DiagnosticStreamHandler,
    LogContext,
    _get_log_renderer,
    _is_local_environment,
    configure_logging,
    get_logger,
    get_logging_failure_count,
)


class TestBasicLoggerFunctionality:
    """Test basic logger creation and functionality."""

    def test_get_logger_returns_structlog_instance(self):
        """Test that get_logger returns a structlog BoundLogger."""
        logger = get_logger(__name__)
        # structlog returns different types depending on configuration
        # but they all have the same interface - test that we can call log methods
        assert hasattr(logger, "info")
        assert hasattr(logger, "error")
        assert hasattr(logger, "debug")
        assert callable(logger.info)

    def test_get_logger_with_extra_context(self):
        """Test that get_logger binds extra context."""
        logger = get_logger(__name__, component="test", version="1.0")

        # The logger should have the extra context bound
        # We can't easily inspect bound context, but we can test that it has logging methods
        assert hasattr(logger, "info")
        assert hasattr(logger, "bind")
        assert callable(logger.bind)


class TestEnvironmentDetection:
    """Test environment-based configuration."""

    def test_is_local_environment_with_environment_var(self):
        """Test local environment detection with ENVIRONMENT var."""
        with patch.dict(os.environ, {"GITPRESS_ENVIRONMENT": "local"}):
            assert _is_local_environment() is True

        with patch.dict(os.environ, {"GITPRESS_ENVIRONMENT": "production"}):
            assert _is_local_environment() is False

    def test_console_renderer_selection(self):
        """Test that the correct renderer is selected based on environment."""
        with patch.dict(os.environ, {"GITPRESS_ENVIRONMENT": "local"}):
            renderer = _get_log_renderer()
            assert isinstance(renderer, structlog.dev.ConsoleRenderer)

        with patch.dict(os.environ, {"GITPRESS_ENVIRONMENT": "production"}):
            renderer = _get_log_renderer()
            assert isinstance(renderer, structlog.processors.JSONRenderer)


@patch("src.utils.logging._is_local_environment", return_value=False)
class TestLogOutput:
    """Test actual log output with different configurations."""

    def setup_method(self):
        """Set up for each test."""
        structlog.contextvars.clear_contextvars()
        # Create a string buffer to capture log output
        self.log_stream = StringIO()
        self.handler = logging.StreamHandler(self.log_stream)

    def teardown_method(self):
        """Clean up after each test."""
        structlog.contextvars.clear_contextvars()
        if hasattr(self, "handler"):
            # Remove handler to avoid affecting other tests
            logging.getLogger().removeHandler(self.handler)

    def _setup_json_logging_with_test_handler(self):
        """Helper to configure JSON logging and redirect to test handler."""
        configure_logging()

        # Replace the handler that configure_logging created with our test handler
        # but keep the same formatter
        root_logger = logging.getLogger()
        existing_handler = root_logger.handlers[0]  # configure_logging adds one handler
        formatter = existing_handler.formatter  # Use the same ProcessorFormatter

        # Set up our test handler with the existing formatter
        self.handler.setFormatter(formatter)
        root_logger.handlers.clear()
        root_logger.addHandler(self.handler)

    def _get_logged_json_values(self) -> list[dict]:
        """Helper to get all logged JSON values from the log stream."""
        log_output = self.log_stream.getvalue().strip()
        if not log_output:
            return []

        lines = log_output.split("\n")
        return [json.loads(line) for line in lines if line.strip()]

    def test_context_appears_in_json_logs(self, _):
        """Test that context appears in JSON-formatted logs."""
        self._setup_json_logging_with_test_handler()

        # Set context and log
        structlog.contextvars.bind_contextvars(repository="acme/docs", delivery_id="72d3162e")
        logger = get_logger(__name__)
        logger.info("Test message", path="guide/intro.md")

        # Get and verify the log output
        logs = self._get_logged_json_values()
        assert len(logs) == 1

        log_data = logs[0]
        assert log_data.get("repository") == "acme/docs"
        assert log_data.get("delivery_id") == "72d3162e"
        assert log_data.get("path") == "guide/intro.md"
        assert "Test message" in str(log_data)

    def test_context_with_log_context_manager(self, _):
        """Test that LogContext appears in logs."""
        self._setup_json_logging_with_test_handler()

        structlog.contextvars.bind_contextvars(repository="acme/docs")

        with LogContext(operation="test_op", config_id="docs-main"):
            logger = get_logger(__name__)
            logger.info("Inside context")

            logs = self._get_logged_json_values()
            assert len(logs) == 1

            log_data = logs[0]
            assert log_data.get("repository") == "acme/docs"
            assert log_data.get("operation") == "test_op"
            assert log_data.get("config_id") == "docs-main"

    def test_context_persists_across_multiple_logs(self, _):
        """Test that context persists across multiple log calls."""
        self._setup_json_logging_with_test_handler()

        structlog.contextvars.bind_contextvars(repository="acme/docs", delivery_id="72d3162e")

        logger = get_logger(__name__)
        logger.info("First message")
        logger.info("Second message", extra_field="value")

        # Get and verify the log output
        logs = self._get_logged_json_values()
        assert len(logs) == 2

        # Both log messages should include the context
        for log_data in logs:
            assert log_data.get("repository") == "acme/docs"
            assert log_data.get("delivery_id") == "72d3162e"

    def test_log_context_manager_adds_and_removes_context(self, _):
        """Test that LogContext adds context temporarily."""
        self._setup_json_logging_with_test_handler()

        structlog.contextvars.bind_contextvars(repository="acme/docs")
        logger = get_logger(__name__)

        logger.info("Before context")

        with LogContext(operation="reconcile", config_id="docs-main"):
            logger.info("Inside context")

        logger.info("After context")

        # Get and verify the log output
        logs = self._get_logged_json_values()
        assert len(logs) == 3

        first_log, second_log, third_log = logs

        # First log: only repository
        assert first_log.get("repository") == "acme/docs"
        assert "operation" not in first_log
        assert "config_id" not in first_log

        # Second log: all context
        assert second_log.get("repository") == "acme/docs"
        assert second_log.get("operation") == "reconcile"
        assert second_log.get("config_id") == "docs-main"

        # Third log: back to only repository
        assert third_log.get("repository") == "acme/docs"
        assert "operation" not in third_log
        assert "config_id" not in third_log

    def test_log_context_exception_handling(self, _):
        """Test that LogContext cleans up even if exception occurs."""
        self._setup_json_logging_with_test_handler()

        structlog.contextvars.bind_contextvars(repository="acme/docs")
        logger = get_logger(__name__)

        logger.info("Before context")

        try:
            with LogContext(operation="failing_op"):
                logger.info("Inside context")
                raise ValueError("Test exception")
        except ValueError:
            pass

        logger.info("After exception")

        # Get and verify the log output
        logs = self._get_logged_json_values()
        assert len(logs) == 3

        # Context should be cleaned up after exception
        _, _, last_log = logs
        assert last_log.get("repository") == "acme/docs"
        assert "operation" not in last_log


class _BrokenStream:
    def write(self, _):
        raise OSError("stream closed")

    def flush(self):
        pass


class TestLoggingFailureCounter:
    """Emit failures are counted instead of raised or printed."""

    def test_failed_emit_is_counted(self):
        before = get_logging_failure_count()
        handler = DiagnosticStreamHandler(_BrokenStream())
        stdlib_logger = logging.getLogger("tests.logging.broken")
        stdlib_logger.addHandler(handler)
        stdlib_logger.propagate = False
        try:
            stdlib_logger.warning("first")
            stdlib_logger.warning("second")
        finally:
            stdlib_logger.removeHandler(handler)
            stdlib_logger.propagate = True

        assert get_logging_failure_count() - before == 2

    def test_successful_emit_is_not_counted(self):
        before = get_logging_failure_count()
        stream = StringIO()
        handler = DiagnosticStreamHandler(stream)
        stdlib_logger = logging.getLogger("tests.logging.working")
        stdlib_logger.addHandler(handler)
        stdlib_logger.propagate = False
        try:
            stdlib_logger.warning("fine")
        finally:
            stdlib_logger.removeHandler(handler)
            stdlib_logger.propagate = True

        assert "fine" in stream.getvalue()
        assert get_logging_failure_count() == before

    def test_handle_error_does_not_raise(self):
        before = get_logging_failure_count()
        handler = DiagnosticStreamHandler(_BrokenStream())

        handler.handle(logging.LogRecord("x", logging.ERROR, __file__, 1, "boom", None, None))

        assert get_logging_failure_count() == before + 1

    def test_configure_logging_installs_diagnostic_handler(self):
        configure_logging()
        assert isinstance(logging.getLogger().handlers[0], DiagnosticStreamHandler)
