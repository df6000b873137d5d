"""Tests for New Relic logging integration."""

from unittest.mock import patch

from src.utils.newrelic_logging import newrelic_error_processor


class TestNewRelicErrorProcessor:
    """Test the New Relic error processor."""

    @patch("src.utils.newrelic_logging.newrelic.agent.notice_error")
    def test_error_level_triggers_newrelic(self, mock_notice_error):
        """Test that error level logs trigger New Relic notice_error."""
        event_dict = {
            "message": "Failed to reconcile docs/intro.md",
            "logger": "src.publish.reconciler",
            "repository": "acme/docs",
            "path": "docs/intro.md",
        }

        result = newrelic_error_processor(None, "error", event_dict)

        mock_notice_error.assert_called_once()
        assert result is event_dict

    @patch("src.utils.newrelic_logging.newrelic.agent.notice_error")
    def test_critical_level_triggers_newrelic(self, mock_notice_error):
        """Test that critical level logs trigger New Relic notice_error."""
        event_dict = {"message": "Critical error"}

        newrelic_error_processor(None, "critical", event_dict)

        mock_notice_error.assert_called_once()

    @patch("src.utils.newrelic_logging.newrelic.agent.notice_error")
    def test_warning_level_does_not_trigger_newrelic(self, mock_notice_error):
        """Test that warning level logs do NOT trigger New Relic."""
        event_dict = {"message": "Warning message"}

        newrelic_error_processor(None, "warning", event_dict)

        mock_notice_error.assert_not_called()

    @patch("src.utils.newrelic_logging.newrelic.agent.notice_error")
    def test_info_level_does_not_trigger_newrelic(self, mock_notice_error):
        """Test that info level logs do NOT trigger New Relic."""
        event_dict = {"message": "Info message"}

        result = newrelic_error_processor(None, "info", event_dict)

        mock_notice_error.assert_not_called()
        assert result == {"message": "Info message"}

    def test_uninitialized_agent_does_not_raise(self):
        """notice_error outside a transaction is a no-op."""
        event_dict = {"message": "Test error"}

        result = newrelic_error_processor(None, "error", event_dict)

        assert result is event_dict
