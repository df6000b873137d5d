"""Tests for exception recording helpers."""

from unittest.mock import Mock, patch

from src.utils.error_handling import ErrorCounter, increment, record_exception_and_ignore


class TestRecordExceptionAndIgnore:
    def test_success_is_counted(self):
        counter: ErrorCounter = {}
        logger = Mock()

        with record_exception_and_ignore(logger, "Failed to reconcile file", counter):
            pass

        assert counter == {"successful": 1}
        logger.error.assert_not_called()

    @patch("src.utils.error_handling.newrelic.agent.record_exception")
    def test_exception_is_logged_and_swallowed(self, mock_record):
        counter: ErrorCounter = {}
        logger = Mock()
        reached_end = False

        with record_exception_and_ignore(logger, "Failed to reconcile file", counter, path="guide/intro.md"):
            raise KeyError("post_name")
        reached_end = True

        assert reached_end
        assert counter == {"failed": 1}
        mock_record.assert_called_once()
        logger.error.assert_called_once_with(
            "Failed to reconcile file: 'post_name'", error_type="KeyError", path="guide/intro.md"
        )

    def test_increment(self):
        counter: ErrorCounter = {"failed": 2}

        increment(counter, "failed")
        increment(counter, "successful")

        assert counter == {"failed": 3, "successful": 1}
