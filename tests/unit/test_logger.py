import io
import logging

import pytest

from csv_ingest.logging.logger import LOGGER_NAME, Log


class TestContextFields:
    def test_appends_key_value_pairs(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
            Log.info("Created job", job_id="j-1", file_id="f-1")

        assert caplog.messages == ["Created job job_id=j-1 file_id=f-1"]

    def test_plain_message_is_unchanged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger=LOGGER_NAME):
            Log.warning("Disk almost full")

        assert caplog.messages == ["Disk almost full"]

    def test_exception_keeps_traceback(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger=LOGGER_NAME):
            try:
                raise ValueError("bad row")
            except ValueError:
                Log.exception("Job failed", job_id="j-1")

        record = caplog.records[0]
        assert record.exc_info is not None
        assert record.getMessage() == "Job failed job_id=j-1"


class TestConfigure:
    def test_writes_to_given_stream(self) -> None:
        logger = logging.getLogger(LOGGER_NAME)
        saved_handlers, saved_level = logger.handlers[:], logger.level
        logger.handlers.clear()
        stream = io.StringIO()
        try:
            Log.configure("debug", stream=stream)
            Log.debug("Progress 50%", job_id="j-1")
        finally:
            logger.handlers[:] = saved_handlers
            logger.setLevel(saved_level)

        assert "[DEBUG]" in stream.getvalue()
        assert "Progress 50% job_id=j-1" in stream.getvalue()
