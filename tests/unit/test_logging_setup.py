"""
Unit tests for loguru sink configuration.

Run: pytest tests/unit/test_logging_setup.py -v
"""
import sys

import pytest
from loguru import logger

from apollo.logging_setup import configure_logging
from config import Settings


@pytest.fixture(autouse=True)
def restore_default_sink():
    yield
    logger.remove()
    logger.add(sys.stderr)


class TestConfigureLogging:
    def test_file_sink_receives_bound_job_id(self, tmp_path):
        log_file = tmp_path / "logs" / "apollo.log"
        configure_logging(Settings(log_file=str(log_file), log_level="INFO"))

        logger.bind(job_id="job-123").info("pass 1 completed")
        logger.debug("hidden at info level")
        logger.complete()

        text = log_file.read_text(encoding="utf-8")
        assert "pass 1 completed" in text
        assert "job-123" in text
        assert "hidden at info level" not in text

    def test_level_override(self, tmp_path):
        log_file = tmp_path / "apollo.log"
        configure_logging(Settings(log_file=str(log_file), log_level="INFO"), level="DEBUG")

        logger.debug("visible in debug")
        logger.complete()

        assert "visible in debug" in log_file.read_text(encoding="utf-8")
