"""
Logging Configuration Tests

LOG_LEVEL controls console verbosity; GATEWAY_LOG_FILE adds a file sink.
"""

import os
import sys
from pathlib import Path
from unittest.mock import patch

from loguru import logger

from tool_gateway import logging_config


class TestLogLevelConfiguration:
    """Tests for LOG_LEVEL environment variable configuration."""

    def test_log_level_default_is_info(self) -> None:
        # given
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("LOG_LEVEL", None)

            # when
            level = logging_config.get_log_level()

        # then
        assert level == "INFO"

    def test_log_level_can_be_set_to_debug(self) -> None:
        with patch.dict(os.environ, {"LOG_LEVEL": "DEBUG"}):
            assert logging_config.get_log_level() == "DEBUG"

    def test_invalid_log_level_falls_back_to_info(self) -> None:
        with patch.dict(os.environ, {"LOG_LEVEL": "LOUD"}):
            assert logging_config.get_log_level() == "INFO"

    def test_log_level_is_case_insensitive(self) -> None:
        with patch.dict(os.environ, {"LOG_LEVEL": " warning "}):
            assert logging_config.get_log_level() == "WARNING"


class TestLogFile:
    def test_log_file_unset(self) -> None:
        with patch.dict(os.environ, {"GATEWAY_LOG_FILE": "  "}):
            assert logging_config.get_log_file() is None

    def test_configure_logging_writes_file_sink(self, tmp_path: Path) -> None:
        # given
        log_file = tmp_path / "gateway.log"

        # when
        with patch.dict(os.environ, {"GATEWAY_LOG_FILE": str(log_file), "LOG_LEVEL": "ERROR"}):
            logging_config.configure_logging()
            logger.debug("[Test] file sink receives debug")
            logger.complete()

        # then
        try:
            assert "file sink receives debug" in log_file.read_text(encoding="utf-8")
        finally:
            logger.remove()
            logger.add(sys.stderr, level="DEBUG")
