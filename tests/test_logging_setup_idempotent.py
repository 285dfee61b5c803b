from __future__ import annotations

import io
import json
import logging
from logging.handlers import RotatingFileHandler

import pytest

from fivewhy.core.errors import ConfigError
from fivewhy.core.logging.setup import configure_logging

_LIBRARIES = ("apscheduler", "httpx")


@pytest.fixture
def fivewhy_logger():
    logger = logging.getLogger("fivewhy")
    logger.handlers = []
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []
    for name in _LIBRARIES:
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True


def test_configure_logging_is_idempotent(tmp_path, monkeypatch, fivewhy_logger) -> None:
    monkeypatch.setenv("FIVEWHY_LOG_TO_FILE", "off")

    configure_logging(tmp_path)
    first_count = len(fivewhy_logger.handlers)

    configure_logging(tmp_path)
    assert len(fivewhy_logger.handlers) == first_count == 1


def test_file_logging_is_opt_in(tmp_path, monkeypatch, fivewhy_logger) -> None:
    monkeypatch.setenv("FIVEWHY_LOG_TO_FILE", "on")

    configure_logging(tmp_path, level="debug")
    configure_logging(tmp_path)

    file_handlers = [handler for handler in fivewhy_logger.handlers if isinstance(handler, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].baseFilename == str(tmp_path / "logs" / "fivewhy.log")


def test_scheduler_library_logs_share_handlers_at_warning(tmp_path, fivewhy_logger) -> None:
    stream = io.StringIO()
    configure_logging(tmp_path, level="DEBUG", stream=stream)

    scheduler_logger = logging.getLogger("apscheduler.scheduler")
    scheduler_logger.info("Added job")
    scheduler_logger.warning("Run time of job was missed")

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert [line["msg"] for line in lines] == ["Run time of job was missed"]
    assert lines[0]["logger"] == "apscheduler.scheduler"


def test_bad_rotation_settings_are_config_errors(tmp_path, monkeypatch, fivewhy_logger) -> None:
    monkeypatch.setenv("FIVEWHY_LOG_TO_FILE", "on")
    monkeypatch.setenv("FIVEWHY_LOG_MAX_BYTES", "five megabytes")

    with pytest.raises(ConfigError):
        configure_logging(tmp_path)
