"""Tests for centralised logging setup."""

import logging
from logging.handlers import RotatingFileHandler

import colorlog
import pytest

from lastfm_mcp.logger import setup_logging


@pytest.fixture
def root_logger(mocker):
    """Root logger treated as unconfigured; handlers added by a test are removed."""
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    mocker.patch.object(root, "hasHandlers", return_value=False)
    yield root
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def test_console_and_file_handlers(root_logger, monkeypatch, tmp_path):
    monkeypatch.setenv("LASTFM_MCP_LOG_LEVEL", "debug")
    monkeypatch.setenv("LASTFM_MCP_LOG_FILE", str(tmp_path / "lastfm-mcp.log"))
    monkeypatch.setenv("LOG_FILE_BACKUP_COUNT", "2")

    setup_logging()

    assert root_logger.level == logging.DEBUG
    added = root_logger.handlers
    assert any(isinstance(h.formatter, colorlog.ColoredFormatter) for h in added)
    file_handlers = [h for h in added if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].backupCount == 2
    assert logging.getLogger("httpx").level == logging.WARNING


def test_no_file_handler_by_default(root_logger, monkeypatch):
    monkeypatch.delenv("LASTFM_MCP_LOG_FILE", raising=False)

    setup_logging()

    assert not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers)


def test_existing_handlers_are_left_alone(mocker):
    root = logging.getLogger()
    mocker.patch.object(root, "hasHandlers", return_value=True)
    add_handler = mocker.patch.object(root, "addHandler")
    level = root.level

    setup_logging()

    add_handler.assert_not_called()
    root.setLevel(level)
