"""Tests for logger.py -- where the MCP server's log records go.

Covers:
- level precedence: debug flag, LOG_LEVEL, config file section, default
- log file precedence: --log-file, LOG_FILE, config file section, default
- setup_logging(): file-only output, reconfiguration, urllib3 quieting
"""

import logging

import pytest

from micropub_sync.config_schema import LoggingConfig
from micropub_sync.logger import (
    DEFAULT_LEVEL,
    DEFAULT_LOG_FILE,
    ServerLogHandler,
    resolve_level,
    resolve_log_file,
    setup_logging,
)


@pytest.fixture
def root_logger():
    """The root logger, restored to its previous handlers and level."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    quiet = logging.getLogger("urllib3").level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    logging.getLogger("urllib3").setLevel(quiet)


class TestResolveLevel:
    def test_default(self):
        assert resolve_level() == DEFAULT_LEVEL == logging.WARNING

    def test_schema_default_does_not_count(self):
        assert resolve_level(LoggingConfig()) == logging.WARNING

    def test_config_file_level(self):
        assert resolve_level(LoggingConfig(level="info")) == logging.INFO

    def test_env_beats_config_file(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert resolve_level(LoggingConfig(level="DEBUG")) == logging.ERROR

    def test_debug_beats_everything(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        assert resolve_level(LoggingConfig(level="ERROR"), debug=True) == (
            logging.DEBUG
        )

    def test_unknown_names_ignored(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        assert resolve_level(LoggingConfig(level="INFO")) == logging.INFO
        assert resolve_level(LoggingConfig(level="loud")) == logging.WARNING


class TestResolveLogFile:
    def test_default(self):
        assert resolve_log_file() == DEFAULT_LOG_FILE

    def test_config_file(self):
        assert resolve_log_file(section=LoggingConfig(file="/srv/s.log")) == (
            "/srv/s.log"
        )

    def test_env_beats_config_file(self, monkeypatch):
        monkeypatch.setenv("LOG_FILE", "/env.log")
        assert resolve_log_file(section=LoggingConfig(file="/srv/s.log")) == (
            "/env.log"
        )

    def test_cli_beats_env(self, monkeypatch):
        monkeypatch.setenv("LOG_FILE", "/env.log")
        assert resolve_log_file("/cli.log") == "/cli.log"


class TestSetupLogging:
    def test_records_go_to_file_only(self, root_logger, tmp_path, capsys):
        log_file = tmp_path / "server.log"

        handler = setup_logging(
            log_file=str(log_file), section=LoggingConfig(level="INFO")
        )
        logging.getLogger("micropub_sync.pipeline.publish").info(
            "Published %s", "my-test-post"
        )
        handler.flush()

        assert root_logger.level == logging.INFO
        text = log_file.read_text(encoding="utf-8")
        assert "[INFO] micropub_sync.pipeline.publish Published my-test-post" in (
            text
        )
        assert capsys.readouterr().out == ""

    def test_second_call_replaces_handler(self, root_logger, tmp_path):
        other = logging.NullHandler()
        root_logger.addHandler(other)

        setup_logging(log_file=str(tmp_path / "first.log"))
        second = setup_logging(log_file=str(tmp_path / "second.log"), debug=True)

        installed = [
            h for h in root_logger.handlers if isinstance(h, ServerLogHandler)
        ]
        assert installed == [second]
        assert second.baseFilename == str(tmp_path / "second.log")
        assert other in root_logger.handlers
        assert root_logger.level == logging.DEBUG

    def test_urllib3_quiet_unless_debug(self, root_logger, tmp_path):
        setup_logging(log_file=str(tmp_path / "s.log"))
        assert logging.getLogger("urllib3").level == logging.WARNING

        setup_logging(log_file=str(tmp_path / "s.log"), debug=True)
        assert logging.getLogger("urllib3").level == logging.NOTSET
