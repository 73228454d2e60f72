"""Logging for the MCP server.

The stdio transport owns stdout, so records only ever go to a file.

Level, first match wins: ``MICROPUB_DEBUG``/``--debug``, ``LOG_LEVEL``,
an explicit ``logging.level`` in the config file, then WARNING.
File, first match wins: ``--log-file``, ``LOG_FILE``, ``logging.file`` in
the config file, then ``/tmp/micropub-sync.log``.
"""

from __future__ import annotations

import logging
import os

from .config_schema import LoggingConfig

DEFAULT_LOG_FILE = "/tmp/micropub-sync.log"
DEFAULT_LEVEL = logging.WARNING
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Connection pool chatter from requests; kept at WARNING unless debugging
QUIET_LOGGERS = ("urllib3",)


class ServerLogHandler(logging.FileHandler):
    """The file handler installed by ``setup_logging``."""


def _level_named(name: str | None) -> int | None:
    if not name:
        return None
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else None


def resolve_level(section: LoggingConfig | None = None, debug: bool = False) -> int:
    """Effective root level for the given config section and debug flag.

    ``logging.level`` only counts when the config file sets it; the
    schema default does not override ``DEFAULT_LEVEL``.
    """
    if debug:
        return logging.DEBUG
    env_level = _level_named(os.getenv("LOG_LEVEL"))
    if env_level is not None:
        return env_level
    if section is not None and "level" in section.model_fields_set:
        configured = _level_named(section.level)
        if configured is not None:
            return configured
    return DEFAULT_LEVEL


def resolve_log_file(
    log_file: str | None = None, section: LoggingConfig | None = None
) -> str:
    return (
        log_file
        or os.getenv("LOG_FILE")
        or (section.file if section is not None else None)
        or DEFAULT_LOG_FILE
    )


def setup_logging(
    log_file: str | None = None,
    section: LoggingConfig | None = None,
    debug: bool = False,
) -> ServerLogHandler:
    """Send root logging to the server log file.

    Called once at process start, and again once the config file has been
    read; each call replaces the handler installed by the previous one and
    leaves any other root handler alone.

    Args:
        log_file: Path from ``--log-file``.
        section: The ``logging`` section of the config file, if any.
        debug: Force DEBUG (``MICROPUB_DEBUG``).

    Returns:
        The installed handler.
    """
    level = resolve_level(section, debug)
    path = resolve_log_file(log_file, section)

    root = logging.getLogger()
    for old in [h for h in root.handlers if isinstance(h, ServerLogHandler)]:
        root.removeHandler(old)
        old.close()

    handler = ServerLogHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)

    quiet = logging.NOTSET if level == logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet)
    return handler
