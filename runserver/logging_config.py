"""Logging setup for the foreground CLI and the detached supervisor.

The foreground process logs to stderr only.  The detached supervisor has no
terminal and logs to ``<root>/logs/runserver.log``, one record per line in the
tab-separated machine format that ``runserver.logs.parser`` reads back::

    time<TAB>host<TAB>pid<TAB>service<TAB>component<TAB>level<TAB>message

Handlers write synchronously: the supervisor forks its child from the main
thread and must not have a background logging thread alive at that point.
"""

from __future__ import annotations

import logging
import socket
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from runserver.config import DEFAULT_SERVICE
from runserver.log_context import ContextFilter, ctx_service
from runserver.logs.events import EVENTS_LOGGER

MAX_BYTES = 5 * 1024 * 1024  # 5 MB per file
BACKUP_COUNT = 3
LOG_FILE_NAME = "runserver.log"

CONSOLE_FMT = "%(asctime)s %(levelname)s %(name)s: %(ctx)s%(message)s"
CONSOLE_DATE_FMT = "%H:%M:%S"

logger = logging.getLogger(__name__)

_LEVEL_COLORS = {
    logging.DEBUG: "\x1b[2m",
    logging.INFO: "",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1;31m",
}
_RESET = "\x1b[0m"

_MACHINE_LEVELS = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "fatal",
}


class _ConsoleFormatter(logging.Formatter):
    """Short level tag, colored by severity when writing to a terminal."""

    def __init__(self, *, use_color: bool) -> None:
        super().__init__(CONSOLE_FMT, datefmt=CONSOLE_DATE_FMT)
        self._use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = _LEVEL_COLORS.get(record.levelno, "") if self._use_color else ""
        return f"{color}{line}{_RESET}" if color else line

    def formatTime(  # noqa: N802
        self, record: logging.LogRecord, datefmt: str | None = None
    ) -> str:
        return f"{super().formatTime(record, datefmt)}.{int(record.msecs):03d}"


class _MachineFormatter(logging.Formatter):
    """One tab-separated line per record; embedded tabs and newlines escaped."""

    def __init__(self, host: str | None = None) -> None:
        super().__init__()
        self._host = host or socket.gethostname()

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        component = getattr(record, "component", None)
        if component is not None:
            service = getattr(record, "service", DEFAULT_SERVICE)
            pid = getattr(record, "child_pid", record.process)
        else:
            service = ctx_service.get(None) or DEFAULT_SERVICE
            pid = record.process
            component = record.name
        fields = (
            f"{record.created:.6f}",
            self._host,
            str(pid),
            service,
            component,
            _machine_level(record),
            _escape(message),
        )
        return "\t".join(fields)


def _machine_level(record: logging.LogRecord) -> str:
    if record.name == EVENTS_LOGGER:
        return "event"
    for levelno in sorted(_MACHINE_LEVELS, reverse=True):
        if record.levelno >= levelno:
            return _MACHINE_LEVELS[levelno]
    return "spam"


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n").replace("\t", "\\t")


def _console_handler(level: int, ctx_filter: logging.Filter) -> logging.Handler | None:
    stream = sys.stderr
    if stream is None:
        return None
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.addFilter(ctx_filter)
    handler.setFormatter(_ConsoleFormatter(use_color=stream.isatty()))
    return handler


def _file_handler(log_dir: Path, level: int, ctx_filter: logging.Filter) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.addFilter(ctx_filter)
    handler.setFormatter(_MachineFormatter())
    return handler


def setup_logging(
    level: int = logging.INFO,
    verbose: bool = False,
    log_dir: Path | None = None,
    console: bool = True,
) -> None:
    """Replace the root logger's handlers.

    Args:
        level: Minimum level for both handlers.
        verbose: Shortcut for ``level=logging.DEBUG``.
        log_dir: Where ``runserver.log`` goes. No file logging when None.
        console: Install the stderr handler. The detached supervisor passes False.
    """
    if verbose:
        level = logging.DEBUG

    ctx_filter = ContextFilter()
    handlers: list[logging.Handler] = []
    if console:
        handler = _console_handler(level, ctx_filter)
        if handler is not None:
            handlers.append(handler)
    if log_dir is not None:
        handlers.append(_file_handler(log_dir, level, ctx_filter))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    for h in handlers:
        root.addHandler(h)

    logger.debug("Logging initialized (level=%s)", logging.getLevelName(level))
