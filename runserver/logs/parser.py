"""Turn raw child output lines into leveled log records.

Lines already in the machine log format

    time<TAB>host<TAB>pid<TAB>service<TAB>component<TAB>level<TAB>message

keep their own level and message.  Anything else is plain text and gets the
parser's default level (info for stdout, warning for stderr).
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

CHILD_LOGGER_PREFIX = "runserver.child"

_LEVELS: dict[str, int] = {
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "event": logging.INFO,
    "config": logging.INFO,
    "debug": logging.DEBUG,
    "spam": logging.DEBUG,
}

_FORMAT_FIELDS = 7


class LineParser:
    """Accept one tagged raw line, produce zero or more log records."""

    def __init__(
        self,
        *,
        service: str,
        component: str,
        pid: int,
        default_level: int = logging.INFO,
    ) -> None:
        self.service = service
        self.component = component
        self.pid = pid
        self.default_level = default_level
        self._logger = logging.getLogger(f"{CHILD_LOGGER_PREFIX}.{service}")

    def parse(self, line: bytes) -> list[logging.LogRecord]:
        text = line.decode("utf-8", errors="replace").rstrip("\r")
        if not text.strip():
            return []
        level, message = self._split(text)
        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "(child)",
            0,
            message,
            (),
            None,
            extra={
                "service": self.service,
                "component": self.component,
                "child_pid": self.pid,
            },
        )
        return [record]

    def __call__(self, line: bytes) -> None:
        for record in self.parse(line):
            if self._logger.isEnabledFor(record.levelno):
                self._logger.handle(record)

    def _split(self, text: str) -> tuple[int, str]:
        fields = text.split("\t", _FORMAT_FIELDS - 1)
        if len(fields) == _FORMAT_FIELDS:
            level = _LEVELS.get(fields[5].strip().lower())
            if level is not None:
                return level, fields[6]
        return self.default_level, text


def stdout_parser(service: str, pid: int) -> LineParser:
    return LineParser(service=service, component="stdout", pid=pid, default_level=logging.INFO)


def stderr_parser(service: str, pid: int) -> LineParser:
    return LineParser(service=service, component="stderr", pid=pid, default_level=logging.WARNING)
