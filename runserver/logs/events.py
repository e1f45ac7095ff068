"""Process lifecycle events: starting, stopping, stopped.

Events are JSON objects logged on ``runserver.events`` at INFO level so any
handler configured by ``setup_logging`` records them alongside regular logs.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

EVENTS_LOGGER = "runserver.events"


class EventLog:
    """Structured sink for supervisor lifecycle events."""

    def __init__(self, logger_name: str = EVENTS_LOGGER) -> None:
        self._logger = logging.getLogger(logger_name)

    def starting(self, name: str) -> None:
        self._emit("starting", name=name)

    def stopping(self, name: str, why: str) -> None:
        self._emit("stopping", name=name, why=why)

    def stopped(self, name: str, pid: int, exit_code: int) -> None:
        self._emit("stopped", name=name, pid=pid, exitcode=exit_code)

    def _emit(self, event: str, **payload: object) -> None:
        data = {"event": event, "time": datetime.now(UTC).isoformat(), **payload}
        self._logger.info("%s", json.dumps(data, ensure_ascii=False))
