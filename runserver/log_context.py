"""Logging context: enrich every record with the supervised service and child pid.

A `ContextFilter` attached to the root handlers adds a ``[service:pid]``
prefix as ``record.ctx``.  The supervisor updates the context each time it
starts a new child.  Records forwarded from child output already carry
``service``, ``component`` and ``child_pid`` and are prefixed with
``[service:component:pid]`` instead.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar

ctx_service: ContextVar[str | None] = ContextVar("ctx_service", default=None)
ctx_child_pid: ContextVar[int | None] = ContextVar("ctx_child_pid", default=None)


class ContextFilter(logging.Filter):
    """Inject ContextVar values into every LogRecord as ``record.ctx``."""

    def filter(self, record: logging.LogRecord) -> bool:
        component = getattr(record, "component", None)
        if component is not None:
            service = getattr(record, "service", None)
            pid = getattr(record, "child_pid", None)
        else:
            service = ctx_service.get(None)
            pid = ctx_child_pid.get(None)
        parts: list[str] = []
        if service:
            parts.append(service)
        if component:
            parts.append(component)
        if pid is not None:
            parts.append(str(pid))
        record.ctx = f"[{':'.join(parts)}] " if parts else ""
        return True


def set_log_context(*, service: str | None = None, child_pid: int | None = None) -> None:
    """Set the service name and/or current child pid for subsequent records."""
    if service is not None:
        ctx_service.set(service)
    if child_pid is not None:
        ctx_child_pid.set(child_pid)


def clear_child_pid() -> None:
    """Drop the child pid once the child has been reaped."""
    ctx_child_pid.set(None)
