"""Sinks for captured child output and process lifecycle events."""

from runserver.logs.events import EventLog as EventLog
from runserver.logs.parser import LineParser as LineParser

__all__ = ["EventLog", "LineParser"]
