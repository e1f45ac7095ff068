"""Infrastructure: PID lock, stop-signal relay, stop mode."""

from runserver.infra.pidlock import PidFile
from runserver.infra.signals import STOP_SIGNALS, SignalRelay, ignore_quit
from runserver.infra.stop import StopController

__all__ = [
    "STOP_SIGNALS",
    "PidFile",
    "SignalRelay",
    "StopController",
    "ignore_quit",
]
