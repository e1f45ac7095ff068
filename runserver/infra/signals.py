"""Signal relay: turn SIGINT/SIGTERM into flags polled by the supervisor loop.

The handler only stores integers.  Python runs it on the main thread
between bytecodes, so the supervisor loop never observes a half-updated
state; the loop is the sole reader and the only place flags are cleared.
"""

from __future__ import annotations

import logging
import signal
from types import FrameType

logger = logging.getLogger(__name__)

STOP_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class SignalRelay:
    """Process-wide record of stop signals awaiting delivery to the child."""

    def __init__(self) -> None:
        self._stop_requested = False
        self._last_signal = 0
        self._pending = False

    @property
    def stop_requested(self) -> bool:
        """Set by the first stop signal and never cleared."""
        return self._stop_requested

    @property
    def last_signal(self) -> int:
        """Number of the most recent stop signal, 0 if none arrived yet."""
        return self._last_signal

    def handle(self, signum: int, _frame: FrameType | None = None) -> None:
        self._last_signal = signum
        self._stop_requested = True
        self._pending = True

    def poll_and_clear(self) -> int | None:
        """Return the signal to forward, clearing the pending flag."""
        if not self._pending:
            return None
        self._pending = False
        return self._last_signal

    def install(self) -> None:
        """Route stop signals here and ignore SIGQUIT for the process lifetime."""
        for sig in STOP_SIGNALS:
            signal.signal(sig, self.handle)
        ignore_quit()
        logger.debug("signal handlers installed for %s", ", ".join(s.name for s in STOP_SIGNALS))


def ignore_quit() -> None:
    """Keep an interactive terminal quit from killing the supervisor."""
    signal.signal(signal.SIGQUIT, signal.SIG_IGN)
