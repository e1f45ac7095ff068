"""Stop a running supervisor found through its pid file.

The supervisor is a session leader, so its pid is also the process group of
the supervisor and its child.  The group gets SIGTERM (or an operator-supplied
stop command runs instead), then is polled every 100 ms.  From 30 s on SIGTERM
is repeated every 10 s; at 90 s the group gets SIGKILL.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from collections.abc import Callable

from rich.console import Console
from rich.markup import escape

from runserver.infra.pidlock import PidFile

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1
MAX_POLLS = 1800
RESEND_AFTER_POLLS = 300
RESEND_EVERY_POLLS = 100
KILL_AT_POLL = 900
PROGRESS_EVERY_POLLS = 10


def _group_alive(pgid: int) -> bool:
    """Send signal 0 to the process group; any failure means it is gone."""
    try:
        os.killpg(pgid, 0)
    except OSError:
        return False
    return True


class StopController:
    """Implements ``runserver -S``."""

    def __init__(
        self,
        pid_file: PidFile,
        *,
        service: str,
        console: Console,
        stop_command: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._pid_file = pid_file
        self._service = service
        self._console = console
        self._stop_command = stop_command
        self._sleep = sleep

    def run(self) -> int:
        """Stop the recorded instance. Returns the process exit status."""
        try:
            if not self._pid_file.is_running():
                self._console.print(
                    f"{escape(self._service)} not running according to "
                    f"{escape(str(self._pid_file.path))}"
                )
                return 0
            pid = self._pid_file.read_pid()
            if not self._request_stop(pid):
                return 1
            self._wait_for_exit(pid)
            return 0
        finally:
            self._pid_file.cleanup()

    def _request_stop(self, pid: int) -> bool:
        if self._stop_command is not None:
            self._console.print(
                f"{escape(self._service)} was running with pid {pid}, "
                f"running '{escape(self._stop_command)}' to stop it"
            )
            result = subprocess.run(self._stop_command, shell=True, check=False)  # noqa: S602
            if result.returncode != 0:
                logger.warning(
                    "stop command %r exited with %d", self._stop_command, result.returncode
                )
                self._console.print(
                    f"[bold yellow]WARNING: stop command '{escape(self._stop_command)}' "
                    "had some problem[/bold yellow]"
                )
            return True

        self._console.print(f"{escape(self._service)} was running with pid {pid}, sending SIGTERM")
        try:
            os.killpg(pid, signal.SIGTERM)
        except OSError as exc:
            logger.error("could not signal %d: %s", pid, exc.strerror)
            self._console.print(
                f"[bold red]could not signal {pid}: {escape(str(exc.strerror))}[/bold red]"
            )
            return False
        return True

    def _wait_for_exit(self, pid: int) -> bool:
        """Poll the group until it disappears. Returns False if it never did."""
        limit = MAX_POLLS * POLL_INTERVAL
        self._console.print(f"Waiting for exit (up to {limit:.0f} seconds)")
        for cnt in range(MAX_POLLS):
            self._sleep(POLL_INTERVAL)
            if cnt >= RESEND_AFTER_POLLS and cnt % RESEND_EVERY_POLLS == 0:
                logger.debug("re-sending SIGTERM to group %d", pid)
                self._signal_group(pid, signal.SIGTERM)
            if not _group_alive(pid):
                self._console.print("DONE")
                return True
            if cnt % PROGRESS_EVERY_POLLS == 0:
                self._console.print(".", end="")
            if cnt == KILL_AT_POLL:
                self._console.print("\ngiving up, sending KILL signal")
                self._signal_group(pid, signal.SIGKILL)
        self._console.print(
            f"[bold red]pid {pid} still running after {limit:.0f} seconds[/bold red]"
        )
        return False

    @staticmethod
    def _signal_group(pgid: int, sig: signal.Signals) -> None:
        try:
            os.killpg(pgid, sig)
        except OSError as exc:
            logger.debug("killpg(%d, %s): %s", pgid, sig.name, exc.strerror)
