"""Fork/exec one child, capture its output, reap it and decode how it ended.

A run goes STARTING -> RUNNING -> EXITED | SIGNALED.  While running, every
loop iteration drains the output pipes (bounded by the multiplexer's poll
interval), polls ``waitpid`` without blocking, and forwards any pending stop
signal to the child.  The run ends once the child is reaped and both pipes
have reached end-of-stream.

Grandchildren that inherit the pipe write ends keep them open after the
child exits; EOF is then not observed until they exit as well.
"""

from __future__ import annotations

import contextlib
import logging
import os
import signal
from dataclasses import dataclass
from typing import NoReturn

from runserver.errors import SpawnError, SupervisorInvariantError
from runserver.infra.signals import STOP_SIGNALS, SignalRelay
from runserver.log_context import clear_child_pid, set_log_context
from runserver.logs.events import EventLog
from runserver.logs.parser import stderr_parser, stdout_parser
from runserver.process.multiplexer import POLL_INTERVAL, LineMultiplexer, StreamSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChildOutcome:
    """How a reaped child ended: an exit code or a terminating signal."""

    exit_code: int | None = None
    signal: int | None = None
    core_dumped: bool = False

    @property
    def status(self) -> int:
        """Exit status to report: the exit code, or the signal number."""
        if self.signal is not None:
            return self.signal
        return self.exit_code or 0


@dataclass
class ChildProcess:
    pid: int
    stdout_fd: int
    stderr_fd: int
    outcome: ChildOutcome | None = None

    @property
    def reaped(self) -> bool:
        return self.outcome is not None


class ChildSupervisor:
    """Runs the configured command once per ``run_once`` call."""

    def __init__(
        self,
        *,
        service: str,
        command: list[str],
        relay: SignalRelay,
        events: EventLog | None = None,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        if not command:
            msg = "no command to supervise"
            raise ValueError(msg)
        self._service = service
        self._command = list(command)
        self._relay = relay
        self._events = events or EventLog()
        self._poll_interval = poll_interval

    def spawn(self) -> ChildProcess:
        """Create the output pipes and fork/exec the command."""
        out_r, out_w = _make_pipe("stdout")
        try:
            err_r, err_w = _make_pipe("stderr")
        except SpawnError:
            _close_all(out_r, out_w)
            raise
        logger.debug("stdout pipe %d <- %d; stderr pipe %d <- %d", out_r, out_w, err_r, err_w)

        try:
            pid = os.fork()
        except OSError as exc:
            _close_all(out_r, out_w, err_r, err_w)
            logger.error("fork(): %s", exc.strerror)
            msg = f"fork(): {exc.strerror}"
            raise SpawnError(msg) from exc

        if pid == 0:
            self._exec_child(out_r, out_w, err_r, err_w)

        os.close(out_w)
        os.close(err_w)
        logger.debug("started %s (pid %d)", self._command[0], pid)
        return ChildProcess(pid=pid, stdout_fd=out_r, stderr_fd=err_r)

    def _exec_child(self, out_r: int, out_w: int, err_r: int, err_w: int) -> NoReturn:
        try:
            os.dup2(out_w, 1)
            os.dup2(err_w, 2)
            for fd in {out_r, out_w, err_r, err_w}:
                if fd > 2:
                    os.close(fd)
            for sig in (*STOP_SIGNALS, signal.SIGPIPE):
                signal.signal(sig, signal.SIG_DFL)
            os.execvp(self._command[0], self._command)
        except OSError as exc:
            logger.error("exec %s: %s", self._command[0], exc.strerror)
        finally:
            os._exit(1)

    def run_once(self) -> ChildOutcome:
        """Start the command and supervise it until it is reaped and drained."""
        child = self.spawn()
        name = f"{' '.join(self._command)} (pid {child.pid})"
        self._events.starting(name)
        set_log_context(service=self._service, child_pid=child.pid)

        mux = LineMultiplexer(
            [
                StreamSource(child.stdout_fd, "stdout", stdout_parser(self._service, child.pid)),
                StreamSource(child.stderr_fd, "stderr", stderr_parser(self._service, child.pid)),
            ],
            poll_interval=self._poll_interval,
        )
        try:
            while True:
                mux.poll()
                if not child.reaped:
                    self._reap(child, name)
                if child.outcome is None:
                    self._forward_signal(child, name)
                elif mux.all_closed:
                    return child.outcome
        finally:
            mux.close()
            clear_child_pid()

    def _reap(self, child: ChildProcess, name: str) -> None:
        try:
            pid, wstat = os.waitpid(child.pid, os.WNOHANG | os.WUNTRACED)
        except OSError as exc:
            msg = f"waitpid: {exc.strerror}"
            raise SupervisorInvariantError(msg) from exc
        if pid == 0:
            return
        if pid != child.pid:
            msg = f"unexpected status {wstat} for pid {pid}"
            raise SupervisorInvariantError(msg)

        if os.WIFSTOPPED(wstat):
            logger.info("child %d stopped, waiting for it to continue", pid)
        elif os.WIFEXITED(wstat):
            code = os.WEXITSTATUS(wstat)
            logger.debug("child %d exit status: %d", pid, code)
            self._events.stopped(name, pid, code)
            child.outcome = ChildOutcome(exit_code=code)
        elif os.WIFSIGNALED(wstat):
            sig = os.WTERMSIG(wstat)
            core = os.WCOREDUMP(wstat)
            if sig != self._relay.last_signal:
                logger.warning("child died from signal: %d", sig)
                if core:
                    logger.info("child %d dumped core", pid)
            child.outcome = ChildOutcome(signal=sig, core_dumped=core)
        else:
            msg = f"unexpected status {wstat} from waitpid"
            raise SupervisorInvariantError(msg)

    def _forward_signal(self, child: ChildProcess, name: str) -> None:
        sig = self._relay.poll_and_clear()
        if sig is None:
            return
        logger.debug("got signal %d, sending to pid %d", sig, child.pid)
        self._events.stopping(name, f"got signal {sig}")
        try:
            os.kill(child.pid, sig)
        except ProcessLookupError:
            logger.debug("pid %d already gone", child.pid)


def _make_pipe(label: str) -> tuple[int, int]:
    try:
        return os.pipe()
    except OSError as exc:
        logger.error("pipe: %s", exc.strerror)
        msg = f"could not create {label} pipe: {exc.strerror}"
        raise SpawnError(msg) from exc


def _close_all(*fds: int) -> None:
    for fd in fds:
        with contextlib.suppress(OSError):
            os.close(fd)
