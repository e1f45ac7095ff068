"""Restart loop: run the child, then restart it on a fixed interval until stopped."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from runserver.config import RunserverConfig
from runserver.errors import LockError, SpawnError
from runserver.infra.pidlock import PidFile
from runserver.infra.signals import SignalRelay
from runserver.logs.events import EventLog
from runserver.process.child import ChildSupervisor

logger = logging.getLogger(__name__)

WAIT_STEP = 1.0


@dataclass
class RestartPolicy:
    """Fixed-interval restarts measured from the previous start.

    The delay is ``max(0, interval - (now - last_start))``, recomputed on
    every check, so a child that ran longer than the interval is restarted
    immediately.
    """

    interval: int = 0
    last_start: float = 0.0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @property
    def enabled(self) -> bool:
        return self.interval > 0

    def mark_start(self) -> None:
        self.last_start = self.clock()

    def remaining(self) -> float:
        return max(0.0, self.interval - (self.clock() - self.last_start))

    def wait(self, should_stop: Callable[[], bool]) -> None:
        """Sleep out the remaining delay in one-second steps.

        *should_stop* is checked before every step so a stop request cuts the
        wait short.
        """
        while not should_stop() and self.remaining() > 0:
            self.sleep(WAIT_STEP)


@dataclass(frozen=True)
class LoopResult:
    """Final status of the restart loop, with the error that ended it early."""

    status: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_restart_loop(
    config: RunserverConfig,
    pid_file: PidFile,
    relay: SignalRelay,
    *,
    events: EventLog | None = None,
    policy: RestartPolicy | None = None,
    child_supervisor: ChildSupervisor | None = None,
) -> LoopResult:
    """Record our pid, then run the child until no restart is due.

    The status is the last child's exit code, or its terminating signal
    number.  Pipe and fork failures end the loop with status 1.
    """
    policy = policy or RestartPolicy(interval=config.restart_interval)
    supervisor = child_supervisor or ChildSupervisor(
        service=config.service,
        command=config.command,
        relay=relay,
        events=events,
    )

    status = 0
    try:
        pid_file.write_pid()
        while True:
            logger.info("Starting %s", config.describe_command())
            policy.mark_start()
            outcome = supervisor.run_once()
            status = outcome.status
            if not policy.enabled or relay.stop_requested:
                break
            logger.info("will restart in %d seconds", math.ceil(policy.remaining()))
            policy.wait(lambda: relay.stop_requested)
            if relay.stop_requested:
                break
    except (SpawnError, LockError) as exc:
        logger.error("%s", exc)
        return LoopResult(status=1, error=str(exc))

    if policy.enabled:
        logger.debug("final exit status: %d", status)
    return LoopResult(status=status)
