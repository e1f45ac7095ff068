"""Start mode bootstrap: lock, fork, detach, and run the restart loop.

The foreground process claims the pid-file lock, forks, reports the
supervisor's pid and returns.  The forked supervisor redirects its standard
descriptors to /dev/null, becomes a session leader, installs the stop-signal
relay, records its pid and supervises the command until done.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import NoReturn

from rich.console import Console
from rich.markup import escape

from runserver.config import RunserverConfig
from runserver.errors import LockError, SupervisorInvariantError
from runserver.infra.pidlock import PidFile
from runserver.infra.signals import SignalRelay
from runserver.log_context import set_log_context
from runserver.logging_config import setup_logging
from runserver.paths import RunserverPaths
from runserver.process.supervisor import run_restart_loop

logger = logging.getLogger(__name__)


def detach() -> None:
    """Point stdin/stdout/stderr at /dev/null and start a new session."""
    sys.stdout.flush()
    sys.stderr.flush()

    null_in = os.open(os.devnull, os.O_RDONLY)
    os.dup2(null_in, 0)
    if null_in != 0:
        os.close(null_in)

    null_out = os.open(os.devnull, os.O_WRONLY)
    os.dup2(null_out, 1)
    os.dup2(null_out, 2)
    if null_out > 2:
        os.close(null_out)

    os.setsid()


def start(
    config: RunserverConfig,
    paths: RunserverPaths,
    pid_file: PidFile,
    *,
    console: Console,
    err_console: Console,
) -> int:
    """Launch the detached supervisor. Returns the foreground exit status.

    The lock decides whether an instance is running; the pid in the file is
    only reported.
    """
    try:
        pid_file.open_or_create()
    except LockError as exc:
        err_console.print(f"[bold red]{escape(str(exc))}[/bold red]")
        return 1
    if not pid_file.try_exclusive_lock():
        err_console.print(f"runserver already running with pid {pid_file.read_pid()}")
        return 0

    try:
        pid = os.fork()
    except OSError as exc:
        err_console.print(f"[bold red]fork: {escape(str(exc.strerror))}[/bold red]")
        pid_file.close()
        return 1

    if pid == 0:
        _run_detached(config, paths, pid_file)

    console.print(f"runserver({escape(config.service)}) running with pid: {pid}")
    return 0


def _run_detached(config: RunserverConfig, paths: RunserverPaths, pid_file: PidFile) -> NoReturn:
    """Body of the forked supervisor process; never returns."""
    try:
        detach()
    except OSError as exc:
        logger.error("detach failed: %s", exc.strerror)
        pid_file.cleanup()
        sys.exit(1)

    try:
        setup_logging(verbose=config.verbose, log_dir=paths.logs_dir, console=False)
    except OSError:
        pid_file.cleanup()
        sys.exit(1)

    set_log_context(service=config.service)
    relay = SignalRelay()
    relay.install()

    try:
        result = run_restart_loop(config, pid_file, relay)
    except SupervisorInvariantError as exc:
        logger.critical("%s", exc)
        os.abort()
    except OSError as exc:
        logger.error("supervisor failed: %s", exc.strerror or exc)
        pid_file.cleanup()
        sys.exit(1)

    if not result.ok:
        logger.error("supervisor stopped: %s", result.error)
    pid_file.cleanup()
    sys.exit(result.status)
