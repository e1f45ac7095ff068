"""Entry point: python -m runserver.

Start mode:  runserver [-s service] [-r restartinterval] [-p pidfile] program [args ...]
Stop mode:   runserver [-p pidfile] [-k killcmd] -S
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from runserver.config import DEFAULT_PID_FILE, DEFAULT_SERVICE, RunserverConfig
from runserver.errors import UsageError
from runserver.infra import daemon
from runserver.infra.pidlock import PidFile
from runserver.infra.signals import ignore_quit
from runserver.infra.stop import StopController
from runserver.logging_config import setup_logging
from runserver.paths import resolve_paths, resolve_root

logger = logging.getLogger(__name__)

_console = Console(soft_wrap=True)
_err_console = Console(stderr=True, soft_wrap=True)


class _HelpRequested(Exception):
    """Raised for ``-h``; usage goes to stderr with exit status 0."""


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def _build_parser(prog: str) -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog=prog, add_help=False)
    parser.add_argument("-s", dest="service", default=DEFAULT_SERVICE)
    parser.add_argument("-r", dest="restart_interval", type=int, default=0)
    parser.add_argument("-p", dest="pid_file", default=str(DEFAULT_PID_FILE))
    parser.add_argument("-k", dest="stop_command", default=None)
    parser.add_argument("-S", dest="stop", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-h", "--help", dest="help", action="store_true")
    parser.add_argument("command", nargs=argparse.REMAINDER)
    return parser


def parse_args(argv: Sequence[str], prog: str = "runserver") -> RunserverConfig:
    """Parse command-line arguments into a validated ``RunserverConfig``.

    Raises ``UsageError`` for bad or inconsistent options.
    """
    ns = _build_parser(prog).parse_args(list(argv))
    if ns.help:
        raise _HelpRequested
    command = list(ns.command)
    if command and command[0] == "--":
        command = command[1:]
    try:
        return RunserverConfig(
            service=ns.service,
            restart_interval=ns.restart_interval,
            pid_file=ns.pid_file,
            stop_command=ns.stop_command,
            stop=ns.stop,
            verbose=ns.verbose,
            command=command,
        )
    except ValidationError as exc:
        reasons = "; ".join(
            str(err["msg"]).removeprefix("Value error, ") for err in exc.errors()
        )
        raise UsageError(reasons) from exc


def _print_usage(prog: str) -> None:
    _err_console.print(
        f"Usage: {prog}\n"
        "       [-s service] [-r restartinterval] [-p pidfile] [-v] program [args ...]\n"
        "or:    [-p pidfile] [-k killcmd] [-v] -S",
        markup=False,
        highlight=False,
    )


def run(argv: Sequence[str], prog: str = "runserver") -> int:
    """Run one invocation and return its exit status."""
    ignore_quit()
    try:
        config = parse_args(argv, prog)
    except _HelpRequested:
        _print_usage(prog)
        return 0
    except UsageError as exc:
        _err_console.print(f"{prog}: {escape(str(exc))}", highlight=False)
        _print_usage(prog)
        return 1

    setup_logging(verbose=config.verbose)

    root = resolve_root()
    try:
        os.chdir(root)
    except OSError as exc:
        _err_console.print(f"Cannot chdir to {escape(str(root))}: {escape(str(exc.strerror))}")
        return 1

    paths = resolve_paths(root)
    pid_file = PidFile(paths.resolve_pid_file(config.pid_file))

    if config.stop:
        return StopController(
            pid_file,
            service=config.service,
            console=_console,
            stop_command=config.stop_command,
        ).run()
    return daemon.start(config, paths, pid_file, console=_console, err_console=_err_console)


def main() -> None:
    """CLI entry point."""
    sys.exit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
