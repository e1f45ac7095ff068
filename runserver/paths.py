"""Root directory resolution.

The detached supervisor runs with the root directory as its working
directory, so relative pid-file paths and the log directory resolve there.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ROOT_ENV = "ROOT"
DEFAULT_ROOT = Path("/opt/runserver")


@dataclass(frozen=True)
class RunserverPaths:
    """Resolved paths derived from the root directory."""

    root: Path

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    @property
    def log_file(self) -> Path:
        return self.logs_dir / "runserver.log"

    def resolve_pid_file(self, pid_file: Path) -> Path:
        """Anchor a relative pid-file path at the root directory."""
        if pid_file.is_absolute():
            return pid_file
        return self.root / pid_file


def resolve_root(*, export: bool = True) -> Path:
    """Return the root directory from ``$ROOT``, falling back to the default.

    When the variable is unset or empty the default is exported (if *export*)
    so that the supervised child inherits the same value.
    """
    value = os.environ.get(ROOT_ENV, "")
    if value:
        return Path(value)
    if export:
        os.environ[ROOT_ENV] = str(DEFAULT_ROOT)
    return DEFAULT_ROOT


def resolve_paths(root: Path | None = None) -> RunserverPaths:
    """Build a ``RunserverPaths`` for *root* (or the environment root)."""
    return RunserverPaths(root=root if root is not None else resolve_root())
