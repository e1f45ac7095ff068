"""Shared test fixtures."""

from __future__ import annotations

import io
import logging
import signal
from collections.abc import Iterator
from pathlib import Path

import pytest
from rich.console import Console


@pytest.fixture
def tmp_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Temporary installation root exported as $ROOT."""
    root = tmp_path / "root"
    root.mkdir()
    monkeypatch.setenv("ROOT", str(root))
    return root


@pytest.fixture
def pid_path(tmp_path: Path) -> Path:
    return tmp_path / "runserver.pid"


@pytest.fixture
def console() -> Console:
    """Console writing into memory; read back with ``console.file.getvalue()``."""
    return Console(file=io.StringIO(), width=400, color_system=None)


@pytest.fixture
def restore_signals() -> Iterator[None]:
    """Put back the stop/quit signal dispositions a test may have replaced."""
    saved = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM, signal.SIGQUIT)}
    yield
    for sig, handler in saved.items():
        signal.signal(sig, handler)


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    """Drop handlers installed by ``setup_logging`` so they do not leak between tests."""
    from runserver.log_context import ContextFilter

    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if any(isinstance(f, ContextFilter) for f in handler.filters):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
