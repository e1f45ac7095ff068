"""Run configuration built from the command line."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, model_validator

DEFAULT_SERVICE = "runserver"
DEFAULT_PID_FILE = Path("runserver.pid")


class RunserverConfig(BaseModel):
    """Validated options for one invocation.

    Start mode and stop mode are exclusive: stop mode (``stop=True``) takes
    no command, start mode requires one, and ``stop_command`` is only
    meaningful when stopping.
    """

    service: str = DEFAULT_SERVICE
    restart_interval: int = Field(default=0, ge=0)
    pid_file: Path = DEFAULT_PID_FILE
    stop_command: str | None = None
    stop: bool = False
    verbose: bool = False
    command: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_mode(self) -> RunserverConfig:
        if self.stop:
            if self.command:
                msg = "stop mode does not take a command"
                raise ValueError(msg)
        else:
            if self.stop_command is not None:
                msg = "a stop command is only valid together with -S"
                raise ValueError(msg)
            if not self.command:
                msg = "no command given"
                raise ValueError(msg)
        return self

    @property
    def restarts_enabled(self) -> bool:
        return self.restart_interval > 0

    def describe_command(self) -> str:
        """Human-readable command line for events and messages."""
        return " ".join(self.command)
