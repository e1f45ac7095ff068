"""Child process lifecycle: spawn, output capture, reaping, restart."""

from runserver.process.child import ChildOutcome as ChildOutcome
from runserver.process.child import ChildSupervisor as ChildSupervisor
from runserver.process.multiplexer import LineMultiplexer as LineMultiplexer
from runserver.process.supervisor import LoopResult as LoopResult
from runserver.process.supervisor import RestartPolicy as RestartPolicy
from runserver.process.supervisor import run_restart_loop as run_restart_loop

__all__ = [
    "ChildOutcome",
    "ChildSupervisor",
    "LineMultiplexer",
    "LoopResult",
    "RestartPolicy",
    "run_restart_loop",
]
