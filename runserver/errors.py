"""Project-level exception hierarchy."""


class RunserverError(Exception):
    """Base for all runserver exceptions."""


class UsageError(RunserverError):
    """Command-line arguments are invalid or inconsistent."""


class LockError(RunserverError):
    """PID file could not be created, locked, or written."""


class SpawnError(RunserverError):
    """Pipes could not be created or the child could not be forked."""


class SupervisorInvariantError(RunserverError):
    """The OS reported a child state the supervisor cannot account for."""
