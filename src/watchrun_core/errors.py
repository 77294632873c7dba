"""Error taxonomy for watchrun.

Every error carries the offending path or command in its message so the
CLI can print it as-is.
"""


class WatchrunError(Exception):
    """Base class for all watchrun errors."""


class ConfigError(WatchrunError):
    """Configuration could not be resolved. Fatal before watching starts."""


class SpawnError(WatchrunError):
    """The child process could not be created."""

    def __init__(self, command: tuple[str, ...] | list[str], reason: str):
        self.command = tuple(command)
        self.reason = reason
        super().__init__(f"Failed to start {' '.join(self.command)!r}: {reason}")


class WatchError(WatchrunError):
    """A single watched path could not be observed. Watching continues elsewhere."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot watch {path}: {reason}")


class ChildExitError(WatchrunError):
    """The child exited with a non-zero status.

    Built for reporting only; the supervisor keeps running.
    """

    def __init__(self, command: tuple[str, ...], status):
        self.command = tuple(command)
        self.status = status
        super().__init__(f"{' '.join(self.command)!r} {status.describe()}")
