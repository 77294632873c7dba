"""Shared data models for watchrun_core."""

import asyncio
import signal
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

DEFAULT_EXTENSIONS = frozenset({"py"})
DEFAULT_DEBOUNCE_WINDOW = 0.1
DEFAULT_STOP_TIMEOUT = 5.0
DEFAULT_RESTARTABLE = "rs"

VCS_DIRS = frozenset({".git", ".hg", ".svn", ".bzr", "_darcs", "CVS"})
"""Version control directories that never produce relevant changes."""

BUILTIN_IGNORE_PATTERNS = (".*", *sorted(VCS_DIRS))
"""Always part of the resolved ignore list (dotfiles and VCS directories)."""


@dataclass(frozen=True)
class WatchConfig:
    """Normalized configuration for one supervisor session."""

    executable: tuple[str, ...] = (sys.executable,)
    """Interpreter or binary, split into argv words."""

    script: str | None = None
    """Script passed as the first argument to the executable."""

    script_args: tuple[str, ...] = ()
    """Extra arguments appended after the script."""

    watch_paths: tuple[Path, ...] = field(default_factory=lambda: (Path.cwd(),))
    """Absolute, resolved directories to watch recursively."""

    extensions: frozenset[str] = DEFAULT_EXTENSIONS
    """Relevant filename suffixes, without the leading dot."""

    ignore_patterns: tuple[str, ...] = BUILTIN_IGNORE_PATTERNS
    """Substrings or globs excluded from relevance."""

    restartable: str = DEFAULT_RESTARTABLE
    """Line typed on stdin that forces a restart. Empty disables it."""

    debounce_window: float = DEFAULT_DEBOUNCE_WINDOW
    """Quiet period in seconds after the last change before restarting."""

    stop_signal: int = int(getattr(signal, "SIGTERM", 15))
    """Signal sent to request a graceful stop."""

    stop_timeout: float = DEFAULT_STOP_TIMEOUT
    """Seconds to wait for a graceful stop before killing."""

    restart_on_crash: bool = False
    """Restart automatically when the child exits with a non-zero status."""

    once: bool = False
    """Run the child a single time without watching."""

    config_source: str = "defaults/cli"
    """Config file the values were read from."""

    working_dir: Path | None = None
    """Directory the child runs in. None inherits the supervisor's."""

    @property
    def command(self) -> tuple[str, ...]:
        """Full argv for the child process."""
        script = (self.script,) if self.script else ()
        return (*self.executable, *script, *self.script_args)


class ChangeKind(Enum):
    """Kind of filesystem change."""

    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"


@dataclass(frozen=True)
class ChangeEvent:
    """A single raw change reported by the filesystem watcher."""

    path: str
    kind: ChangeKind
    timestamp: float


@dataclass(frozen=True)
class RestartSignal:
    """Emitted once per coalesced burst of relevant changes.

    ``paths`` is informational (log output only).
    """

    paths: tuple[str, ...] = ()


@dataclass(frozen=True)
class ExitStatus:
    """How a child process terminated."""

    code: int | None = None
    signal: int | None = None

    @classmethod
    def from_returncode(cls, returncode: int) -> "ExitStatus":
        """Build from a ``Process.returncode`` (negative means killed by a signal)."""
        if returncode < 0:
            return cls(code=None, signal=-returncode)
        return cls(code=returncode)

    @property
    def success(self) -> bool:
        return self.code == 0

    @property
    def exit_code(self) -> int:
        """Shell-style exit code (128 + signal for signal deaths)."""
        if self.signal is not None:
            return 128 + self.signal
        return self.code or 0

    def describe(self) -> str:
        if self.signal is not None:
            try:
                name = signal.Signals(self.signal).name
            except ValueError:
                name = str(self.signal)
            return f"terminated by {name}"
        return f"exited with code {self.code}"


class ChildProcessHandle:
    """Owns one spawned child: its process, streams and final exit status."""

    def __init__(self, process: asyncio.subprocess.Process, command: tuple[str, ...]):
        self.process = process
        self.command = command
        self.pid = process.pid
        self.exit_status: ExitStatus | None = None
        self.forwarders: list[asyncio.Task] = []

    @property
    def alive(self) -> bool:
        """True until the process has been reaped."""
        return self.exit_status is None and self.process.returncode is None

    async def wait(self) -> ExitStatus:
        """Wait for the process to exit and reap it."""
        returncode = await self.process.wait()
        self.exit_status = ExitStatus.from_returncode(returncode)
        return self.exit_status

    def send_input(self, data: bytes) -> bool:
        """Write to the child's stdin. Returns False if the pipe is gone."""
        stdin = self.process.stdin
        if stdin is None or stdin.is_closing() or not self.alive:
            return False
        try:
            stdin.write(data)
        except (BrokenPipeError, ConnectionResetError):
            return False
        return True

    def __repr__(self) -> str:
        return f"<ChildProcessHandle pid={self.pid} command={' '.join(self.command)!r}>"


class ControllerState(Enum):
    """States of the restart controller."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
