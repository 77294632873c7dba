"""Child process lifecycle: spawn, stream forwarding, graceful-then-forceful stop."""

import asyncio
import io
import logging
import os
import shutil
import signal
import sys
from collections.abc import Callable, Sequence
from typing import BinaryIO, TextIO

from watchrun_core.errors import SpawnError
from watchrun_core.models import ChildProcessHandle, ExitStatus, WatchConfig

logger = logging.getLogger(__name__)

DRAIN_TIMEOUT = 1.0
"""Seconds to wait for output pipes to empty after the child is reaped."""

_CHUNK_SIZE = 64 * 1024


class ProcessSupervisor:
    """Starts and stops child processes.

    The supervisor owns no state about which child is current; that belongs
    to the restart controller. Output written by the child is copied to the
    supervisor's own stdout/stderr (or the streams passed in).
    """

    def __init__(
        self,
        stdout: BinaryIO | TextIO | None = None,
        stderr: BinaryIO | TextIO | None = None,
        cwd: str | os.PathLike | None = None,
        env: dict[str, str] | None = None,
    ):
        """Initialize supervisor.

        Args:
            stdout: Destination for child stdout (default: sys.stdout)
            stderr: Destination for child stderr (default: sys.stderr)
            cwd: Working directory for children (default: inherited)
            env: Environment for children (default: inherited)
        """
        self.stdout = stdout
        self.stderr = stderr
        self.cwd = cwd
        self.env = env

    async def start(self, config: WatchConfig | Sequence[str]) -> ChildProcessHandle:
        """Spawn the configured command.

        Args:
            config: WatchConfig, or an explicit argv

        Returns:
            Handle for the new child

        Raises:
            SpawnError: If the executable cannot be found or the OS refuses to start it
        """
        command = tuple(config.command if isinstance(config, WatchConfig) else config)
        cwd = self.cwd
        if cwd is None and isinstance(config, WatchConfig):
            cwd = config.working_dir
        if not command:
            raise SpawnError(command, "empty command")

        executable = shutil.which(command[0])
        if executable is None:
            raise SpawnError(command, f"executable not found: {command[0]}")

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *command[1:],
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=self.env,
            )
        except OSError as e:
            raise SpawnError(command, e.strerror or str(e)) from e

        handle = ChildProcessHandle(process, command)
        logger.debug(f"Started pid {handle.pid}: {' '.join(command)}")
        return handle

    def forward(self, handle: ChildProcessHandle) -> None:
        """Copy the child's stdout/stderr to the supervisor's own streams.

        Input goes the other way through ``handle.send_input()``.
        """
        process = handle.process
        pairs = (
            (process.stdout, self.stdout if self.stdout is not None else sys.stdout),
            (process.stderr, self.stderr if self.stderr is not None else sys.stderr),
        )
        for reader, stream in pairs:
            if reader is not None:
                task = asyncio.create_task(_pump(reader, _writer_for(stream), handle.pid))
                handle.forwarders.append(task)

    async def wait(self, handle: ChildProcessHandle) -> ExitStatus:
        """Wait for the child to exit on its own, then reap it."""
        status = await handle.wait()
        await self._drain(handle)
        return status

    async def stop(
        self,
        handle: ChildProcessHandle,
        timeout: float,
        sig: int | None = None,
    ) -> ExitStatus:
        """Stop the child: request termination, kill after ``timeout``, reap.

        Args:
            handle: Child to stop
            timeout: Seconds to wait after the graceful request
            sig: Signal for the graceful request (default: SIGTERM)

        Returns:
            The child's exit status
        """
        if handle.exit_status is not None:
            return handle.exit_status

        process = handle.process
        if process.returncode is None:
            sig = sig if sig is not None else signal.SIGTERM
            if self._request_stop(handle, sig):
                try:
                    await asyncio.wait_for(process.wait(), timeout)
                except asyncio.TimeoutError:
                    logger.warning(f"pid {handle.pid} did not stop within {timeout}s, killing it")
                    _kill(process)
            else:
                _kill(process)

        status = await handle.wait()
        await self._drain(handle)
        logger.debug(f"Reaped pid {handle.pid}: {status.describe()}")
        return status

    def _request_stop(self, handle: ChildProcessHandle, sig: int) -> bool:
        """Send the graceful stop signal. False when it could not be delivered."""
        logger.debug(f"Sending {_signal_name(sig)} to pid {handle.pid}")
        try:
            handle.process.send_signal(sig)
        except ProcessLookupError:
            pass
        except (OSError, ValueError) as e:
            logger.warning(f"Could not send {_signal_name(sig)} to pid {handle.pid}: {e}, killing it")
            return False
        return True

    async def _drain(self, handle: ChildProcessHandle) -> None:
        stdin = handle.process.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()
        if not handle.forwarders:
            return
        # Grandchildren may hold the pipes open after the child is gone
        _, pending = await asyncio.wait(handle.forwarders, timeout=DRAIN_TIMEOUT)
        for task in pending:
            task.cancel()
        handle.forwarders.clear()


async def _pump(reader: asyncio.StreamReader, write: Callable[[bytes], None], pid: int) -> None:
    while True:
        chunk = await reader.read(_CHUNK_SIZE)
        if not chunk:
            return
        try:
            write(chunk)
        except (OSError, ValueError) as e:
            logger.warning(f"Stopped forwarding output of pid {pid}: {e}")
            return


def _writer_for(stream: BinaryIO | TextIO) -> Callable[[bytes], None]:
    buffer = getattr(stream, "buffer", None)

    if buffer is not None:
        def write(data: bytes) -> None:
            stream.flush()
            buffer.write(data)
            buffer.flush()
    elif isinstance(stream, io.TextIOBase):
        def write(data: bytes) -> None:
            stream.write(data.decode(errors="replace"))
            stream.flush()
    else:
        def write(data: bytes) -> None:
            stream.write(data)
            stream.flush()

    return write


def _signal_name(sig: int) -> str:
    try:
        return signal.Signals(sig).name
    except ValueError:
        return str(sig)


def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass
