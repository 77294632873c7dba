"""Restart controller: the single owner of the current child process."""

import asyncio
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass

from watchrun_core.debouncer import Debouncer
from watchrun_core.errors import ChildExitError, SpawnError
from watchrun_core.file_watcher import FileWatcher
from watchrun_core.matcher import PathMatcher
from watchrun_core.models import ChildProcessHandle, ControllerState, ExitStatus, WatchConfig
from watchrun_core.notifier import NoOpNotifier, Notifier
from watchrun_core.supervisor import ProcessSupervisor
from watchrun_core.watchers import WatchSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Restart:
    reason: str
    paths: tuple[str, ...] = ()


@dataclass(frozen=True)
class _ChildExited:
    handle: ChildProcessHandle
    status: ExitStatus


@dataclass(frozen=True)
class _Input:
    data: bytes


@dataclass(frozen=True)
class _Shutdown:
    pass


class RestartController:
    """Drives the child process from change signals, hotkeys and exits.

    Every input is a message on one queue, handled in arrival order by
    ``run()``. Only ``run()`` touches the current child, so a restart
    always finishes stop + reap before the next spawn begins.

    States: idle -> starting -> running -> stopping -> starting ...

    Usage:
        controller = RestartController(config, notifier=LoggingNotifier())
        exit_code = await controller.run()   # until request_shutdown()
    """

    def __init__(
        self,
        config: WatchConfig,
        supervisor: ProcessSupervisor | None = None,
        notifier: Notifier | None = None,
        watch_source: WatchSource | None = None,
        matcher: PathMatcher | None = None,
        debouncer: Debouncer | None = None,
    ):
        """Initialize controller.

        Args:
            config: Resolved configuration
            supervisor: Starts/stops children (default: ProcessSupervisor())
            notifier: User-visible messages (default: NoOpNotifier - silent)
            watch_source: Change event source (default: FileWatcher on config.watch_paths)
            matcher: Relevance filter (default: PathMatcher(config))
            debouncer: Burst coalescing (default: Debouncer(config.debounce_window))
        """
        self.config = config
        self.supervisor = supervisor or ProcessSupervisor()
        self.notifier = notifier or NoOpNotifier()
        self.matcher = matcher or PathMatcher(config)
        self.debouncer = debouncer or Debouncer(config.debounce_window)
        self.watch_source = watch_source

        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue | None = None
        self._state = ControllerState.IDLE
        self._current: ChildProcessHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        self._shutdown_requested = False
        self._finished = False
        self._exit_code = 0

        self.last_exit_status: ExitStatus | None = None
        self.spawn_count = 0

        # Outbound events (host wires these)
        self.on_state_changed: Callable[[ControllerState, ControllerState], None] | None = None
        self.on_child_started: Callable[[ChildProcessHandle], None] | None = None
        self.on_child_exited: Callable[[ChildProcessHandle, ExitStatus], None] | None = None

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def current(self) -> ChildProcessHandle | None:
        """The live child, if any."""
        return self._current

    @property
    def shutting_down(self) -> bool:
        return self._shutdown_requested

    # Sync-safe entry points (callable from any thread)

    def request_restart(self, reason: str = "manual") -> None:
        """Ask for a restart, same as a debounced change."""
        self._post(_Restart(reason))

    def send_input(self, data: bytes) -> None:
        """Forward bytes to the current child's stdin."""
        self._post(_Input(data))

    def request_shutdown(self) -> None:
        """Stop the child and finish ``run()``. No spawn happens after this call."""
        self._shutdown_requested = True
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, _Shutdown())

    def _post(self, message: object) -> None:
        if self._loop is None:
            raise RuntimeError("Controller not running. Call run() first.")
        self._loop.call_soon_threadsafe(self._queue.put_nowait, message)

    # Event loop

    async def run(self) -> int:
        """Start the child, watch for changes and process messages until shutdown.

        Returns:
            0 after a requested shutdown, or the child's exit code in once mode

        Raises:
            SpawnError: If the very first spawn fails
        """
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        if self._shutdown_requested:
            # Requested before the loop was known, so nothing was queued
            self._queue.put_nowait(_Shutdown())
        try:
            if not self.config.once:
                self._start_watching()
            await self._start_child(initial=True)
            while not self._finished:
                message = await self._queue.get()
                if isinstance(message, _Shutdown):
                    logger.debug("Shutdown requested")
                    break
                await self._handle(message)
        finally:
            await self._teardown()
        return self._exit_code

    async def _handle(self, message: object) -> None:
        if isinstance(message, _Restart):
            await self._restart(message)
        elif isinstance(message, _ChildExited):
            await self._on_child_exited(message)
        elif isinstance(message, _Input):
            if self._current is None or not self._current.send_input(message.data):
                logger.debug("Dropped input: no running child")

    def _start_watching(self) -> None:
        if self.watch_source is None:
            self.watch_source = FileWatcher(self.config.watch_paths, loop=self._loop)
        self.watch_source.start()
        self._spawn_task(self._pipeline())
        paths = ", ".join(_display(p) for p in self.config.watch_paths)
        exts = ", ".join(sorted(self.config.extensions))
        self.notifier.info(f"Watching {paths} for changes to: {exts}")

    async def _pipeline(self) -> None:
        relevant = self.matcher.filter(self.watch_source.events())
        async for restart in self.debouncer.signals(relevant):
            if self._shutdown_requested:
                return
            self._queue.put_nowait(_Restart("change", restart.paths))

    async def _restart(self, message: _Restart) -> None:
        if self._shutdown_requested:
            return
        if message.paths:
            changed = ", ".join(_display(p) for p in message.paths)
            self.notifier.info(f"Restarting due to changes: {changed}")
        else:
            self.notifier.info(f"Restarting ({message.reason})")

        if self._current is not None:
            self._set_state(ControllerState.STOPPING)
            await self._stop_current()
        await self._start_child()

    async def _start_child(self, initial: bool = False) -> None:
        if self._shutdown_requested:
            self._set_state(ControllerState.IDLE)
            return
        if self._current is not None:
            raise RuntimeError(f"Refusing to spawn while {self._current!r} is still live")

        self._set_state(ControllerState.STARTING)
        try:
            handle = await self.supervisor.start(self.config)
        except SpawnError as e:
            self._set_state(ControllerState.IDLE)
            if initial:
                raise
            logger.error(str(e))
            self.notifier.error(f"{e}. Waiting for changes before trying again")
            return

        self.supervisor.forward(handle)
        self._current = handle
        self.spawn_count += 1
        self._set_state(ControllerState.RUNNING)
        self.notifier.info(f"Starting `{' '.join(handle.command)}` (pid {handle.pid})")
        self._spawn_task(self._watch_exit(handle))
        if self.on_child_started:
            self.on_child_started(handle)

    async def _watch_exit(self, handle: ChildProcessHandle) -> None:
        status = await self.supervisor.wait(handle)
        self._queue.put_nowait(_ChildExited(handle, status))

    async def _stop_current(self) -> ExitStatus:
        handle = self._current
        status = await self.supervisor.stop(
            handle, self.config.stop_timeout, self.config.stop_signal
        )
        self._current = None
        self.last_exit_status = status
        logger.debug(f"pid {handle.pid} stopped: {status.describe()}")
        return status

    async def _on_child_exited(self, message: _ChildExited) -> None:
        handle, status = message.handle, message.status
        if handle is not self._current:
            # Exit of a child this controller already stopped
            return

        self._current = None
        self.last_exit_status = status
        if self.on_child_exited:
            self.on_child_exited(handle, status)

        if self.config.once:
            self._exit_code = status.exit_code
            self._finished = True
            self._set_state(ControllerState.IDLE)
            return

        if status.success:
            self.notifier.info("Child exited cleanly, waiting for changes before restart")
            self._set_state(ControllerState.IDLE)
            return

        self.notifier.warning(str(ChildExitError(handle.command, status)))
        if self.config.restart_on_crash and not self._shutdown_requested:
            self.notifier.info("Restarting after crash")
            await self._start_child()
        else:
            self.notifier.info("Waiting for changes before restart")
            self._set_state(ControllerState.IDLE)

    async def _teardown(self) -> None:
        self._shutdown_requested = True
        if self._current is not None:
            self._set_state(ControllerState.STOPPING)
            status = await self._stop_current()
            self.notifier.info(f"Stopped child: {status.describe()}")
        self._set_state(ControllerState.IDLE)

        if self.watch_source is not None:
            try:
                self.watch_source.stop()
            except Exception as e:
                logger.error(f"Error stopping file watcher: {e}")
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()

    def _spawn_task(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _set_state(self, state: ControllerState) -> None:
        previous = self._state
        if previous is state:
            return
        self._state = state
        logger.debug(f"State {previous.value} -> {state.value}")
        if self.on_state_changed:
            self.on_state_changed(previous, state)


def _display(path: str | os.PathLike) -> str:
    try:
        return os.path.relpath(path)
    except ValueError:
        return os.fspath(path)
