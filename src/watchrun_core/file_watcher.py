"""Filesystem watcher built on watchdog, exposed as an async event stream."""

import asyncio
import logging
import os
import time
from collections.abc import AsyncIterator, Callable, Iterable

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from watchrun_core.errors import WatchError
from watchrun_core.matcher import normalize_path
from watchrun_core.models import ChangeEvent, ChangeKind

logger = logging.getLogger(__name__)

_KINDS = {
    EVENT_TYPE_CREATED: ChangeKind.CREATED,
    EVENT_TYPE_MODIFIED: ChangeKind.MODIFIED,
    EVENT_TYPE_DELETED: ChangeKind.REMOVED,
    EVENT_TYPE_MOVED: ChangeKind.RENAMED,
}


class _ChangeHandler(FileSystemEventHandler):
    """Hands every raw watchdog event over to the event loop thread."""

    def __init__(self, watcher: "FileWatcher"):
        self.watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        self.watcher._post(event)


class FileWatcher:
    """Watches directories recursively and yields ``ChangeEvent`` values.

    watchdog delivers events on its observer thread; they are moved onto
    the asyncio loop with ``call_soon_threadsafe`` and queued, so
    ``events()`` suspends between notifications instead of polling.

    A watched root that disappears is reported as a ``WatchError`` and
    re-subscribed once it is created again; the other roots keep working.
    """

    def __init__(
        self,
        paths: Iterable[str | os.PathLike],
        loop: asyncio.AbstractEventLoop | None = None,
        observer_factory: Callable[[], object] = Observer,
    ):
        """Initialize watcher.

        Args:
            paths: Directories to watch recursively
            loop: Event loop to deliver events on (default: the running loop at start())
            observer_factory: Builds the watchdog observer
        """
        self.paths = [normalize_path(p) for p in paths]
        self._loop = loop
        self._observer_factory = observer_factory
        self.observer = None
        self.errors: list[WatchError] = []
        self._handler = _ChangeHandler(self)
        self._queue: asyncio.Queue | None = None
        self._watches: dict[str, object] = {}
        self._pending: dict[str, tuple[str, object]] = {}
        self._stopped = False

    def start(self) -> None:
        """Schedule all roots and start the observer thread."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self.observer = self._observer_factory()
        for root in self.paths:
            self._schedule_root(root)
        self.observer.start()
        logger.info(f"Watching {len(self._watches)} of {len(self.paths)} path(s)")

    def stop(self) -> None:
        """Stop the observer and end the ``events()`` stream."""
        if self._stopped:
            return
        self._stopped = True
        if self.observer is not None and self.observer.is_alive():
            self.observer.stop()
            self.observer.join(timeout=2.0)
            logger.debug("Stopped filesystem observer")
        if self._queue is not None:
            self._queue.put_nowait(None)

    async def events(self) -> AsyncIterator[ChangeEvent]:
        """Yield change events until ``stop()`` is called."""
        if self._queue is None:
            raise RuntimeError("FileWatcher not started. Call start() first.")
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    @property
    def watched_roots(self) -> list[str]:
        """Roots that currently have a live recursive watch."""
        return list(self._watches)

    @property
    def pending_roots(self) -> list[str]:
        """Roots waiting to be recreated."""
        return list(self._pending)

    # Observer thread -> loop thread

    def _post(self, event: FileSystemEvent) -> None:
        if self._stopped or self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._on_raw_event, event)
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug(f"Dropped event after loop closed: {event.src_path}")

    def _on_raw_event(self, event: FileSystemEvent) -> None:
        if self._stopped:
            return
        kind = _KINDS.get(event.event_type)
        if kind is None:
            return
        src = normalize_path(os.fsdecode(event.src_path))
        dest = src
        if kind is ChangeKind.RENAMED:
            dest = normalize_path(os.fsdecode(event.dest_path))

        if event.is_directory:
            if kind in (ChangeKind.REMOVED, ChangeKind.RENAMED) and src in self._watches:
                self._on_root_removed(src)
            if kind in (ChangeKind.CREATED, ChangeKind.RENAMED):
                self._on_directory_created(dest)
            return

        if not self._under_root(dest):
            # Sibling of a root, seen through an ancestor watch
            return
        self._queue.put_nowait(ChangeEvent(path=dest, kind=kind, timestamp=time.monotonic()))

    # Subscription management (loop thread only)

    def _schedule_root(self, root: str) -> None:
        try:
            watch = self.observer.schedule(self._handler, root, recursive=True)
        except OSError as e:
            self._report(WatchError(root, str(e)))
            if not os.path.isdir(root):
                self._await_recreation(root)
            return
        self._watches[root] = watch
        logger.debug(f"Subscribed to {root}")

    def _on_root_removed(self, root: str) -> None:
        watch = self._watches.pop(root)
        self._report(WatchError(root, "directory was removed, waiting for it to reappear"))
        self._unschedule(watch)
        self._await_recreation(root)

    def _on_directory_created(self, path: str) -> None:
        for root in list(self._pending):
            if root == path:
                self._on_root_recreated(root)
            elif root.startswith(path + os.sep):
                # An intermediate directory came back: move the anchor closer
                self._drop_pending(root)
                self._await_recreation(root)
        if self._under_root(path):
            logger.debug(f"Picked up new directory {path}")

    def _on_root_recreated(self, root: str) -> None:
        self._drop_pending(root)
        self._schedule_root(root)
        if root in self._watches:
            logger.info(f"Watching {root} again")

    def _await_recreation(self, root: str) -> None:
        anchor = os.path.dirname(root)
        while not os.path.isdir(anchor):
            parent = os.path.dirname(anchor)
            if parent == anchor:
                self._report(WatchError(root, "no existing ancestor directory to watch"))
                return
            anchor = parent
        try:
            watch = self.observer.schedule(self._handler, anchor, recursive=False)
        except OSError as e:
            self._report(WatchError(anchor, str(e)))
            return
        self._pending[root] = (anchor, watch)
        logger.debug(f"Waiting for {root} via {anchor}")
        if os.path.isdir(root):
            # Recreated before the anchor watch was in place
            self._on_root_recreated(root)

    def _drop_pending(self, root: str) -> None:
        anchor, watch = self._pending.pop(root)
        if not any(other_anchor == anchor for other_anchor, _ in self._pending.values()):
            self._unschedule(watch)

    def _unschedule(self, watch: object) -> None:
        try:
            self.observer.unschedule(watch)
        except (KeyError, OSError) as e:
            logger.debug(f"Watch already gone: {e!r}")

    def _under_root(self, path: str) -> bool:
        return any(path.startswith(root + os.sep) for root in self._watches)

    def _report(self, error: WatchError) -> None:
        self.errors.append(error)
        logger.warning(str(error))
