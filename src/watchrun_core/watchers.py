"""Abstract watcher protocol for change sources."""

from collections.abc import AsyncIterator
from typing import Protocol

from watchrun_core.models import ChangeEvent


class WatchSource(Protocol):
    """Protocol for anything that produces filesystem change events."""

    def start(self) -> None:
        """Start watching."""
        ...

    def stop(self) -> None:
        """Stop watching."""
        ...

    def events(self) -> AsyncIterator[ChangeEvent]:
        """Yield change events until stopped."""
        ...
