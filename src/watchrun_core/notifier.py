"""Pluggable notification protocol for watchrun.

Lets the restart controller report restarts and child exits without
depending on a particular output channel. Swap in a custom implementation
for tests or when embedding the controller.
"""

import logging
from typing import Protocol

logger = logging.getLogger("watchrun")


class Notifier(Protocol):
    """Protocol for user-visible notifications."""

    def info(self, message: str) -> None:
        """Informational message."""
        ...

    def warning(self, message: str) -> None:
        """Warning message."""
        ...

    def error(self, message: str) -> None:
        """Error message."""
        ...


class NoOpNotifier:
    """Silent notifier, the default when the controller is embedded."""

    def info(self, msg: str) -> None:
        pass

    def warning(self, msg: str) -> None:
        pass

    def error(self, msg: str) -> None:
        pass


class LoggingNotifier:
    """Reports through the ``watchrun`` logger, used by the CLI."""

    def info(self, msg: str) -> None:
        logger.info(msg)

    def warning(self, msg: str) -> None:
        logger.warning(msg)

    def error(self, msg: str) -> None:
        logger.error(msg)
