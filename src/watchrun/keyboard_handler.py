"""Stdin handling: the manual-restart hotkey and input forwarding."""

import logging
import sys
import threading
from typing import TextIO

logger = logging.getLogger(__name__)


class KeyboardHandler:
    """Reads the supervisor's stdin line by line.

    A line equal to the restart token (``rs`` by default) forces a restart;
    every other line goes to the child's stdin unchanged.
    """

    def __init__(self, controller, token: str = "rs"):
        """Initialize keyboard handler.

        Args:
            controller: RestartController instance
            token: Restart hotkey. Empty disables it (all input is forwarded)
        """
        self.controller = controller
        self.token = token.strip()
        self._thread: threading.Thread | None = None

    def handle_line(self, line: str) -> bool:
        """Dispatch one input line.

        Returns:
            True if the line triggered a restart
        """
        try:
            if self.token and line.strip() == self.token:
                self.controller.request_restart("manual")
                return True
            self.controller.send_input(line.encode())
        except RuntimeError as e:
            logger.debug(f"Ignoring input: {e}")
        return False

    def start(self, stream: TextIO | None = None) -> None:
        """Read ``stream`` (default: sys.stdin) on a daemon thread until EOF."""
        stream = stream if stream is not None else sys.stdin
        if stream is None:
            logger.debug("No stdin available, hotkey disabled")
            return
        self._thread = threading.Thread(
            target=self._read_loop, args=(stream,), name="watchrun-stdin", daemon=True
        )
        self._thread.start()

    def _read_loop(self, stream: TextIO) -> None:
        try:
            for line in iter(stream.readline, ""):
                self.handle_line(line)
        except (OSError, ValueError) as e:
            # stdin closed underneath us
            logger.debug(f"Stopped reading stdin: {e}")

    def get_help(self) -> str:
        if not self.token:
            return "Manual restart disabled"
        return f"Type `{self.token}` and press Enter to restart"
