"""Coalesce bursts of change events into restart signals."""

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator

from watchrun_core.models import ChangeEvent, RestartSignal

logger = logging.getLogger(__name__)


class Debouncer:
    """Turn a stream of relevant change events into restart signals.

    The first event of a burst arms a timer of ``window`` seconds; each
    further event re-arms it. When the timer expires one ``RestartSignal``
    is emitted for the whole burst. A trailing burst is always flushed,
    including when the event stream ends.
    """

    def __init__(self, window: float):
        if window < 0:
            raise ValueError(f"Debounce window must not be negative: {window}")
        self.window = window

    async def signals(self, events: AsyncIterable[ChangeEvent]) -> AsyncIterator[RestartSignal]:
        """Yield one ``RestartSignal`` per quiet-terminated burst of ``events``."""
        iterator = events.__aiter__()
        pending: list[str] = []
        next_event = asyncio.ensure_future(iterator.__anext__())
        try:
            while True:
                if pending:
                    # Timer armed: wait for the next event or the window to elapse
                    done, _ = await asyncio.wait({next_event}, timeout=self.window)
                    if not done:
                        logger.debug(f"Debounced {len(pending)} change(s) into one restart")
                        yield RestartSignal(paths=tuple(_unique(pending)))
                        pending = []
                        continue
                else:
                    await asyncio.wait({next_event})

                try:
                    event = next_event.result()
                except StopAsyncIteration:
                    if pending:
                        yield RestartSignal(paths=tuple(_unique(pending)))
                    return
                pending.append(event.path)
                next_event = asyncio.ensure_future(iterator.__anext__())
        finally:
            if not next_event.done():
                next_event.cancel()
            elif not next_event.cancelled():
                # Consume the end-of-stream marker so it is not reported as unhandled
                next_event.exception()


def _unique(paths: list[str]) -> list[str]:
    return list(dict.fromkeys(paths))
