#!/usr/bin/env python3
"""
Example: Embedding the restart controller
Shows how to drive RestartController from your own asyncio program.

This example demonstrates:
- Building a WatchConfig without the CLI
- Wiring the outbound callbacks
- Manual restarts and shutdown from host code
"""

import asyncio
import sys
from pathlib import Path

from watchrun import RestartController
from watchrun_core.config import CliOptions, resolve_config
from watchrun_core.notifier import LoggingNotifier


class RestartLog:
    """Collects what the controller did, for display after the run."""

    def __init__(self):
        self.started = []
        self.exited = []

    def on_started(self, handle):
        print(f"started pid {handle.pid}")
        self.started.append(handle.pid)

    def on_exited(self, handle, status):
        print(f"pid {handle.pid} {status.describe()}")
        self.exited.append((handle.pid, status))


async def main(directory: Path) -> int:
    config = resolve_config(
        CliOptions(
            executable=sys.executable,
            script_args=["-m", "http.server", "8765"],
            watch=["."],
            extensions=["py", "html"],
        ),
        cwd=directory,
    )
    controller = RestartController(config, notifier=LoggingNotifier())
    log = RestartLog()
    controller.on_child_started = log.on_started
    controller.on_child_exited = log.on_exited
    controller.on_state_changed = lambda old, new: print(f"{old.value} -> {new.value}")

    run_task = asyncio.create_task(controller.run())
    await asyncio.sleep(2)
    controller.request_restart("demo")
    await asyncio.sleep(2)
    controller.request_shutdown()
    code = await run_task

    print(f"{len(log.started)} spawns, exit code {code}")
    return code


if __name__ == "__main__":
    sys.exit(asyncio.run(main(Path.cwd())))
