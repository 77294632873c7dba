"""CLI entry point for watchrun: resolve config, supervise the child, map errors to exit codes."""

import argparse
import asyncio
import logging
import signal
import sys

from watchrun import __version__
from watchrun.controller import RestartController
from watchrun.keyboard_handler import KeyboardHandler
from watchrun_core.config import CONFIG_FILENAMES, CliOptions, load_watch_config
from watchrun_core.errors import ConfigError, SpawnError
from watchrun_core.models import WatchConfig
from watchrun_core.notifier import LoggingNotifier

logger = logging.getLogger("watchrun")

EXIT_OK = 0
EXIT_CONFIG_ERROR = 78
EXIT_SPAWN_ERROR = 127

LOG_FORMAT = "[watchrun] %(message)s"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="watchrun",
        description="Run a script and restart it whenever watched source files change.",
        epilog="Examples:\n"
        "  watchrun app.py                          # watch . for *.py changes\n"
        "  watchrun -w src -e php -x php server.php # run with php, watch src/\n"
        "  watchrun app.py -- --port 8000           # pass arguments to the script\n"
        "  watchrun --arguments=--debug app.py      # dash-prefixed extra argument\n"
        f"\nConfig files discovered in the working directory: {', '.join(CONFIG_FILENAMES)}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("script", nargs="?", help="Script to run")
    parser.add_argument("script_args", nargs="*", metavar="args", help="Arguments for the script")
    parser.add_argument(
        "-w", "--watch", action="append", metavar="DIR", help="Directory to watch (repeatable)"
    )
    parser.add_argument(
        "-e",
        "--ext",
        action="append",
        metavar="LIST",
        help="Comma-separated extensions to watch (default: py)",
    )
    parser.add_argument(
        "-i", "--ignore", action="append", metavar="PATTERN", help="Path substring or glob to ignore"
    )
    parser.add_argument("-x", "--exec", dest="executable", metavar="PROGRAM", help="Program used to run the script")
    parser.add_argument(
        "-a",
        "--arguments",
        action="append",
        metavar="ARG",
        help="Extra argument for the script (repeatable). Write --arguments=--flag for dash-prefixed values",
    )
    parser.add_argument(
        "-d", "--delay", type=float, metavar="SECONDS", help="Debounce window in seconds (default: 0.1)"
    )
    parser.add_argument("-s", "--signal", metavar="NAME", help="Signal for graceful stop (default: SIGTERM)")
    parser.add_argument(
        "--stop-timeout",
        type=float,
        metavar="SECONDS",
        help="Seconds before a stopping child is killed (default: 5)",
    )
    parser.add_argument(
        "--restart-on-crash",
        action="store_true",
        default=None,
        help="Restart immediately when the child exits with an error",
    )
    parser.add_argument("--restartable", metavar="TOKEN", help="Stdin line that forces a restart (default: rs)")
    parser.add_argument("--once", action="store_true", help="Run once without watching and exit with the child's code")
    parser.add_argument(
        "--merge-lists",
        action="store_true",
        help="Combine list options with the config file instead of replacing them",
    )
    parser.add_argument("-c", "--config", metavar="PATH", help="Config file (default: discovered)")
    parser.add_argument("--no-config", action="store_true", help="Do not look for a config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only warnings and errors")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def options_from_args(args: argparse.Namespace) -> CliOptions:
    """Translate parsed arguments into ``CliOptions`` (None = not given)."""
    script_args = None
    if args.arguments or args.script_args:
        script_args = [*(args.arguments or []), *args.script_args]
    return CliOptions(
        script=args.script,
        script_args=script_args,
        executable=args.executable,
        watch=args.watch,
        extensions=args.ext,
        ignore=args.ignore,
        delay=args.delay,
        signal=args.signal,
        stop_timeout=args.stop_timeout,
        restart_on_crash=args.restart_on_crash,
        restartable=args.restartable,
        once=args.once,
        merge_lists=args.merge_lists,
    )


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Send watchrun and watchrun_core logs to stderr with a short prefix."""
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    for name in ("watchrun", "watchrun_core"):
        package_logger = logging.getLogger(name)
        package_logger.handlers[:] = [handler]
        package_logger.setLevel(level)
        package_logger.propagate = False


async def serve(config: WatchConfig) -> int:
    """Run the restart controller until shutdown (or the single run ends)."""
    controller = RestartController(config, notifier=LoggingNotifier())
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, controller.request_shutdown)
        except (NotImplementedError, RuntimeError):
            # Windows: Ctrl+C arrives as KeyboardInterrupt instead
            pass

    # A single run never restarts, so every line goes to the child
    keyboard = KeyboardHandler(controller, "" if config.once else config.restartable)
    keyboard.start()
    if config.restartable and not config.once:
        logger.info(keyboard.get_help())

    return await controller.run()


def run(argv: list[str] | None = None) -> int:
    """Parse arguments, run the supervisor and return the process exit code."""
    args = parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    try:
        config = load_watch_config(
            options_from_args(args), config_path=args.config, discover=not args.no_config
        )
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    logger.debug(f"Config source: {config.config_source}")
    try:
        return asyncio.run(serve(config))
    except SpawnError as e:
        logger.error(str(e))
        return EXIT_SPAWN_ERROR
    except KeyboardInterrupt:
        return EXIT_OK


def main() -> None:
    """
    Main entry point for the watchrun CLI.

    Exit codes:
    - 0: clean shutdown
    - 78: configuration error
    - 127: the command could not be started
    - child's own code in --once mode
    """
    sys.exit(run())


if __name__ == "__main__":
    main()
