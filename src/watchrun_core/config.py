"""Configuration parsing and CLI/config-file merging for watchrun."""

import logging
import os
import shlex
import signal
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

from watchrun_core.errors import ConfigError
from watchrun_core.models import (
    BUILTIN_IGNORE_PATTERNS,
    DEFAULT_DEBOUNCE_WINDOW,
    DEFAULT_EXTENSIONS,
    DEFAULT_RESTARTABLE,
    DEFAULT_STOP_TIMEOUT,
    WatchConfig,
)

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("watchrun.toml", ".watchrun.toml")
CONFIG_TABLE = "watchrun"

KNOWN_KEYS = frozenset(
    {
        "script",
        "watch",
        "extensions",
        "ignore",
        "executable",
        "arguments",
        "delay",
        "signal",
        "stop_timeout",
        "restart_on_crash",
        "restartable",
    }
)


@dataclass
class CliOptions:
    """Values taken from the command line.

    ``None`` means the flag was not given, so the config file or the
    built-in default applies.
    """

    script: str | None = None
    script_args: list[str] | None = None
    executable: str | None = None
    watch: list[str] | None = None
    extensions: list[str] | None = None
    ignore: list[str] | None = None
    delay: float | None = None
    signal: str | None = None
    stop_timeout: float | None = None
    restart_on_crash: bool | None = None
    restartable: str | None = None
    once: bool = False
    merge_lists: bool = False
    """Union list values with the config file instead of replacing them."""


def discover_config_file(directory: str | Path) -> Path | None:
    """Return the first config file found in ``directory``, if any."""
    directory = Path(directory)
    for name in CONFIG_FILENAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load a TOML config file.

    Keys may sit at the top level or under a ``[watchrun]`` table.

    Args:
        path: Path to the TOML file

    Returns:
        Dict of recognized keys

    Raises:
        ConfigError: If the file is missing, unreadable or malformed
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    table = raw.get(CONFIG_TABLE, raw)
    if not isinstance(table, dict):
        raise ConfigError(f"Config file {path}: [{CONFIG_TABLE}] must be a table")

    values = {}
    for key, value in table.items():
        if key in KNOWN_KEYS:
            values[key] = value
        elif key != CONFIG_TABLE:
            logger.warning(f"Ignoring unknown key '{key}' in {path}")
    return values


def resolve_config(
    cli: CliOptions,
    file_values: dict[str, Any] | None = None,
    cwd: str | Path | None = None,
    config_path: Path | None = None,
) -> WatchConfig:
    """Merge CLI options and config file values into one ``WatchConfig``.

    Scalars: CLI, then config file, then default. Lists: the CLI list
    replaces the file list unless ``cli.merge_lists`` is set, in which case
    both are unioned (file entries first).

    Args:
        cli: Options parsed from the command line
        file_values: Values from ``load_config_file`` (or None)
        cwd: Base directory for CLI-relative paths (default: current directory)
        config_path: Config file the values came from; file-relative watch
            paths resolve against its directory

    Raises:
        ConfigError: On an empty executable, missing watch path or bad value
    """
    file_values = file_values or {}
    cwd = Path(cwd) if cwd is not None else Path.cwd()
    source = str(config_path) if config_path else "config file"
    file_base = config_path.parent if config_path else cwd

    # Executable and script
    executable = _pick(cli.executable, file_values.get("executable"))
    if executable is None:
        executable_argv: tuple[str, ...] = (sys.executable,)
    else:
        executable_argv = _to_argv(executable, "executable", source)
    if not executable_argv or not executable_argv[0].strip():
        raise ConfigError("Executable is empty: pass --exec or set 'executable'")

    script = _pick(cli.script, file_values.get("script"))
    if script is not None and not isinstance(script, str):
        raise ConfigError(f"{source}: 'script' must be a string, got {script!r}")
    if not script and executable is None:
        raise ConfigError("Nothing to run: pass a script or --exec")
    if script and cli.script is None and config_path is not None:
        # A script named in the config file is relative to that file
        script_path = Path(script).expanduser()
        if not script_path.is_absolute() and (file_base / script_path).exists():
            script = str(file_base / script_path)

    file_args = _opt_list(file_values, "arguments", source)
    script_args = _pick_list(cli.script_args, file_args, cli.merge_lists)

    # Lists
    cli_watch = _resolve_dirs(cli.watch, cwd) if cli.watch is not None else None
    file_watch = _resolve_dirs(_opt_list(file_values, "watch", source), file_base)
    watch_paths = _pick_list(cli_watch, file_watch, cli.merge_lists)
    if watch_paths is None:
        watch_paths = _resolve_dirs(["."], cwd)
    if not watch_paths:
        raise ConfigError("No watch paths configured")

    cli_ext = _normalize_extensions(cli.extensions) if cli.extensions is not None else None
    file_ext = _normalize_extensions(_opt_list(file_values, "extensions", source))
    extensions = _pick_list(cli_ext, file_ext, cli.merge_lists)
    if extensions is None:
        extensions = sorted(DEFAULT_EXTENSIONS)

    ignore = _pick_list(cli.ignore, _opt_list(file_values, "ignore", source), cli.merge_lists)
    ignore_patterns = _unique([*(ignore or []), *BUILTIN_IGNORE_PATTERNS])

    # Scalars
    delay = _to_float(_pick(cli.delay, file_values.get("delay")), DEFAULT_DEBOUNCE_WINDOW, "delay")
    stop_timeout = _to_float(
        _pick(cli.stop_timeout, file_values.get("stop_timeout")), DEFAULT_STOP_TIMEOUT, "stop_timeout"
    )
    stop_signal = _to_signal(_pick(cli.signal, file_values.get("signal")))
    restart_on_crash = _to_bool(
        _pick(cli.restart_on_crash, file_values.get("restart_on_crash")), False, "restart_on_crash"
    )
    restartable = _pick(cli.restartable, file_values.get("restartable"))
    if restartable is None:
        restartable = DEFAULT_RESTARTABLE
    elif restartable is False:
        restartable = ""

    return WatchConfig(
        executable=executable_argv,
        script=script or None,
        script_args=tuple(script_args or ()),
        watch_paths=tuple(watch_paths),
        extensions=frozenset(extensions),
        ignore_patterns=tuple(ignore_patterns),
        restartable=str(restartable).strip(),
        debounce_window=delay,
        stop_signal=stop_signal,
        stop_timeout=stop_timeout,
        restart_on_crash=restart_on_crash,
        once=cli.once,
        config_source=str(config_path) if config_path else "defaults/cli",
        working_dir=cwd.resolve(),
    )


def load_watch_config(
    cli: CliOptions,
    config_path: str | Path | None = None,
    cwd: str | Path | None = None,
    discover: bool = True,
) -> WatchConfig:
    """Discover/load the config file and resolve it against the CLI options."""
    cwd = Path(cwd) if cwd is not None else Path.cwd()
    path = Path(config_path) if config_path else None
    if path is not None and not path.is_absolute():
        path = cwd / path
    if path is None and discover:
        path = discover_config_file(cwd)

    file_values = None
    if path is not None:
        file_values = load_config_file(path)
        logger.debug(f"Loaded config from {path}")
    return resolve_config(cli, file_values, cwd=cwd, config_path=path)


def _pick(cli_value: Any, file_value: Any) -> Any:
    return cli_value if cli_value is not None else file_value


def _pick_list(cli_value: list | None, file_value: list | None, merge: bool) -> list | None:
    if cli_value is None:
        return file_value
    if file_value is None or not merge:
        return cli_value
    return _unique([*file_value, *cli_value])


def _unique(items: list) -> list:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def _opt_list(values: dict[str, Any], key: str, source: str) -> list[str] | None:
    if key not in values:
        return None
    value = values[key]
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, (str, int, float)) for v in value):
        return [str(v) for v in value]
    raise ConfigError(f"{source}: '{key}' must be a list of strings, got {value!r}")


def _to_argv(value: Any, key: str, source: str) -> tuple[str, ...]:
    if isinstance(value, str):
        return tuple(shlex.split(value, posix=os.name != "nt"))
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return tuple(value)
    raise ConfigError(f"{source}: '{key}' must be a string or list of strings, got {value!r}")


def _resolve_dirs(paths: list[str] | None, base: Path) -> list[Path] | None:
    if paths is None:
        return None
    resolved = []
    for raw in paths:
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = base / path
        try:
            path = path.resolve(strict=True)
        except (OSError, RuntimeError) as e:
            raise ConfigError(f"Watch path does not exist: {path}") from e
        if not path.is_dir():
            raise ConfigError(f"Watch path is not a directory: {path}")
        resolved.append(path)
    return _unique(resolved)


def _normalize_extensions(values: list[str] | None) -> list[str] | None:
    if values is None:
        return None
    result = []
    for value in values:
        for part in str(value).split(","):
            ext = part.strip().lstrip(".")
            if ext:
                result.append(ext)
    return _unique(result)


def _to_float(value: Any, default: float, key: str) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{key}' must be a number, got {value!r}") from e
    if parsed < 0:
        raise ConfigError(f"'{key}' must not be negative, got {value!r}")
    return parsed


def _to_bool(value: Any, default: bool, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().casefold()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"'{key}' must be a boolean, got {value!r}")


def _to_signal(value: Any) -> int:
    if value is None:
        return int(getattr(signal, "SIGTERM", 15))
    if isinstance(value, bool):
        raise ConfigError(f"Unknown signal: {value!r}")
    text = str(value).strip().upper()
    if isinstance(value, int) or text.isdigit():
        try:
            return int(signal.Signals(int(text)))
        except ValueError as e:
            raise ConfigError(f"Unknown signal: {value!r}") from e
    if not text.startswith("SIG"):
        text = f"SIG{text}"
    try:
        return int(signal.Signals[text])
    except KeyError as e:
        raise ConfigError(f"Unknown signal: {value!r}") from e
