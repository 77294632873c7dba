"""watchrun-core: config, matching, watching and process supervision for watchrun."""

__version__ = "0.1.0"

# Config
from watchrun_core.config import CliOptions, load_config_file, load_watch_config, resolve_config
from watchrun_core.debouncer import Debouncer

# Errors
from watchrun_core.errors import ChildExitError, ConfigError, SpawnError, WatchError, WatchrunError
from watchrun_core.matcher import PathMatcher

# Models
from watchrun_core.models import (
    ChangeEvent,
    ChangeKind,
    ChildProcessHandle,
    ControllerState,
    ExitStatus,
    RestartSignal,
    WatchConfig,
)
from watchrun_core.supervisor import ProcessSupervisor

__all__ = [
    "__version__",
    # Models
    "WatchConfig",
    "ChangeEvent",
    "ChangeKind",
    "RestartSignal",
    "ExitStatus",
    "ChildProcessHandle",
    "ControllerState",
    # Errors
    "WatchrunError",
    "ConfigError",
    "SpawnError",
    "WatchError",
    "ChildExitError",
    # Config
    "CliOptions",
    "load_config_file",
    "load_watch_config",
    "resolve_config",
    # Pipeline
    "PathMatcher",
    "Debouncer",
    "ProcessSupervisor",
]
