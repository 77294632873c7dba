"""watchrun: restart a command whenever watched source files change."""

__version__ = "0.1.0"

# Public API
from watchrun.controller import RestartController
from watchrun_core.models import ControllerState, WatchConfig

__all__ = [
    "__version__",
    "RestartController",
    "ControllerState",
    "WatchConfig",
]
