"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from watchrun_core.models import BUILTIN_IGNORE_PATTERNS, WatchConfig  # noqa: E402


@pytest.fixture
def project(tmp_path):
    """A small project tree: src/ with a php file, plus a .git directory."""
    root = tmp_path.resolve()
    (root / "src").mkdir()
    (root / "src" / "app.php").write_text("<?php echo 'hi';\n")
    (root / ".git").mkdir()
    (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    return root


@pytest.fixture
def make_config(project):
    """Build a WatchConfig rooted at the project fixture."""

    def _make(**overrides) -> WatchConfig:
        values = dict(
            executable=(sys.executable,),
            script=None,
            watch_paths=(project / "src",),
            extensions=frozenset({"php"}),
            ignore_patterns=BUILTIN_IGNORE_PATTERNS,
            debounce_window=0.05,
            stop_timeout=2.0,
        )
        values.update(overrides)
        return WatchConfig(**values)

    return _make


@pytest.fixture(autouse=True)
def reset_package_loggers():
    """Undo CLI logging setup so caplog keeps seeing records."""
    yield
    import logging

    for name in ("watchrun", "watchrun_core"):
        package_logger = logging.getLogger(name)
        package_logger.handlers[:] = []
        package_logger.setLevel(logging.NOTSET)
        package_logger.propagate = True
