"""Relevance filtering for changed paths."""

import os
from collections.abc import AsyncIterable, AsyncIterator
from fnmatch import fnmatchcase
from pathlib import PurePath

from watchrun_core.models import BUILTIN_IGNORE_PATTERNS, VCS_DIRS, ChangeEvent, WatchConfig

_GLOB_CHARS = frozenset("*?[")


def normalize_path(path: str | os.PathLike) -> str:
    """Absolute, separator-normalized path. Does not touch the filesystem."""
    return os.path.normpath(os.path.abspath(os.fspath(path)))


class PathMatcher:
    """Decides whether a changed path should trigger a restart.

    A path is relevant when it lies under a watch root, none of its segments
    (the root's own included) is hidden or a VCS directory, no ignore
    pattern matches it and its extension is allowed. Matching is
    case-sensitive and pure.
    """

    def __init__(self, config: WatchConfig):
        self.roots = tuple(normalize_path(p) for p in config.watch_paths)
        self.extensions = frozenset(config.extensions)
        # Built-in entries are enforced per segment, not as substrings
        self.ignore_patterns = tuple(
            p for p in config.ignore_patterns if p and p not in BUILTIN_IGNORE_PATTERNS
        )

    def root_for(self, path: str) -> str | None:
        """Return the watch root that contains ``path`` (deepest first)."""
        for root in sorted(self.roots, key=len, reverse=True):
            if path == root or path.startswith(root.rstrip(os.sep) + os.sep):
                return root
        return None

    def is_relevant(self, path: str | os.PathLike) -> bool:
        path = normalize_path(path)
        root = self.root_for(path)
        if root is None or path == root:
            return False

        segments = PurePath(path).parts[1:]
        if any(part.startswith(".") or part in VCS_DIRS for part in segments):
            return False

        relative = PurePath(os.path.relpath(path, root))
        parts = relative.parts
        relative_posix = relative.as_posix()
        for pattern in self.ignore_patterns:
            if _matches_pattern(pattern, relative_posix, parts):
                return False

        suffix = relative.suffix
        return bool(suffix) and suffix[1:] in self.extensions

    async def filter(self, events: AsyncIterable[ChangeEvent]) -> AsyncIterator[ChangeEvent]:
        """Yield only the relevant events from ``events``."""
        async for event in events:
            if self.is_relevant(event.path):
                yield event


def _matches_pattern(pattern: str, relative_posix: str, parts: tuple[str, ...]) -> bool:
    pattern = pattern.replace("\\", "/")
    if _GLOB_CHARS.intersection(pattern):
        if fnmatchcase(relative_posix, pattern):
            return True
        return any(fnmatchcase(part, pattern) for part in parts)
    return pattern in relative_posix
