"""Tests for watchrun_core.matcher."""

import os

import pytest

from watchrun_core.matcher import PathMatcher, normalize_path
from watchrun_core.models import BUILTIN_IGNORE_PATTERNS, WatchConfig

ROOT = os.path.abspath(os.path.join(os.sep, "project", "src"))
OTHER_ROOT = os.path.abspath(os.path.join(os.sep, "project", "config"))


def _matcher(**overrides) -> PathMatcher:
    values = dict(
        watch_paths=(ROOT, OTHER_ROOT),
        extensions=frozenset({"php", "yaml"}),
        ignore_patterns=BUILTIN_IGNORE_PATTERNS,
    )
    values.update(overrides)
    return PathMatcher(WatchConfig(**values))


def _p(*parts: str) -> str:
    return os.path.join(ROOT, *parts)


class TestWatchRoots:
    """A path must lie under a watch root."""

    def test_file_under_root_is_relevant(self):
        assert _matcher().is_relevant(_p("app.php")) is True

    def test_nested_file_is_relevant(self):
        assert _matcher().is_relevant(_p("Http", "Controllers", "Home.php")) is True

    def test_second_root_is_used(self):
        assert _matcher().is_relevant(os.path.join(OTHER_ROOT, "app.yaml")) is True

    @pytest.mark.parametrize(
        "path",
        [
            os.path.join(os.sep, "project", "vendor", "autoload.php"),
            os.path.join(os.sep, "elsewhere", "app.php"),
            os.path.join(os.sep, "project", "src-old", "app.php"),
        ],
    )
    def test_outside_roots_is_irrelevant(self, path):
        """Sibling directories sharing a name prefix do not count."""
        assert _matcher().is_relevant(path) is False

    def test_root_itself_is_irrelevant(self):
        assert _matcher().is_relevant(ROOT) is False

    def test_relative_parent_segments_are_normalized(self):
        escaped = os.path.join(ROOT, "..", "vendor", "lib.php")
        assert _matcher().is_relevant(escaped) is False
        assert _matcher().is_relevant(os.path.join(ROOT, "sub", "..", "app.php")) is True


class TestExtensions:
    """Only allow-listed suffixes are relevant."""

    @pytest.mark.parametrize("name", ["app.js", "README", "app.php~", "app.php.swp"])
    def test_other_extensions_are_irrelevant(self, name):
        assert _matcher().is_relevant(_p(name)) is False

    def test_extension_matching_is_case_sensitive(self):
        assert _matcher().is_relevant(_p("App.PHP")) is False

    def test_only_last_suffix_counts(self):
        assert _matcher().is_relevant(_p("routes.yaml.php")) is True


class TestHiddenAndVcs:
    """Dot-prefixed segments and VCS directories are always excluded."""

    @pytest.mark.parametrize(
        "parts",
        [
            (".env.php",),
            (".git", "HEAD.php"),
            (".idea", "workspace.php"),
            ("lib", ".cache", "x.php"),
            ("CVS", "Entries.php"),
            ("_darcs", "x.php"),
        ],
    )
    def test_hidden_paths_are_irrelevant(self, parts):
        assert _matcher().is_relevant(_p(*parts)) is False

    def test_hidden_paths_ignored_even_without_ignore_patterns(self):
        matcher = _matcher(ignore_patterns=())
        assert matcher.is_relevant(_p(".git", "config.php")) is False
        assert matcher.is_relevant(_p(".hidden.php")) is False

    def test_vcs_name_inside_filename_is_not_ignored(self):
        assert _matcher().is_relevant(_p("my.github.php")) is True

    def test_hidden_segment_above_root_is_irrelevant(self):
        """Every segment of the path counts, including the root's own."""
        root = os.path.abspath(os.path.join(os.sep, "home", "me", ".projects", "app"))
        matcher = PathMatcher(WatchConfig(watch_paths=(root,), extensions=frozenset({"php"})))
        assert matcher.is_relevant(os.path.join(root, "index.php")) is False


class TestIgnorePatterns:
    """Substring and glob ignore patterns."""

    def test_substring_pattern(self):
        matcher = _matcher(ignore_patterns=("cache/",))
        assert matcher.is_relevant(_p("var", "cache", "x.php")) is False
        assert matcher.is_relevant(_p("var", "x.php")) is True

    def test_glob_pattern_against_relative_path(self):
        matcher = _matcher(ignore_patterns=("tests/*",))
        assert matcher.is_relevant(_p("tests", "FooTest.php")) is False
        assert matcher.is_relevant(_p("app", "tests.php")) is True

    def test_glob_pattern_against_segment(self):
        matcher = _matcher(ignore_patterns=("*_generated.php",))
        assert matcher.is_relevant(_p("deep", "models_generated.php")) is False
        assert matcher.is_relevant(_p("deep", "models.php")) is True

    def test_pattern_is_relative_to_root(self):
        """Parts of the root path itself never trigger an ignore."""
        matcher = _matcher(ignore_patterns=("project",))
        assert matcher.is_relevant(_p("app.php")) is True

    def test_patterns_are_case_sensitive(self):
        matcher = _matcher(ignore_patterns=("Legacy",))
        assert matcher.is_relevant(_p("Legacy", "a.php")) is False
        assert matcher.is_relevant(_p("legacy", "a.php")) is True

    def test_empty_pattern_is_skipped(self):
        assert _matcher(ignore_patterns=("",)).is_relevant(_p("app.php")) is True


class TestFilter:
    """PathMatcher.filter over an async stream."""

    @pytest.mark.asyncio
    async def test_filter_yields_relevant_events_only(self):
        from watchrun_core.models import ChangeEvent, ChangeKind

        async def source():
            for path in (_p("a.php"), _p("a.js"), _p(".git", "b.php"), _p("c.yaml")):
                yield ChangeEvent(path=path, kind=ChangeKind.MODIFIED, timestamp=0.0)

        seen = [event.path async for event in _matcher().filter(source())]
        assert seen == [_p("a.php"), _p("c.yaml")]


def test_normalize_path_makes_absolute(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert normalize_path("src/../app.php") == os.path.join(os.getcwd(), "app.php")
