"""Tests for watchrun_core.config."""

import signal
import sys

import pytest

from watchrun_core.config import (
    CliOptions,
    discover_config_file,
    load_config_file,
    load_watch_config,
    resolve_config,
)
from watchrun_core.errors import ConfigError
from watchrun_core.models import BUILTIN_IGNORE_PATTERNS


@pytest.fixture
def config_file(project):
    """A watchrun.toml in the project root."""
    path = project / "watchrun.toml"
    path.write_text(
        """
script = "server.php"
executable = "php"
watch = ["src"]
extensions = ["php", "yaml"]
ignore = ["var/cache"]
delay = 0.25
"""
    )
    return path


class TestDiscoverConfigFile:
    """Tests for discover_config_file."""

    def test_finds_plain_name(self, config_file, project):
        assert discover_config_file(project) == config_file

    def test_finds_hidden_name(self, project):
        hidden = project / ".watchrun.toml"
        hidden.write_text('script = "a.py"\n')
        assert discover_config_file(project) == hidden

    def test_plain_name_wins_over_hidden(self, config_file, project):
        (project / ".watchrun.toml").write_text('script = "b.py"\n')
        assert discover_config_file(project) == config_file

    def test_missing_returns_none(self, tmp_path):
        assert discover_config_file(tmp_path) is None


class TestLoadConfigFile:
    """Tests for load_config_file."""

    def test_top_level_keys(self, config_file):
        values = load_config_file(config_file)
        assert values["script"] == "server.php"
        assert values["extensions"] == ["php", "yaml"]

    def test_watchrun_table(self, tmp_path):
        path = tmp_path / "watchrun.toml"
        path.write_text('[watchrun]\nscript = "app.py"\nwatch = ["."]\n')
        assert load_config_file(path) == {"script": "app.py", "watch": ["."]}

    def test_unknown_keys_are_dropped(self, tmp_path, caplog):
        path = tmp_path / "watchrun.toml"
        path.write_text('script = "app.py"\ncolour = "blue"\n')
        values = load_config_file(path)
        assert "colour" not in values
        assert "Ignoring unknown key 'colour'" in caplog.text

    def test_malformed_toml_raises(self, tmp_path):
        path = tmp_path / "watchrun.toml"
        path.write_text("watch = [unclosed\n")
        with pytest.raises(ConfigError, match="Failed to parse config file"):
            load_config_file(path)

    def test_malformed_error_names_file(self, tmp_path):
        path = tmp_path / "watchrun.toml"
        path.write_text("= nope\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config_file(path)
        assert str(path) in str(exc_info.value)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigError, match="Config file not found"):
            load_config_file(tmp_path / "nope.toml")

    def test_non_table_section_raises(self, tmp_path):
        path = tmp_path / "watchrun.toml"
        path.write_text('watchrun = "oops"\n')
        with pytest.raises(ConfigError, match="must be a table"):
            load_config_file(path)


class TestResolveDefaults:
    """Built-in defaults when neither source supplies a value."""

    def test_defaults(self, project):
        config = resolve_config(CliOptions(script="app.py"), cwd=project)

        assert config.executable == (sys.executable,)
        assert config.watch_paths == (project,)
        assert config.extensions == frozenset({"py"})
        assert config.restartable == "rs"
        assert config.debounce_window == pytest.approx(0.1)
        assert config.stop_signal == int(signal.SIGTERM)
        assert config.restart_on_crash is False
        assert config.command == (sys.executable, "app.py")
        assert config.config_source == "defaults/cli"

    def test_builtin_ignores_always_present(self, project):
        config = resolve_config(CliOptions(script="app.py", ignore=["logs"]), cwd=project)
        assert config.ignore_patterns[0] == "logs"
        for pattern in BUILTIN_IGNORE_PATTERNS:
            assert pattern in config.ignore_patterns

    def test_nothing_to_run(self, project):
        with pytest.raises(ConfigError, match="Nothing to run"):
            resolve_config(CliOptions(), cwd=project)

    def test_exec_without_script(self, project):
        config = resolve_config(CliOptions(executable="php -S localhost:8000"), cwd=project)
        assert config.command == ("php", "-S", "localhost:8000")


class TestResolvePrecedence:
    """CLI wins, then config file, then default."""

    def test_file_values_used_when_cli_silent(self, config_file, project):
        config = resolve_config(
            CliOptions(), load_config_file(config_file), cwd=project, config_path=config_file
        )
        assert config.executable == ("php",)
        assert config.script == "server.php"
        assert config.watch_paths == (project / "src",)
        assert config.extensions == frozenset({"php", "yaml"})
        assert "var/cache" in config.ignore_patterns
        assert config.debounce_window == pytest.approx(0.25)
        assert config.config_source == str(config_file)

    def test_cli_scalar_wins(self, config_file, project):
        cli = CliOptions(script="worker.php", executable="/usr/bin/php8", delay=1.0)
        config = resolve_config(cli, load_config_file(config_file), cwd=project, config_path=config_file)
        assert config.script == "worker.php"
        assert config.executable == ("/usr/bin/php8",)
        assert config.debounce_window == pytest.approx(1.0)

    def test_cli_extension_list_replaces_file_list(self, config_file, project):
        """--ext php with extensions = [php, yaml] in the file selects {php}."""
        config = resolve_config(
            CliOptions(extensions=["php"]), load_config_file(config_file), cwd=project
        )
        assert config.extensions == frozenset({"php"})

    def test_merge_lists_unions(self, config_file, project):
        (project / "config").mkdir()
        cli = CliOptions(extensions=["twig"], watch=["config"], merge_lists=True)
        config = resolve_config(cli, load_config_file(config_file), cwd=project, config_path=config_file)
        assert config.extensions == frozenset({"php", "yaml", "twig"})
        assert config.watch_paths == (project / "src", project / "config")

    def test_merge_lists_deduplicates_paths(self, config_file, project):
        cli = CliOptions(watch=["src"], merge_lists=True)
        config = resolve_config(cli, load_config_file(config_file), cwd=project, config_path=config_file)
        assert config.watch_paths == (project / "src",)

    def test_file_watch_paths_relative_to_config_file(self, project, tmp_path_factory):
        elsewhere = tmp_path_factory.mktemp("cwd")
        path = project / "watchrun.toml"
        path.write_text('script = "a.py"\nwatch = ["src"]\n')
        config = resolve_config(CliOptions(), load_config_file(path), cwd=elsewhere, config_path=path)
        assert config.watch_paths == (project / "src",)

    def test_cli_restartable_empty_disables(self, project):
        config = resolve_config(CliOptions(script="a.py", restartable=""), cwd=project)
        assert config.restartable == ""


class TestResolveNormalization:
    """Value normalization."""

    def test_extensions_strip_dots_and_split_commas(self, project):
        cli = CliOptions(script="a.py", extensions=[".php,yaml", " twig "])
        config = resolve_config(cli, cwd=project)
        assert config.extensions == frozenset({"php", "yaml", "twig"})

    def test_executable_list_in_file(self, project):
        values = {"executable": ["php", "-d", "display_errors=1"], "script": "a.php"}
        config = resolve_config(CliOptions(), values, cwd=project)
        assert config.command == ("php", "-d", "display_errors=1", "a.php")

    def test_arguments(self, project):
        values = {"script": "a.php", "arguments": ["--port", 8000]}
        config = resolve_config(CliOptions(), values, cwd=project)
        assert config.script_args == ("--port", "8000")

    @pytest.mark.parametrize("value", ["SIGINT", "INT", "int", 2, "2"])
    def test_signal_names(self, project, value):
        config = resolve_config(CliOptions(script="a.py"), {"signal": value}, cwd=project)
        assert config.stop_signal == int(signal.SIGINT)

    def test_bool_strings(self, project):
        config = resolve_config(CliOptions(script="a.py"), {"restart_on_crash": "yes"}, cwd=project)
        assert config.restart_on_crash is True


class TestResolveErrors:
    """ConfigError cases include the offending value."""

    def test_empty_executable(self, project):
        with pytest.raises(ConfigError, match="Executable is empty"):
            resolve_config(CliOptions(script="a.py", executable=""), cwd=project)

    def test_missing_watch_path(self, project):
        with pytest.raises(ConfigError, match="does not exist") as exc_info:
            resolve_config(CliOptions(script="a.py", watch=["missing"]), cwd=project)
        assert "missing" in str(exc_info.value)

    def test_watch_path_is_file(self, project):
        with pytest.raises(ConfigError, match="not a directory"):
            resolve_config(CliOptions(script="a.py", watch=["src/app.php"]), cwd=project)

    def test_empty_watch_list(self, project):
        with pytest.raises(ConfigError, match="No watch paths"):
            resolve_config(CliOptions(script="a.py"), {"watch": []}, cwd=project)

    def test_negative_delay(self, project):
        with pytest.raises(ConfigError, match="delay"):
            resolve_config(CliOptions(script="a.py", delay=-1), cwd=project)

    def test_unknown_signal(self, project):
        with pytest.raises(ConfigError, match="Unknown signal"):
            resolve_config(CliOptions(script="a.py", signal="SIGNOPE"), cwd=project)

    @pytest.mark.parametrize("value", [99, "99", "0"])
    def test_unknown_signal_number(self, project, value):
        with pytest.raises(ConfigError, match="Unknown signal"):
            resolve_config(CliOptions(script="a.py"), {"signal": value}, cwd=project)

    def test_wrong_list_type(self, project):
        with pytest.raises(ConfigError, match="'watch' must be a list"):
            resolve_config(CliOptions(script="a.py"), {"watch": {"a": 1}}, cwd=project)

    def test_bad_bool(self, project):
        with pytest.raises(ConfigError, match="restart_on_crash"):
            resolve_config(CliOptions(script="a.py"), {"restart_on_crash": "maybe"}, cwd=project)


class TestLoadWatchConfig:
    """Discovery + resolution together."""

    def test_discovers_file_in_cwd(self, config_file, project):
        config = load_watch_config(CliOptions(), cwd=project)
        assert config.script == "server.php"
        assert config.config_source == str(config_file)

    def test_no_discovery(self, config_file, project):
        config = load_watch_config(CliOptions(script="a.py"), cwd=project, discover=False)
        assert config.script == "a.py"
        assert config.config_source == "defaults/cli"

    def test_explicit_relative_path(self, project):
        (project / "dev.toml").write_text('script = "dev.py"\n')
        config = load_watch_config(CliOptions(), config_path="dev.toml", cwd=project)
        assert config.script == "dev.py"

    def test_explicit_missing_path(self, project):
        with pytest.raises(ConfigError, match="not found"):
            load_watch_config(CliOptions(), config_path="nope.toml", cwd=project)


class TestChildLocation:
    """Where the child runs and how its script path is found."""

    def test_working_dir_is_cwd(self, project):
        config = resolve_config(CliOptions(script="a.py"), cwd=project)
        assert config.working_dir == project

    def test_script_from_other_config_dir_is_absolute(self, project, tmp_path_factory):
        other = tmp_path_factory.mktemp("other").resolve()
        (other / "worker.py").write_text("pass\n")
        (other / "watchrun.toml").write_text('script = "worker.py"\n')

        config = load_watch_config(CliOptions(), config_path=other / "watchrun.toml", cwd=project)

        assert config.script == str(other / "worker.py")
        assert config.working_dir == project

    def test_cli_script_stays_relative(self, project):
        (project / "worker.py").write_text("pass\n")
        config = resolve_config(CliOptions(script="worker.py"), cwd=project)
        assert config.script == "worker.py"
