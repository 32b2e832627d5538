"""Unit tests for the command-line interface (projectforge.cli)."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from projectforge.cli import build_parser, run

FORGE_ENV = ("FORGE_BLUEPRINTS_DIR", "FORGE_OUTPUT_DIR", "FORGE_HOOK_TIMEOUT", "FORGE_NO_GIT", "FORGE_PROFILE")


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep the user's config file and FORGE_* environment out of every test."""
    monkeypatch.setattr("projectforge.cli.DEFAULT_CONFIG_PATH", tmp_path / "no-such-config.json")
    for name in FORGE_ENV:
        monkeypatch.delenv(name, raising=False)


def _new(tmp_path: Path, *extra: str, name: str = "my-lib", blueprint: str = "library") -> list[str]:
    return [
        "new", name,
        "--module", f"github.com/acme/{name}",
        "--blueprint", blueprint,
        "--output", str(tmp_path / "out"),
        *extra,
    ]


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestParser:
    @pytest.mark.unit
    def test_repeatable_assignments(self):
        args = build_parser().parse_args(
            ["new", "x", "-m", "example.com/x", "-b", "library", "-s", "logger=zap", "-s", "a=b", "--var", "k=v"]
        )
        assert args.set == ["logger=zap", "a=b"]
        assert args.var == ["k=v"]
        assert args.dry_run is False

    @pytest.mark.unit
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


# ---------------------------------------------------------------------------
# list / show
# ---------------------------------------------------------------------------


class TestBrowse:
    @pytest.mark.unit
    def test_list(self, capsys):
        assert run(["list"]) == 0
        out = capsys.readouterr().out
        for blueprint_id in ("library", "web-api", "cli"):
            assert blueprint_id in out

    @pytest.mark.unit
    def test_show(self, capsys):
        assert run(["show", "web-api"]) == 0
        out = capsys.readouterr().out
        assert "database-driver" in out
        assert "go-mod-tidy" in out

    @pytest.mark.unit
    def test_show_unknown(self, capsys):
        assert run(["show", "rails"]) == 2
        assert "not found" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# new
# ---------------------------------------------------------------------------


class TestNew:
    @pytest.mark.unit
    def test_dry_run_writes_nothing(self, tmp_path, capsys):
        assert run(_new(tmp_path, "--set", "logger=zap", "--dry-run")) == 0
        out = capsys.readouterr().out
        assert "internal/logger/zap.go" in out
        assert "go.uber.org/zap" in out
        assert not (tmp_path / "out").exists()

    @pytest.mark.unit
    def test_generate(self, tmp_path):
        assert run(_new(tmp_path, "--set", "logger=zap", "--var", "author=Acme", "--no-hooks")) == 0
        project = tmp_path / "out" / "my-lib"
        go_mod = (project / "go.mod").read_text()
        assert go_mod.startswith("module github.com/acme/my-lib\n")
        assert "go.uber.org/zap v1.26.0" in go_mod
        assert (project / "internal" / "logger" / "zap.go").is_file()
        assert (project / "my_lib.go").is_file()
        assert "Acme" in (project / "LICENSE").read_text()

    @pytest.mark.unit
    def test_generate_runs_hooks(self, tmp_path, mock_subprocess):
        proc = mock_subprocess()
        with patch("asyncio.create_subprocess_exec", return_value=proc) as mock_exec:
            assert run(_new(tmp_path)) == 0
        commands = [call.args for call in mock_exec.call_args_list]
        assert commands == [("go", "mod", "tidy"), ("gofmt", "-w", "."), ("git", "init", "-q")]

    @pytest.mark.unit
    def test_no_git_flag(self, tmp_path, mock_subprocess):
        with patch("asyncio.create_subprocess_exec", return_value=mock_subprocess()) as mock_exec:
            assert run(_new(tmp_path, "--no-git")) == 0
        assert ("git", "init", "-q") not in [call.args for call in mock_exec.call_args_list]

    @pytest.mark.unit
    def test_illegal_value(self, tmp_path, capsys):
        assert run(_new(tmp_path, "--set", "logger=log4j", "--no-hooks")) == 2
        assert "log4j" in capsys.readouterr().out
        assert not (tmp_path / "out").exists()

    @pytest.mark.unit
    def test_incompatible_selection(self, tmp_path):
        code = run(
            _new(tmp_path, "--set", "database-orm=gorm", "--set", "database-driver=redis", "--no-hooks",
                 name="svc", blueprint="web-api")
        )
        assert code == 2
        assert not (tmp_path / "out").exists()

    @pytest.mark.unit
    def test_malformed_assignment(self, tmp_path):
        assert run(_new(tmp_path, "--set", "logger")) == 2

    @pytest.mark.unit
    def test_bad_hook_timeout(self, tmp_path):
        assert run(_new(tmp_path, "--hook-timeout", "0")) == 2

    @pytest.mark.unit
    def test_existing_project_refused(self, tmp_path):
        occupied = tmp_path / "out" / "my-lib"
        occupied.mkdir(parents=True)
        (occupied / "main.go").write_text("package main\n")
        assert run(_new(tmp_path, "--no-hooks")) == 5
        assert (occupied / "main.go").read_text() == "package main\n"


# ---------------------------------------------------------------------------
# Config files and profiles
# ---------------------------------------------------------------------------


class TestProfiles:
    @pytest.fixture
    def config_file(self, tmp_path) -> Path:
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps({"profiles": {"team": {"selections": {"logger": "zerolog"}, "variables": {"author": "Team"}}}})
        )
        return path

    @pytest.mark.unit
    def test_profile_defaults_apply(self, tmp_path, config_file):
        args = ["--config", str(config_file), *_new(tmp_path, "--profile", "team", "--no-hooks")]
        assert run(args) == 0
        assert "github.com/rs/zerolog" in (tmp_path / "out" / "my-lib" / "go.mod").read_text()

    @pytest.mark.unit
    def test_explicit_set_beats_profile(self, tmp_path, config_file):
        args = ["--config", str(config_file), *_new(tmp_path, "--profile", "team", "--set", "logger=zap", "--no-hooks")]
        assert run(args) == 0
        go_mod = (tmp_path / "out" / "my-lib" / "go.mod").read_text()
        assert "go.uber.org/zap" in go_mod
        assert "zerolog" not in go_mod

    @pytest.mark.unit
    def test_unknown_profile(self, tmp_path, config_file):
        assert run(["--config", str(config_file), *_new(tmp_path, "--profile", "solo")]) == 2

    @pytest.mark.unit
    def test_profile_keys_for_other_blueprints_are_ignored(self, tmp_path):
        config_file = tmp_path / "shared.json"
        config_file.write_text(
            json.dumps(
                {
                    "profiles": {
                        "team": {
                            "selections": {"framework": "gin", "logger": "zerolog"},
                            "variables": {"author": "Team", "port": "9000"},
                        }
                    }
                }
            )
        )
        args = [
            "--config", str(config_file),
            *_new(tmp_path, "--profile", "team", "--no-hooks", name="tool", blueprint="cli"),
        ]
        assert run(args) == 0
        assert "github.com/rs/zerolog" in (tmp_path / "out" / "tool" / "go.mod").read_text()

    @pytest.mark.unit
    def test_explicit_unknown_axis_still_rejected(self, tmp_path, config_file, capsys):
        args = [
            "--config", str(config_file),
            *_new(tmp_path, "--profile", "team", "--set", "framework=gin", "--no-hooks"),
        ]
        assert run(args) == 2
        assert "framework" in capsys.readouterr().out
        assert not (tmp_path / "out").exists()

    @pytest.mark.unit
    def test_environment_profile(self, tmp_path, config_file, monkeypatch):
        monkeypatch.setenv("FORGE_PROFILE", "team")
        assert run(["--config", str(config_file), *_new(tmp_path, "--no-hooks")]) == 0
        assert "zerolog" in (tmp_path / "out" / "my-lib" / "go.mod").read_text()


# ---------------------------------------------------------------------------
# Extra blueprint directories
# ---------------------------------------------------------------------------


class TestExtraBlueprints:
    @pytest.mark.unit
    def test_extra_blueprint_is_listed(self, blueprints_root, make_blueprint, blueprint_data, capsys):
        blueprint_data["id"] = "custom"
        make_blueprint(blueprint_data)
        assert run(["--blueprints", str(blueprints_root), "list"]) == 0
        assert "custom" in capsys.readouterr().out

    @pytest.mark.unit
    def test_duplicate_blueprint_id(self, blueprints_root, make_blueprint, blueprint_data):
        make_blueprint(blueprint_data)
        assert run(["--blueprints", str(blueprints_root), "list"]) == 7

    @pytest.mark.unit
    def test_required_hook_failure(
        self, tmp_path, blueprints_root, make_blueprint, blueprint_data, mock_subprocess, capsys
    ):
        blueprint_data["id"] = "custom"
        blueprint_data["hooks"] = [{"name": "build", "command": ["make"], "required": True}]
        make_blueprint(blueprint_data)

        proc = mock_subprocess(stderr="no rule", returncode=2)
        with patch("asyncio.create_subprocess_exec", return_value=proc):
            code = run(["--blueprints", str(blueprints_root), *_new(tmp_path, name="foo", blueprint="custom")])

        assert code == 6
        assert (tmp_path / "out" / "foo" / "README.md").is_file()
        assert "build" in capsys.readouterr().out
