"""Unit tests for the command-line entry point."""

from __future__ import annotations

from pathlib import Path

import pytest

from davit.core.decorators import Command
from davit.main import main


@pytest.fixture
def config_file(tmp_path: Path, staging_root: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(
        "[defaults]\n"
        "interactive = false\n"
        "\n"
        "[[environments]]\n"
        'name = "staging"\n'
        f'yaml_root_dir = "{staging_root.as_posix()}"\n'
        'cluster_context = "gke_staging"\n'
    )
    monkeypatch.setenv("DAVIT_CONFIG", str(path))
    return path


class TestCommands:
    def test_commands_registered(self) -> None:
        assert Command.get_command("deploy") is not None
        assert Command.get_command("d") is Command.get_command("deploy")
        assert Command.get_command("config") is not None

    def test_deploy_flags(self) -> None:
        args = Command.parse_args(["deploy", "-e", "staging", "-s", "pay", "-t", "v1",
                                   "--dry-run", "--timeout", "60", "--yes", "--no-logs"])

        assert (args.env, args.service, args.tag) == ("staging", "pay", "v1")
        assert args.dry_run and args.yes and args.no_logs
        assert args.timeout == 60.0
        assert not args.full_diff


class TestMain:
    """Tests for exit codes reported by main()."""

    def test_config_path(self, config_file: Path, capsys) -> None:
        main(["config", "path"])

        assert capsys.readouterr().out.strip() == str(config_file)

    def test_config_show(self, config_file: Path, capsys) -> None:
        main(["--no-color", "config", "show"])

        out = capsys.readouterr().out
        assert "staging" in out
        assert "gke_staging" in out

    def test_missing_config_exits_two(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DAVIT_CONFIG", str(tmp_path / "missing.toml"))

        with pytest.raises(SystemExit) as exc_info:
            main(["deploy", "-e", "staging", "-s", "payment-service", "-t", "v1"])

        assert exc_info.value.code == 2

    def test_non_positive_timeout(self, config_file: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["deploy", "--timeout", "0"])

        assert exc_info.value.code == 2

    def test_ambiguous_non_interactive_exits_one(self, config_file: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["deploy", "-e", "staging", "-s", "service", "-t", "v1"])

        assert exc_info.value.code == 1
