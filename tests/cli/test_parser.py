"""
Tests for CLI argument parser.
"""

import pytest

from tests.fixtures.store import (
    FakeInstaller,
    FakeRegistry,
    failing_installer,
    make_metadata,
)
from tsstore.cli import parser as cli_parser
from tsstore.cli.parser import CLI, EXIT_FAILURE, EXIT_OK
from tsstore.core.exceptions import RegistryError
from tsstore.store.service import StoreService


@pytest.fixture
def fakes(monkeypatch):
    """Route the CLI's StoreService through fake collaborators."""
    state = {
        "registry": FakeRegistry(make_metadata()),
        "installer": FakeInstaller(),
    }

    def build(environment, sink=None):
        return StoreService(
            environment,
            sink=sink,
            registry=state["registry"],
            installer=state["installer"],
            lock_poll_interval=0.05,
        )

    monkeypatch.setattr(cli_parser, "StoreService", build)
    return state


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_no_command_shows_help(self, capsys):
        """Test that running without command shows help."""
        result = CLI().run([])

        assert result == EXIT_FAILURE
        assert "usage:" in capsys.readouterr().out.lower()

    def test_version_flag(self, capsys):
        """Test --version flag."""
        with pytest.raises(SystemExit) as exc_info:
            CLI().run(["--version"])

        assert exc_info.value.code == 0
        assert "tsstore" in capsys.readouterr().out

    def test_parse_install(self, tmp_path):
        args = CLI().parse_args(["--store-path", str(tmp_path), "install", "5.4", "latest"])

        assert args.command == "install"
        assert args.tags == ["5.4", "latest"]
        assert args.store_path == tmp_path

    def test_install_requires_tag(self):
        with pytest.raises(SystemExit):
            CLI().parse_args(["install"])

    def test_missing_config_file(self, tmp_path):
        result = CLI().run(["--config", str(tmp_path / "missing.yaml"), "list"])

        assert result == EXIT_FAILURE


class TestCommands:
    """Test command execution against a fake registry and installer."""

    def test_resolve(self, fakes, tmp_path, capsys):
        result = CLI().run(["--store-path", str(tmp_path / "store"), "resolve", "5.3"])

        assert result == EXIT_OK
        assert capsys.readouterr().out.strip() == "5.3.3"

    def test_resolve_unknown_tag(self, fakes, tmp_path):
        result = CLI().run(["--store-path", str(tmp_path / "store"), "resolve", "insiders"])

        assert result == EXIT_FAILURE

    def test_list(self, fakes, tmp_path, capsys):
        result = CLI().run(["--store-path", str(tmp_path / "store"), "list"])

        assert result == EXIT_OK
        tags = capsys.readouterr().out.split()
        assert "latest" in tags
        assert "5.2.0" in tags

    def test_install(self, fakes, tmp_path, capsys):
        store_path = tmp_path / "store"

        result = CLI().run(["--store-path", str(store_path), "install", "5.4", "5.2.0"])

        assert result == EXIT_OK
        assert fakes["installer"].calls == ["5.4.5", "5.2.0"]
        out = capsys.readouterr().out
        assert "5.4: " in out
        assert "tsserverlibrary.js" in out

    def test_install_failure_exit_code(self, fakes, tmp_path):
        fakes["installer"] = failing_installer()

        result = CLI().run(["--store-path", str(tmp_path / "store"), "install", "latest"])

        assert result == EXIT_FAILURE

    def test_registry_offline(self, fakes, tmp_path):
        fakes["registry"] = FakeRegistry(error=RegistryError("offline"))

        result = CLI().run(["--store-path", str(tmp_path / "store"), "list"])

        assert result == EXIT_FAILURE

    def test_prune(self, fakes, tmp_path):
        store_path = tmp_path / "store"
        (store_path / "5.4.5").mkdir(parents=True)

        result = CLI().run(["--store-path", str(store_path), "prune"])

        assert result == EXIT_OK
        assert not store_path.exists()

    def test_prune_failure_exit_code(self, fakes, tmp_path):
        store_path = tmp_path / "store"
        store_path.write_text("not a directory")

        result = CLI().run(["--store-path", str(store_path), "prune"])

        assert result == EXIT_FAILURE
