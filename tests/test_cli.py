"""Tests for the typer CLI."""

import json

import pytest
from typer.testing import CliRunner

from mpm import __version__
from mpm.cli import helpers
from mpm.cli.main import app
from mpm.config.settings import Settings
from mpm.runtime import Runtime

runner = CliRunner()


@pytest.fixture
def cli(vault_workspace, monkeypatch):
    """Point the CLI at the test workspace."""
    ws = vault_workspace
    settings = Settings(root_dir=ws.root, plugins_dir=ws.plugins_dir, log_level="ERROR")
    runtime = Runtime(
        settings=settings,
        downloader=ws.downloader,
        engine=ws.engine,
        adoption=ws.adoption,
    )
    monkeypatch.setattr(helpers, "load_settings", lambda: settings)
    monkeypatch.setattr(helpers, "get_runtime", lambda: runtime)
    return ws


class TestGlobalOptions:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "install" in result.output


class TestManageCommands:
    def test_init(self, cli):
        result = runner.invoke(app, ["init", "lobby"])
        assert result.exit_code == 0
        assert "Created" in result.output
        assert cli.read_manifest() == {"name": "lobby", "plugins": {}}

    def test_init_twice_fails(self, cli):
        runner.invoke(app, ["init"])
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_missing_manifest(self, cli):
        result = runner.invoke(app, ["install"])
        assert result.exit_code == 1
        assert "mpm init" in result.output

    def test_add_then_install(self, cli):
        cli.write_manifest({})

        added = runner.invoke(app, ["add", "Vault", "--version", "1.0"])
        assert added.exit_code == 0
        assert "Added" in added.output
        assert cli.read_manifest()["plugins"] == {"Vault": "1.0"}

        installed = runner.invoke(app, ["install"])
        assert installed.exit_code == 0
        assert "Installed" in installed.output
        assert (cli.plugins_dir / "Vault-1.0.jar").is_file()

        again = runner.invoke(app, ["install"])
        assert "Everything is up to date" in again.output

    def test_install_failure_exits_nonzero(self, cli):
        cli.write_manifest({"Vault": "latest"})
        cli.downloader.failing.add("MilkBowl/Vault")

        result = runner.invoke(app, ["install"])

        assert result.exit_code == 1
        assert "Failed" in result.output

    def test_adopt_dry_run(self, cli):
        cli.write_manifest({})
        cli.install_by_hand("Vault.jar", "Vault", "1.0")
        cli.install_by_hand("Mystery.jar", "Mystery", "0.1")

        result = runner.invoke(app, ["adopt", "--dry-run"])

        assert result.exit_code == 0
        assert "Adoptable (1):" in result.output
        assert "Vault" in result.output
        assert "Mystery" in result.output
        assert cli.downloader.calls == []

    def test_adopt(self, cli):
        cli.write_manifest({})
        cli.install_by_hand("Vault.jar", "Vault", "1.0")

        result = runner.invoke(app, ["adopt"])

        assert result.exit_code == 0
        assert "1 plugin(s) adopted" in result.output
        assert cli.read_manifest()["plugins"] == {"Vault": "latest"}


class TestInfoCommands:
    def test_list_empty(self, cli):
        cli.write_manifest({})
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "No managed plugins" in result.output

    def test_list_json(self, cli):
        cli.write_manifest({"Vault": "latest"})
        runner.invoke(app, ["install"])

        result = runner.invoke(app, ["list", "--json"])

        assert result.exit_code == 0
        records = json.loads(result.output)
        assert records[0]["plugin_info"]["name"] == "Vault"

    def test_versions_limit(self, cli):
        cli.write_manifest({})
        cli.downloader.publish("MilkBowl/Vault", "Vault", "1.3", "1.2", "1.1", "1.0")

        result = runner.invoke(app, ["versions", "Vault", "--limit", "2"])

        assert result.exit_code == 0
        assert "(4 versions)" in result.output
        assert "1.3" in result.output
        assert "1.1" not in result.output
        assert "and 2 more" in result.output

    def test_outdated(self, cli):
        cli.write_manifest({"Vault": "1.0"})
        runner.invoke(app, ["install"])

        result = runner.invoke(app, ["outdated"])

        assert result.exit_code == 0
        assert "Outdated Plugins" in result.output
        assert "1.1" in result.output
