"""Tests for adoption of hand-installed plugins."""

import pytest

from mpm.plugins.models import AdoptPlan, AdoptResult


@pytest.fixture
def essentials_workspace(vault_workspace):
    """Essentials installed by hand, with descriptors for Essentials, Vault and LuckPerms."""
    ws = vault_workspace
    ws.add_repository("Essentials", "modrinth", "essentialsx")
    ws.add_repository("LuckPerms", "modrinth", "luckperms")
    ws.downloader.publish("essentialsx", "Essentials", "2.20.1")
    ws.downloader.publish("luckperms", "LuckPerms", "5.4.102")
    ws.install_by_hand(
        "EssentialsX-2.19.0.jar",
        "Essentials",
        "2.19.0",
        depend=["Vault"],
        softdepend=["LuckPerms", "WorldGuard"],
    )
    ws.write_manifest({})
    return ws


class TestDryRun:
    @pytest.mark.asyncio
    async def test_partition_covers_every_unmanaged_name(self, essentials_workspace):
        ws = essentials_workspace
        ws.write_manifest({"Vault": "unmanaged", "Legacy": "unmanaged"})
        ws.install_by_hand("Mystery-0.1.jar", "Mystery", "0.1")

        outcome = await ws.adoption.adopt(dry_run=True)

        plan = outcome.value
        assert isinstance(plan, AdoptPlan)
        unmanaged = set((await ws.engine.unmanaged_plugins()).value)
        assert set(plan.matched) | set(plan.skipped) == unmanaged
        assert not set(plan.matched) & set(plan.skipped)
        assert sorted(plan.matched) == ["Essentials", "Vault"]
        assert sorted(plan.skipped) == ["Legacy", "Mystery"]

    @pytest.mark.asyncio
    async def test_dry_run_touches_nothing(self, essentials_workspace):
        ws = essentials_workspace

        await ws.adoption.adopt(include_soft_dependencies=True, dry_run=True)

        assert ws.downloader.calls == []
        assert ws.read_manifest()["plugins"] == {}
        assert (ws.plugins_dir / "EssentialsX-2.19.0.jar").is_file()

    @pytest.mark.asyncio
    async def test_case_insensitive_match(self, vault_workspace):
        ws = vault_workspace
        ws.install_by_hand("vault.jar", "vault", "1.0")
        ws.write_manifest({})

        plan = (await ws.adoption.adopt(dry_run=True)).value

        assert plan.matched == ["vault"]


class TestAdopt:
    @pytest.mark.asyncio
    async def test_adopt_essentials(self, essentials_workspace):
        ws = essentials_workspace

        outcome = await ws.adoption.adopt()

        result = outcome.value
        assert isinstance(result, AdoptResult)
        assert result.is_success
        assert result.total_adopted == 1
        added = result.adopted_plugins[0]
        assert added.install_result.installed.name == "Essentials"
        assert added.install_result.installed.current_version == "2.20.1"
        assert not added.is_dependency
        assert "Essentials" not in result.skipped_plugins

        assert ws.read_manifest()["plugins"] == {"Essentials": "latest"}
        assert not (ws.plugins_dir / "EssentialsX-2.19.0.jar").exists()
        assert (ws.plugins_dir / "Essentials-2.20.1.jar").is_file()
        removed = added.install_result.removed
        assert removed.file_name == "EssentialsX-2.19.0.jar"
        assert removed.version == "2.19.0"

        history = ws.read_metadata("Essentials")["mpm_info"]["history"]
        assert [h["action"] for h in history] == ["adopt"]

    @pytest.mark.asyncio
    async def test_adopted_plugin_is_up_to_date_afterwards(self, essentials_workspace):
        ws = essentials_workspace
        await ws.adoption.adopt()

        assert (await ws.engine.plan()).value == []

    @pytest.mark.asyncio
    async def test_dependencies_followed_with_soft_flag(self, essentials_workspace):
        ws = essentials_workspace

        result = (await ws.adoption.adopt(include_soft_dependencies=True)).value

        adopted = {a.install_result.installed.name: a.is_dependency for a in result.adopted_plugins}
        assert adopted == {"Essentials": False, "Vault": True, "LuckPerms": True}
        assert result.not_found_dependencies == ["WorldGuard"]
        assert result.is_success
        assert set(ws.read_manifest()["plugins"]) == {"Essentials", "Vault", "LuckPerms"}
        assert (ws.plugins_dir / "Vault-1.1.jar").is_file()

    @pytest.mark.asyncio
    async def test_dependencies_of_downloaded_artifacts_are_followed(self, essentials_workspace):
        """Essentials -> Vault -> LuckPerms -> Essentials, where only Essentials was hand-installed."""
        ws = essentials_workspace
        ws.install_by_hand("EssentialsX-2.19.0.jar", "Essentials", "2.19.0", depend=["Vault"])
        ws.downloader.publish("MilkBowl/Vault", "Vault", "1.1", "1.0", depend=["LuckPerms"])
        ws.downloader.publish("luckperms", "LuckPerms", "5.4.102", depend=["Essentials"])

        result = (await ws.adoption.adopt(include_soft_dependencies=True)).value

        adopted = {a.install_result.installed.name: a.is_dependency for a in result.adopted_plugins}
        assert adopted == {"Essentials": False, "Vault": True, "LuckPerms": True}
        assert result.not_found_dependencies == []
        assert result.is_success
        assert set(ws.read_manifest()["plugins"]) == {"Essentials", "Vault", "LuckPerms"}
        assert (ws.plugins_dir / "LuckPerms-5.4.102.jar").is_file()

    @pytest.mark.asyncio
    async def test_unknown_dependency_of_downloaded_artifact(self, essentials_workspace):
        ws = essentials_workspace
        ws.install_by_hand("EssentialsX-2.19.0.jar", "Essentials", "2.19.0", depend=["Vault"])
        ws.downloader.publish("MilkBowl/Vault", "Vault", "1.1", "1.0", depend=["Economy"])

        result = (await ws.adoption.adopt(include_soft_dependencies=True)).value

        assert result.not_found_dependencies == ["Economy"]
        assert result.is_success

    @pytest.mark.asyncio
    async def test_dependencies_ignored_without_soft_flag(self, essentials_workspace):
        ws = essentials_workspace

        result = (await ws.adoption.adopt()).value

        assert [a.install_result.installed.name for a in result.adopted_plugins] == ["Essentials"]
        assert result.not_found_dependencies == []

    @pytest.mark.asyncio
    async def test_managed_dependency_is_not_adopted_again(self, essentials_workspace):
        ws = essentials_workspace
        ws.write_manifest({"Vault": "1.0"})
        await ws.engine.install_all()

        result = (await ws.adoption.adopt(include_soft_dependencies=True)).value

        names = [a.install_result.installed.name for a in result.adopted_plugins]
        assert "Vault" not in names
        assert ws.read_manifest()["plugins"]["Vault"] == "1.0"

    @pytest.mark.asyncio
    async def test_unmatched_names_are_skipped(self, essentials_workspace):
        ws = essentials_workspace
        ws.install_by_hand("Mystery-0.1.jar", "Mystery", "0.1")

        result = (await ws.adoption.adopt()).value

        assert result.skipped_plugins == ["Mystery"]
        assert result.is_success
        assert (ws.plugins_dir / "Mystery-0.1.jar").is_file()

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, essentials_workspace):
        ws = essentials_workspace
        ws.install_by_hand("Vault.jar", "Vault", "1.0")
        ws.downloader.failing.add("essentialsx")

        result = (await ws.adoption.adopt()).value

        assert list(result.failed_plugins) == ["Essentials"]
        assert not result.is_success
        assert [a.install_result.installed.name for a in result.adopted_plugins] == ["Vault"]
        assert (ws.plugins_dir / "EssentialsX-2.19.0.jar").is_file()
        assert "Essentials" not in ws.read_manifest()["plugins"]

    @pytest.mark.asyncio
    async def test_config_missing(self, vault_workspace):
        outcome = await vault_workspace.adoption.adopt(dry_run=True)
        assert outcome.code == "CONFIG_MISSING"
