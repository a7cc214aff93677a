"""Tests for artifact inspection."""

import zipfile

import yaml

from conftest import write_jar
from mpm.plugins.artifacts import ArtifactInspector, name_from_file


class TestNameFromFile:
    def test_strips_version_suffix(self, tmp_path):
        assert name_from_file(tmp_path / "Vault-1.7.3.jar") == "Vault"
        assert name_from_file(tmp_path / "LuckPerms-Bukkit-5.4.102.jar") == "LuckPerms-Bukkit"
        assert name_from_file(tmp_path / "worldedit_v7.3.0.jar") == "worldedit"

    def test_plain_name(self, tmp_path):
        assert name_from_file(tmp_path / "Essentials.jar") == "Essentials"


class TestArtifactInspector:
    def test_installed_plugins_use_declared_names(self, tmp_path):
        write_jar(tmp_path / "EssentialsX-2.20.1.jar", "Essentials", "2.20.1")
        write_jar(tmp_path / "vault.jar", "Vault", "1.7.3")
        (tmp_path / "notes.txt").write_text("not a plugin")

        installed = ArtifactInspector(tmp_path).installed_plugins()
        assert installed == {
            "Essentials": tmp_path / "EssentialsX-2.20.1.jar",
            "Vault": tmp_path / "vault.jar",
        }

    def test_unreadable_jar_falls_back_to_file_name(self, tmp_path):
        (tmp_path / "Broken-1.0.jar").write_bytes(b"not a zip")
        assert ArtifactInspector(tmp_path).installed_plugins() == {
            "Broken": tmp_path / "Broken-1.0.jar"
        }

    def test_missing_directory(self, tmp_path):
        assert ArtifactInspector(tmp_path / "missing").installed_plugins() == {}

    def test_read_descriptor_dependencies(self, tmp_path):
        path = write_jar(
            tmp_path / "Essentials.jar",
            "Essentials",
            "2.20.1",
            depend=["Vault"],
            softdepend=["LuckPerms"],
        )
        descriptor = ArtifactInspector(tmp_path).read_descriptor(path)
        assert descriptor.name == "Essentials"
        assert descriptor.version == "2.20.1"
        assert descriptor.depend == ["Vault"]
        assert descriptor.softdepend == ["LuckPerms"]

    def test_single_string_dependency(self, tmp_path):
        path = tmp_path / "Chat.jar"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("plugin.yml", "name: Chat\nversion: 1.0\ndepend: Vault\n")
        descriptor = ArtifactInspector(tmp_path).read_descriptor(path)
        assert descriptor.depend == ["Vault"]
        assert descriptor.version == "1.0"

    def test_paper_plugin_descriptor(self, tmp_path):
        path = tmp_path / "Modern.jar"
        data = {
            "name": "Modern",
            "version": "3.0",
            "dependencies": {
                "server": {
                    "Vault": {"load": "BEFORE", "required": True},
                    "PlaceholderAPI": {"load": "BEFORE", "required": False},
                }
            },
        }
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("paper-plugin.yml", yaml.safe_dump(data))

        descriptor = ArtifactInspector(tmp_path).read_descriptor(path)
        assert descriptor.name == "Modern"
        assert descriptor.depend == ["Vault"]
        assert descriptor.softdepend == ["PlaceholderAPI"]
