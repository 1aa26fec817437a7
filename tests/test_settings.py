"""Tests for SettingsService and the service container."""

import json

from userscripts import dependencies
from userscripts.config import BuildChannel, SettingsService


class TestSettingsService:
    """Tests for SettingsService."""

    def test_defaults(self, tmp_path):
        settings = SettingsService(tmp_path / "settings.json")
        assert settings.build_channel == BuildChannel.RELEASE
        assert settings.external_folder is None
        assert settings.scripts_enabled is False

    def test_persists_changes(self, tmp_path):
        settings_file = tmp_path / "settings.json"
        settings = SettingsService(settings_file)
        settings.build_channel = BuildChannel.BETA
        settings.external_folder = tmp_path
        settings.scripts_enabled = True

        reloaded = SettingsService(settings_file)
        assert reloaded.build_channel == BuildChannel.BETA
        assert reloaded.external_folder == tmp_path
        assert reloaded.scripts_enabled is True

        settings.external_folder = None
        reloaded.reload()
        assert reloaded.external_folder is None

    def test_unknown_channel_falls_back_to_release(self, tmp_path):
        settings_file = tmp_path / "settings.json"
        settings_file.write_text(json.dumps({"build_channel": "nightly"}))
        assert SettingsService(settings_file).build_channel == BuildChannel.RELEASE

    def test_corrupt_file_uses_defaults(self, tmp_path):
        settings_file = tmp_path / "settings.json"
        settings_file.write_text("{")
        assert SettingsService(settings_file).build_channel == BuildChannel.RELEASE


class TestDependencies:
    """Tests for the service container."""

    def test_singletons_and_reset(self):
        dependencies.reset_services()
        try:
            assert dependencies.get_settings_service() is dependencies.get_settings_service()
            assert dependencies.get_catalog_store() is dependencies.get_catalog_store()
            orchestrator = dependencies.get_orchestrator()
            assert orchestrator.store is dependencies.get_catalog_store()
            assert orchestrator.settings is dependencies.get_settings_service()
        finally:
            dependencies.reset_services()
