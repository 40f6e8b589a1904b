"""Tests for settings loading and validation."""

import pytest

from workspace_snapshots.config import (
    SnapshotSettings,
    apply_env_overrides,
    load_settings,
)
from workspace_snapshots.constants import CONFIG_FILE, DEFAULT_EXCLUSIONS
from workspace_snapshots.errors import ConfigurationError
from workspace_snapshots.manager import SnapshotManager


class TestDefaults:

    def test_defaults(self):
        settings = SnapshotSettings()
        assert settings.storage.max_snapshots == 50
        assert settings.storage.max_memory_mb == 100
        assert settings.storage.cleanup_threshold == 0.8
        assert settings.file_handling.max_file_size == 10 * 1024 * 1024
        assert settings.file_handling.binary_file_handling == "exclude"
        assert settings.restoration.create_backup_by_default is True
        assert settings.restoration.rollback_on_failure_by_default is True
        assert settings.filters.default_exclusions == DEFAULT_EXCLUSIONS
        assert settings.filters.default_inclusions == []

    def test_camel_case_keys(self):
        """Keys from existing configuration files use camelCase."""
        settings = SnapshotSettings.from_mapping({
            "storage": {"maxSnapshots": 5, "maxMemoryMB": 20, "cleanupThreshold": 0.5},
            "fileHandling": {"maxFileSize": 4096, "binaryFileHandling": "include"},
            "restoration": {"createBackupByDefault": False},
            "filters": {"defaultInclusions": ["src/**"]},
        })
        assert settings.storage.max_snapshots == 5
        assert settings.storage.max_memory_mb == 20
        assert settings.storage.cleanup_threshold == 0.5
        assert settings.file_handling.max_file_size == 4096
        assert settings.file_handling.binary_file_handling == "include"
        assert settings.restoration.create_backup_by_default is False
        assert settings.filters.default_inclusions == ["src/**"]

    def test_snake_case_keys(self):
        settings = SnapshotSettings.from_mapping({"storage": {"max_snapshots": 3}})
        assert settings.storage.max_snapshots == 3

    def test_binary_extensions_normalized(self):
        settings = SnapshotSettings.from_mapping({"filters": {"binaryExtensions": [".PNG", " .Bin "]}})
        assert settings.filters.binary_extensions == [".png", ".bin"]


class TestValidation:
    """Invalid settings are rejected at construction."""

    @pytest.mark.parametrize("storage", [
        {"maxSnapshots": 0},
        {"maxMemoryMB": 0},
        {"cleanupThreshold": 0},
        {"cleanupThreshold": 1.5},
        {"cleanupStrategy": "largest_first"},
    ])
    def test_invalid_storage(self, storage):
        with pytest.raises(ConfigurationError) as exc_info:
            SnapshotSettings.from_mapping({"storage": storage})
        assert any("storage" in p for p in exc_info.value.problems)

    def test_threshold_of_one_is_valid(self):
        settings = SnapshotSettings.from_mapping({"storage": {"cleanupThreshold": 1}})
        assert settings.storage.cleanup_threshold == 1

    def test_max_file_size_floor(self):
        with pytest.raises(ConfigurationError):
            SnapshotSettings.from_mapping({"fileHandling": {"maxFileSize": 512}})

    def test_unknown_binary_handling(self):
        with pytest.raises(ConfigurationError):
            SnapshotSettings.from_mapping({"fileHandling": {"binaryFileHandling": "sometimes"}})

    def test_extension_without_dot(self):
        with pytest.raises(ConfigurationError):
            SnapshotSettings.from_mapping({"filters": {"binaryExtensions": ["png"]}})

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError):
            SnapshotSettings.from_mapping({"storage": {"maxSnapshot": 3}})

    def test_all_problems_reported(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SnapshotSettings.from_mapping({
                "storage": {"maxSnapshots": 0, "maxMemoryMB": -1},
            })
        assert len(exc_info.value.problems) == 2

    def test_manager_rejects_invalid_mapping(self, workspace_dir):
        with pytest.raises(ConfigurationError):
            SnapshotManager({"storage": {"maxSnapshots": 0}}, root=workspace_dir)


class TestEnvOverrides:

    def test_override_applied(self):
        data = apply_env_overrides({}, {"WSNAP_MAX_SNAPSHOTS": "7", "WSNAP_CLEANUP_THRESHOLD": "0.5"})
        settings = SnapshotSettings.from_mapping(data)
        assert settings.storage.max_snapshots == 7
        assert settings.storage.cleanup_threshold == 0.5

    def test_override_beats_camel_case_file_value(self):
        data = {"storage": {"maxSnapshots": 3}, "fileHandling": {"binaryFileHandling": "exclude"}}
        apply_env_overrides(data, {
            "WSNAP_MAX_SNAPSHOTS": "9",
            "WSNAP_BINARY_FILE_HANDLING": "include",
        })
        settings = SnapshotSettings.from_mapping(data)
        assert settings.storage.max_snapshots == 9
        assert settings.file_handling.binary_file_handling == "include"

    def test_unrelated_env_ignored(self):
        assert apply_env_overrides({}, {"HOME": "/root"}) == {}

    def test_invalid_override(self):
        with pytest.raises(ConfigurationError):
            load_settings(environ={"WSNAP_MAX_MEMORY_MB": "0"})


class TestLoadSettings:

    def test_no_file_gives_defaults(self, tmp_path):
        settings = load_settings(root=tmp_path, environ={})
        assert settings == SnapshotSettings()

    def test_workspace_file(self, tmp_path):
        (tmp_path / CONFIG_FILE).write_text(
            "storage:\n"
            "  maxSnapshots: 4\n"
            "fileHandling:\n"
            "  preservePermissions: false\n"
        )
        settings = load_settings(root=tmp_path, environ={})
        assert settings.storage.max_snapshots == 4
        assert settings.file_handling.preserve_permissions is False

    def test_nested_under_snapshots_key(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("snapshots:\n  storage:\n    maxSnapshots: 6\n")
        settings = load_settings(path=path, environ={})
        assert settings.storage.max_snapshots == 6

    def test_env_overrides_file(self, tmp_path):
        (tmp_path / CONFIG_FILE).write_text("storage:\n  maxSnapshots: 4\n")
        settings = load_settings(root=tmp_path, environ={"WSNAP_MAX_SNAPSHOTS": "8"})
        assert settings.storage.max_snapshots == 8

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_settings(path=tmp_path / "nope.yaml", environ={})

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("storage: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_settings(path=path, environ={})

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_settings(path=path, environ={})
