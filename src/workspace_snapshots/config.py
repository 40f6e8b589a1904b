"""Snapshot engine settings.

Settings are loaded from ``.wsnap.yaml`` in the workspace root (if present),
then overridden from ``WSNAP_*`` environment variables, then validated. Keys
may be written in snake_case or in camelCase (``maxSnapshots``, ``cleanupThreshold``, ...).
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .constants import (
    CONFIG_FILE,
    DEFAULT_BINARY_EXTENSIONS,
    DEFAULT_CLEANUP_THRESHOLD,
    DEFAULT_EXCLUSIONS,
    DEFAULT_MAX_FILE_SIZE,
    DEFAULT_MAX_MEMORY_MB,
    DEFAULT_MAX_SNAPSHOTS,
    DEFAULT_PREVIEW_THRESHOLD,
    ENV_OVERRIDES,
    MIN_MAX_FILE_SIZE,
)
from .errors import ConfigurationError


_SETTINGS_CONFIG = {"populate_by_name": True, "extra": "forbid"}


class StorageSettings(BaseModel):
    """Capacity bounds and eviction policy for the snapshot store."""

    model_config = _SETTINGS_CONFIG

    max_snapshots: int = Field(DEFAULT_MAX_SNAPSHOTS, ge=1, alias="maxSnapshots")
    max_memory_mb: int = Field(DEFAULT_MAX_MEMORY_MB, ge=1, alias="maxMemoryMB")
    cleanup_strategy: Literal["oldest_first"] = Field("oldest_first", alias="cleanupStrategy")
    # Fraction of capacity to evict down to once eviction is triggered
    cleanup_threshold: float = Field(DEFAULT_CLEANUP_THRESHOLD, gt=0, le=1, alias="cleanupThreshold")


class FileHandlingSettings(BaseModel):
    """How individual files are captured."""

    model_config = _SETTINGS_CONFIG

    max_file_size: int = Field(DEFAULT_MAX_FILE_SIZE, ge=MIN_MAX_FILE_SIZE, alias="maxFileSize")
    preserve_permissions: bool = Field(True, alias="preservePermissions")
    binary_file_handling: Literal["exclude", "include"] = Field("exclude", alias="binaryFileHandling")
    encoding: str = "utf-8"


class RestorationSettings(BaseModel):
    """Defaults applied to restore options the caller leaves unset."""

    model_config = _SETTINGS_CONFIG

    create_backup_by_default: bool = Field(True, alias="createBackupByDefault")
    overwrite_existing_by_default: bool = Field(True, alias="overwriteExistingByDefault")
    preserve_permissions_by_default: bool = Field(True, alias="preservePermissionsByDefault")
    rollback_on_failure_by_default: bool = Field(True, alias="rollbackOnFailureByDefault")
    # Presentation hint only; the engine never reads it
    preview_threshold: int = Field(DEFAULT_PREVIEW_THRESHOLD, ge=0, alias="previewThreshold")


class FilterSettings(BaseModel):
    """Gitignore-style patterns and binary extensions for the file filter."""

    model_config = _SETTINGS_CONFIG

    default_exclusions: List[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUSIONS), alias="defaultExclusions"
    )
    default_inclusions: List[str] = Field(default_factory=list, alias="defaultInclusions")
    binary_extensions: List[str] = Field(
        default_factory=lambda: list(DEFAULT_BINARY_EXTENSIONS), alias="binaryExtensions"
    )

    @field_validator("binary_extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        """Lower-case extensions and require the leading dot."""
        normalized = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext.startswith(".") or len(ext) < 2:
                raise ValueError(f"binary extension must start with '.': {ext!r}")
            normalized.append(ext)
        return normalized


class SnapshotSettings(BaseModel):
    """Complete, validated settings for one snapshot engine."""

    model_config = _SETTINGS_CONFIG

    storage: StorageSettings = Field(default_factory=StorageSettings)
    file_handling: FileHandlingSettings = Field(default_factory=FileHandlingSettings, alias="fileHandling")
    restoration: RestorationSettings = Field(default_factory=RestorationSettings)
    filters: FilterSettings = Field(default_factory=FilterSettings)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SnapshotSettings":
        """Validate a raw mapping, raising ConfigurationError on any problem."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise ConfigurationError(_describe_errors(e)) from e


def _describe_errors(error: ValidationError) -> List[str]:
    problems = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"])
        problems.append(f"{location}: {err['msg']}")
    return problems


def _parse_env_value(value: str) -> Union[bool, int, float, str]:
    """Parse environment variable value to appropriate type."""
    lowered = value.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def _set_nested(data: Dict[str, Any], dotted: str, value: Any) -> None:
    section, key = dotted.split(".", 1)
    section_field = SnapshotSettings.model_fields[section]
    # The section may already be spelled with its alias (fileHandling)
    if section_field.alias and section_field.alias in data:
        section = section_field.alias
    target = data.setdefault(section, {})
    if not isinstance(target, dict):
        raise ConfigurationError([f"{section}: expected a mapping, got {type(target).__name__}"])
    section_model = section_field.annotation
    alias = section_model.model_fields[key].alias
    # Drop the aliased spelling of the same key so the override wins
    if alias:
        target.pop(alias, None)
    target[key] = value


def apply_env_overrides(data: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Apply WSNAP_* environment overrides onto raw settings data."""
    environ = os.environ if environ is None else environ
    for env_var, dotted in ENV_OVERRIDES.items():
        if env_var in environ:
            _set_nested(data, dotted, _parse_env_value(environ[env_var]))
    return data


def load_settings(
    path: Optional[Path] = None,
    root: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SnapshotSettings:
    """Load settings from YAML plus environment overrides.

    Args:
        path: Explicit settings file. Must exist if given.
        root: Workspace root to look for ``.wsnap.yaml`` in when ``path`` is None
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Validated SnapshotSettings

    Raises:
        ConfigurationError: If the file cannot be parsed or any value is invalid
    """
    if path is None and root is not None:
        candidate = Path(root) / CONFIG_FILE
        if candidate.exists():
            path = candidate

    data: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigurationError([f"settings file not found: {path}"])
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError([f"{path}: {e}"]) from e
        if not isinstance(data, dict):
            raise ConfigurationError([f"{path}: top level must be a mapping"])
        # Accept both a bare document and one nested under "snapshots:"
        data = data.get("snapshots", data)

    apply_env_overrides(data, environ)
    return SnapshotSettings.from_mapping(data)
