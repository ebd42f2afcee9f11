"""Persisted project configuration (devloop.json)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from android_devloop.build.project import AndroidProject

logger = structlog.get_logger()

CONFIG_FILENAME = "devloop.json"


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class GradleTasksConfig(_ConfigModel):
    custom: list[str] = Field(default_factory=list)


class BuildCacheConfig(_ConfigModel):
    enabled: bool = True
    max_size: str = "1GB"


class LogcatConfig(_ConfigModel):
    clear_on_start: bool = True
    colorize: bool = True
    template: str | None = None


class DevloopConfig(_ConfigModel):
    """Schema of devloop.json; JSON keys are camelCase."""

    project_path: str = "."
    default_variant: str = "debug"
    terminal: str = "auto"
    gradle_tasks: GradleTasksConfig = Field(default_factory=GradleTasksConfig)
    build_cache: BuildCacheConfig = Field(default_factory=BuildCacheConfig)
    logcat: LogcatConfig = Field(default_factory=LogcatConfig)
    selected_device: str | None = None
    emulator_boot_attempts: int = Field(default=30, ge=1)
    emulator_poll_interval: float = Field(default=1.0, gt=0)


def merge_valid_fields(data: dict[str, Any]) -> DevloopConfig:
    """Keep each top-level field that validates on its own; default the rest."""
    valid: dict[str, Any] = {}
    for key, value in data.items():
        try:
            DevloopConfig.model_validate({key: value})
        except ValidationError:
            logger.warning("config_field_invalid", field=key)
            continue
        valid[key] = value
    return DevloopConfig.model_validate(valid)


class ConfigStore:
    """Loads and persists devloop.json for one project root.

    Single writer: every persist call rewrites the whole file.
    """

    def __init__(self, project_root: Path) -> None:
        self.project_root = project_root
        self.path = project_root / CONFIG_FILENAME
        self.config = DevloopConfig()

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> DevloopConfig:
        """Load config; fall back to defaults merged with any valid fields."""
        if not self.path.exists():
            logger.debug("config_missing", path=str(self.path))
            self.config = DevloopConfig()
            self._autodetect()
            return self.config

        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("config_unreadable", path=str(self.path), error=str(exc))
            self.config = DevloopConfig()
            return self.config

        if not isinstance(data, dict):
            logger.warning("config_not_object", path=str(self.path))
            self.config = DevloopConfig()
            return self.config

        try:
            self.config = DevloopConfig.model_validate(data)
        except ValidationError as exc:
            logger.warning("config_invalid", path=str(self.path), errors=exc.error_count())
            self.config = merge_valid_fields(data)
        logger.debug("config_loaded", path=str(self.path))
        return self.config

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = self.config.model_dump(by_alias=True, exclude_none=True)
        self.path.write_text(json.dumps(payload, indent=2) + "\n")
        logger.debug("config_saved", path=str(self.path))

    def reset(self) -> DevloopConfig:
        """Replace the in-memory config with auto-detected defaults; call save() to keep it."""
        self.config = DevloopConfig()
        self._autodetect()
        logger.info("config_reset", path=str(self.path))
        return self.config

    def project_dir(self) -> Path:
        return (self.project_root / self.config.project_path).resolve()

    def persist_selected_variant(self, variant: str) -> None:
        self.config.default_variant = variant
        self.save()
        logger.info("default_variant_saved", variant=variant)

    def persist_selected_device(self, serial: str) -> None:
        self.config.selected_device = serial
        self.save()
        logger.info("selected_device_saved", serial=serial)

    def _autodetect(self) -> None:
        project = AndroidProject.detect(self.project_root)
        if project is None:
            return
        try:
            relative = project.root.relative_to(self.project_root.resolve())
        except ValueError:
            relative = project.root
        self.config.project_path = str(relative) or "."
        variants = project.build_variants
        if "debug" in variants:
            self.config.default_variant = "debug"
        elif variants:
            self.config.default_variant = variants[0]
        logger.info("config_autodetected", project=str(project.root))
