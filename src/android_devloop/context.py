"""Explicit collaborator bundle passed to build cycles and commands."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog

from android_devloop.build.gradle import GradleExecutor
from android_devloop.build.project import AndroidProject
from android_devloop.config.settings import ConfigStore
from android_devloop.device.provisioner import DeviceProvisioner, Sleep
from android_devloop.device.registry import AdbDeviceRegistry
from android_devloop.errors import project_not_detected_error
from android_devloop.install.recovery import InstallRecoveryCoordinator
from android_devloop.logs import LogViewer
from android_devloop.prompts import ConsolePrompter, NonInteractivePrompter

if TYPE_CHECKING:
    from android_devloop.build.gradle import BuildExecutor
    from android_devloop.device.registry import DeviceRegistry
    from android_devloop.prompts import Prompter

logger = structlog.get_logger()


class LogOpener(Protocol):
    async def open_logs(self, serial: str, package: str | None) -> bool: ...


@dataclass
class DevloopContext:
    """Everything a build cycle needs, with no process-wide state."""

    project: AndroidProject
    config_store: ConfigStore
    registry: DeviceRegistry
    builder: BuildExecutor
    prompter: Prompter
    log_viewer: LogOpener | None = None
    sleep: Sleep = field(default=asyncio.sleep)

    @classmethod
    def create(cls, project_root: Path, interactive: bool = True) -> DevloopContext:
        """Load config, detect the project and wire the adb/gradle backends.

        Raises:
            DevloopError: If no Android project is found
        """
        store = ConfigStore(project_root)
        config = store.load()
        project = AndroidProject.detect(store.project_dir())
        if project is None:
            raise project_not_detected_error(str(store.project_dir()))
        logger.info("project_detected", package=project.package_name, root=str(project.root))

        return cls(
            project=project,
            config_store=store,
            registry=AdbDeviceRegistry(),
            builder=GradleExecutor(project, build_cache=config.build_cache.enabled),
            prompter=ConsolePrompter() if interactive else NonInteractivePrompter(),
            log_viewer=LogViewer(
                terminal=config.terminal,
                clear_on_start=config.logcat.clear_on_start,
                colorize=config.logcat.colorize,
                template=config.logcat.template,
                cwd=str(project.root),
            ),
        )

    @property
    def interactive(self) -> bool:
        return self.prompter.interactive

    def provisioner(self) -> DeviceProvisioner:
        config = self.config_store.config
        return DeviceProvisioner(
            self.registry,
            self.prompter,
            attempts=config.emulator_boot_attempts,
            poll_interval=config.emulator_poll_interval,
            sleep=self.sleep,
            persist_device=self.config_store.persist_selected_device,
        )

    def recovery(self) -> InstallRecoveryCoordinator:
        return InstallRecoveryCoordinator(self.registry, self.prompter)
