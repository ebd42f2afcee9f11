"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import structlog

from android_devloop.build.gradle import BuildOutcome
from android_devloop.build.project import AndroidProject
from android_devloop.config.settings import ConfigStore
from android_devloop.context import DevloopContext
from android_devloop.device.models import Device, DeviceKind, DeviceState, EmulatorImage, StorageInfo
from android_devloop.install.classifier import InstallOutcome

PACKAGE = "com.example.app"
APK = "/work/app/build/outputs/apk/debug/app-debug.apk"


def build_device(
    serial: str,
    state: DeviceState = DeviceState.READY,
    kind: DeviceKind | None = None,
    api_level: int | None = 34,
) -> Device:
    if kind is None:
        kind = DeviceKind.EMULATOR if serial.startswith("emulator-") else DeviceKind.PHYSICAL
    return Device(
        serial=serial,
        name=f"Device {serial}",
        state=state,
        kind=kind,
        api_level=api_level,
        model=None,
    )


class FakeRegistry:
    """In-memory DeviceRegistry that records every call."""

    def __init__(
        self,
        devices: list[Device] | None = None,
        images: list[str] | None = None,
        emulator_available: bool = True,
        boot_ok: bool = True,
        booted_devices: list[Device] | None = None,
        ready_after_polls: int = 1,
        install_results: list[InstallOutcome] | None = None,
        uninstall_ok: bool = True,
        clear_ok: bool = True,
        launch_ok: bool = True,
        storage: StorageInfo | None = None,
    ) -> None:
        self.devices = list(devices or [])
        self.images = [EmulatorImage.from_avd_name(name) for name in images or []]
        self._emulator_available = emulator_available
        self.boot_ok = boot_ok
        self.booted_devices = booted_devices
        self.ready_after_polls = ready_after_polls
        self.install_results = list(install_results or [])
        self.uninstall_ok = uninstall_ok
        self.clear_ok = clear_ok
        self.launch_ok = launch_ok
        self.storage = storage

        self.list_calls = 0
        self.booted: list[str] = []
        self.installs: list[tuple[str, str]] = []
        self.uninstalls: list[tuple[str, str]] = []
        self.clears: list[tuple[str, str]] = []
        self.launches: list[tuple[str, str]] = []
        self._polls_since_boot = 0

    async def list_devices(self) -> list[Device]:
        self.list_calls += 1
        if self.booted and self.booted_devices is not None:
            self._polls_since_boot += 1
            if self._polls_since_boot >= self.ready_after_polls:
                self.devices = list(self.booted_devices)
        return list(self.devices)

    async def emulator_available(self) -> bool:
        return self._emulator_available

    async def list_emulator_images(self) -> list[EmulatorImage]:
        return list(self.images)

    async def boot_emulator(self, name: str) -> bool:
        self.booted.append(name)
        return self.boot_ok

    async def install(self, serial: str, artifact_path: str) -> InstallOutcome:
        self.installs.append((serial, artifact_path))
        if self.install_results:
            return self.install_results.pop(0)
        return InstallOutcome(success=True)

    async def uninstall(self, serial: str, package: str) -> bool:
        self.uninstalls.append((serial, package))
        return self.uninstall_ok

    async def clear_app_data(self, serial: str, package: str) -> bool:
        self.clears.append((serial, package))
        return self.clear_ok

    async def get_storage_info(self, serial: str) -> StorageInfo | None:
        return self.storage

    async def launch(self, serial: str, package: str) -> bool:
        self.launches.append((serial, package))
        return self.launch_ok


class ScriptedPrompter:
    """Prompter answering from a script; an unexpected prompt fails the test.

    A script entry that is an exception instance is raised instead of returned.
    """

    def __init__(
        self,
        choices: list[Any] | None = None,
        confirms: list[Any] | None = None,
        interactive: bool = True,
    ) -> None:
        self.choices = list(choices or [])
        self.confirms = list(confirms or [])
        self._interactive = interactive
        self.prompts: list[str] = []

    @property
    def interactive(self) -> bool:
        return self._interactive

    def choose(self, message: str, options: Any, default: Any = None) -> Any:
        self.prompts.append(message)
        if not self.choices:
            raise AssertionError(f"unexpected prompt: {message}")
        answer = self.choices.pop(0)
        if isinstance(answer, BaseException):
            raise answer
        assert answer in [option.value for option in options], f"{answer!r} not offered"
        return answer

    def confirm(self, message: str, default: bool = True) -> bool:
        self.prompts.append(message)
        if not self.confirms:
            raise AssertionError(f"unexpected confirm: {message}")
        answer = self.confirms.pop(0)
        if isinstance(answer, BaseException):
            raise answer
        return bool(answer)


class FakeBuilder:
    """BuildExecutor returning scripted outcomes; succeeds by default."""

    def __init__(self, outcomes: list[BuildOutcome] | None = None) -> None:
        self.outcomes = list(outcomes or [])
        self.variants: list[str] = []

    async def build(self, variant: str) -> BuildOutcome:
        self.variants.append(variant)
        if self.outcomes:
            return self.outcomes.pop(0)
        return BuildOutcome(success=True, duration_s=1.5, artifact_path=APK)


class FakeLogViewer:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.opened: list[tuple[str, str | None]] = []

    async def open_logs(self, serial: str, package: str | None) -> bool:
        self.opened.append((serial, package))
        return self.ok


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture(autouse=True)
def reset_logging() -> Any:
    """CLI runs point structlog at a stream that closes with the runner."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def make_device() -> Callable[..., Device]:
    """Factory for Device descriptors."""
    return build_device


@pytest.fixture
def make_registry() -> type[FakeRegistry]:
    return FakeRegistry


@pytest.fixture
def make_prompter() -> type[ScriptedPrompter]:
    return ScriptedPrompter


@pytest.fixture
def make_builder() -> type[FakeBuilder]:
    return FakeBuilder


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def project(tmp_path: Path) -> AndroidProject:
    """A detected project with the default variants."""
    return AndroidProject(
        root=tmp_path,
        app_dir=tmp_path / "app",
        package_name=PACKAGE,
        build_variants=["debug", "release"],
        has_gradle_wrapper=True,
    )


@pytest.fixture
def config_store(tmp_path: Path) -> ConfigStore:
    return ConfigStore(tmp_path)


@pytest.fixture
def make_context(
    project: AndroidProject,
    config_store: ConfigStore,
    sleep_recorder: SleepRecorder,
) -> Callable[..., DevloopContext]:
    """Factory wiring fakes into a DevloopContext."""

    def _make(
        registry: FakeRegistry | None = None,
        prompter: ScriptedPrompter | None = None,
        builder: FakeBuilder | None = None,
        log_viewer: FakeLogViewer | None = None,
    ) -> DevloopContext:
        return DevloopContext(
            project=project,
            config_store=config_store,
            registry=registry or FakeRegistry(devices=[build_device("emulator-5554")]),
            builder=builder or FakeBuilder(),
            prompter=prompter or ScriptedPrompter(),
            log_viewer=log_viewer or FakeLogViewer(),
            sleep=sleep_recorder,
        )

    return _make


@pytest.fixture
def log_viewer() -> FakeLogViewer:
    return FakeLogViewer()


@pytest.fixture
def android_project_dir(tmp_path: Path) -> Path:
    """An on-disk Gradle project with a custom 'staging' build type."""
    root = tmp_path / "MyApp"
    app = root / "app"
    app.mkdir(parents=True)
    (root / "settings.gradle").write_text("include ':app'\n")
    (root / "gradlew").write_text("#!/bin/sh\n")
    (app / "build.gradle").write_text(
        """
android {
    defaultConfig {
        applicationId "com.example.myapp"
        minSdk 24
    }
    buildTypes {
        release {
            minifyEnabled true
            proguardFiles getDefaultProguardFile('proguard-android.txt')
        }
        staging {
            initWith debug
        }
    }
}
"""
    )
    return root
