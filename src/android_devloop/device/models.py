"""Device data model shared by the registry, provisioner and build cycle."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DeviceState(Enum):
    """Connection state as reported by 'adb devices'."""

    READY = "device"
    OFFLINE = "offline"
    UNAUTHORIZED = "unauthorized"

    @classmethod
    def parse(cls, raw: str) -> DeviceState:
        """Map an adb state string; anything unknown counts as offline."""
        for state in cls:
            if state.value == raw.strip():
                return state
        return cls.OFFLINE


class DeviceKind(Enum):
    """Virtual or physical device."""

    EMULATOR = "emulator"
    PHYSICAL = "physical"


@dataclass(frozen=True)
class Device:
    """A device descriptor from one enumeration call."""

    serial: str
    name: str
    state: DeviceState
    kind: DeviceKind
    api_level: int | None = None
    model: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.state is DeviceState.READY

    @property
    def is_emulator(self) -> bool:
        return self.kind is DeviceKind.EMULATOR

    def label(self) -> str:
        """Human-readable choice label."""
        api = self.api_level if self.api_level is not None else "Unknown"
        return f"{self.name} ({self.serial}) - API {api}"


@dataclass(frozen=True)
class EmulatorImage:
    """An installable AVD."""

    name: str
    display_name: str

    @classmethod
    def from_avd_name(cls, name: str) -> EmulatorImage:
        return cls(name=name, display_name=name.replace("_", " "))


@dataclass(frozen=True)
class StorageInfo:
    """Free space on the device's data partition, as printed by df."""

    total: str
    available: str


def ready_devices(devices: list[Device]) -> list[Device]:
    """Filter to devices eligible as install targets."""
    return [device for device in devices if device.is_ready]
