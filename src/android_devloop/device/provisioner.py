"""Device provisioner - guarantee a Ready target, booting an emulator if needed."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from android_devloop.device.models import Device, ready_devices
from android_devloop.errors import (
    NoDeviceReason,
    device_unavailable_error,
    no_device_error,
)
from android_devloop.prompts import Choice

if TYPE_CHECKING:
    from android_devloop.device.registry import DeviceRegistry
    from android_devloop.prompts import Prompter

logger = structlog.get_logger()

Sleep = Callable[[float], Awaitable[None]]

BOOT_PENDING_WARNING = "Emulator started but may still be booting"


@dataclass(frozen=True)
class ProvisionResult:
    """Outcome of ensure_device; warning is set on a soft boot timeout."""

    booted: bool = False
    warning: str | None = None


class DeviceProvisioner:
    """Ensures at least one Ready device exists and resolves the target."""

    def __init__(
        self,
        registry: DeviceRegistry,
        prompter: Prompter,
        attempts: int = 30,
        poll_interval: float = 1.0,
        sleep: Sleep = asyncio.sleep,
        persist_device: Callable[[str], None] | None = None,
    ) -> None:
        self._registry = registry
        self._prompter = prompter
        self._attempts = attempts
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._persist_device = persist_device

    async def ensure_device(self) -> ProvisionResult:
        """Succeed if a device is Ready; otherwise offer to boot an emulator.

        Raises:
            DevloopError: ERR_NO_DEVICE with context["reason"] naming the cause
        """
        devices = await self._registry.list_devices()
        if ready_devices(devices):
            return ProvisionResult()

        logger.warning(
            "no_ready_devices",
            known=[(device.serial, device.state.value) for device in devices],
        )

        if not await self._registry.emulator_available():
            raise no_device_error(NoDeviceReason.EMULATOR_TOOL_MISSING)

        images = await self._registry.list_emulator_images()
        if not images:
            raise no_device_error(NoDeviceReason.NO_EMULATOR_IMAGES)

        if not self._prompter.confirm("No devices connected. Start an emulator?", default=True):
            raise no_device_error(NoDeviceReason.USER_DECLINED)

        if len(images) == 1:
            image_name = images[0].name
        else:
            image_name = self._prompter.choose(
                "Select emulator to start:",
                [Choice(image.display_name, image.name) for image in images],
            )

        logger.info("emulator_starting", avd=image_name)
        if not await self._registry.boot_emulator(image_name):
            raise no_device_error(NoDeviceReason.BOOT_FAILED)

        for attempt in range(1, self._attempts + 1):
            await self._sleep(self._poll_interval)
            devices = await self._registry.list_devices()
            if any(device.is_emulator for device in ready_devices(devices)):
                logger.info("emulator_ready", avd=image_name, attempts=attempt)
                return ProvisionResult(booted=True)

        logger.warning("emulator_boot_pending", avd=image_name, attempts=self._attempts)
        return ProvisionResult(booted=True, warning=BOOT_PENDING_WARNING)

    async def resolve_target(self, preferred: str | None = None) -> Device:
        """Pick the concrete target device.

        Reuses preferred while it is Ready, auto-selects a lone Ready device,
        and otherwise prompts; only a prompted choice is persisted.

        Raises:
            DevloopError: ERR_DEVICE_UNAVAILABLE if no device is Ready
        """
        ready = ready_devices(await self._registry.list_devices())
        if not ready:
            raise device_unavailable_error(preferred)

        if preferred:
            for device in ready:
                if device.serial == preferred:
                    logger.debug("device_reused", serial=device.serial)
                    return device
            logger.info("preferred_device_unavailable", serial=preferred)

        if len(ready) == 1:
            logger.info("device_auto_selected", serial=ready[0].serial, name=ready[0].name)
            return ready[0]

        return self._prompt_device(ready, "Select target device:")

    async def switch_device(self, current: str | None) -> Device | None:
        """Let the user pick a different Ready device; None if none are Ready."""
        ready = ready_devices(await self._registry.list_devices())
        if not ready:
            logger.warning("no_ready_devices")
            return None
        default = current if any(device.serial == current for device in ready) else None
        return self._prompt_device(ready, "Switch target device:", default)

    def _prompt_device(
        self, ready: list[Device], message: str, default: str | None = None
    ) -> Device:
        serial = self._prompter.choose(
            message,
            [Choice(device.label(), device.serial) for device in ready],
            default=default,
        )
        selected = next(device for device in ready if device.serial == serial)
        logger.info("device_selected", serial=selected.serial, name=selected.name)
        if self._persist_device is not None and self._prompter.interactive:
            self._persist_device(selected.serial)
        return selected
