"""Device registry - adb enumeration, install/uninstall, launch and emulator boot."""

from __future__ import annotations

import asyncio
import shutil
import subprocess
from typing import TYPE_CHECKING, Protocol

import structlog

from android_devloop.device.models import (
    Device,
    DeviceKind,
    DeviceState,
    EmulatorImage,
    StorageInfo,
)
from android_devloop.errors import DevloopError, adb_not_found_error
from android_devloop.install.classifier import InstallOutcome
from android_devloop.validation import is_valid_serial

if TYPE_CHECKING:
    from adbutils import AdbDevice

logger = structlog.get_logger()

EMULATOR_BOOT_ARGS = ["-no-audio"]


class DeviceRegistry(Protocol):
    """Device capabilities the build cycle depends on."""

    async def list_devices(self) -> list[Device]: ...

    async def emulator_available(self) -> bool: ...

    async def list_emulator_images(self) -> list[EmulatorImage]: ...

    async def boot_emulator(self, name: str) -> bool: ...

    async def install(self, serial: str, artifact_path: str) -> InstallOutcome: ...

    async def uninstall(self, serial: str, package: str) -> bool: ...

    async def clear_app_data(self, serial: str, package: str) -> bool: ...

    async def get_storage_info(self, serial: str) -> StorageInfo | None: ...

    async def launch(self, serial: str, package: str) -> bool: ...


def parse_avd_list(output: str) -> list[EmulatorImage]:
    """Parse 'emulator -list-avds' output, skipping emulator log noise."""
    images: list[EmulatorImage] = []
    for line in output.splitlines():
        name = line.strip()
        if not name or name.startswith(("INFO", "WARNING", "ERROR", "|")):
            continue
        images.append(EmulatorImage.from_avd_name(name))
    return images


def parse_storage_info(output: str) -> StorageInfo | None:
    """Parse 'df -h /data' output into total/available sizes."""
    lines = [line for line in output.strip().splitlines() if line.strip()]
    if len(lines) < 2:
        return None
    parts = lines[-1].split()
    # Filesystem Size Used Avail Use% Mounted-on
    if len(parts) < 4:
        return None
    return StorageInfo(total=parts[1], available=parts[3])


def parse_launcher_activity(output: str) -> str | None:
    """Extract the activity from 'cmd package resolve-activity --brief' output."""
    lines = [line.strip() for line in output.strip().splitlines() if line.strip()]
    if not lines:
        return None
    resolved = lines[-1]
    if "/" not in resolved:
        return None
    return resolved.split("/", 1)[1]


def install_output_failed(output: str) -> bool:
    """adb install can exit 0 while printing a Failure line on older platform-tools."""
    return "Failure [" in output or "INSTALL_FAILED" in output.upper()


class AdbDeviceRegistry:
    """Device registry backed by adbutils and the adb/emulator binaries."""

    def __init__(self, emulator_args: list[str] | None = None) -> None:
        self._emulator_args = emulator_args if emulator_args is not None else EMULATOR_BOOT_ARGS

    async def list_devices(self) -> list[Device]:
        """Enumerate every device adb knows about, ready or not."""
        from adbutils import adb

        def _list() -> list[Device]:
            devices: list[Device] = []
            for info in adb.list():
                serial = info.serial
                if not is_valid_serial(serial):
                    logger.debug("device_invalid_serial", serial=serial)
                    continue
                devices.append(self._describe(adb.device(serial), serial, info.state))
            return devices

        try:
            devices = await asyncio.to_thread(_list)
        except Exception:
            logger.exception("device_list_failed")
            return []
        logger.debug("devices_listed", count=len(devices))
        return devices

    async def emulator_available(self) -> bool:
        return shutil.which("emulator") is not None

    async def list_emulator_images(self) -> list[EmulatorImage]:
        """List AVDs via 'emulator -list-avds'."""
        emulator_path = shutil.which("emulator")
        if not emulator_path:
            return []

        def _run() -> subprocess.CompletedProcess[str]:
            return subprocess.run(
                [emulator_path, "-list-avds"],
                capture_output=True,
                text=True,
                check=False,
            )

        result = await asyncio.to_thread(_run)
        if result.returncode != 0:
            logger.debug("emulator_list_failed", stderr=result.stderr.strip())
            return []
        images = parse_avd_list(result.stdout)
        logger.debug("emulator_images_listed", images=[image.name for image in images])
        return images

    async def boot_emulator(self, name: str) -> bool:
        """Spawn the emulator detached; readiness is polled by the provisioner."""
        emulator_path = shutil.which("emulator")
        if not emulator_path:
            return False

        def _spawn() -> None:
            subprocess.Popen(
                [emulator_path, "-avd", name, *self._emulator_args],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )

        try:
            await asyncio.to_thread(_spawn)
        except OSError:
            logger.exception("emulator_spawn_failed", avd=name)
            return False
        logger.info("emulator_spawned", avd=name)
        return True

    async def install(self, serial: str, artifact_path: str) -> InstallOutcome:
        """Install with 'adb install -r', returning the raw diagnostic on failure."""
        logger.info("apk_installing", serial=serial, apk=artifact_path)
        try:
            result = await self._run_adb(serial, ["install", "-r", artifact_path])
        except (OSError, DevloopError) as exc:
            return InstallOutcome(success=False, diagnostic=str(exc))
        output = f"{result.stdout}\n{result.stderr}".strip()
        if result.returncode != 0 or install_output_failed(output):
            logger.warning("apk_install_failed", serial=serial, output=output)
            return InstallOutcome(success=False, diagnostic=output or "adb install failed")
        logger.info("apk_installed", serial=serial)
        return InstallOutcome(success=True)

    async def uninstall(self, serial: str, package: str) -> bool:
        try:
            result = await self._run_adb(serial, ["uninstall", package])
        except (OSError, DevloopError):
            logger.exception("uninstall_failed", serial=serial, package=package)
            return False
        ok = result.returncode == 0 and "Success" in result.stdout
        logger.info("app_uninstalled" if ok else "uninstall_failed", serial=serial, package=package)
        return ok

    async def clear_app_data(self, serial: str, package: str) -> bool:
        output = await self._shell(serial, f"pm clear {package}")
        ok = output is not None and "Success" in output
        logger.info("app_data_cleared" if ok else "clear_data_failed", serial=serial, package=package)
        return ok

    async def get_storage_info(self, serial: str) -> StorageInfo | None:
        output = await self._shell(serial, "df -h /data")
        if output is None:
            return None
        return parse_storage_info(output)

    async def launch(self, serial: str, package: str) -> bool:
        """Resolve the launcher activity and start it."""
        output = await self._shell(
            serial,
            f"cmd package resolve-activity --brief -c android.intent.category.LAUNCHER {package}",
        )
        activity = parse_launcher_activity(output or "")
        if not activity:
            logger.warning("launcher_activity_not_found", serial=serial, package=package)
            return False

        result = await self._shell(serial, f"am start -n {package}/{activity}")
        if result is None or "Error" in result:
            logger.warning("app_launch_failed", serial=serial, package=package, output=result)
            return False
        logger.info("app_launched", serial=serial, package=package, activity=activity)
        return True

    def _describe(self, device: AdbDevice, serial: str, raw_state: str) -> Device:
        state = DeviceState.parse(raw_state)
        kind = DeviceKind.EMULATOR if serial.startswith("emulator-") else DeviceKind.PHYSICAL
        model: str | None = None
        api_level: int | None = None
        if state is DeviceState.READY:
            try:
                model = str(device.shell("getprop ro.product.model")).strip() or None
                sdk = str(device.shell("getprop ro.build.version.sdk")).strip()
                api_level = int(sdk) if sdk.isdigit() else None
            except Exception:
                logger.debug("device_props_failed", serial=serial)
        return Device(
            serial=serial,
            name=model or serial,
            state=state,
            kind=kind,
            api_level=api_level,
            model=model,
        )

    async def _shell(self, serial: str, command: str) -> str | None:
        from adbutils import adb

        def _run() -> str:
            result = adb.device(serial).shell(command)
            output = getattr(result, "output", None)
            return output if isinstance(output, str) else str(result)

        try:
            return await asyncio.to_thread(_run)
        except Exception:
            logger.exception("adb_shell_failed", serial=serial, command=command)
            return None

    async def _run_adb(self, serial: str, args: list[str]) -> subprocess.CompletedProcess[str]:
        def _run() -> subprocess.CompletedProcess[str]:
            adb_path = shutil.which("adb")
            if not adb_path:
                raise adb_not_found_error()
            return subprocess.run(
                [adb_path, "-s", serial, *args],
                check=False,
                capture_output=True,
                text=True,
            )

        return await asyncio.to_thread(_run)
