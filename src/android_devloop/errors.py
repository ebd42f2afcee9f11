"""Error model - Actionable errors with remediation hints."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass
class DevloopError(Exception):
    """
    Base error with context and remediation guidance.

    Every terminal failure of a build cycle or task surfaces as one of these,
    so the CLI can print the message and a hint.
    """

    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    remediation: str = ""

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "remediation": self.remediation,
        }


class UserCancelledError(Exception):
    """Raised when the user interrupts a prompt (Ctrl-C / EOF).

    Deliberately not a DevloopError: cancellation ends a session gracefully.
    """


class NoDeviceReason(Enum):
    """Why no target device could be acquired."""

    EMULATOR_TOOL_MISSING = "emulator_tool_missing"
    NO_EMULATOR_IMAGES = "no_emulator_images"
    USER_DECLINED = "user_declined"
    BOOT_FAILED = "boot_failed"


_NO_DEVICE_DETAILS: dict[NoDeviceReason, tuple[str, str]] = {
    NoDeviceReason.EMULATOR_TOOL_MISSING: (
        "Emulator command not found. Please connect a physical device.",
        "To use emulators, install the Android SDK emulator tools and add them to PATH.",
    ),
    NoDeviceReason.NO_EMULATOR_IMAGES: (
        "No emulators found. Please create an AVD or connect a physical device.",
        "Create an AVD with Android Studio's Device Manager or 'avdmanager create avd'.",
    ),
    NoDeviceReason.USER_DECLINED: (
        "No devices available and emulator startup declined.",
        "Connect a device or start an emulator manually.",
    ),
    NoDeviceReason.BOOT_FAILED: (
        "Failed to start emulator.",
        "Run 'emulator -avd <name>' manually to see the emulator's own error output.",
    ),
}


def project_not_detected_error(path: str) -> DevloopError:
    """Create error for a directory without an Android project."""
    return DevloopError(
        code="ERR_PROJECT_NOT_DETECTED",
        message="No Android project found",
        context={"path": path},
        remediation=(
            "Run from an Android project directory, pass --project, "
            "or run 'android-devloop init' first."
        ),
    )


def invalid_project_path_error(path: str, reason: str) -> DevloopError:
    """Create error for an unusable --project path."""
    return DevloopError(
        code="ERR_INVALID_PROJECT_PATH",
        message=f"Project path {reason}: {path}",
        context={"path": path, "reason": reason},
        remediation="Pass an existing project directory to --project.",
    )


def invalid_variant_error(variant: str, available: list[str]) -> DevloopError:
    """Create error for a variant the project does not declare."""
    return DevloopError(
        code="ERR_INVALID_VARIANT",
        message=f"Invalid build variant: {variant}. Available variants: {', '.join(available)}",
        context={"variant": variant, "available": available},
        remediation="Pick one of the available variants with 'android-devloop variant'.",
    )


def no_device_error(reason: NoDeviceReason) -> DevloopError:
    """Create error for failed device acquisition."""
    message, remediation = _NO_DEVICE_DETAILS[reason]
    return DevloopError(
        code="ERR_NO_DEVICE",
        message=message,
        context={"reason": reason.value},
        remediation=remediation,
    )


def device_unavailable_error(serial: str | None) -> DevloopError:
    """Create error for a target device that is not Ready."""
    return DevloopError(
        code="ERR_DEVICE_UNAVAILABLE",
        message=f"Device {serial or '<none>'} not found or not available.",
        context={"serial": serial},
        remediation="Check device connection with 'android-devloop device' and reconnect.",
    )


def build_failed_error(variant: str, diagnostic: str | None) -> DevloopError:
    """Create error for a failed Gradle build."""
    return DevloopError(
        code="ERR_BUILD_FAILED",
        message=diagnostic or "Build failed. Please check the error messages above.",
        context={"variant": variant},
        remediation="Fix the compilation errors reported by Gradle and rebuild.",
    )


def install_failed_error(kind: str, diagnostic: str, suggestion: str) -> DevloopError:
    """Create error for an installation that could not be recovered."""
    return DevloopError(
        code="ERR_INSTALL_FAILED",
        message=diagnostic,
        context={"kind": kind},
        remediation=suggestion,
    )


def task_failed_error(task: str, diagnostic: str | None) -> DevloopError:
    """Create error for a failed Gradle task."""
    return DevloopError(
        code="ERR_TASK_FAILED",
        message=f"Task '{task}' failed" + (f": {diagnostic}" if diagnostic else ""),
        context={"task": task},
        remediation="Inspect the Gradle output above and retry.",
    )


def prompt_required_error(message: str) -> DevloopError:
    """Create error for a choice that cannot be defaulted in non-interactive mode."""
    return DevloopError(
        code="ERR_PROMPT_REQUIRED",
        message=f"Interactive choice required: {message}",
        context={"prompt": message},
        remediation="Re-run interactively or pass the value explicitly (e.g. --device).",
    )


def adb_not_found_error() -> DevloopError:
    """Create error for missing adb binary."""
    return DevloopError(
        code="ERR_ADB_NOT_FOUND",
        message="adb command not found",
        context={},
        remediation="Install Android platform-tools and ensure adb is in PATH.",
    )


def gradle_not_found_error(command: str) -> DevloopError:
    """Create error for a missing Gradle launcher."""
    return DevloopError(
        code="ERR_GRADLE_NOT_FOUND",
        message=f"Gradle command not found: {command}",
        context={"command": command},
        remediation="Add a Gradle wrapper (gradlew) to the project or install Gradle.",
    )


def template_error(template: str, reason: str) -> DevloopError:
    """Create error for an unusable logcat command template."""
    return DevloopError(
        code="ERR_INVALID_TEMPLATE",
        message=reason,
        context={"template": template},
        remediation="Fix 'logcat.template' in devloop.json; {{device_id}} and {{package_name}} are available.",
    )
