"""Validation helpers for user input."""

from __future__ import annotations

import re
from pathlib import Path

from android_devloop.errors import invalid_project_path_error, invalid_variant_error

# Package name: starts with letter, segments separated by dots, each segment alphanumeric/underscore
PACKAGE_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*(\.[a-zA-Z][a-zA-Z0-9_]*)+$")

# adb serials: USB serials, emulator-5554, and host:port for network devices
SERIAL_PATTERN = re.compile(r"^[a-zA-Z0-9_.:\-]+$")

GRADLE_TASK_PATTERN = re.compile(r"^:?[a-zA-Z][a-zA-Z0-9:_\-]*$")


def is_valid_package(package: str) -> bool:
    """Return True for Android application ids like 'com.example.app'."""
    return bool(PACKAGE_PATTERN.match(package))


def is_valid_serial(serial: str) -> bool:
    """Return True for serials adb can address."""
    return bool(serial) and bool(SERIAL_PATTERN.match(serial))


def is_valid_gradle_task(task: str) -> bool:
    """Return True for Gradle task paths like 'assembleDebug' or ':app:lint'."""
    return bool(GRADLE_TASK_PATTERN.match(task))


def validate_variant(variant: str, available: list[str]) -> None:
    """Validate a build variant against the project's declared variants.

    Raises:
        DevloopError: If the variant is not declared
    """
    if variant not in available:
        raise invalid_variant_error(variant, available)


def validate_project_path(path: Path) -> Path:
    """Resolve and validate a --project directory.

    Returns:
        The resolved directory

    Raises:
        DevloopError: If the path is missing or not a directory
    """
    resolved = path.expanduser().resolve()
    if not resolved.exists():
        raise invalid_project_path_error(str(resolved), "does not exist")
    if not resolved.is_dir():
        raise invalid_project_path_error(str(resolved), "is not a directory")
    return resolved
