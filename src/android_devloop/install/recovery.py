"""Install recovery - one bounded remediation pass for classified install failures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from android_devloop.install.classifier import InstallFailure, InstallFailureKind
from android_devloop.prompts import Choice

if TYPE_CHECKING:
    from android_devloop.device.registry import DeviceRegistry
    from android_devloop.prompts import Prompter

logger = structlog.get_logger()


class StorageRemedy(Enum):
    UNINSTALL = "uninstall"
    CLEAR_DATA = "clear"
    SKIP = "skip"


class DuplicateRemedy(Enum):
    FORCE_REINSTALL = "force"
    CLEAR_DATA = "clear"
    SKIP = "skip"


STORAGE_CHOICES = (
    Choice("Uninstall the existing app and retry", StorageRemedy.UNINSTALL),
    Choice("Clear app data and retry", StorageRemedy.CLEAR_DATA),
    Choice("Skip installation (build completed)", StorageRemedy.SKIP),
)

DUPLICATE_CHOICES = (
    Choice("Force reinstall (uninstall + install)", DuplicateRemedy.FORCE_REINSTALL),
    Choice("Clear app data and keep the installed app", DuplicateRemedy.CLEAR_DATA),
    Choice("Skip installation", DuplicateRemedy.SKIP),
)


@dataclass(frozen=True)
class RecoveryOutcome:
    """Result of a recovery pass; error and suggestion are set on failure."""

    success: bool
    error: str | None = None
    suggestion: str | None = None

    @classmethod
    def ok(cls) -> RecoveryOutcome:
        return cls(success=True)

    @classmethod
    def failed(cls, error: str, suggestion: str | None = None) -> RecoveryOutcome:
        return cls(success=False, error=error, suggestion=suggestion)


class InstallRecoveryCoordinator:
    """Offers remediation for a classified install failure.

    At most one install retry is made per failure, and the retry's own
    failure is reported verbatim rather than classified again.
    """

    def __init__(self, registry: DeviceRegistry, prompter: Prompter) -> None:
        self._registry = registry
        self._prompter = prompter

    async def recover(
        self,
        failure: InstallFailure,
        serial: str,
        package: str,
        artifact_path: str,
    ) -> RecoveryOutcome:
        logger.info("install_recovery_started", kind=failure.kind.value, serial=serial)
        if failure.kind is InstallFailureKind.INSUFFICIENT_STORAGE:
            return await self._recover_storage(serial, package, artifact_path)
        if failure.kind is InstallFailureKind.DUPLICATE_PACKAGE:
            return await self._recover_duplicate(serial, package, artifact_path)
        return RecoveryOutcome.failed(failure.diagnostic, failure.suggestion)

    async def _recover_storage(
        self, serial: str, package: str, artifact_path: str
    ) -> RecoveryOutcome:
        storage = await self._registry.get_storage_info(serial)
        if storage:
            logger.info(
                "device_storage",
                serial=serial,
                available=storage.available,
                total=storage.total,
            )

        remedy = self._prompter.choose(
            "How would you like to resolve the storage issue?",
            STORAGE_CHOICES,
            default=StorageRemedy.SKIP,
        )

        if remedy is StorageRemedy.UNINSTALL:
            if not await self._registry.uninstall(serial, package):
                return RecoveryOutcome.failed("Failed to uninstall existing app")
            return await self._retry_once(serial, artifact_path, "Installation failed again")

        if remedy is StorageRemedy.CLEAR_DATA:
            if not await self._registry.clear_app_data(serial, package):
                return RecoveryOutcome.failed("Failed to clear app data")
            return await self._retry_once(serial, artifact_path, "Installation failed again")

        logger.warning("install_skipped", reason="insufficient_storage")
        return RecoveryOutcome.failed("Installation skipped due to insufficient storage")

    async def _recover_duplicate(
        self, serial: str, package: str, artifact_path: str
    ) -> RecoveryOutcome:
        remedy = self._prompter.choose(
            "The app is already installed. How would you like to proceed?",
            DUPLICATE_CHOICES,
            default=DuplicateRemedy.SKIP,
        )

        if remedy is DuplicateRemedy.FORCE_REINSTALL:
            # Result ignored: the package may already be gone.
            await self._registry.uninstall(serial, package)
            return await self._retry_once(serial, artifact_path, "Force reinstall failed")

        if remedy is DuplicateRemedy.CLEAR_DATA:
            if not await self._registry.clear_app_data(serial, package):
                return RecoveryOutcome.failed("Failed to clear app data")
            logger.info("existing_install_kept", serial=serial, package=package)
            return RecoveryOutcome.ok()

        logger.info("install_skipped", reason="already_exists")
        return RecoveryOutcome.failed("Installation skipped - app already exists")

    async def _retry_once(self, serial: str, artifact_path: str, prefix: str) -> RecoveryOutcome:
        logger.info("install_retrying", serial=serial)
        outcome = await self._registry.install(serial, artifact_path)
        if outcome.success:
            logger.info("install_recovered", serial=serial)
            return RecoveryOutcome.ok()
        return RecoveryOutcome.failed(f"{prefix}: {outcome.diagnostic or 'unknown error'}")
