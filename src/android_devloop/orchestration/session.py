"""Build cycle state machine - stages, events, transition table and session state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from android_devloop.errors import DevloopError

logger = structlog.get_logger()


class Stage(Enum):
    SELECT_VARIANT = "select_variant"
    ACQUIRE_DEVICE = "acquire_device"
    BUILD = "build"
    INSTALL = "install"
    LAUNCH = "launch"
    FAILURE_MENU = "failure_menu"
    POST_OUTCOME = "post_outcome"
    DONE = "done"


class Event(Enum):
    VARIANT_SELECTED = "variant_selected"
    DEVICE_READY = "device_ready"
    BUILD_SUCCEEDED = "build_succeeded"
    BUILD_FAILED = "build_failed"
    INSTALL_SUCCEEDED = "install_succeeded"
    INSTALL_RECOVERED = "install_recovered"
    INSTALL_FAILED = "install_failed"
    LAUNCHED = "launched"
    FINISHED = "finished"
    RETRY = "retry"
    OPEN_LOGS = "open_logs"
    SWITCH_DEVICE = "switch_device"
    REBUILD = "rebuild"
    RETURN_TO_MENU = "return_to_menu"
    ABORT = "abort"


# Any (stage, event) pair missing here is a programming error.
TRANSITIONS: dict[tuple[Stage, Event], Stage] = {
    (Stage.SELECT_VARIANT, Event.VARIANT_SELECTED): Stage.ACQUIRE_DEVICE,
    (Stage.SELECT_VARIANT, Event.ABORT): Stage.DONE,
    (Stage.ACQUIRE_DEVICE, Event.DEVICE_READY): Stage.BUILD,
    (Stage.ACQUIRE_DEVICE, Event.ABORT): Stage.DONE,
    (Stage.BUILD, Event.BUILD_SUCCEEDED): Stage.INSTALL,
    (Stage.BUILD, Event.BUILD_FAILED): Stage.FAILURE_MENU,
    (Stage.INSTALL, Event.INSTALL_SUCCEEDED): Stage.LAUNCH,
    (Stage.INSTALL, Event.INSTALL_RECOVERED): Stage.LAUNCH,
    (Stage.INSTALL, Event.INSTALL_FAILED): Stage.FAILURE_MENU,
    (Stage.LAUNCH, Event.LAUNCHED): Stage.POST_OUTCOME,
    (Stage.LAUNCH, Event.FINISHED): Stage.DONE,
    (Stage.FAILURE_MENU, Event.RETRY): Stage.BUILD,
    (Stage.FAILURE_MENU, Event.RETURN_TO_MENU): Stage.DONE,
    (Stage.FAILURE_MENU, Event.ABORT): Stage.DONE,
    (Stage.POST_OUTCOME, Event.OPEN_LOGS): Stage.POST_OUTCOME,
    (Stage.POST_OUTCOME, Event.SWITCH_DEVICE): Stage.POST_OUTCOME,
    (Stage.POST_OUTCOME, Event.REBUILD): Stage.BUILD,
    (Stage.POST_OUTCOME, Event.RETURN_TO_MENU): Stage.DONE,
}


class InvalidTransitionError(Exception):
    """Raised when a stage handler emits an event its stage does not accept."""


def next_stage(stage: Stage, event: Event) -> Stage:
    try:
        return TRANSITIONS[(stage, event)]
    except KeyError:
        raise InvalidTransitionError(f"{event.value} is not valid in {stage.value}") from None


@dataclass
class CycleResult:
    """Outcome reported to the caller of a build cycle."""

    success: bool
    error: str | None = None
    suggestion: str | None = None
    code: str | None = None
    warnings: list[str] = field(default_factory=list)
    cancelled: bool = False


@dataclass
class OrchestrationSession:
    """Mutable state for one build cycle session.

    variant and device_serial survive a Retry; the whole session is dropped
    when the loop reaches DONE.
    """

    keep_alive: bool
    variant: str | None = None
    device_serial: str | None = None
    artifact_path: str | None = None
    retries: dict[Stage, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    error: DevloopError | None = None
    history: list[Stage] = field(default_factory=list)

    def advance(self, stage: Stage, event: Event) -> Stage:
        target = next_stage(stage, event)
        logger.debug("stage_transition", source=stage.value, event=event.value, target=target.value)
        self.history.append(target)
        return target

    def require_variant(self, stage: Stage) -> str:
        if self.variant is None:
            raise InvalidTransitionError(f"{stage.value} reached before a variant was selected")
        return self.variant

    def require_device(self, stage: Stage) -> str:
        if self.device_serial is None:
            raise InvalidTransitionError(f"{stage.value} reached before a device was acquired")
        return self.device_serial

    def require_artifact(self, stage: Stage) -> str:
        if self.artifact_path is None:
            raise InvalidTransitionError(f"{stage.value} reached without a built artifact")
        return self.artifact_path

    def fail(self, error: DevloopError) -> None:
        self.error = error

    def clear_failure(self) -> None:
        self.error = None
        self.artifact_path = None

    def count_retry(self, stage: Stage) -> int:
        self.retries[stage] = self.retries.get(stage, 0) + 1
        return self.retries[stage]

    def reset_retries(self) -> None:
        self.retries.clear()

    def warn(self, message: str) -> None:
        logger.warning("cycle_warning", message=message)
        self.warnings.append(message)

    def result(self) -> CycleResult:
        if self.error is None:
            return CycleResult(success=True, warnings=list(self.warnings))
        return CycleResult(
            success=False,
            error=self.error.message,
            suggestion=self.error.remediation or None,
            code=self.error.code,
            warnings=list(self.warnings),
        )
