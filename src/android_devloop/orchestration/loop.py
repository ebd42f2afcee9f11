"""Build cycle - variant, device, build, install (+ recovery), launch and menus."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from android_devloop.errors import (
    DevloopError,
    UserCancelledError,
    build_failed_error,
    install_failed_error,
)
from android_devloop.install import classifier
from android_devloop.orchestration.session import (
    CycleResult,
    Event,
    OrchestrationSession,
    Stage,
)
from android_devloop.orchestration.tasks import FAILURE_CHOICES, FailureAction
from android_devloop.prompts import Choice
from android_devloop.validation import validate_variant

if TYPE_CHECKING:
    from android_devloop.context import DevloopContext

logger = structlog.get_logger()

LAUNCH_FAILED_WARNING = "App installed but failed to launch automatically."


class NextAction(Enum):
    OPEN_LOGS = "logcat"
    REBUILD = "build"
    SWITCH_DEVICE = "device"
    RETURN_TO_MENU = "menu"


POST_OUTCOME_CHOICES = (
    Choice("Open Logs", NextAction.OPEN_LOGS),
    Choice("Rebuild", NextAction.REBUILD),
    Choice("Switch Device", NextAction.SWITCH_DEVICE),
    Choice("Return to Menu", NextAction.RETURN_TO_MENU),
)

_POST_OUTCOME_EVENTS = {
    NextAction.OPEN_LOGS: Event.OPEN_LOGS,
    NextAction.REBUILD: Event.REBUILD,
    NextAction.SWITCH_DEVICE: Event.SWITCH_DEVICE,
    NextAction.RETURN_TO_MENU: Event.RETURN_TO_MENU,
}


class BuildCycle:
    """Drives one session through the TRANSITIONS table until DONE.

    Device acquisition and variant errors always end the session. Build and
    install failures end it unless keep_alive is set, in which case the user
    may retry from Build with the same variant and device.
    """

    def __init__(self, context: DevloopContext) -> None:
        self.context = context
        self.provisioner = context.provisioner()
        self.recovery = context.recovery()
        self._handlers: dict[Stage, Callable[[OrchestrationSession], Awaitable[Event]]] = {
            Stage.SELECT_VARIANT: self._select_variant,
            Stage.ACQUIRE_DEVICE: self._acquire_device,
            Stage.BUILD: self._build,
            Stage.INSTALL: self._install,
            Stage.LAUNCH: self._launch,
            Stage.FAILURE_MENU: self._failure_menu,
            Stage.POST_OUTCOME: self._post_outcome,
        }

    async def run(
        self,
        variant: str | None = None,
        device: str | None = None,
        keep_alive: bool = False,
    ) -> CycleResult:
        session = OrchestrationSession(keep_alive=keep_alive, variant=variant, device_serial=device)
        stage = Stage.SELECT_VARIANT
        logger.info("cycle_started", keep_alive=keep_alive, variant=variant, device=device)
        try:
            while stage is not Stage.DONE:
                event = await self._handlers[stage](session)
                stage = session.advance(stage, event)
        except UserCancelledError:
            logger.info("cycle_cancelled", stage=stage.value)
            return CycleResult(success=True, warnings=list(session.warnings), cancelled=True)

        result = session.result()
        logger.info("cycle_finished", success=result.success, code=result.code)
        return result

    async def _select_variant(self, session: OrchestrationSession) -> Event:
        available = self.context.project.build_variants
        store = self.context.config_store
        try:
            if session.variant is not None:
                validate_variant(session.variant, available)
            elif store.config.default_variant in available:
                session.variant = store.config.default_variant
                logger.info("variant_default_used", variant=session.variant)
            else:
                session.variant = self.context.prompter.choose(
                    "Which variant would you like to build?",
                    [Choice(name[:1].upper() + name[1:], name) for name in available],
                    default=available[0] if available else None,
                )
                validate_variant(session.variant, available)
                if self.context.prompter.interactive:
                    store.persist_selected_variant(session.variant)
        except DevloopError as exc:
            session.fail(exc)
            return Event.ABORT
        return Event.VARIANT_SELECTED

    async def _acquire_device(self, session: OrchestrationSession) -> Event:
        preferred = session.device_serial or self.context.config_store.config.selected_device
        try:
            provisioned = await self.provisioner.ensure_device()
            if provisioned.warning:
                session.warn(provisioned.warning)
            target = await self.provisioner.resolve_target(preferred)
        except DevloopError as exc:
            logger.error("device_acquisition_failed", code=exc.code, reason=exc.context.get("reason"))
            session.fail(exc)
            return Event.ABORT
        session.device_serial = target.serial
        logger.info("target_device", serial=target.serial, name=target.name)
        return Event.DEVICE_READY

    async def _build(self, session: OrchestrationSession) -> Event:
        variant = session.require_variant(Stage.BUILD)
        session.clear_failure()
        outcome = await self.context.builder.build(variant)
        if not outcome.success or not outcome.artifact_path:
            session.fail(build_failed_error(variant, outcome.diagnostic))
            return Event.BUILD_FAILED
        session.artifact_path = outcome.artifact_path
        logger.info("build_succeeded", variant=variant, duration_s=round(outcome.duration_s, 1))
        return Event.BUILD_SUCCEEDED

    async def _install(self, session: OrchestrationSession) -> Event:
        serial = session.require_device(Stage.INSTALL)
        artifact = session.require_artifact(Stage.INSTALL)
        package = self.context.project.package_name

        outcome = await self.context.registry.install(serial, artifact)
        if outcome.success:
            return Event.INSTALL_SUCCEEDED

        failure = classifier.classify_failure(outcome.diagnostic or "")
        logger.error(
            "install_failed",
            serial=serial,
            kind=failure.kind.value,
            suggestion=failure.suggestion,
        )
        recovered = await self.recovery.recover(failure, serial, package, artifact)
        if recovered.success:
            return Event.INSTALL_RECOVERED

        session.fail(
            install_failed_error(
                failure.kind.value,
                recovered.error or failure.diagnostic,
                recovered.suggestion or failure.suggestion,
            )
        )
        return Event.INSTALL_FAILED

    async def _launch(self, session: OrchestrationSession) -> Event:
        serial = session.require_device(Stage.LAUNCH)
        launched = await self.context.registry.launch(serial, self.context.project.package_name)
        if not launched:
            session.warn(LAUNCH_FAILED_WARNING)
        session.reset_retries()
        logger.info("deploy_completed", serial=serial, variant=session.variant)
        return Event.LAUNCHED if session.keep_alive else Event.FINISHED

    async def _failure_menu(self, session: OrchestrationSession) -> Event:
        if not session.keep_alive:
            return Event.ABORT

        if session.error is not None:
            logger.error("cycle_failed", code=session.error.code, error=session.error.message)
        action = self.context.prompter.choose(
            "What would you like to do?",
            FAILURE_CHOICES,
            default=FailureAction.RETURN_TO_MENU,
        )
        if action is FailureAction.RETRY:
            attempt = session.count_retry(Stage.BUILD)
            logger.info("cycle_retry", attempt=attempt, variant=session.variant, device=session.device_serial)
            return Event.RETRY
        return Event.RETURN_TO_MENU

    async def _post_outcome(self, session: OrchestrationSession) -> Event:
        action = self.context.prompter.choose(
            "What would you like to do next?",
            POST_OUTCOME_CHOICES,
            default=NextAction.RETURN_TO_MENU,
        )
        if action is NextAction.OPEN_LOGS:
            await self._open_logs(session)
        elif action is NextAction.SWITCH_DEVICE:
            device = await self.provisioner.switch_device(session.device_serial)
            if device is not None:
                session.device_serial = device.serial
        return _POST_OUTCOME_EVENTS[action]

    async def _open_logs(self, session: OrchestrationSession) -> None:
        viewer = self.context.log_viewer
        serial = session.require_device(Stage.POST_OUTCOME)
        if viewer is None or not await viewer.open_logs(serial, self.context.project.package_name):
            logger.warning("logs_unavailable", serial=serial)
