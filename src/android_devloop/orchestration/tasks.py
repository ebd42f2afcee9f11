"""Retryable task - run, and on failure offer Retry / Return to Menu."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from android_devloop.errors import UserCancelledError, task_failed_error
from android_devloop.prompts import Choice

if TYPE_CHECKING:
    from android_devloop.build.gradle import GradleRun
    from android_devloop.prompts import Prompter

logger = structlog.get_logger()


class FailureAction(Enum):
    RETRY = "retry"
    RETURN_TO_MENU = "menu"


FAILURE_CHOICES = (
    Choice("Retry", FailureAction.RETRY),
    Choice("Return to Menu", FailureAction.RETURN_TO_MENU),
)


@dataclass
class TaskResult:
    success: bool
    error: str | None = None
    suggestion: str | None = None
    output: str | None = None
    cancelled: bool = False
    attempts: int = 1


TaskRun = Callable[[], Awaitable[TaskResult]]


def gradle_step(task: str, call: Callable[[], Awaitable[GradleRun]]) -> TaskRun:
    """Adapt a gradle invocation to the TaskRun shape."""

    async def _run() -> TaskResult:
        run = await call()
        if run.success:
            return TaskResult(success=True, output=run.stdout)
        error = task_failed_error(task, run.diagnostic)
        return TaskResult(success=False, error=error.message, suggestion=error.remediation)

    return _run


async def run_retryable_task(run: TaskRun, prompter: Prompter, interactive: bool) -> TaskResult:
    """Run until success, a non-interactive failure, or Return to Menu.

    Cancelling at the prompt (or inside run) ends gracefully with
    cancelled=True and no error.
    """
    attempts = 0
    try:
        while True:
            attempts += 1
            result = await run()
            result.attempts = attempts
            if result.success:
                return result
            logger.error("task_failed", error=result.error, attempt=attempts)
            if not interactive:
                return result
            action = prompter.choose(
                "What would you like to do?",
                FAILURE_CHOICES,
                default=FailureAction.RETURN_TO_MENU,
            )
            if action is FailureAction.RETURN_TO_MENU:
                return result
            logger.info("task_retry", attempt=attempts + 1)
    except UserCancelledError:
        logger.info("task_cancelled", attempts=attempts)
        return TaskResult(success=True, cancelled=True, attempts=attempts)
