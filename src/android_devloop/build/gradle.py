"""Gradle executor - assemble, clean, sync and arbitrary tasks."""

from __future__ import annotations

import asyncio
import re
import shutil
import subprocess
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import structlog

from android_devloop.errors import DevloopError, gradle_not_found_error

if TYPE_CHECKING:
    from android_devloop.build.project import AndroidProject

logger = structlog.get_logger()

_TASK_LINE_RE = re.compile(r"^([\w:]+)(?:\s+-\s.*)?$")
_DEPENDENCY_RE = re.compile(r"[+\\]-+ ([^:\s]+):([^:\s]+):(\S+)")


@dataclass(frozen=True)
class BuildOutcome:
    """Result of one build. artifact_path is set iff success."""

    success: bool
    duration_s: float
    artifact_path: str | None = None
    diagnostic: str | None = None


@dataclass(frozen=True)
class GradleRun:
    """Raw result of one gradle invocation."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def diagnostic(self) -> str:
        text = self.stderr.strip() or self.stdout.strip()
        return text or f"gradle exited with status {self.returncode}"


class BuildExecutor(Protocol):
    """Build capability used by the build cycle."""

    async def build(self, variant: str) -> BuildOutcome: ...


def assemble_task(variant: str) -> str:
    """assembleDebug for 'debug', assembleStaging for 'staging'."""
    return f"assemble{variant[:1].upper()}{variant[1:]}"


def parse_task_list(output: str) -> list[str]:
    """Extract task names from 'gradle tasks --all' output."""
    tasks: set[str] = set()
    for line in output.splitlines():
        # headers ("Build tasks") and banners have no "name - description" shape
        match = _TASK_LINE_RE.match(line.strip())
        if match:
            tasks.add(match.group(1))
    return sorted(tasks)


def parse_dependencies(output: str) -> list[str]:
    """Extract group:artifact:version coordinates from 'gradle dependencies'."""
    found: set[str] = set()
    for line in output.splitlines():
        match = _DEPENDENCY_RE.search(line)
        if match:
            found.add(":".join(match.groups()))
    return sorted(found)


class GradleExecutor:
    """Runs gradle (wrapper preferred) in the project root."""

    def __init__(self, project: AndroidProject, build_cache: bool = True) -> None:
        self.project = project
        self.build_cache = build_cache

    async def build(self, variant: str) -> BuildOutcome:
        task = assemble_task(variant)
        args = [task, "--daemon"]
        if self.build_cache:
            args.insert(1, "--build-cache")

        logger.info("build_started", variant=variant, task=task)
        started = time.monotonic()
        try:
            run = await self._run(args)
        except (OSError, DevloopError) as exc:
            duration = time.monotonic() - started
            logger.error("build_error", variant=variant, error=str(exc))
            return BuildOutcome(success=False, duration_s=duration, diagnostic=str(exc))
        duration = time.monotonic() - started

        if not run.success:
            logger.error("build_failed", variant=variant, duration_s=round(duration, 1))
            return BuildOutcome(success=False, duration_s=duration, diagnostic=run.diagnostic)

        apk = self.project.apk_path(variant)
        if apk is None:
            logger.error("build_artifact_missing", variant=variant)
            return BuildOutcome(
                success=False,
                duration_s=duration,
                diagnostic="Build succeeded but APK path not found.",
            )
        logger.info("build_completed", variant=variant, duration_s=round(duration, 1), apk=str(apk))
        return BuildOutcome(success=True, duration_s=duration, artifact_path=str(apk))

    async def clean(self) -> GradleRun:
        return await self.run_task("clean")

    async def sync(self) -> GradleRun:
        """Resolve the build graph without executing it."""
        return await self.run_task("build", ["--dry-run"])

    async def run_task(self, task: str, args: list[str] | None = None) -> GradleRun:
        logger.info("gradle_task_started", task=task, args=args or [])
        try:
            run = await self._run([task, *(args or [])])
        except (OSError, DevloopError) as exc:
            logger.error("gradle_task_error", task=task, error=str(exc))
            return GradleRun(returncode=-1, stdout="", stderr=str(exc))
        if run.success:
            logger.info("gradle_task_completed", task=task)
        else:
            logger.error("gradle_task_failed", task=task, returncode=run.returncode)
        return run

    async def list_tasks(self) -> list[str]:
        run = await self.run_task("tasks", ["--all"])
        return parse_task_list(run.stdout) if run.success else []

    async def list_dependencies(self) -> list[str]:
        run = await self.run_task("dependencies")
        return parse_dependencies(run.stdout) if run.success else []

    async def _run(self, args: list[str]) -> GradleRun:
        command = self.project.gradle_command
        if not self.project.has_gradle_wrapper and shutil.which(command) is None:
            raise gradle_not_found_error(command)

        def _execute() -> subprocess.CompletedProcess[str]:
            return subprocess.run(
                [command, *args],
                cwd=self.project.root,
                check=False,
                capture_output=True,
                text=True,
            )

        result = await asyncio.to_thread(_execute)
        return GradleRun(returncode=result.returncode, stdout=result.stdout, stderr=result.stderr)
