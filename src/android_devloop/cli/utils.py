"""Shared CLI helpers: state, logging, context loading and result rendering."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Coroutine
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import structlog
import typer

from android_devloop.build.project import AndroidProject
from android_devloop.config.settings import ConfigStore
from android_devloop.context import DevloopContext
from android_devloop.errors import DevloopError
from android_devloop.orchestration.session import CycleResult
from android_devloop.orchestration.tasks import TaskResult
from android_devloop.prompts import ConsolePrompter, NonInteractivePrompter, Prompter

T = TypeVar("T")


@dataclass
class CliState:
    """Global options from the root callback, carried on ctx.obj."""

    project_root: Path
    interactive: bool = True


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def format_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=True)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def get_state(ctx: typer.Context) -> CliState:
    state = ctx.find_root().obj
    if isinstance(state, CliState):
        return state
    return CliState(project_root=config_root(Path.cwd()))


def config_root(path: Path) -> Path:
    """devloop.json lives at the Gradle root; outside a project, at path itself."""
    project = AndroidProject.detect(path)
    return project.root if project is not None else path


def prompter_for(ctx: typer.Context) -> Prompter:
    return ConsolePrompter() if get_state(ctx).interactive else NonInteractivePrompter()


def render_error(error: DevloopError, json_output: bool = False) -> NoReturn:
    """Print a DevloopError with its hint and exit 1."""
    if json_output:
        typer.echo(format_json({"success": False, "error": error.to_dict()}))
    else:
        typer.echo(f"{error.code}: {error.message}")
        if error.remediation:
            typer.echo(f"Hint: {error.remediation}")
    raise typer.Exit(code=1)


def load_config(ctx: typer.Context) -> ConfigStore:
    store = ConfigStore(get_state(ctx).project_root)
    store.load()
    return store


def load_context(ctx: typer.Context) -> DevloopContext:
    state = get_state(ctx)
    try:
        return DevloopContext.create(state.project_root, interactive=state.interactive)
    except DevloopError as exc:
        render_error(exc)


def handle_cycle_result(result: CycleResult, json_output: bool = False) -> None:
    if json_output:
        typer.echo(format_json(asdict(result)))
        if not result.success:
            raise typer.Exit(code=1)
        return

    for warning in result.warnings:
        typer.echo(f"Warning: {warning}")
    if result.cancelled:
        typer.echo("Cancelled.")
        return
    if result.success:
        typer.echo("✓ Build and deployment completed")
        return
    typer.echo(f"{result.code or 'ERR_BUILD_CYCLE'}: {result.error}")
    if result.suggestion:
        typer.echo(f"Hint: {result.suggestion}")
    raise typer.Exit(code=1)


def handle_task_result(result: TaskResult, label: str, json_output: bool = False) -> None:
    if json_output:
        typer.echo(format_json(asdict(result)))
        if not result.success:
            raise typer.Exit(code=1)
        return

    if result.cancelled:
        typer.echo("Cancelled.")
        return
    if result.success:
        typer.echo(f"✓ {label} completed")
        return
    typer.echo(f"ERR_TASK_FAILED: {result.error}")
    if result.suggestion:
        typer.echo(f"Hint: {result.suggestion}")
    raise typer.Exit(code=1)
