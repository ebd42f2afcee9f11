"""Gradle CLI commands: arbitrary tasks, clean, sync and listings."""

from __future__ import annotations

import typer

from android_devloop.build.gradle import GradleExecutor
from android_devloop.cli.utils import (
    format_json,
    handle_task_result,
    load_context,
    render_error,
    run_async,
)
from android_devloop.context import DevloopContext
from android_devloop.errors import DevloopError
from android_devloop.orchestration.tasks import gradle_step, run_retryable_task
from android_devloop.validation import is_valid_gradle_task

app = typer.Typer(help="Gradle commands")


def _executor(ctx: typer.Context) -> tuple[GradleExecutor, DevloopContext]:
    context = load_context(ctx)
    builder = context.builder
    if not isinstance(builder, GradleExecutor):
        builder = GradleExecutor(context.project)
    return builder, context


@app.command("run")
def gradle_run(
    ctx: typer.Context,
    task: str = typer.Argument(..., help="Gradle task, e.g. lint or :app:test"),
    args: list[str] | None = typer.Argument(None, help="Extra gradle arguments"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Run a Gradle task, offering Retry on failure."""
    if not is_valid_gradle_task(task):
        render_error(
            DevloopError(
                code="ERR_INVALID_TASK",
                message=f"Invalid Gradle task name: {task}",
                context={"task": task},
                remediation="List tasks with 'android-devloop gradle tasks'.",
            ),
            json_output=json_output,
        )
    executor, context = _executor(ctx)
    extra = list(args or [])
    result = run_async(
        run_retryable_task(
            gradle_step(task, lambda: executor.run_task(task, extra)),
            context.prompter,
            context.interactive,
        )
    )
    if result.success and result.output and not json_output:
        typer.echo(result.output.rstrip())
    handle_task_result(result, f"Task {task}", json_output=json_output)


@app.command("tasks")
def gradle_tasks(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """List available Gradle tasks."""
    executor, _ = _executor(ctx)
    tasks = run_async(executor.list_tasks())
    if json_output:
        typer.echo(format_json({"tasks": tasks}))
        return
    for name in tasks:
        typer.echo(name)


@app.command("deps")
def gradle_deps(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """List resolved project dependencies."""
    executor, _ = _executor(ctx)
    dependencies = run_async(executor.list_dependencies())
    if json_output:
        typer.echo(format_json({"dependencies": dependencies}))
        return
    for coordinate in dependencies:
        typer.echo(coordinate)


def clean(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Clean the project (gradle clean)."""
    executor, context = _executor(ctx)
    result = run_async(
        run_retryable_task(gradle_step("clean", executor.clean), context.prompter, context.interactive)
    )
    handle_task_result(result, "Clean", json_output=json_output)


def sync(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Sync the project (gradle build --dry-run)."""
    executor, context = _executor(ctx)
    result = run_async(
        run_retryable_task(gradle_step("sync", executor.sync), context.prompter, context.interactive)
    )
    handle_task_result(result, "Sync", json_output=json_output)
