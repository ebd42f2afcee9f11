"""Project initialization CLI command."""

from __future__ import annotations

import shutil

import typer

from android_devloop.build.project import AndroidProject
from android_devloop.cli.utils import get_state, prompter_for, render_error
from android_devloop.config.settings import ConfigStore, DevloopConfig
from android_devloop.errors import DevloopError, UserCancelledError, project_not_detected_error
from android_devloop.logs import LogViewer
from android_devloop.prompts import Choice, Prompter


def configure(store: ConfigStore, project: AndroidProject, prompter: Prompter) -> DevloopConfig:
    """Ask for the default variant, terminal and logcat options."""
    config = store.config
    variants = project.build_variants
    config.default_variant = prompter.choose(
        "Default build variant:",
        [Choice(name[:1].upper() + name[1:], name) for name in variants],
        default="debug" if "debug" in variants else variants[0],
    )

    terminals = LogViewer().available_terminals()
    config.terminal = prompter.choose(
        "Terminal for logcat:",
        [Choice("Auto-detect", "auto"), *(Choice(name, name) for name in terminals)],
        default="auto",
    )
    config.logcat.clear_on_start = prompter.confirm("Clear logcat when opening logs?", default=True)
    return config


def init(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing devloop.json"),
) -> None:
    """Create devloop.json for the project."""
    root = get_state(ctx).project_root
    prompter = prompter_for(ctx)

    if shutil.which("adb") is None:
        typer.echo("Warning: adb not found in PATH; install Android platform-tools to deploy.")

    project = AndroidProject.detect(root)
    if project is None:
        render_error(project_not_detected_error(str(root)))

    store = ConfigStore(root)
    try:
        if store.exists() and not force and not prompter.confirm(
            "Configuration already exists. Overwrite it?", default=False
        ):
            typer.echo("Initialization cancelled.")
            return
        store.reset()
        configure(store, project, prompter)
    except UserCancelledError:
        typer.echo("Cancelled.")
        return
    except DevloopError as exc:
        render_error(exc)

    store.save()
    typer.echo(f"✓ Wrote {store.path}")
    typer.echo(f"  package: {project.package_name}")
    typer.echo(f"  variant: {store.config.default_variant}")
    typer.echo(f"  terminal: {store.config.terminal}")
