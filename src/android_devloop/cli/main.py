"""CLI entry point using Typer."""

from __future__ import annotations

from pathlib import Path

import typer

from android_devloop.cli.commands import build, device, gradle, init, logcat, menu, variant
from android_devloop.cli.utils import CliState, config_root, configure_logging, render_error
from android_devloop.errors import DevloopError
from android_devloop.validation import validate_project_path

app = typer.Typer(
    name="android-devloop",
    help="Interactive build, install and launch loop for Android projects",
    invoke_without_command=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    project: Path = typer.Option(
        Path("."), "--project", "-p", help="Path to the Android project directory"
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
    non_interactive: bool = typer.Option(
        False,
        "--non-interactive",
        "-y",
        help="Never prompt; use defaults and fail where a choice is required",
    ),
) -> None:
    """Run a command, or open the interactive menu when none is given."""
    configure_logging(verbose)
    try:
        root = validate_project_path(project)
    except DevloopError as exc:
        render_error(exc)
    ctx.obj = CliState(project_root=config_root(root), interactive=not non_interactive)
    if ctx.invoked_subcommand is None:
        menu.menu(ctx)


@app.command()
def version() -> None:
    """Show version information."""
    from android_devloop import __version__

    typer.echo(f"android-devloop v{__version__}")


app.command("build")(build.build)
app.command("logcat")(logcat.logcat)
app.command("clean")(gradle.clean)
app.command("sync")(gradle.sync)
app.command("init")(init.init)
app.command("menu")(menu.menu)
app.add_typer(device.app, name="device")
app.add_typer(variant.app, name="variant")
app.add_typer(gradle.app, name="gradle")


if __name__ == "__main__":
    app()
