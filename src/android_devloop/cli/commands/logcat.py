"""Logcat CLI command."""

from __future__ import annotations

import typer

from android_devloop.cli.utils import load_context, render_error, run_async
from android_devloop.context import DevloopContext
from android_devloop.errors import DevloopError, UserCancelledError


async def open_logcat(context: DevloopContext, device: str | None) -> bool:
    """Resolve the target device and open its logcat window."""
    preferred = device or context.config_store.config.selected_device
    target = await context.provisioner().resolve_target(preferred)
    if context.log_viewer is None:
        return False
    return await context.log_viewer.open_logs(target.serial, context.project.package_name)


def logcat(
    ctx: typer.Context,
    device: str | None = typer.Option(None, "--device", "-d", help="Target device serial"),
) -> None:
    """Open app logs in a new terminal window."""
    context = load_context(ctx)
    try:
        opened = run_async(open_logcat(context, device))
    except UserCancelledError:
        typer.echo("Cancelled.")
        return
    except DevloopError as exc:
        render_error(exc)
    if not opened:
        typer.echo("ERR_TERMINAL_NOT_FOUND: Could not open a terminal for logcat")
        typer.echo(
            "Hint: Set 'terminal' in devloop.json to one of "
            "gnome-terminal, konsole, xterm, iterm2, terminal, wt."
        )
        raise typer.Exit(code=1)
    typer.echo("✓ Logcat opened")
