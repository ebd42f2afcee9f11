"""Build & run CLI command."""

from __future__ import annotations

import typer

from android_devloop.cli.utils import handle_cycle_result, load_context, run_async
from android_devloop.orchestration.loop import BuildCycle


def build(
    ctx: typer.Context,
    variant: str | None = typer.Option(None, "--variant", "-v", help="Build variant (e.g. debug)"),
    device: str | None = typer.Option(None, "--device", "-d", help="Target device serial"),
    keep_alive: bool = typer.Option(
        False,
        "--keep-alive",
        "--stay",
        "-s",
        help="Stay in the build loop after deploying (Ctrl-C to exit)",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Build, install and launch the app."""
    context = load_context(ctx)
    result = run_async(BuildCycle(context).run(variant=variant, device=device, keep_alive=keep_alive))
    handle_cycle_result(result, json_output=json_output)
