"""Device CLI commands."""

from __future__ import annotations

import typer

from android_devloop.cli.utils import format_json, load_config, prompter_for, render_error, run_async
from android_devloop.device.models import ready_devices
from android_devloop.device.registry import AdbDeviceRegistry
from android_devloop.errors import DevloopError, UserCancelledError, device_unavailable_error
from android_devloop.prompts import Choice

app = typer.Typer(help="Device commands")


@app.command("list")
def device_list(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """List devices known to adb."""
    devices = run_async(AdbDeviceRegistry().list_devices())
    if json_output:
        typer.echo(
            format_json(
                {
                    "devices": [
                        {
                            "serial": device.serial,
                            "name": device.name,
                            "state": device.state.value,
                            "kind": device.kind.value,
                            "api_level": device.api_level,
                            "model": device.model,
                        }
                        for device in devices
                    ]
                }
            )
        )
        return

    if not devices:
        typer.echo("No devices found.")
        return
    for device in devices:
        typer.echo(f"{device.label()}  state={device.state.value} kind={device.kind.value}")


@app.command("select")
def device_select(
    ctx: typer.Context,
    serial: str | None = typer.Argument(None, help="Device serial to make the default"),
) -> None:
    """Choose the default target device."""
    store = load_config(ctx)
    ready = ready_devices(run_async(AdbDeviceRegistry().list_devices()))

    if serial is not None:
        if not any(device.serial == serial for device in ready):
            render_error(device_unavailable_error(serial))
        store.persist_selected_device(serial)
        typer.echo(f"✓ Default device set to {serial}")
        return

    if not ready:
        render_error(device_unavailable_error(None))

    current = store.config.selected_device
    try:
        selected = prompter_for(ctx).choose(
            "Select target device:",
            [Choice(device.label(), device.serial) for device in ready],
            default=current if any(device.serial == current for device in ready) else None,
        )
    except UserCancelledError:
        typer.echo("Cancelled.")
        return
    except DevloopError as exc:
        render_error(exc)
    store.persist_selected_device(selected)
    typer.echo(f"✓ Default device set to {selected}")
