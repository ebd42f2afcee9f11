"""Interactive main menu."""

from __future__ import annotations

from enum import Enum

import typer

from android_devloop.cli.commands import device as device_commands
from android_devloop.cli.commands import gradle as gradle_commands
from android_devloop.cli.commands import variant as variant_commands
from android_devloop.cli.commands.build import build
from android_devloop.cli.commands.init import init
from android_devloop.cli.commands.logcat import logcat
from android_devloop.cli.utils import get_state, load_config, render_error
from android_devloop.errors import UserCancelledError, prompt_required_error
from android_devloop.prompts import Choice, ConsolePrompter, Prompter

COMMON_TASKS = ("lint", "test", "connectedAndroidTest", "bundleRelease")


class MenuAction(Enum):
    BUILD = "build"
    DEVICE = "device"
    VARIANT = "variant"
    LOGCAT = "logcat"
    GRADLE = "gradle"
    CLEAN = "clean"
    SYNC = "sync"
    CONFIGURE = "config"
    EXIT = "exit"


MENU_CHOICES = (
    Choice("Build & Run", MenuAction.BUILD),
    Choice("Select Device", MenuAction.DEVICE),
    Choice("Change Build Variant", MenuAction.VARIANT),
    Choice("Open Logcat", MenuAction.LOGCAT),
    Choice("Run Gradle Task", MenuAction.GRADLE),
    Choice("Clean Project", MenuAction.CLEAN),
    Choice("Sync Project", MenuAction.SYNC),
    Choice("Configure Settings", MenuAction.CONFIGURE),
    Choice("Exit", MenuAction.EXIT),
)


def _pick_task(ctx: typer.Context, prompter: Prompter) -> str:
    custom = load_config(ctx).config.gradle_tasks.custom
    tasks = list(dict.fromkeys([*custom, *COMMON_TASKS]))
    return prompter.choose("Which task?", [Choice(name, name) for name in tasks])


def dispatch(ctx: typer.Context, action: MenuAction, prompter: Prompter) -> None:
    """Run one menu action through the matching command."""
    if action is MenuAction.BUILD:
        build(ctx, variant=None, device=None, keep_alive=True, json_output=False)
    elif action is MenuAction.DEVICE:
        device_commands.device_select(ctx, serial=None)
    elif action is MenuAction.VARIANT:
        variant_commands.variant_set(ctx, name=None)
    elif action is MenuAction.LOGCAT:
        logcat(ctx, device=None)
    elif action is MenuAction.GRADLE:
        gradle_commands.gradle_run(ctx, task=_pick_task(ctx, prompter), args=None, json_output=False)
    elif action is MenuAction.CLEAN:
        gradle_commands.clean(ctx, json_output=False)
    elif action is MenuAction.SYNC:
        gradle_commands.sync(ctx, json_output=False)
    elif action is MenuAction.CONFIGURE:
        init(ctx, force=True)


def menu(ctx: typer.Context) -> None:
    """Open the interactive menu."""
    if not get_state(ctx).interactive:
        render_error(prompt_required_error("main menu"))

    prompter = ConsolePrompter()
    store = load_config(ctx)
    typer.echo(f"Project: {store.project_dir()}")
    typer.echo(f"Variant: {store.config.default_variant}")
    typer.echo(f"Device: {store.config.selected_device or 'not selected'}")

    while True:
        try:
            action = prompter.choose("What would you like to do?", MENU_CHOICES, default=MenuAction.BUILD)
            if action is MenuAction.EXIT:
                break
            dispatch(ctx, action, prompter)
        except UserCancelledError:
            break
        except typer.Exit:
            # The command already printed its error.
            continue
    typer.echo("Goodbye!")
