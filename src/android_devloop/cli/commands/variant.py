"""Build variant CLI commands."""

from __future__ import annotations

import typer

from android_devloop.build.project import AndroidProject
from android_devloop.cli.utils import format_json, load_config, prompter_for, render_error
from android_devloop.config.settings import ConfigStore
from android_devloop.errors import DevloopError, UserCancelledError, project_not_detected_error
from android_devloop.prompts import Choice
from android_devloop.validation import validate_variant

app = typer.Typer(help="Build variant commands")


def _variants(store: ConfigStore) -> list[str]:
    project = AndroidProject.detect(store.project_dir())
    if project is None:
        render_error(project_not_detected_error(str(store.project_dir())))
    return project.build_variants


@app.command("list")
def variant_list(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """List the project's build variants."""
    store = load_config(ctx)
    variants = _variants(store)
    default = store.config.default_variant
    if json_output:
        typer.echo(format_json({"variants": variants, "default": default}))
        return
    for name in variants:
        marker = " (default)" if name == default else ""
        typer.echo(f"{name}{marker}")


@app.command("set")
def variant_set(
    ctx: typer.Context,
    name: str | None = typer.Argument(None, help="Variant to make the default"),
) -> None:
    """Choose the default build variant."""
    store = load_config(ctx)
    variants = _variants(store)

    try:
        if name is None:
            current = store.config.default_variant
            name = prompter_for(ctx).choose(
                "Which variant would you like to build by default?",
                [Choice(variant[:1].upper() + variant[1:], variant) for variant in variants],
                default=current if current in variants else None,
            )
        validate_variant(name, variants)
    except UserCancelledError:
        typer.echo("Cancelled.")
        return
    except DevloopError as exc:
        render_error(exc)

    store.persist_selected_variant(name)
    typer.echo(f"✓ Default variant set to {name}")
