from __future__ import annotations

import os
import re
import shlex
from collections.abc import Mapping

from android_devloop.errors import template_error

_VARIABLE_RE = re.compile(r"\{\{(\w+)\}\}")


def substitute_template(template: str, variables: Mapping[str, str]) -> str:
    """Replace each {{name}} placeholder; unknown names raise ERR_INVALID_TEMPLATE."""

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in variables:
            raise template_error(template, f"Template variable '{name}' is not defined")
        return variables[name]

    return _VARIABLE_RE.sub(_replace, template)


def parse_template_command(command: str) -> list[str]:
    """Split a command line into argv.

    Quotes are kept in the token and whitespace inside $(...) does not split,
    so the pieces can be re-joined and handed to a shell unchanged.
    """
    trimmed = command.strip()
    args: list[str] = []
    current = ""
    quote = ""
    depth = 0
    for char in trimmed:
        if quote:
            current += char
            if char == quote:
                quote = ""
        elif char in ("'", '"'):
            quote = char
            current += char
        elif char == "(":
            depth += 1
            current += char
        elif char == ")":
            depth -= 1
            current += char
        elif char.isspace() and depth == 0:
            if current:
                args.append(current)
                current = ""
        else:
            current += char
    if current:
        args.append(current)

    if not args:
        raise template_error(command, "Template command cannot be empty")
    return args


def needs_shell(command: str) -> bool:
    return "$(" in command and ")" in command


def user_shell(environ: Mapping[str, str] | None = None) -> str:
    """Basename of $SHELL, bash when unset."""
    shell = (environ if environ is not None else os.environ).get("SHELL")
    return os.path.basename(shell) if shell else "bash"


def render_command(
    template: str,
    variables: Mapping[str, str],
    environ: Mapping[str, str] | None = None,
) -> str:
    """Substitute template and return a shell command line.

    Command substitution ($(...)) is run through the user's shell with -c.
    """
    argv = parse_template_command(substitute_template(template, variables))
    full = " ".join(argv)
    if needs_shell(full):
        return shlex.join([user_shell(environ), "-c", full])
    return full
