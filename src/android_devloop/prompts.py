"""Interactive prompts - numbered choices and confirmations over rich."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

from rich.console import Console
from rich.prompt import Confirm, Prompt

from android_devloop.errors import UserCancelledError, prompt_required_error

T = TypeVar("T")


@dataclass(frozen=True)
class Choice(Generic[T]):
    """A labelled option; the value is returned when picked."""

    label: str
    value: T


class Prompter(Protocol):
    """Prompt capability used by the build cycle and recovery flows."""

    @property
    def interactive(self) -> bool: ...

    def choose(self, message: str, options: Sequence[Choice[T]], default: T | None = None) -> T: ...

    def confirm(self, message: str, default: bool = True) -> bool: ...


class ConsolePrompter:
    """Prompts on the terminal; Ctrl-C and EOF become UserCancelledError."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    @property
    def interactive(self) -> bool:
        return True

    def choose(self, message: str, options: Sequence[Choice[T]], default: T | None = None) -> T:
        if not options:
            raise ValueError(f"No options to choose from: {message}")

        self.console.print(f"[bold cyan]?[/bold cyan] {message}")
        default_key: str | None = None
        for index, option in enumerate(options, start=1):
            marker = ""
            if default is not None and option.value == default:
                default_key = str(index)
                marker = " [dim](default)[/dim]"
            self.console.print(f"  [bold]{index}[/bold]. {option.label}{marker}")

        keys = [str(index) for index in range(1, len(options) + 1)]
        try:
            if default_key is None:
                answer = Prompt.ask("Select", choices=keys, console=self.console)
            else:
                answer = Prompt.ask(
                    "Select", choices=keys, default=default_key, console=self.console
                )
        except (KeyboardInterrupt, EOFError) as exc:
            raise UserCancelledError(message) from exc
        return options[int(answer) - 1].value

    def confirm(self, message: str, default: bool = True) -> bool:
        try:
            return Confirm.ask(message, default=default, console=self.console)
        except (KeyboardInterrupt, EOFError) as exc:
            raise UserCancelledError(message) from exc


class NonInteractivePrompter:
    """Substitutes defaults and never blocks.

    A choice without a default cannot be made on the user's behalf and raises
    ERR_PROMPT_REQUIRED instead.
    """

    @property
    def interactive(self) -> bool:
        return False

    def choose(self, message: str, options: Sequence[Choice[T]], default: T | None = None) -> T:
        if default is None:
            raise prompt_required_error(message)
        return default

    def confirm(self, message: str, default: bool = True) -> bool:
        return default
