"""Colored terminal output and interactive prompts."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from rich.console import Console
from rich.logging import RichHandler

console = Console(highlight=False, markup=False, soft_wrap=True)
err_console = Console(stderr=True, highlight=False, markup=False, soft_wrap=True)


def info(msg: str) -> None:
    console.print(msg, style="blue")


def success(msg: str) -> None:
    console.print(msg, style="green")


def warn(msg: str) -> None:
    console.print(msg, style="yellow")


def error(msg: str) -> None:
    err_console.print(msg, style="bold red")


def plain(msg: str = "") -> None:
    console.print(msg)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


class Prompter:
    """Blocking questions on the terminal.

    ``reader`` defaults to ``Console.input`` and is swapped out in tests.
    """

    def __init__(self, reader: Optional[Callable[[str], str]] = None) -> None:
        self._reader = reader or console.input

    def ask(self, question: str) -> str:
        return self._reader(f"{question} ").strip()

    def yes_no(self, question: str) -> bool:
        while True:
            answer = self.ask(f"{question} [y/N]:").lower()
            match answer:
                case "y" | "yes":
                    return True
                case "n" | "no" | "":
                    return False
                case _:
                    warn("Invalid input. Please enter `y` or `n`.")

    def confirm_phrase(self, question: str, phrase: str = "yes") -> bool:
        return self.ask(f"{question} (Type '{phrase}' to confirm)") == phrase

    def pause(self, message: str) -> None:
        self._reader(f"{message} ")
