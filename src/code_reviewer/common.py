"""Common utility functions for the project."""

from enum import Enum
from typing import (
    Any,
    Protocol,
)


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(f"{color.value}{text}\033[0m", *args, **kwargs)  # ANSI reset at the end


class Reporter(Protocol):
    """
    Where the review writes human-readable progress.

    ``line`` appends a progress line; ``success`` and ``error`` are the two terminal signals shown
    to the user when a run finishes or fails.
    """

    def line(self, text: str) -> None: ...

    def success(self, text: str) -> None: ...

    def error(self, text: str) -> None: ...


class ConsoleReporter:
    """Reporter that prints colored lines to the terminal."""

    def line(self, text: str) -> None:
        print(text, flush=True)

    def success(self, text: str) -> None:
        colored_print(text, AnsiColors.GREEN, flush=True)

    def error(self, text: str) -> None:
        colored_print(text, AnsiColors.RED, flush=True)
