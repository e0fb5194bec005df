"""Injectable diagnostics for the extractors."""

from __future__ import annotations

from typing import Protocol

from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

SYSTEMLOG_THEME = Theme(
    {
        "critical": "bold red",
        "warning": "bold yellow",
        "success": "bold green",
        "info": "cyan",
        "metric": "white",
        "label": "dim white",
        "header": "bold magenta",
    }
)


class Tracer(Protocol):
    """Protocol the extractors report diagnostics through."""

    def debug(self, message: str) -> None:
        """Report progress detail (counts, chosen layout, ...)."""
        ...

    def warning(self, message: str) -> None:
        """Report a recoverable problem such as a skipped line."""
        ...


class NullTracer:
    """Tracer that discards everything."""

    def debug(self, message: str) -> None:
        pass

    def warning(self, message: str) -> None:
        pass


class ConsoleTracer:
    """Tracer printing through a themed rich console.

    Debug messages are only shown in verbose mode; warnings always are.
    """

    def __init__(self, console: Console | None = None, verbose: bool = False) -> None:
        self.console = console or Console(theme=SYSTEMLOG_THEME, stderr=True)
        self.verbose = verbose

    def debug(self, message: str) -> None:
        if self.verbose:
            self.console.print(f"[info]{escape(message)}[/info]")

    def warning(self, message: str) -> None:
        self.console.print(f"[warning]WARNING: {escape(message)}[/warning]")


class RecordingTracer:
    """Tracer that keeps messages in memory, handy for inspecting a parse."""

    def __init__(self) -> None:
        self.debug_messages: list[str] = []
        self.warning_messages: list[str] = []

    def debug(self, message: str) -> None:
        self.debug_messages.append(message)

    def warning(self, message: str) -> None:
        self.warning_messages.append(message)
