"""Terminal output for the oidcflow CLI.

Data a script may consume (status records, access tokens, authorization and
signoff URLs) is written to **stdout**; everything addressed to the person at
the terminal (progress, errors, next steps) goes to **stderr**, so
``TOKEN=$(oidcflow token)`` never captures a diagnostic.

Records are rendered as JSON with ``--json``, as ``key<TAB>value`` lines with
``--plain`` or when stdout is not a terminal, and as highlighted JSON
otherwise. Colour is off when ``NO_COLOR`` is set, ``TERM=dumb``, or
``--no-color`` is given.

:func:`~oidcflow.app.main_callback` installs one :class:`OutputManager` with
:func:`set_output`; commands use the module-level helpers.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, NamedTuple, Optional

from rich.console import Console
from rich.syntax import Syntax


class OutputFormat(str, Enum):
    """How records written with :meth:`OutputManager.format_data` look."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class _Notice(NamedTuple):
    prefix: str
    style: Optional[str]
    quiet_hides: bool


_NOTICES = {
    "info": _Notice("", None, True),
    "success": _Notice("", "green", True),
    "error": _Notice("Error: ", "bold red", False),
    "suggest": _Notice("→ ", "dim", True),
    "debug": _Notice("[debug] ", "dim", False),
}


class OutputManager:
    """Route CLI output to stdout or stderr in the selected format.

    Args:
        format: Record format; ``AUTO`` picks ``RICH`` for a colour terminal
            and ``PLAIN`` otherwise.
        no_color: Never emit colour or markup.
        quiet: Hide informational notices (errors are always shown).
        verbose: Show debug notices.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        if format == OutputFormat.AUTO:
            rich = _is_tty() and not self._no_color
            format = OutputFormat.RICH if rich else OutputFormat.PLAIN
        self._format = format
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    # --- stdout ---

    def print_data(self, text: str) -> None:
        """Write one line of data to stdout, unformatted."""
        print(text, file=sys.stdout, flush=True)

    def format_data(self, data: Any) -> None:
        """Write a record (dict), a list, or a scalar in the active format."""
        if self._format == OutputFormat.PLAIN:
            if isinstance(data, dict):
                lines = [f"{key}\t{value}" for key, value in data.items()]
            elif isinstance(data, list):
                lines = [str(item) for item in data]
            else:
                lines = [str(data)]
            for line in lines:
                self.print_data(line)
            return

        text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        if self._format == OutputFormat.JSON:
            self.print_data(text)
        else:
            console = Console(file=sys.stdout, no_color=self._no_color, force_terminal=True)
            console.print(Syntax(text, "json", theme="monokai", word_wrap=True))

    # --- stderr ---

    def info(self, message: str) -> None:
        self._notify("info", message)

    def success(self, message: str) -> None:
        self._notify("success", message)

    def error(self, message: str) -> None:
        self._notify("error", message)

    def suggest(self, message: str) -> None:
        """A next step for the user, e.g. ``Sign in: oidcflow login``."""
        self._notify("suggest", message)

    def debug(self, message: str) -> None:
        if self._verbose:
            self._notify("debug", message)

    def _notify(self, level: str, message: str) -> None:
        notice = _NOTICES[level]
        if self._quiet and notice.quiet_hides:
            return
        text = f"{notice.prefix}{message}"
        if self._no_color or notice.style is None:
            print(text, file=sys.stderr, flush=True)
        else:
            self._stderr.print(text, style=notice.style, markup=False, highlight=False)


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """``NO_COLOR`` (any value, even empty) or ``TERM=dumb`` disables colour."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed manager, creating a default one on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    global _output
    _output = None


def format_data(data: Any) -> None:
    get_output().format_data(data)


def print_data(text: str) -> None:
    get_output().print_data(text)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def error(message: str) -> None:
    get_output().error(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def debug(message: str) -> None:
    get_output().debug(message)
