"""Output formatting for the ghassets CLI."""

import json
import sys
from typing import Any, Optional

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Renders user-facing CLI output.

    In JSON mode only :meth:`output_json` and errors produce output, so the
    result can be piped into other tools. In quiet mode informational
    messages are suppressed while warnings, errors and results remain.
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    def info(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self.console.print(message, markup=False)

    def success(self, message: str) -> None:
        if self.quiet or self.json_output:
            return
        self.console.print(message, style="green", markup=False)

    def warning(self, message: str) -> None:
        if self.json_output:
            return
        self.err_console.print(f"Warning: {message}", style="yellow", markup=False)

    def error(self, message: str) -> None:
        self.err_console.print(f"Error: {message}", style="bold red", markup=False)

    def print(self, renderable: Any) -> None:
        """Print a rich renderable or plain text (not in JSON mode)."""
        if self.json_output:
            return
        self.console.print(renderable)

    def output_json(self, data: Any) -> None:
        """Write data as JSON to stdout."""
        sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")
        sys.stdout.flush()

    def output_table(
        self,
        data: list[dict[str, Any]],
        columns: list[str],
        headers: Optional[dict[str, str]] = None,
        title: Optional[str] = None,
    ) -> None:
        """Render rows as a table.

        Args:
            data: Rows keyed by column name
            columns: Column keys, in display order
            headers: Display names for the columns (defaults to the keys)
            title: Optional table title
        """
        if self.json_output:
            self.output_json(data)
            return

        headers = headers or {}
        table = Table(title=title, show_header=True, header_style="bold cyan")
        for column in columns:
            table.add_column(headers.get(column, column), overflow="fold")
        for row in data:
            table.add_row(*(str(row.get(column, "")) for column in columns))
        self.console.print(table)

    def print_summary(self, title: str, items: list[tuple[str, Any]]) -> None:
        """Render a titled key/value summary."""
        if self.json_output or self.quiet:
            return
        table = Table.grid(padding=(0, 1))
        table.add_column("Key", style="bold", no_wrap=True)
        table.add_column("Value", overflow="fold")
        for key, value in items:
            table.add_row(f"{key}:", str(value))
        self.console.print(f"\n[bold]{title}[/bold]")
        self.console.print(table)
