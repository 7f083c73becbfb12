"""Console output for the echosync CLI."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text


class OutputFormatter:
    """Prints messages, tables and JSON for CLI commands.

    Status messages go to stderr so ``--json`` output on stdout stays
    machine readable.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console(highlight=False)
        self.err_console = Console(stderr=True, highlight=False)

    def print(self, message: str = "") -> None:
        if not self.quiet:
            self.console.print(message, markup=False, soft_wrap=True)

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.err_console.print(message, markup=False, soft_wrap=True)

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.err_console.print(
                message, style="green", markup=False, soft_wrap=True
            )

    def warning(self, message: str) -> None:
        if not self.quiet:
            self.err_console.print(
                message, style="yellow", markup=False, soft_wrap=True
            )

    def error(self, message: str) -> None:
        self.err_console.print(
            f"Error: {message}", style="bold red", markup=False, soft_wrap=True
        )

    def output_json(self, data: Any) -> None:
        self.console.out(
            json.dumps(data, indent=2, ensure_ascii=False), highlight=False
        )

    def output_table(
        self,
        rows: list[dict[str, Any]],
        columns: list[str],
        headers: Optional[dict[str, str]] = None,
        title: Optional[str] = None,
    ) -> None:
        """Print rows as a table.

        Args:
            rows: One dict per row
            columns: Keys to show, in order
            headers: Optional key -> column header
            title: Optional table title
        """
        headers = headers or {}
        table = Table(title=title)
        for column in columns:
            table.add_column(headers.get(column, column))
        for row in rows:
            table.add_row(*(Text(str(row.get(column, ""))) for column in columns))
        self.console.print(table)

    def print_summary(self, title: str, items: list[tuple[str, Any]]) -> None:
        """Print a titled list of label/value pairs."""
        if self.quiet:
            return
        table = Table(title=title, show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        for label, value in items:
            table.add_row(label, Text(str(value)))
        self.console.print(table)
