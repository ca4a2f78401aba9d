"""
Output rendering for jira-ticket-cli
Renders command results as rich tables, JSON or tab-separated plain text
"""

import json
from typing import Any, List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

FORMAT_TABLE = 'table'
FORMAT_JSON = 'json'
FORMAT_PLAIN = 'plain'


def truncate(text: Optional[str], width: int) -> str:
    """Shorten text to ``width`` characters, collapsing whitespace"""
    text = ' '.join((text or '').split())
    if len(text) <= width:
        return text
    return text[:max(width - 3, 0)] + '...'


class View:
    """Writes command output in the selected format"""

    def __init__(self, output_format: str = FORMAT_TABLE, console: Optional[Console] = None):
        self.format = output_format
        self.console = console or Console()

    @property
    def is_json(self) -> bool:
        return self.format == FORMAT_JSON

    def table(self, headers: Sequence[str], rows: List[Sequence[Any]]):
        """
        Render rows under the given headers

        Raises:
            ValueError: In JSON mode, where callers emit structured data instead
        """
        if self.is_json:
            raise ValueError("Table output is not available in JSON mode")

        if self.format == FORMAT_PLAIN:
            # Written directly: rich would expand the tabs
            for row in rows:
                self.console.file.write('\t'.join(str(cell) for cell in row) + '\n')
            return

        table = Table(show_header=True, header_style="bold")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*[str(cell) for cell in row])
        self.console.print(table)

    def json(self, data: Any):
        """Print data as indented JSON"""
        self.console.print(json.dumps(data, indent=2, ensure_ascii=False),
                           markup=False, highlight=False, soft_wrap=True)

    def text(self, text: str):
        """Print text verbatim"""
        self.console.print(text, markup=False, highlight=False, soft_wrap=True)

    def field(self, label: str, value: Any):
        """Print one "Label: value" line of a detail view"""
        if self.format == FORMAT_PLAIN:
            self.console.print(f"{label}: {value}", markup=False, highlight=False)
        else:
            self.console.print(f"[bold]{label}:[/bold] ", end='')
            self.console.print(str(value), markup=False, highlight=False)

    def success(self, message: str):
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def info(self, message: str):
        self.console.print(f"[dim]{escape(message)}[/dim]")

    def error(self, message: str):
        self.console.print(f"[red]Error: {escape(message)}[/red]")
