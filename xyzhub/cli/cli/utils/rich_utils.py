import json
import sys
from typing import Any

from pydantic import validate_call
from rich import box, print, print_json
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console(force_terminal=True)


@validate_call
def handle_error(message: str, exit: bool = False):
    """Print an error message and optionally stop the process."""
    print(f"• [bold red]:x: {message}[/bold red]")
    if exit:
        sys.exit(1)


@validate_call
def rich_print_command_usage(command: str):
    """
    Print the command usage in a styled panel.
    """
    console.print(
        Panel.fit(
            f"[bold magenta]{command}[/]",
            title="[cyan]Command Used[/]",
            border_style="bright_blue",
            title_align="center",
        )
    )


@validate_call
def rich_print_section_separator(title: str):
    """
    Print a section separator.
    """
    console.print(
        Panel.fit(
            f"[bold magenta]{title}[/]",
            border_style="bright_blue",
            title_align="center",
        )
    )


@validate_call
def rich_print_json(statement: str, json_obj: dict | list):
    """
    Pretty print JSON object.
    """
    print(f"• [bold magenta]{statement}[/]")
    print_json(json.dumps(json_obj, indent=4, default=str))


@validate_call
def rich_print_checked_statement(statement: str, mode: str, exit: bool = False):
    """
    Print a statement with a check mark or cross.
    """
    if mode not in ["loading", "success", "error", "info", "warning"]:
        handle_error(f"Invalid mode: {mode}", exit=exit)
    if mode == "loading":
        print(f"• [bold yellow]:hourglass: {statement}[/bold yellow]")
    elif mode == "success":
        print(f"• [bold green]:white_check_mark: {statement}[/bold green]")
    elif mode == "error":
        print(f"• [bold red]:x: {statement}[/bold red]")
    elif mode == "info":
        print(f"• [bold blue]:blue_book: {statement}[/bold blue]")
    elif mode == "warning":
        print(f"• [bold orange1]:warning: {statement}[/bold orange1]")


def resolve_field(path: str, obj: Any) -> Any:
    """Resolve a dotted path such as ``geometry.type`` inside nested dicts."""
    current = obj
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        else:
            return None
    return current


def format_cell(value: Any) -> str:
    if value is None:
        return "[dim]null[/dim]"
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return str(value)


def rich_print_table(
    rows: list[dict],
    columns: list[str],
    title: str | None = None,
    console: Console | None = None,
) -> None:
    """
    Print a list of records as a table, one column per (dotted) field name.

    Args:
        rows: Records to display
        columns: Field names, nested fields use dots (``geometry.type``)
        title: Optional title for the table
        console: Rich Console instance (creates new one if None)
    """
    if console is None:
        console = Console()

    table = Table(
        title=title,
        box=box.ROUNDED,
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("(index)", style="dim", justify="right")
    for column in columns:
        table.add_column(column, justify="left", style="cyan", no_wrap=False)

    for index, row in enumerate(rows):
        table.add_row(str(index), *[format_cell(resolve_field(c, row)) for c in columns])

    console.print(table)


def rich_print_upload_progress(uploaded: int, failed: int) -> None:
    """Rewrite the running upload counter line in place."""
    console.print(
        f"uploaded feature count : [bold green]{uploaded}[/], "
        f"failed feature count : [bold red]{failed}[/]",
        end="\r",
        highlight=False,
    )
