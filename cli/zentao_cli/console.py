from __future__ import annotations

import json

from rich.console import Console
from rich.markup import escape
from rich.table import Table

console = Console()


def print_json(data) -> None:
    console.print_json(data=data)


def print_response(body: bytes) -> None:
    """Pretty-print a JSON response body, or echo it verbatim when it is not JSON."""
    try:
        parsed = json.loads(body)
    except ValueError:
        console.print(body.decode("utf-8", errors="replace"), markup=False, highlight=False)
        return
    print_json(parsed)


def print_pairs(rows: list[tuple[str, str]]) -> None:
    table = Table(show_header=False)
    for key, value in rows:
        table.add_row(escape(key), escape(value))
    console.print(table)


def info(msg: str) -> None:
    console.print(f"[bold cyan]•[/] {escape(msg)}")


def ok(msg: str) -> None:
    console.print(f"[bold green]OK[/] {escape(msg)}")


def warn(msg: str) -> None:
    console.print(f"[bold yellow]WARN[/] {escape(msg)}")


def err(msg: str) -> None:
    console.print(f"[bold red]ERR[/] {escape(msg)}")
