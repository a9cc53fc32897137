"""
Output module for hgresource.

Provides consistent output formatting across all commands:
- JSON (default): One JSON document on stdout, as pipeline runners expect
- Pretty: Human-readable tables using Rich, for operators

Diagnostics never go to stdout.

Usage:
    from hgresource.output import emit, emit_error

    emit(result, pretty=pretty)
    emit_error("Repository URI must be provided")
"""

import json
import sys
from typing import Any, Dict, List, Optional

import click
from rich.console import Console
from rich.table import Table


def _to_data(item: Any) -> Any:
    if hasattr(item, 'to_dict'):
        return item.to_dict()
    if isinstance(item, (list, tuple)):
        return [_to_data(i) for i in item]
    return item


def emit(result: Any, pretty: bool = False) -> None:
    """
    Emit a command result.

    Args:
        result: Object with to_dict(), dict, or list of either
        pretty: If True, render as table. If False, output JSON
    """
    data = _to_data(result)
    if pretty:
        _emit_pretty(data)
    else:
        click.echo(json.dumps(data, ensure_ascii=False))


def _emit_pretty(data: Any) -> None:
    if isinstance(data, list):
        # check: list of versions
        _emit_table(data, ['ref'], title="Versions")
    elif isinstance(data, dict) and 'metadata' in data:
        _emit_table(data['metadata'], ['name', 'value', 'type'],
                    title=f"Version {data.get('version', {}).get('ref', '')}")
    else:
        _emit_table([data], None)


def _emit_table(rows: List[Dict[str, Any]], columns: Optional[List[str]], title: Optional[str] = None) -> None:
    """Emit rows as a Rich table."""
    console = Console(file=sys.stdout)

    if not rows:
        console.print("No results found")
        return

    if not columns:
        columns = list(rows[0].keys())

    table = Table(show_header=True, header_style="bold", title=title)
    for col in columns:
        table.add_column(col)

    for row in rows:
        table.add_row(*[_format_value(row.get(col, '')) for col in columns])

    console.print(table)


def _format_value(value: Any, max_len: int = 72) -> str:
    """Format a value for table display."""
    if value is None:
        return ''
    text = str(value).replace('\n', ' ')
    if len(text) > max_len:
        return text[:max_len - 3] + '...'
    return text


def emit_error(message: str, output: Optional[str] = None) -> None:
    """
    Emit an error to stderr: one diagnostic line, then hg's output verbatim.

    Args:
        message: Error message
        output: Raw backend output, if any
    """
    click.echo(message, err=True)
    if output:
        click.echo(output.rstrip('\n'), err=True)
