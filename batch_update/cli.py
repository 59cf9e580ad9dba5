"""Command Line Interface for the batch updater.

This module provides a CLI using Typer for rendering batch UPDATE statements
from a JSON patch file and for applying them to the configured database.

Patch files hold a JSON list of objects, one per record, each carrying the key
columns plus the columns to write:

    [{"id": 1, "name": "foo"}, {"id": 2, "name": "bar", "birthday": "2010-01-01"}]
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from batch_update.domain.ports import BatchUpdateError
from batch_update.domain.services.statement_builder import BatchStatementBuilder
from batch_update.infrastructure.settings import settings
from batch_update.main import configure_logging, create_storage_adapter

app = typer.Typer(
    name="batch-update",
    help="Render and apply minimal batch UPDATE statements",
    add_completion=False
)
console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)


def load_patches(patch_file: Path) -> List[dict]:
    """Read a JSON list of patch objects."""
    try:
        data = json.loads(patch_file.read_text())
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"Invalid JSON in {patch_file}: {e}")
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise typer.BadParameter(f"{patch_file} must contain a JSON list of objects")
    return data


def parse_column_types(type_options: Optional[List[str]], types_file: Optional[Path]) -> Dict[str, str]:
    """Merge --types-file (JSON object) and repeated --type col=TYPE options."""
    column_types: Dict[str, str] = {}
    if types_file:
        loaded = json.loads(types_file.read_text())
        if not isinstance(loaded, dict):
            raise typer.BadParameter(f"{types_file} must contain a JSON object")
        column_types.update({str(k): str(v) for k, v in loaded.items()})
    for option in type_options or []:
        column, sep, sql_type = option.partition("=")
        if not sep or not column or not sql_type:
            raise typer.BadParameter(f"Expected COLUMN=TYPE, got '{option}'")
        column_types[column.strip()] = sql_type.strip()
    return column_types


@app.command()
def render(
    patch_file: Path = typer.Argument(..., help="JSON file with a list of patch objects", exists=True),
    table: str = typer.Option(..., "--table", "-t", help="Target table name"),
    key: Optional[List[str]] = typer.Option(None, "--key", "-k", help="Key column (repeat for composite keys)"),
    type_option: Optional[List[str]] = typer.Option(None, "--type", help="Column SQL type as COLUMN=TYPE"),
    types_file: Optional[Path] = typer.Option(None, "--types-file", help="JSON object of column -> SQL type", exists=True),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Rows per statement"),
    dialect: str = typer.Option("postgresql", "--dialect", "-d", help="postgresql or sqlite"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Print the UPDATE statements for a patch file without touching a database.

    Examples:
        batch-update render patches.json --table cats --type id=INTEGER --type name=varchar
        batch-update render patches.json -t cats -k id -k name --types-file types.json -b 500
    """
    configure_logging(verbose)
    patches = load_patches(patch_file)
    column_types = parse_column_types(type_option, types_file)

    try:
        builder = BatchStatementBuilder(patch_table=settings.patch_table, dialect=dialect)
        statements = builder.build_statements(
            patches,
            table,
            column_types,
            key_spec=key or None,
            batch_size=batch_size or settings.batch_size,
        )
    except BatchUpdateError as e:
        err_console.print(f"[red]✗[/red] {str(e)}")
        raise typer.Exit(code=1)

    for sql in statements:
        console.print(sql, markup=False, highlight=False, soft_wrap=True)
    err_console.print(f"[dim]{len(statements)} statements for {len(patches)} patches[/dim]")


@app.command()
def apply(
    patch_file: Path = typer.Argument(..., help="JSON file with a list of patch objects", exists=True),
    table: str = typer.Option(..., "--table", "-t", help="Target table name"),
    key: Optional[List[str]] = typer.Option(None, "--key", "-k", help="Key column (default: primary key)"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Rows per statement"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Execute the UPDATE statements for a patch file against the configured database.

    Column types are read from the live schema. Rows missing from the table are
    left missing; nothing is inserted.

    Examples:
        BU_DB_TYPE=sqlite BU_DB_PATH=cats.db batch-update apply patches.json --table cats
    """
    configure_logging(verbose)
    patches = load_patches(patch_file)

    try:
        adapter = create_storage_adapter()
    except Exception as e:
        err_console.print(f"[red]✗[/red] Failed to create storage adapter: {str(e)}")
        raise typer.Exit(code=1)

    try:
        key_spec = key or adapter.primary_key(table)
        builder = BatchStatementBuilder(patch_table=settings.patch_table, dialect=adapter.dialect)
        statements = builder.build_statements(
            patches,
            table,
            adapter.column_types(table),
            key_spec=key_spec,
            batch_size=batch_size or settings.batch_size,
        )
        rows_affected = sum(adapter.execute_update(sql) for sql in statements)
        if adapter.query_cache_enabled:
            adapter.clear_query_cache()
    except BatchUpdateError as e:
        err_console.print(f"[red]✗[/red] {str(e)}")
        raise typer.Exit(code=1)
    finally:
        adapter.close()

    summary = Table(title=f"Batch update of {table}")
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value", style="green", justify="right")
    summary.add_row("Patches", str(len(patches)))
    summary.add_row("Statements", str(len(statements)))
    summary.add_row("Rows affected", str(rows_affected))
    console.print(summary)


if __name__ == "__main__":
    app()
