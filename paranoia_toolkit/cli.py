#!/usr/bin/env python3
"""
Command-line interface for Paranoia Python Toolkit.

Provides configuration display and a scan of soft deleted rows in a table.
"""

import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from sqlalchemy import MetaData, Table as SqlTable, create_engine, func, select
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from . import __version__
from .config import ColumnType, get_config
from .soft_delete.exceptions import ConfigurationError
from .soft_delete.markers import marker_policy_for

console = Console()


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Paranoia Python Toolkit - soft delete tools for SQLAlchemy."""
    if ctx.invoked_subcommand is None:
        console.print(
            Panel.fit(
                f"[bold blue]Paranoia Python Toolkit[/bold blue] v{__version__}\n"
                "[dim]Soft deletion with cascading restore[/dim]\n\n"
                "Use [bold]paranoia --help[/bold] to see available commands.",
                border_style="blue",
            )
        )


@cli.group()
def config() -> None:
    """Manage toolkit configuration."""
    pass


@config.command("show")
@click.option("--format", type=click.Choice(["table", "json", "yaml"]), default="table")
def config_show(format: str) -> None:
    """Display current configuration."""
    config_dict = get_config().to_dict()

    if format == "json":
        console.print_json(data=config_dict)
    elif format == "yaml":
        import yaml

        console.print(yaml.safe_dump(config_dict, default_flow_style=False))
    else:
        table = Table(title="Paranoia Configuration", show_header=True)
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")

        for setting, value in config_dict.items():
            if value is None:
                value = "[dim]Not configured[/dim]"
            elif isinstance(value, bool):
                value = "✓" if value else "✗"
            table.add_row(setting, str(value))

        console.print(table)


@cli.command("scan")
@click.option("--url", required=True, help="Database URL, e.g. sqlite:///app.db")
@click.option("--table", "table_name", required=True, help="Table to scan")
@click.option("--column", default=None, help="Marker column (default from config)")
@click.option(
    "--column-type",
    default=None,
    help=f"Marker scheme: {', '.join(t.value for t in ColumnType)}",
)
def scan(url: str, table_name: str, column: str, column_type: str) -> None:
    """Count live and soft deleted rows of a table."""
    settings = get_config()
    column = column or settings.default_column

    try:
        policy = marker_policy_for(column_type or settings.default_column_type)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    engine = create_engine(url)
    try:
        table = SqlTable(table_name, MetaData(), autoload_with=engine)
        if column not in table.c:
            console.print(
                f"[red]Error: table {table_name} has no column {column}[/red]"
            )
            sys.exit(1)

        marker = table.c[column]
        with engine.connect() as conn:
            total = conn.scalar(select(func.count()).select_from(table))
            deleted = conn.scalar(
                select(func.count())
                .select_from(table)
                .where(policy.deleted_criterion(marker))
            )
    except NoSuchTableError:
        console.print(f"[red]Error: table {table_name} not found[/red]")
        sys.exit(1)
    except SQLAlchemyError as e:
        console.print(f"[red]Error scanning {table_name}: {e}[/red]")
        sys.exit(1)
    finally:
        engine.dispose()

    result = Table(title=f"Soft delete scan: {table_name}", show_header=True)
    result.add_column("State", style="cyan")
    result.add_column("Rows", style="green", justify="right")
    result.add_row("Live", str(total - deleted))
    result.add_row("Deleted", str(deleted))
    result.add_row("[bold]Total[/bold]", f"[bold]{total}[/bold]")

    console.print(result)
    console.print(
        f"[dim]Marker {column} ({policy.column_type.value})[/dim]", highlight=False
    )


if __name__ == "__main__":
    cli()
