"""CLI for MonitorForge."""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from monitorforge.credentials import InstanceManager
from monitorforge.errors import MonitorForgeError
from monitorforge.executor import (
    UNIT_MAPPINGS,
    QueryExecutor,
    TimeSeriesFilterExecutor,
    TimeSeriesQueryExecutor,
)
from monitorforge.models.frame import QueryDataResponse
from monitorforge.models.settings import QueryDataRequest
from monitorforge.parser.loader import load_batch, load_settings
from monitorforge.service import QueryService

app = typer.Typer(
    name="monf",
    help="MonitorForge - Cloud Monitoring query CLI",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_batch(batch_file: Path, settings_file: Path | None = None) -> QueryDataRequest:
    settings = load_settings(settings_file) if settings_file else None
    return load_batch(batch_file, settings)


def _load_or_exit(batch_file: Path, settings_file: Path | None = None) -> QueryDataRequest:
    try:
        return get_batch(batch_file, settings_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading batch: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _build_or_exit(request: QueryDataRequest) -> list[QueryExecutor]:
    try:
        return QueryService().build_query_executors(request)
    except MonitorForgeError as e:
        console.print(f"[red]Invalid batch: {escape(str(e))}[/red]")
        raise typer.Exit(1)


@app.command()
def validate(
    batch_file: Annotated[Path, typer.Argument(help="Batch file (yaml or json)")],
) -> None:
    """Validate a query batch without calling the api."""
    request = _load_or_exit(batch_file)
    executors = _build_or_exit(request)
    console.print(f"[green]Validated {len(executors)} queries successfully![/green]")


@app.command("show-request")
def show_request(
    batch_file: Annotated[Path, typer.Argument(help="Batch file (yaml or json)")],
    settings_file: Annotated[
        Path | None, typer.Option("--settings", "-s", help="Datasource settings file")
    ] = None,
) -> None:
    """Show the api requests a batch would make, without executing them."""
    request = _load_or_exit(batch_file, settings_file)
    executors = _build_or_exit(request)
    default_project = request.datasource.default_project or "<default project>"

    for executor in executors:
        if isinstance(executor, TimeSeriesFilterExecutor):
            project = executor.project_name or default_project
            table = Table(title=f"{executor.ref_id}: GET /v3/projects/{project}/timeSeries")
            table.add_column("Param", style="cyan")
            table.add_column("Value")
            for key, value in executor.params.items():
                table.add_row(key, value)
            console.print(table)
        elif isinstance(executor, TimeSeriesQueryExecutor):
            project = executor.project_name or default_project
            console.print(
                f"[bold]{executor.ref_id}: POST /v3/projects/{project}/timeSeries:query[/bold]"
            )
            body = json.dumps({"query": executor.executed_query}, indent=2)
            console.print(Syntax(body, "json", theme="monokai", word_wrap=True))
        console.print()


@app.command()
def query(
    batch_file: Annotated[Path, typer.Argument(help="Batch file (yaml or json)")],
    settings_file: Annotated[
        Path, typer.Option("--settings", "-s", help="Datasource settings file")
    ],
    token: Annotated[
        str | None,
        typer.Option("--token", envvar="MONF_ACCESS_TOKEN", help="Bearer token for jwt datasources"),
    ] = None,
    output: Annotated[
        str, typer.Option("--output", "-o", help="Output format: table, json")
    ] = "table",
) -> None:
    """Run a query batch against the api."""
    request = _load_or_exit(batch_file, settings_file)

    token_source = (lambda _settings: token) if token else None
    manager = InstanceManager(token_source=token_source)
    try:
        result = QueryService(manager).query_data(request)
    except MonitorForgeError as e:
        console.print(f"[red]Query error: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    finally:
        manager.dispose()

    _output_result(result, output)

    if any(response.error for response in result.responses.values()):
        raise typer.Exit(1)


def _output_result(result: QueryDataResponse, output_format: str) -> None:
    """Output query result in the specified format."""
    if output_format == "json":
        data = result.model_dump(mode="json", by_alias=True, exclude_none=True)
        console.print(json.dumps(data, indent=2), markup=False, highlight=False, soft_wrap=True)
        return

    for ref_id, response in result.responses.items():
        if response.error:
            console.print(f"[red]{ref_id}: {escape(response.error)}[/red]")
            continue
        if not response.frames:
            console.print(f"[yellow]{ref_id}: no data[/yellow]")
            continue

        for frame in response.frames:
            table = Table(title=f"{ref_id}: {escape(frame.name or 'frame')} ({frame.row_count} rows)")
            for frame_field in frame.fields:
                table.add_column(frame_field.name)
            for row in zip(*(frame_field.values for frame_field in frame.fields)):
                table.add_row(*(str(value) for value in row))
            console.print(table)


@app.command()
def units() -> None:
    """List the api units that map onto display units."""
    table = Table(title="Units")
    table.add_column("Cloud Monitoring", style="cyan")
    table.add_column("Display", style="green")
    for source, target in UNIT_MAPPINGS.items():
        table.add_row(source, target)
    console.print(table)


if __name__ == "__main__":
    app()
