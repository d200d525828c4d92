"""CLI for ReportForge."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from reportforge.catalog.loader import default_catalog, load_catalog
from reportforge.config import EngineSettings
from reportforge.engine.formula import validate_formula
from reportforge.engine.time import build_buckets, suggest_granularity, validate_granularity_range
from reportforge.engine.units import format_value
from reportforge.models.catalog import SchemaCatalog
from reportforge.models.formula import Granularity
from reportforge.models.query import ComparisonMode, ComparisonResult, MetricResult
from reportforge.models.report import ReportDefinition
from reportforge.store import ReportEngine

app = typer.Typer(
    name="rf",
    help="ReportForge - metric reports over Stripe-like data",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Configure logging before any command runs."""
    settings = EngineSettings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def get_catalog(catalog_path: Path | None) -> SchemaCatalog:
    return load_catalog(catalog_path) if catalog_path else default_catalog()


def load_report(report: Path) -> ReportDefinition:
    try:
        return ReportDefinition.from_yaml(report)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading report: {escape(str(e))}[/red]")
        raise typer.Exit(1)


@app.command()
def run(
    report: Annotated[Path, typer.Argument(help="Report YAML file")],
    data_dir: Annotated[Path, typer.Option("--data", "-d", help="Warehouse data directory")] = Path(
        "./data"
    ),
    catalog_path: Annotated[
        Path | None, typer.Option("--catalog", "-c", help="Catalog YAML file or directory")
    ] = None,
    compare_mode: Annotated[
        ComparisonMode | None, typer.Option("--compare", help="Override the report's comparison")
    ] = None,
    group_field: Annotated[
        str | None, typer.Option("--group-by", "-g", help="Override the report's group-by field")
    ] = None,
    output: Annotated[str, typer.Option("--output", "-o", help="Output format: table, json")] = "table",
) -> None:
    """Run a report against a directory of warehouse files."""
    definition = load_report(report)
    settings = EngineSettings()

    try:
        engine = ReportEngine.from_directory(data_dir, catalog_path, settings)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading data: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    query = definition.to_query(settings.default_granularity)
    result = engine.compute(query)
    if result.issues:
        console.print("[red]Report failed:[/red]")
        for issue in result.issues:
            console.print(f"  - [{issue.code}] {issue.message}", markup=False)
        raise typer.Exit(1)

    mode = compare_mode or definition.compare
    comparison = engine.compare(query, mode, current=result) if mode else None

    groups: dict[str, MetricResult] = {}
    group_by = group_field or (definition.group_by.qualified if definition.group_by else None)
    if group_by:
        try:
            groups = engine.group_by(query, group_by, definition.group_values)
        except ValueError as e:
            console.print(f"[red]Invalid group-by field: {escape(str(e))}[/red]")
            raise typer.Exit(1)

    title = definition.name or report.stem
    if output == "json":
        payload = {
            "report": title,
            "result": result.model_dump(mode="json"),
            "comparison": comparison.model_dump(mode="json") if comparison else None,
            "groups": {value: r.model_dump(mode="json") for value, r in groups.items()},
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    _print_result(title, result, comparison)
    if groups:
        _print_groups(group_by, result, groups)


def _print_result(title: str, result: MetricResult, comparison: ComparisonResult | None) -> None:
    table = Table(title=title)
    table.add_column("Period", style="cyan")
    table.add_column("Value", justify="right", style="green")
    if comparison:
        table.add_column(comparison.mode.value, justify="right", style="yellow")

    for i, point in enumerate(result.series):
        row = [point.date, format_value(point.value, result.unit_type)]
        if comparison:
            other = comparison.series[i].value if i < len(comparison.series) else None
            row.append(format_value(other, result.unit_type))
        table.add_row(*row)

    console.print(table)
    console.print(f"Total: [bold]{format_value(result.value, result.unit_type)}[/bold]")
    if comparison and comparison.delta is not None:
        change = f" ({comparison.percent_change:+.1%})" if comparison.percent_change is not None else ""
        console.print(f"Change vs {comparison.mode.value}: {format_value(comparison.delta, result.unit_type)}{change}")
    if result.note:
        console.print(f"[yellow]{result.note}[/yellow]")


def _print_groups(field: str, result: MetricResult, groups: dict[str, MetricResult]) -> None:
    table = Table(title=f"By {field}")
    table.add_column("Group", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for value, group in groups.items():
        table.add_row(value, format_value(group.value, result.unit_type))
    console.print(table)


@app.command()
def validate(
    report: Annotated[Path, typer.Argument(help="Report YAML file")],
    catalog_path: Annotated[
        Path | None, typer.Option("--catalog", "-c", help="Catalog YAML file or directory")
    ] = None,
) -> None:
    """Validate a report's formula against the catalog."""
    definition = load_report(report)
    settings = EngineSettings()

    try:
        catalog = get_catalog(catalog_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading catalog: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    result = validate_formula(definition.formula, catalog)
    granularity = definition.granularity or settings.default_granularity
    check = validate_granularity_range(
        definition.start, definition.end, granularity, settings.max_buckets, settings.week_start
    )
    if not check.valid:
        result.add("too_many_buckets", check.warning)

    if not result.valid:
        console.print("[red]Validation failed:[/red]")
        for issue in result.issues:
            where = f" ({issue.location})" if issue.location else ""
            console.print(f"  - [{issue.code}] {issue.message}{where}", markup=False)
        raise typer.Exit(1)

    block_count = len(definition.formula.blocks)
    console.print(
        f"[green]Validated report '{definition.name or report.stem}' "
        f"({block_count} blocks, {check.bucket_count} {granularity.value} buckets)[/green]"
    )


@app.command()
def buckets(
    start: Annotated[datetime, typer.Argument(formats=["%Y-%m-%d"], help="Range start")],
    end: Annotated[datetime, typer.Argument(formats=["%Y-%m-%d"], help="Range end (inclusive)")],
    grain: Annotated[
        Granularity | None, typer.Option("--grain", "-t", help="Granularity, suggested when omitted")
    ] = None,
) -> None:
    """Show the time buckets a range splits into."""
    settings = EngineSettings()
    start_day, end_day = start.date(), end.date()
    if start_day > end_day:
        console.print(f"[red]Range start {start_day} is after range end {end_day}[/red]")
        raise typer.Exit(1)

    granularity = grain or suggest_granularity(start_day, end_day)
    check = validate_granularity_range(
        start_day, end_day, granularity, settings.max_buckets, settings.week_start
    )
    if not check.valid:
        console.print(f"[yellow]{check.warning}[/yellow]")
        raise typer.Exit(1)

    table = Table(title=f"{check.bucket_count} {granularity.value} buckets")
    table.add_column("Label", style="cyan")
    table.add_column("Start")
    table.add_column("End (exclusive)")
    for bucket in build_buckets(start_day, end_day, granularity, settings.week_start):
        table.add_row(bucket.label, bucket.start.isoformat(), bucket.end.isoformat())
    console.print(table)


@app.command("list")
def list_items(
    item_type: Annotated[str, typer.Argument(help="Type: objects, fields, or relationships")],
    catalog_path: Annotated[
        Path | None, typer.Option("--catalog", "-c", help="Catalog YAML file or directory")
    ] = None,
    object_name: Annotated[
        str | None, typer.Option("--object", help="Only list fields of this object")
    ] = None,
) -> None:
    """List catalog objects, fields, or relationships."""
    try:
        catalog = get_catalog(catalog_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading catalog: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if item_type == "objects":
        _list_objects(catalog)
    elif item_type == "fields":
        _list_fields(catalog, object_name)
    elif item_type == "relationships":
        _list_relationships(catalog)
    else:
        console.print(f"[red]Unknown type: {item_type}. Use: objects, fields, relationships[/red]")
        raise typer.Exit(1)


def _list_objects(catalog: SchemaCatalog) -> None:
    if not catalog.objects:
        console.print("[yellow]No objects defined[/yellow]")
        return

    table = Table(title="Objects")
    table.add_column("Name", style="cyan")
    table.add_column("Table", style="green")
    table.add_column("Fields", justify="right")
    table.add_column("Label")
    for obj in catalog.objects:
        table.add_row(obj.name, obj.table_name, str(len(obj.fields)), obj.label or "-")
    console.print(table)


def _list_fields(catalog: SchemaCatalog, object_name: str | None) -> None:
    objects = catalog.objects
    if object_name:
        obj = catalog.get_object(object_name)
        if obj is None:
            console.print(f"[red]Unknown object: {object_name}[/red]")
            raise typer.Exit(1)
        objects = [obj]

    table = Table(title="Fields")
    table.add_column("Field", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Unit", style="yellow")
    table.add_column("Values")
    for obj in objects:
        for f in obj.fields:
            table.add_row(
                f"{obj.name}.{f.name}",
                f.type.value,
                f.unit.value if f.unit else "-",
                ", ".join(f.enum) if f.enum else "-",
            )
    console.print(table)


def _list_relationships(catalog: SchemaCatalog) -> None:
    if not catalog.relationships:
        console.print("[yellow]No relationships defined[/yellow]")
        return

    table = Table(title="Relationships")
    table.add_column("From", style="cyan")
    table.add_column("To", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Via")
    for rel in catalog.relationships:
        table.add_row(rel.from_object, rel.to_object, rel.type.value, rel.via)
    console.print(table)


if __name__ == "__main__":
    app()
