"""
Gemeinden analytics command line.

Runs the analytics engines against the DuckDB warehouse and prints the
results as tables.

Usage:
    gemeinden-analytics correlations 2011 2023 --top 20
    gemeinden-analytics cluster 2023 "Steuerfuss" "Steuerfuss JusPers"
    gemeinden-analytics moran 2023 "Sozialhilfequote" --entity 261 --entity 230

Configuration is read from ``GEMEINDEN_*`` environment variables (see
``gemeinden_analytics.config``).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from gemeinden_analytics.analysis.clustering import cluster_profiles, silhouette
from gemeinden_analytics.analysis.correlation import interpret_correlation
from gemeinden_analytics.config import Settings, configure_logging
from gemeinden_analytics.errors import AnalyticsError
from gemeinden_analytics.service import AnalyticsService

console = Console()
app = typer.Typer(help="Spatial statistics over Gemeinde KPIs")


def _format(value: float | None, digits: int = 4) -> str:
    return "-" if value is None else f"{value:.{digits}f}"


def _service(years: list[int] | None = None) -> AnalyticsService:
    """Load settings, configure logging and preload ``years`` (all configured years if None)."""
    settings = Settings.from_env()
    configure_logging(settings)
    return AnalyticsService.from_settings(settings, years=years)


def _fail(error: AnalyticsError) -> None:
    console.print(f"[red]❌ {error}[/red]")
    logger.error(str(error))
    raise typer.Exit(1)


@app.command()
def status() -> None:
    """Preload every configured year and report which ones are cached."""
    service = _service()
    cache = service.cache

    table = Table(show_header=True, header_style="bold green")
    table.add_column("Year", style="cyan")
    table.add_column("Gemeinden", justify="right")
    table.add_column("KPIs", justify="right")
    table.add_column("Status")

    for year in service.settings.years:
        if cache.available(year):
            snapshot = cache.get(year)
            table.add_row(str(year), f"{len(snapshot.entities):,}", str(len(snapshot.attribute_names)), "[green]✓[/green]")
        else:
            table.add_row(str(year), "-", "-", f"[red]{cache.failures.get(year, 'missing')}[/red]")

    console.print(table)
    console.print(f"\n[bold]Cached:[/bold] {len(cache.years)}/{len(service.settings.years)} years")

    try:
        warehouse_years = cache.store.list_years()
    except AnalyticsError as e:
        console.print(f"[yellow]⚠️  {e}[/yellow]")
        return
    console.print(f"[bold]Warehouse years:[/bold] {', '.join(map(str, warehouse_years)) or '-'}")
    unconfigured = [year for year in warehouse_years if year not in service.settings.years]
    if unconfigured:
        console.print(f"[yellow]⚠️  Outside the configured range: {', '.join(map(str, unconfigured))}[/yellow]")


@app.command()
def adjacency(
    year: int = typer.Argument(..., help="Reporting year"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the graph as JSON"),
) -> None:
    """Contiguity graph of one year."""
    service = _service([year])
    try:
        graph = service.adjacency(year)
    except AnalyticsError as e:
        _fail(e)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps({str(k): v for k, v in graph.items()}, ensure_ascii=False))
        console.print(f"[green]✓[/green] Saved to: [bold]{output}[/bold]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Gemeinde", style="cyan")
    table.add_column("Neighbours")
    for entity_id, neighbors in graph.items():
        table.add_row(str(entity_id), ", ".join(str(n) for n in neighbors))
    console.print(table)


@app.command()
def correlations(
    start: int = typer.Argument(..., help="First year"),
    end: int = typer.Argument(..., help="Last year (inclusive)"),
    top: int = typer.Option(20, "--top", "-n", help="Number of pairs to show"),
) -> None:
    """Rank KPI pairs by absolute Pearson correlation."""
    service = _service(range(start, end + 1))
    try:
        results = service.correlations(start, end)
    except AnalyticsError as e:
        _fail(e)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Pair", style="cyan")
    table.add_column("r", justify="right")
    table.add_column("n", justify="right")
    table.add_column("Interpretation")
    for result in results[:top]:
        table.add_row(result.pair_label, f"{result.r:.3f}", f"{result.n:,}", interpret_correlation(result.r))

    console.print(table)
    console.print(f"\n{len(results)} pairs with enough data")


@app.command("cluster")
def cluster_command(
    year: int = typer.Argument(..., help="Reporting year"),
    features: List[str] = typer.Argument(..., help="Two or three KPI names"),
) -> None:
    """K-Means (k=3) over two or three KPIs."""
    service = _service([year])
    try:
        assignments = service.clusters(year, features)
    except AnalyticsError as e:
        _fail(e)

    if not assignments:
        console.print("[yellow]⚠️ Not enough Gemeinden with complete data to form 3 clusters.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Gemeinde", style="cyan")
    for feature in features:
        table.add_column(feature, justify="right")
    table.add_column("Cluster", justify="right")
    for assignment in assignments:
        table.add_row(
            str(assignment.entity_id),
            *[_format(assignment.features[f], 2) for f in features],
            str(assignment.cluster),
        )
    console.print(table)

    profiles = cluster_profiles(assignments)
    console.print("\n[bold]Cluster profiles:[/bold]")
    for row in profiles.iter_rows(named=True):
        means = ", ".join(f"{f}={row[f'avg_{f}']:.2f}" for f in features)
        console.print(f"  [Cluster {row['cluster']}] {row['members']:,} Gemeinden: {means}")
    console.print(f"\n[bold]Silhouette score:[/bold] {_format(silhouette(assignments))}")


@app.command()
def moran(
    year: int = typer.Argument(..., help="Reporting year"),
    attribute: str = typer.Argument(..., help="KPI name"),
    entity: Optional[List[str]] = typer.Option(None, "--entity", "-e", help="Gemeinde id (repeatable)"),
    stored: bool = typer.Option(False, "--stored", help="Read precomputed scores from the warehouse"),
) -> None:
    """Neighbourhood Moran's I per Gemeinde, plus the global statistic."""
    service = _service([year])
    try:
        if stored:
            scores = service.stored_moran(year, attribute, entity or None)
        else:
            scores = service.moran(year, attribute, entity or None)
        overall = service.global_moran(year, attribute)
    except AnalyticsError as e:
        _fail(e)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Gemeinde", style="cyan")
    table.add_column("Moran's I", justify="right")
    for score in scores:
        table.add_row(str(score.entity_id), _format(score.moran_i))
    console.print(table)
    console.print(f"\n[bold]Global Moran's I:[/bold] {_format(overall)}")


@app.command()
def deviation(
    year: int = typer.Argument(..., help="Reporting year"),
    x: str = typer.Argument(..., help="Explanatory KPI"),
    y: str = typer.Argument(..., help="Dependent KPI"),
) -> None:
    """Deviation of each Gemeinde from the linear fit of y on x."""
    service = _service([year])
    try:
        results = service.deviations(year, x, y)
    except AnalyticsError as e:
        _fail(e)

    if not results:
        console.print("[yellow]⚠️ Fewer than two Gemeinden have both KPIs.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Gemeinde", style="cyan")
    table.add_column(x, justify="right")
    table.add_column(y, justify="right")
    table.add_column("Predicted", justify="right")
    table.add_column("Deviation", justify="right")
    for result in results:
        table.add_row(
            str(result.entity_id),
            _format(result.x, 2),
            _format(result.y, 2),
            _format(result.predicted, 2),
            _format(result.deviation, 2),
        )
    console.print(table)


@app.command()
def averages(
    x: str = typer.Argument(..., help="First KPI"),
    y: str = typer.Argument(..., help="Second KPI"),
) -> None:
    """Yearly Gemeinde averages of two KPIs."""
    service = _service()
    try:
        rows = service.kpi_averages(x, y)
    except AnalyticsError as e:
        _fail(e)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Year", style="cyan")
    table.add_column(x, justify="right")
    table.add_column(y, justify="right")
    for row in rows:
        table.add_row(str(row["year"]), _format(row["xAvg"], 2), _format(row["yAvg"], 2))
    console.print(table)


@app.command()
def details(
    year: int = typer.Argument(..., help="Reporting year"),
    entity_id: str = typer.Argument(..., help="Gemeinde id"),
) -> None:
    """All KPIs of one Gemeinde in one year."""
    service = _service([year])
    try:
        row = service.entity_details(year, entity_id)
    except AnalyticsError as e:
        _fail(e)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in row.items():
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


@app.command()
def timeseries(
    entity_id: str = typer.Argument(..., help="Gemeinde id or name"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write rows as JSON"),
) -> None:
    """Every year of one Gemeinde."""
    service = _service([])
    try:
        rows = service.entity_timeseries(entity_id)
    except AnalyticsError as e:
        _fail(e)

    payload = json.dumps(rows, ensure_ascii=False, default=str, indent=2)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(payload)
        console.print(f"[green]✓[/green] Saved {len(rows)} rows to: [bold]{output}[/bold]")
    else:
        console.print_json(payload)


@app.command("export-geojson")
def export_geojson(
    year: int = typer.Argument(..., help="Reporting year"),
    output: Path = typer.Option(Path("data/geojson"), "--output", "-o", help="Output directory"),
) -> None:
    """Write the FeatureCollection of one year to ``<output>/gemeinden_<year>.geojson``."""
    service = _service([year])
    try:
        features = service.geojson(year)
    except AnalyticsError as e:
        _fail(e)

    output.mkdir(parents=True, exist_ok=True)
    path = output / f"gemeinden_{year}.geojson"
    path.write_text(json.dumps(features, ensure_ascii=False))
    console.print(f"[green]✓[/green] {len(features['features']):,} features saved to: [bold]{path}[/bold]")


def main() -> None:
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
