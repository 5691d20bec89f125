"""CLI entry point for the ICP screener."""

from __future__ import annotations

import asyncio
import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from icp_screener.config import Config, load_config
from icp_screener.db.database import Database
from icp_screener.db.migrations import run_migrations
from icp_screener.db.repository import Store
from icp_screener.errors import ScreenerError

console = Console(force_terminal=True)

FIT_STYLES = {"Strong": "green", "Moderate": "yellow", "Weak": "red", "Disqualified": "dim"}


def _open_store(config: Config) -> Store:
    db = Database(config.db_path)
    db.connect()
    run_migrations(db)
    return Store(db)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
def main(verbose: bool) -> None:
    """Screen B2B companies for narrative-gap ICP fit.

    Example: python -m icp_screener import companies.csv && python -m icp_screener screen
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, show_time=False)],
    )


@main.command("import")
@click.argument("input_file", type=click.Path(exists=True))
def import_cmd(input_file: str) -> None:
    """Import companies from a CSV/Excel file (re-import is safe)."""
    from icp_screener.input.reader import import_companies, read_companies

    config = load_config()
    try:
        rows = read_companies(input_file)
    except (FileNotFoundError, ScreenerError) as e:
        console.print(f"[red]Input error: {e}[/red]")
        sys.exit(1)

    store = _open_store(config)
    try:
        summary = import_companies(store, rows)
    finally:
        store.db.close()

    console.print(
        f"Imported [bold]{len(summary.companies)}[/bold] companies from {input_file} "
        f"({summary.created} new, {summary.existing} already present)"
    )
    for website in summary.skipped:
        console.print(f"  [yellow]Skipped (no domain): {website}[/yellow]")


@main.command()
@click.option("--concurrency", "-c", default=None, type=int, help="Max companies in flight (default: 2)")
@click.option("--domain", "domains", multiple=True, help="Screen only these domain(s); repeatable")
def screen(concurrency: int | None, domains: tuple[str, ...]) -> None:
    """Screen every pending or errored company."""
    from icp_screener.pipeline import ScreeningPipeline

    config = load_config()
    store = _open_store(config)
    reset = store.reset_stale_processing()
    if reset:
        console.print(f"[dim]Reset {reset} companies left in processing[/dim]")

    pipeline = ScreeningPipeline(config, store)

    async def _run():
        try:
            return await pipeline.run(list(domains) or None, concurrency=concurrency)
        finally:
            await pipeline.close()

    try:
        summary = asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        sys.exit(130)
    finally:
        store.db.close()

    if not summary.outcomes:
        console.print("Nothing to screen.")
        return
    for outcome in summary.outcomes:
        if outcome.status == "error":
            console.print(f"    [red]- {outcome.domain}: {outcome.error}[/red]")
    if summary.failed:
        sys.exit(1)


@main.command()
@click.argument("output_file", type=click.Path())
def export(output_file: str) -> None:
    """Export companies with their latest scores to CSV or .xlsx."""
    from icp_screener.output.csv_export import export_companies

    config = load_config()
    store = _open_store(config)
    try:
        count = export_companies(store, output_file)
    finally:
        store.db.close()
    console.print(f"[bold]Exported {count} companies to {output_file}[/bold]")


@main.command("list")
@click.option("--status", "statuses", multiple=True, help="Filter by status; repeatable")
def list_cmd(statuses: tuple[str, ...]) -> None:
    """Show companies and their latest fit."""
    config = load_config()
    store = _open_store(config)
    try:
        records = store.get_companies_with_latest()
    finally:
        store.db.close()
    if statuses:
        records = [r for r in records if r["status"] in statuses]

    table = Table(title=f"Companies ({len(records)})")
    table.add_column("Domain")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Score", justify="right")
    table.add_column("Fit")
    for rec in records:
        fit = rec.get("icp_fit") or ""
        table.add_row(
            rec["domain"],
            rec["name"],
            rec["status"] if rec["status"] != "error" else f"[red]error[/red]",
            str(rec.get("total_score") or 0) if rec["status"] == "complete" else "",
            f"[{FIT_STYLES[fit]}]{fit}[/{FIT_STYLES[fit]}]" if fit in FIT_STYLES else fit,
        )
    console.print(table)


@main.command()
@click.argument("industry")
@click.option("--country", multiple=True, help="HQ country (repeatable)")
@click.option("--employees", multiple=True, help="Employee range such as 51-200 (repeatable)")
@click.option("--limit", default=25, type=int, show_default=True)
@click.option("--add", "add_to_db", is_flag=True, help="Import the discovered companies")
def discover(industry: str, country: tuple[str, ...], employees: tuple[str, ...], limit: int, add_to_db: bool) -> None:
    """Find companies in Crustdata's company DB by LinkedIn industry."""
    from icp_screener.crustdata.client import CrustdataClient, build_company_filters
    from icp_screener.input.reader import import_companies
    from icp_screener.models import CompanyInput

    config = load_config()
    if not config.crustdata_api_key:
        console.print("[red]CRUSTDATA_API_KEY is required for discovery[/red]")
        sys.exit(1)

    store = _open_store(config)
    known = [c.domain for c in store.list_companies()]
    conditions = [{"filter_type": "linkedin_industries", "type": "(.)", "value": industry}]
    if country:
        conditions.append({"filter_type": "hq_country", "type": "in", "value": list(country)})
    filters = build_company_filters(conditions, list(employees), exclude_domains=known)

    client = CrustdataClient.from_config(config)

    async def _run():
        try:
            return await client.discover_companies(filters, limit=limit)
        finally:
            await client.close()

    try:
        page = asyncio.run(_run())
    except ScreenerError as e:
        store.db.close()
        console.print(f"[red]Discovery failed: {e}[/red]")
        sys.exit(1)

    table = Table(title=f"Discovered {len(page.companies)} of {page.total_count}")
    for col in ("Name", "Domain", "Industry", "Employees", "Location"):
        table.add_column(col)
    for co in page.companies:
        table.add_row(co.name, co.domain, co.industry, str(co.employees), co.location)
    console.print(table)

    if add_to_db and page.companies:
        rows = [CompanyInput(name=co.name, website=co.website) for co in page.companies]
        summary = import_companies(store, rows)
        console.print(f"Added {summary.created} companies to the screening queue")
    store.db.close()


@main.command()
@click.option("--host", default=None, help="Bind host (default: WEB_HOST or 0.0.0.0)")
@click.option("--port", default=None, type=int, help="Bind port (default: WEB_PORT or 8000)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Run the JSON API server."""
    import uvicorn

    config = load_config()
    uvicorn.run(
        "icp_screener.web.app:app",
        host=host or config.web_host,
        port=port or config.web_port,
        reload=reload,
    )


if __name__ == "__main__":
    main()
