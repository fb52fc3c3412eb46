#!/usr/bin/env python
"""
CLI management commands for the ISP back-office dashboard.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

import click

from ispadmin.backoffice.dashboard.complaints import escalate_stale_complaints
from ispadmin.backoffice.dashboard.dates import DateFilter, DateRange
from ispadmin.backoffice.dashboard.expired import ExpiredOverviewService, summarize
from ispadmin.backoffice.dashboard.service import DashboardService
from ispadmin.backoffice.db import dispose_engine, init_db
from ispadmin.backoffice.logging import setup_logging
from ispadmin.backoffice.records import get_record_store
from ispadmin.backoffice.records.store import RecordStore

T = TypeVar("T")


@dataclass
class CLIDependencies:
    """Bundle of injectable dependencies used by CLI commands."""

    store_factory: Callable[[], RecordStore]
    init_db: Callable[[], Awaitable[None]]
    dispose: Callable[[], Awaitable[None]]


def _get_cli_dependencies() -> CLIDependencies:
    """Return the default dependency bundle for CLI commands."""
    return CLIDependencies(
        store_factory=get_record_store,
        init_db=init_db,
        dispose=dispose_engine,
    )


def _run(deps: CLIDependencies, job: Callable[[RecordStore], Awaitable[T]]) -> T:
    async def _main() -> T:
        try:
            return await job(deps.store_factory())
        finally:
            await deps.dispose()

    return asyncio.run(_main())


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))


date_option = click.option(
    "--date",
    "selected_date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Reference day (YYYY-MM-DD); defaults to today",
)
source_option = click.option("--source", default="All", help="Data source filter, or All")


@click.group()
def cli() -> None:
    """ISP back-office dashboard CLI."""
    setup_logging()


@cli.command()
def init_database() -> None:
    """Create the record store tables."""
    deps = _get_cli_dependencies()
    click.echo("Initializing database...")

    async def _init() -> None:
        try:
            await deps.init_db()
        finally:
            await deps.dispose()

    asyncio.run(_init())
    click.echo("Database initialized successfully!")


@cli.command()
def sweep_complaints() -> None:
    """Move overdue Open / Not Resolved complaints to Pending."""
    deps = _get_cli_dependencies()
    escalated = _run(deps, escalate_stale_complaints)
    click.echo(f"Escalated {escalated} complaint(s) to Pending")


@cli.command()
@click.option("--reset", is_flag=True, help="Clear the overview before populating it")
def migrate_expired(reset: bool) -> None:
    """Populate the expired overview from customer records."""
    deps = _get_cli_dependencies()

    async def _migrate(store: RecordStore) -> Any:
        return await ExpiredOverviewService(store).migrate_expired_customers(reset=reset)

    result = _run(deps, _migrate)
    _echo_json(summarize(result))
    if result.errors:
        raise SystemExit(1)


@cli.command()
def sync_expired() -> None:
    """Add overview records for newly expired customers."""
    deps = _get_cli_dependencies()

    async def _sync(store: RecordStore) -> Any:
        return await ExpiredOverviewService(store).sync_new_expired_customers()

    _echo_json(summarize(_run(deps, _sync)))


@cli.command()
def cleanup_expired() -> None:
    """Remove overview records for customers that are no longer expired."""
    deps = _get_cli_dependencies()

    async def _cleanup(store: RecordStore) -> Any:
        return await ExpiredOverviewService(store).cleanup_non_expired_customers()

    _echo_json(summarize(_run(deps, _cleanup)))


@cli.command()
def reconcile_expired() -> None:
    """Sync then clean up the expired overview."""
    deps = _get_cli_dependencies()

    async def _reconcile(store: RecordStore) -> Any:
        return await ExpiredOverviewService(store).reconcile()

    _echo_json(summarize(_run(deps, _reconcile)))


@cli.command()
def expired_stats() -> None:
    """Show expired overview totals."""
    deps = _get_cli_dependencies()

    async def _stats(store: RecordStore) -> Any:
        return await ExpiredOverviewService(store).get_overview_stats()

    _echo_json(_run(deps, _stats).to_response())


@cli.command()
@date_option
@click.option(
    "--range",
    "date_range",
    type=click.Choice([r.value for r in DateRange]),
    default=DateRange.WEEK.value,
    show_default=True,
    help="Chart window",
)
@source_option
def dashboard(selected_date: datetime | None, date_range: str, source: str) -> None:
    """Print the dashboard chart payload as JSON."""
    deps = _get_cli_dependencies()

    async def _charts(store: RecordStore) -> Any:
        return await DashboardService(store).generate_chart_data(
            selected_date or datetime.now(), date_range, source
        )

    _echo_json(_run(deps, _charts).to_response())


@cli.command()
@date_option
@source_option
def metrics(selected_date: datetime | None, source: str) -> None:
    """Print the dashboard metrics snapshot for a day as JSON."""
    deps = _get_cli_dependencies()
    date_filter = DateFilter.for_day(selected_date or datetime.now())

    async def _metrics(store: RecordStore) -> Any:
        return await DashboardService(store).calculate_metrics(
            date_filter=date_filter, data_source=source
        )

    _echo_json(_run(deps, _metrics).to_response())


if __name__ == "__main__":
    cli()
