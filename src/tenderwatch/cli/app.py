from __future__ import annotations

from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from tenderwatch.config.settings import get_settings
from tenderwatch.db.engine import build_engine
from tenderwatch.db.init_db import init_db, reset_db
from tenderwatch.db.session import build_session_factory
from tenderwatch.repos.alert_repo import AlertRepository
from tenderwatch.repos.record_repo import RecordStore
from tenderwatch.repos.runs_repo import CollectionRunRepository
from tenderwatch.repos.usage_repo import UsageRepository
from tenderwatch.services.pipeline import PipelineOrchestrator, PipelineSummary
from tenderwatch.services.scheduler import Scheduler, validate_interval
from tenderwatch.services.search import SearchFilter, SearchIndex
from tenderwatch.services.templates import format_brl
from tenderwatch.utils.logging import configure_logging

app = typer.Typer(help="tenderwatch CLI (init DB, run the pipeline, manage alerts).")
console = Console()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Override TENDERWATCH_LOG_LEVEL."),
    json_logs: Optional[bool] = typer.Option(None, "--json-logs/--console-logs", help="Log format."),
) -> None:
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        json_logs=settings.json_logs if json_logs is None else json_logs,
    )


def _sessions():
    return build_session_factory(build_engine())


def _print_summary(summary: PipelineSummary) -> None:
    table = Table(title="Cycle summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    for key, value in summary.to_dict().items():
        if key == "failed_stages":
            value = ", ".join(value) or "-"
        table.add_row(key, str(value))
    console.print(table)


@app.command("init-db")
def init_db_cmd(
    reset: bool = typer.Option(False, "--reset", help="Drop all tables first (destroys data)."),
) -> None:
    engine = build_engine()
    if reset:
        reset_db(engine)
    else:
        init_db(engine)
    typer.echo("✅ Database initialized and reachable.")


@app.command("run-once")
def run_once_cmd() -> None:
    """Run a single pipeline cycle in the foreground."""
    orchestrator = PipelineOrchestrator.from_settings()
    try:
        summary = orchestrator.run_cycle()
    finally:
        orchestrator.close()
    _print_summary(summary)
    if not summary.ok:
        raise typer.Exit(1)


@app.command("schedule")
def schedule_cmd(
    interval: Optional[int] = typer.Option(None, help="Minutes between cycles (1-1440)."),
) -> None:
    """Run one cycle now, then every INTERVAL minutes until Ctrl+C."""
    settings = get_settings()
    minutes = interval if interval is not None else settings.interval_minutes
    try:
        validate_interval(minutes)
    except ValueError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(2)

    orchestrator = PipelineOrchestrator.from_settings(settings)
    scheduler = Scheduler(orchestrator.run_cycle, interval_minutes=minutes)
    console.print(f"[bold blue]Scheduler running every {minutes} min (Ctrl+C to stop)[/bold blue]")
    scheduler.start()
    try:
        scheduler.wait_stopped()
    except KeyboardInterrupt:
        console.print("Stopping; waiting for the current cycle to finish...")
    finally:
        scheduler.stop()
        scheduler.wait_for_cycle()
        orchestrator.close()


@app.command("stats")
def stats_cmd() -> None:
    with _sessions()() as session:
        s = RecordStore(session).get_stats()
        usage = UsageRepository(session).summary()

    console.print(f"Records: [bold]{s.total}[/bold]  matched: {s.matched}  analyzed: {s.analyzed}")
    console.print(
        f"Today: {usage.classifications} classifications, {usage.analyses} analyses, US$ {usage.cost_usd:.4f}"
    )

    for title, rows in (("By region (top 10)", s.by_region), ("By category", s.by_category)):
        table = Table(title=title)
        table.add_column("Key", style="cyan")
        table.add_column("Records", style="green", justify="right")
        for key, n in rows:
            table.add_row(key, str(n))
        console.print(table)


@app.command("search")
def search_cmd(
    keywords: List[str] = typer.Argument(..., help='Keywords; supports "phrases", AND/NOT and prefix*.'),
    region: List[str] = typer.Option([], "--region", "-r", help="UF filter, repeatable."),
    value_min: Optional[float] = typer.Option(None),
    value_max: Optional[float] = typer.Option(None),
    open_only: bool = typer.Option(False, "--open", help="Only notices still accepting proposals."),
    limit: int = typer.Option(20),
) -> None:
    flt = SearchFilter(
        keywords=keywords,
        regions=[r.upper() for r in region],
        value_min=value_min,
        value_max=value_max,
        open_only=open_only,
        limit=limit,
    )
    with _sessions()() as session:
        rows = SearchIndex(session).search(flt)

        table = Table(title=f"{len(rows)} result(s)")
        table.add_column("ID", style="cyan")
        table.add_column("UF")
        table.add_column("Object", style="magenta")
        table.add_column("Value", style="green", justify="right")
        for r in rows:
            table.add_row(r.external_id, r.region or "", (r.description or "")[:80], format_brl(r.estimated_value))
    console.print(table)


@app.command("alert-add")
def alert_add_cmd(
    name: str = typer.Option(..., help="Alert name."),
    keyword: List[str] = typer.Option(..., "--keyword", "-k", help="Keyword, repeatable."),
    region: List[str] = typer.Option([], "--region", "-r", help="UF, repeatable."),
    category: List[int] = typer.Option([], "--category", "-c", help="Category code, repeatable."),
    value_min: Optional[float] = typer.Option(None),
    value_max: Optional[float] = typer.Option(None),
    channel: str = typer.Option("telegram", help="telegram, email or both."),
) -> None:
    with _sessions()() as session:
        try:
            alert = AlertRepository(session).create(
                name=name,
                keywords=keyword,
                regions=region,
                categories=category,
                value_min=value_min,
                value_max=value_max,
                channel=channel,
            )
        except ValueError as e:
            console.print(f"[red]✗[/red] Error: {e}")
            raise typer.Exit(1)
        typer.echo(f"✅ Created alert id={alert.id}")


@app.command("alerts")
def alerts_cmd() -> None:
    with _sessions()() as session:
        alerts = AlertRepository(session).list_all()

        table = Table(title="Alerts")
        table.add_column("id", style="cyan")
        table.add_column("name")
        table.add_column("keywords", style="magenta")
        table.add_column("regions")
        table.add_column("channel")
        table.add_column("active", style="green")
        for a in alerts:
            table.add_row(
                str(a.id),
                a.name,
                ", ".join(a.keywords),
                ", ".join(a.regions) or "*",
                a.channel,
                "yes" if a.active else "no",
            )
    console.print(table)


def _toggle(alert_id: int, active: bool) -> None:
    with _sessions()() as session:
        if not AlertRepository(session).set_active(alert_id, active):
            console.print(f"[red]✗[/red] Alert {alert_id} not found")
            raise typer.Exit(1)
    typer.echo(f"✅ Alert {alert_id} {'enabled' if active else 'disabled'}")


@app.command("alert-enable")
def alert_enable_cmd(alert_id: int = typer.Argument(...)) -> None:
    _toggle(alert_id, True)


@app.command("alert-disable")
def alert_disable_cmd(alert_id: int = typer.Argument(...)) -> None:
    _toggle(alert_id, False)


@app.command("alert-remove")
def alert_remove_cmd(alert_id: int = typer.Argument(...)) -> None:
    with _sessions()() as session:
        if not AlertRepository(session).delete(alert_id):
            console.print(f"[red]✗[/red] Alert {alert_id} not found")
            raise typer.Exit(1)
    typer.echo(f"✅ Alert {alert_id} removed")


@app.command("runs")
def runs_cmd(limit: int = typer.Option(20, help="How many recent collection runs to show.")) -> None:
    with _sessions()() as session:
        runs = CollectionRunRepository(session).list_recent(limit)

        table = Table(title="Collection runs")
        table.add_column("started", style="cyan")
        table.add_column("category")
        table.add_column("UF")
        table.add_column("total", justify="right")
        table.add_column("new", justify="right", style="green")
        table.add_column("updated", justify="right")
        table.add_column("ms", justify="right")
        table.add_column("status")
        for r in runs:
            status = "[green]ok[/green]" if r.success else f"[red]{(r.error_message or 'failed')[:40]}[/red]"
            table.add_row(
                r.started_at.strftime("%Y-%m-%d %H:%M"),
                str(r.category_code),
                r.region or "*",
                str(r.total),
                str(r.new),
                str(r.updated),
                str(r.duration_ms),
                status,
            )
    console.print(table)


if __name__ == "__main__":
    app()
