from __future__ import annotations

from typing import Iterable, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from coachstore.domain.models import MigrationExecution
from coachstore.domain.results import ErrorDetails, HealthReport
from coachstore.manager import DatabaseStatus, InitializationReport
from coachstore.seeding.loader import IntegrityReport, SeedSummary

_STATUS_STYLES = {
    "completed": "green",
    "rollback_completed": "yellow",
    "started": "blue",
    "rollback_started": "blue",
    "failed": "bold red",
    "rollback_failed": "bold red",
}


def _yes_no(value: bool) -> str:
    return "[green]yes[/green]" if value else "[dim]no[/dim]"


def print_status(status: DatabaseStatus, console: Optional[Console] = None) -> None:
    """
    Render migration and seeding status side by side.
    """
    console = console or Console()
    migrations = status.migrations
    seeding = status.seeding

    table = Table(title="Database Status", box=box.ROUNDED, show_header=False)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right", style="magenta")

    table.add_row("Current version", migrations.current_version)
    table.add_row("Latest version", migrations.latest_version)
    table.add_row("Executed migrations", str(migrations.executed_migrations))
    pending = str(migrations.pending_migrations)
    if migrations.needs_migration:
        pending = f"[bold yellow]{pending}[/bold yellow] ({', '.join(migrations.pending_ids)})"
    table.add_row("Pending migrations", pending)
    table.add_section()
    table.add_row("Sports", f"{seeding.sports:,}")
    table.add_row("Skills", f"{seeding.skills:,}")
    table.add_row("Quizzes", f"{seeding.quizzes:,}")
    table.add_row("Quiz questions", f"{seeding.questions:,}")
    table.add_row("Achievements", f"{seeding.achievements:,}")
    table.add_row("App settings", _yes_no(seeding.has_app_settings))
    table.add_row("Empty", _yes_no(seeding.is_empty))

    console.print(table)


def print_seed_summary(summary: SeedSummary, console: Optional[Console] = None) -> None:
    console = console or Console()
    table = Table(title="Seeded Data", box=box.ROUNDED)
    table.add_column("Collection", style="cyan")
    table.add_column("Created", justify="right", style="bold green")
    table.add_row("sports", str(summary.sports_created))
    table.add_row("skills", str(summary.skills_created))
    table.add_row("quizzes", str(summary.quizzes_created))
    table.add_row("quiz_questions", str(summary.questions_created))
    table.add_row("achievements", str(summary.achievements_created))
    table.add_row("app_settings", _yes_no(summary.app_settings_created))
    console.print(table)


def print_initialization(report: InitializationReport, console: Optional[Console] = None) -> None:
    console = console or Console()
    if report.migrations is not None:
        migrations = report.migrations
        console.print(
            f"[green]Migrations:[/green] {migrations.migrations_run} run, "
            f"now at [bold]{migrations.new_version}[/bold]"
        )
    if report.seeding is not None:
        print_seed_summary(report.seeding, console)
    for error in report.errors:
        console.print(f"[red]{error}[/red]")


def print_history(executions: Iterable[MigrationExecution], console: Optional[Console] = None) -> None:
    """
    Render migration execution records, newest first.
    """
    console = console or Console()
    rows = list(executions)
    if not rows:
        console.print("[yellow]No migration history.[/yellow]")
        return

    table = Table(title="Migration History", box=box.ROUNDED, caption="Newest first")
    table.add_column("Executed at", style="dim", no_wrap=True)
    table.add_column("Migration", style="cyan")
    table.add_column("Version", justify="right", style="magenta")
    table.add_column("Status")
    table.add_column("Error", style="red")

    for execution in rows:
        style = _STATUS_STYLES.get(execution.status, "white")
        table.add_row(
            execution.executed_at.strftime("%Y-%m-%d %H:%M:%S"),
            execution.migration_id,
            execution.version,
            f"[{style}]{execution.status}[/{style}]",
            execution.error or "",
        )
    console.print(table)


def print_integrity(report: IntegrityReport, console: Optional[Console] = None) -> None:
    console = console or Console()
    if report.valid:
        console.print("[bold green]Data integrity OK[/bold green]")
        return
    table = Table(title=f"Integrity Issues ({len(report.issues)})", box=box.ROUNDED)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Issue", style="red")
    for index, issue in enumerate(report.issues, start=1):
        table.add_row(str(index), issue)
    console.print(table)


def print_health(report: HealthReport, console: Optional[Console] = None) -> None:
    console = console or Console()
    stats = report.cache_stats
    colour = "green" if report.status == "healthy" else "red"
    console.print(f"[bold {colour}]{report.status}[/bold {colour}] in {report.latency_ms:.2f} ms")
    console.print(
        f"[dim]cache: {stats.size}/{stats.max_size} entries, "
        f"hit rate {stats.hit_rate:.1%} ({stats.hits} hits, {stats.misses} misses)[/dim]"
    )
    if report.error:
        console.print(f"[red]{report.error}[/red]")


def print_failure(error: ErrorDetails, console: Optional[Console] = None) -> None:
    console = console or Console(stderr=True)
    retry_hint = " (retryable)" if error.retryable else ""
    console.print(f"[bold red]{error.code}[/bold red]{retry_hint}: {error.message}")


__all__ = [
    "print_failure",
    "print_health",
    "print_history",
    "print_initialization",
    "print_integrity",
    "print_seed_summary",
    "print_status",
]
