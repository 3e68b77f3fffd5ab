from __future__ import annotations

import asyncio
import sys
from typing import Any, Awaitable, Callable, Optional

import typer

from coachstore import reporter
from coachstore.config import get_settings
from coachstore.domain.results import Result
from coachstore.manager import DatabaseManager, build_manager
from coachstore.utils.logging import configure_logging

app = typer.Typer(help="coachstore database administration CLI.")


def _run(action: Callable[[DatabaseManager], Awaitable[Result[Any]]], render: Callable[[Any], None]) -> None:
    """
    Build a manager from settings, run one action and render its result.

    Exits with status 1 when the action returns a failed Result.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    async def runner() -> Result[Any]:
        async with await build_manager(settings) as manager:
            return await action(manager)

    result = asyncio.run(runner())
    if not result.success:
        reporter.print_failure(result.error)
        raise typer.Exit(code=1)
    render(result.data)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    if settings.store_backend == "postgres":
        target = f"postgres {settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    else:
        target = "memory"
    typer.echo(
        f"store={target} | cache={settings.cache_max_size}x{settings.cache_default_ttl_seconds:g}s "
        f"retry={settings.retry_max_attempts} attempts batch={settings.batch_max_operations}"
    )


@app.command()
def init(
    seed: bool = typer.Option(False, "--seed", help="Seed sample data after migrating."),
    admin_user_id: Optional[str] = typer.Option(
        None, "--admin", "-a", help="User id recorded as creator of seeded data (default from settings)."
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Clear seeded collections before seeding."),
    include_additional_sports: bool = typer.Option(
        False, "--additional-sports", help="Also seed the additional sports catalog."
    ),
    skip_migrations: bool = typer.Option(False, "--skip-migrations", help="Do not run pending migrations."),
) -> None:
    """
    Run pending migrations and optionally seed sample data.
    """
    admin = admin_user_id or get_settings().seed_admin_user_id
    _run(
        lambda manager: manager.initialize(
            run_migrations=not skip_migrations,
            seed_data=seed,
            admin_user_id=admin,
            force=force,
            include_additional_sports=include_additional_sports,
        ),
        reporter.print_initialization,
    )


@app.command()
def status() -> None:
    """
    Show migration version and seeded collection counts.
    """
    _run(lambda manager: manager.get_status(), reporter.print_status)


@app.command()
def migrate(
    compensate: Optional[bool] = typer.Option(
        None,
        "--compensate/--no-compensate",
        help="Roll back migrations completed earlier in this run if a later one fails (default from settings).",
    ),
) -> None:
    """
    Apply pending migrations in version order.
    """
    _run(
        lambda manager: manager.engine.run_pending_migrations(compensate_on_failure=compensate),
        lambda summary: typer.echo(
            f"Ran {summary.migrations_run} migration(s); version is now {summary.new_version}."
        ),
    )


@app.command()
def rollback(target_version: str = typer.Argument(..., help="Version to roll back to, e.g. 1.0.0.")) -> None:
    """
    Roll back every executed migration above the target version.
    """
    _run(
        lambda manager: manager.engine.rollback_to_version(target_version),
        lambda summary: typer.echo(
            f"Rolled back {summary.migrations_rolled_back} migration(s); version is now {summary.new_version}."
        ),
    )


@app.command()
def history(limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Show at most N records.")) -> None:
    """
    Show migration execution records, newest first.
    """
    _run(lambda manager: manager.engine.get_migration_history(limit=limit), reporter.print_history)


@app.command()
def seed(
    admin_user_id: Optional[str] = typer.Option(None, "--admin", "-a", help="Creator user id (default from settings)."),
    force: bool = typer.Option(False, "--force", "-f", help="Clear seeded collections first."),
    include_additional_sports: bool = typer.Option(False, "--additional-sports"),
) -> None:
    """
    Seed sample sports, skills, quizzes, achievements and app settings.
    """
    admin = admin_user_id or get_settings().seed_admin_user_id
    _run(
        lambda manager: manager.seeder.seed_all(
            admin, force=force, include_additional_sports=include_additional_sports
        ),
        reporter.print_seed_summary,
    )


@app.command()
def validate() -> None:
    """
    Check that every skill, quiz and question references an existing parent.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    async def runner():
        async with await build_manager(settings) as manager:
            return await manager.validate_integrity()

    result = asyncio.run(runner())
    if not result.success:
        reporter.print_failure(result.error)
        raise typer.Exit(code=1)
    reporter.print_integrity(result.data)
    if not result.data.valid:
        raise typer.Exit(code=2)


@app.command()
def reset(
    admin_user_id: Optional[str] = typer.Option(None, "--admin", "-a", help="Creator user id (default from settings)."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """
    Clear all seeded data and re-initialize with the full sample catalog.
    """
    if not yes:
        typer.confirm("This deletes all seeded data. Continue?", abort=True)
    admin = admin_user_id or get_settings().seed_admin_user_id
    _run(lambda manager: manager.reset(admin), reporter.print_initialization)


@app.command()
def health() -> None:
    """
    Run a minimal read against the store and report latency.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    async def runner():
        async with await build_manager(settings) as manager:
            return await manager.health_check()

    report = asyncio.run(runner()).data
    reporter.print_health(report)
    if report.status != "healthy":
        raise typer.Exit(code=1)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
