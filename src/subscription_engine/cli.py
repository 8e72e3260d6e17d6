import asyncio
import typer
import logging
import sys
if sys.platform == "win32":
    # asyncpg не работает с ProactorEventLoop, который в Windows стоит по умолчанию.
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
from sqlalchemy.ext.asyncio import create_async_engine

from subscription_engine import create_subscription_client
from subscription_engine.config import get_settings
from subscription_engine.db.base import Base
from subscription_engine.exceptions import EngineError
from subscription_engine.logging import configure
from subscription_engine.scheduler import run_scheduler
from subscription_engine.utils.cli_utils import get_rich_console, sweep_table, reminders_table


app = typer.Typer(help="CLI for subscription-engine management.")
logger = logging.getLogger(__name__)
console = get_rich_console()


@app.callback()
def main(log_level: str = typer.Option(None, "--log-level", help="Overrides LOG_LEVEL from the environment.")):
    configure(log_level)


@app.command()
def init():
    """
    Creates all database tables, indexes and triggers.
    """
    console.rule("[bold cyan]Database Initialization[/bold cyan]")

    with console.status("Creating PostgreSQL tables...", spinner="dots"):
        async def _create_tables():
            engine = create_async_engine(get_settings().postgres.get_pg_dsn())
            try:
                async with engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
            finally:
                await engine.dispose()

        try:
            asyncio.run(_create_tables())
        except Exception as e:
            console.print(f"[bold red]✖[/bold red] Database initialization FAILED: {e}")
            raise typer.Exit(code=1)

    console.print("[bold green]✔[/bold green] Database tables created successfully.")


@app.command()
def check():
    """Checks connectivity to PostgreSQL."""
    console.rule("[bold cyan]Connection Check[/bold cyan]")

    async def _check():
        client = create_subscription_client()
        try:
            return await client.check_connections()
        finally:
            await client.aclose()

    statuses = asyncio.run(_check())
    pg_status = statuses.get("postgres", "unknown error")
    if pg_status == "ok":
        console.print("[bold green]✔[/bold green] PostgreSQL connection: OK")
    else:
        console.print(f"[bold red]✖[/bold red] PostgreSQL connection: FAILED ({pg_status})")
        raise typer.Exit(code=1)


@app.command()
def seed():
    """Adds the default tariffs that are not in the database yet."""
    async def _seed():
        client = create_subscription_client()
        try:
            return await client.seed_tariffs()
        finally:
            await client.aclose()

    try:
        added = asyncio.run(_seed())
    except EngineError as e:
        console.print(f"[bold red]✖[/bold red] Seeding FAILED: {e}")
        raise typer.Exit(code=1)
    console.print(f"[bold green]✔[/bold green] Tariffs seeded: {added} added.")


@app.command()
def sweep():
    """Runs one expiry and notification pass."""
    async def _sweep():
        client = create_subscription_client()
        try:
            return await client.sweep()
        finally:
            await client.aclose()

    report = asyncio.run(_sweep())
    console.print(sweep_table(report))
    for error in report.errors:
        console.print(f"[yellow]![/yellow] {error}")


@app.command("send-reminders")
def send_reminders():
    """Sends every reminder that is due."""
    async def _dispatch():
        client = create_subscription_client()
        try:
            return await client.dispatch_reminders()
        finally:
            await client.aclose()

    report = asyncio.run(_dispatch())
    console.print(reminders_table(report))
    for error in report.errors:
        console.print(f"[yellow]![/yellow] {error}")


@app.command("run-scheduler")
def run_scheduler_command():
    """Runs the sweep and reminder jobs on their intervals until interrupted."""
    settings = get_settings()
    console.print(
        f"Scheduler: sweep every {settings.scheduler.sweep_interval_minutes} min, "
        f"reminders every {settings.scheduler.reminder_interval_minutes} min. Press Ctrl+C to stop."
    )

    async def _run():
        await run_scheduler(create_subscription_client(), settings.scheduler)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("Stopped.")


if __name__ == "__main__":
    app()
