import sys
import asyncio
from typing import List, Sequence

import click

# --- Settings/Logging ---
from se_migrator.logging.setup import setup_logging
from se_migrator.config.settings import settings

setup_logging()

from loguru import logger

from rich import print
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from se_migrator.backends.base_backend import ExtractionBackend, MigratorError
from se_migrator.backends.factory import create_backend
from se_migrator.client.local_store import LocalSessionStore
from se_migrator.client.proxy import RemoteProxyClient
from se_migrator.migration.engine import MigrationEngine, get_migration_history
from se_migrator.models.migration import MigrationProgress, MigrationResult
from se_migrator.models.preview import MigrationPreview
from se_migrator.sessions.store import InMemorySessionStore
from se_migrator.storage.supabase_client import SupabaseSink, initialize_supabase

console = Console()


def build_backend() -> ExtractionBackend:
    store = InMemorySessionStore(settings.jwt_secret, settings.session_ttl_seconds)
    return create_backend(settings, store)


async def login(backend: ExtractionBackend, email: str, password: str) -> str:
    result = await backend.authenticate(email, password)
    if not result.success:
        raise MigratorError(result.message)
    if result.task_url:
        print(f"[cyan]Extraction task:[/cyan] {result.task_url}")
    return result.token


def render_preview(preview: MigrationPreview) -> None:
    table = Table(title="SportsEngine data to migrate")
    table.add_column("Organization")
    table.add_column("Team")
    table.add_column("Sport")
    table.add_column("Players", justify="right")
    table.add_column("Staff", justify="right")
    for org in preview.organizations:
        if not org.teams:
            table.add_row(org.name, "[dim]no teams[/dim]", org.sport or "", "", "")
        for team in org.teams:
            table.add_row(
                org.name, team.name, team.sport, str(team.player_count), str(team.staff_count)
            )
    console.print(table)
    s = preview.summary
    print(
        f"[bold]{s.organization_count}[/bold] organizations, [bold]{s.team_count}[/bold] teams, "
        f"[bold]{s.player_count}[/bold] players, [bold]{s.staff_count}[/bold] staff"
    )


def render_result(result: MigrationResult) -> None:
    progress = result.progress
    if not result.success:
        print(Panel(f"Migration failed: {result.error}", title="Migration", style="red"))
        return
    summary = (
        f"{len(result.groups)} groups, {len(result.members)} members migrated "
        f"({progress.organizations} organizations, {progress.teams} teams)"
    )
    if result.partial_success:
        lines = "\n".join(f"- {e.type.value} {e.name}: {e.error}" for e in progress.errors)
        print(
            Panel(
                f"{summary}\n{len(progress.errors)} entities failed:\n{lines}",
                title="Migration partially succeeded",
                style="yellow",
            )
        )
    else:
        print(Panel(summary, title="Migration complete", style="green"))


def print_progress(progress: MigrationProgress) -> None:
    print(f"[dim][{progress.current}/{progress.total}][/dim] {progress.message or progress.status.value}")


async def run_preview(email: str, password: str, remote: bool) -> None:
    if remote:
        client = RemoteProxyClient(
            settings.backend_url, LocalSessionStore(settings.client_session_path)
        )
        try:
            if not client.is_authenticated():
                await client.authenticate_with_credentials(email, password)
            render_preview(await client.get_migration_preview())
        finally:
            await client.close()
        return

    backend = build_backend()
    try:
        token = await login(backend, email, password)
        render_preview(await backend.get_migration_preview(token))
    finally:
        await backend.close()


async def run_migration(
    email: str, password: str, user_id: str, organization_ids: Sequence[str]
) -> MigrationResult:
    client = await initialize_supabase(settings)
    backend = build_backend()
    try:
        token = await login(backend, email, password)
        engine = MigrationEngine(backend, SupabaseSink(client), token, on_progress=print_progress)
        return await engine.migrate(user_id, list(organization_ids))
    finally:
        await backend.close()


async def show_history(user_id: str) -> List[dict]:
    client = await initialize_supabase(settings)
    return await get_migration_history(SupabaseSink(client), user_id)


@click.group()
def cli() -> None:
    """Migrate SportsEngine organizations, teams and rosters into groups."""


@cli.command()
@click.option("--host", default=settings.api_host, show_default=True)
@click.option("--port", default=settings.api_port, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Run the HTTP API."""
    import uvicorn

    from se_migrator.api.app import create_app

    store = InMemorySessionStore(settings.jwt_secret, settings.session_ttl_seconds)
    app = create_app(
        create_backend(settings, store),
        store,
        sweep_interval_seconds=settings.session_sweep_interval_seconds,
    )
    logger.info(f"Starting API on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_config=None)


@cli.command()
@click.argument("email")
@click.password_option("--password", confirmation_prompt=False)
@click.option("--remote", is_flag=True, help="Go through the API at BACKEND_URL.")
def preview(email: str, password: str, remote: bool) -> None:
    """Show what would be migrated for EMAIL's SportsEngine account."""
    asyncio.run(run_preview(email, password, remote))


@cli.command()
@click.argument("email")
@click.password_option("--password", confirmation_prompt=False)
@click.option("--user-id", required=True, help="Target user who will own the migrated groups.")
@click.option("--org", "organization_ids", multiple=True, help="Organization id to migrate (repeatable; default all).")
def migrate(email: str, password: str, user_id: str, organization_ids: Sequence[str]) -> None:
    """Migrate EMAIL's SportsEngine data into groups owned by USER_ID."""
    result = asyncio.run(run_migration(email, password, user_id, organization_ids))
    render_result(result)
    if not result.success:
        sys.exit(1)


@cli.command()
@click.option("--user-id", required=True)
def history(user_id: str) -> None:
    """List past migrations for a user."""
    records = asyncio.run(show_history(user_id))
    table = Table(title=f"Migrations for {user_id}")
    for column in ("Completed", "Status", "Organizations", "Teams", "Members", "Errors"):
        table.add_column(column)
    for r in records:
        table.add_row(
            str(r.get("completed_at")),
            str(r.get("status")),
            str(r.get("organizations_count")),
            str(r.get("teams_count")),
            str(r.get("members_count")),
            str(r.get("errors_count")),
        )
    console.print(table)


def main() -> None:
    try:
        cli.main(standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except MigratorError as e:
        print(Panel(str(e), title="Error", style="red"))
        sys.exit(1)
    except (KeyboardInterrupt, click.Abort):
        logger.info("Execution interrupted by user (KeyboardInterrupt).")
        sys.exit(0)


if __name__ == "__main__":
    main()
