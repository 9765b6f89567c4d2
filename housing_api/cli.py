"""
Housing API CLI

Commands:
- serve: validate configuration and run the API under uvicorn
- check-store: ping the document store and count documents per collection
- promote-super-admin: grant super_admin to a registered user

Configuration is imported inside each command so that a missing variable
is reported as a readable error instead of a traceback at import time.
"""

import asyncio

import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="housing-api",
    help="Housing API administration CLI",
)

console = Console()


def load_settings():
    try:
        from housing_api.core.config import settings
    except ValidationError as exc:
        rprint("[red]Invalid configuration:[/red]")
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "settings"
            rprint(f"  [red]•[/red] {field}: {error['msg']}")
        raise typer.Exit(1)
    return settings


@app.command()
def serve(
    host: str | None = typer.Option(None, help="Bind address (default: HOST)"),
    port: int | None = typer.Option(None, help="Port (default: PORT)"),
    reload: bool = typer.Option(False, help="Reload on code changes (development)"),
):
    """Run the API server."""
    settings = load_settings()

    import uvicorn

    uvicorn.run(
        "housing_api.main:app",
        host=host or settings.HOST,
        port=port or settings.PORT,
        reload=reload,
        log_config=None,
    )


async def _collection_counts(settings) -> dict[str, int]:
    from housing_api.core.database import ALL_COLLECTIONS, build_store

    store = await build_store(settings)
    try:
        await store.ping()
        return {name: len(await store.find(name)) for name in ALL_COLLECTIONS}
    finally:
        await store.close()


@app.command()
def check_store():
    """Verify the document store is reachable and show document counts."""
    settings = load_settings()

    try:
        counts = asyncio.run(_collection_counts(settings))
    except Exception as exc:
        rprint(f"[red]Document store unreachable ({settings.DOCUMENT_STORE}): {exc}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Document store: {settings.DOCUMENT_STORE}")
    table.add_column("Collection")
    table.add_column("Documents", justify="right")
    for name, count in counts.items():
        table.add_row(name, str(count))
    console.print(table)


async def _promote(settings, email: str):
    from housing_api.core.database import build_store
    from housing_api.services.user_service import promote_super_admin

    store = await build_store(settings)
    try:
        return await promote_super_admin(store, email)
    finally:
        await store.close()


@app.command()
def promote_super_admin(
    email: str = typer.Argument(..., help="Email of an already registered user"),
):
    """Grant the super_admin role to a user."""
    settings = load_settings()

    from housing_api.services.user_service import UserNotFoundError

    try:
        user = asyncio.run(_promote(settings, email))
    except UserNotFoundError:
        rprint(f"[red]No user registered with email {email}[/red]")
        rprint("  The user must sign in once before being promoted.")
        raise typer.Exit(1)

    rprint(f"[green]✓[/green] {user.email} is now super_admin")
    rprint(f"  User ID: {user.id}")


if __name__ == "__main__":
    app()
