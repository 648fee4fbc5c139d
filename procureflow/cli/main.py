"""ProcureFlow CLI.

Unified entry point for running the API server, preparing the
database, loading catalog items, and chatting with the agent.

Usage:
    procureflow serve                  Start the HTTP API
    procureflow init-db                Create database tables
    procureflow catalog import f.yaml  Load catalog items from YAML
    procureflow chat --user alice      Start conversational REPL
    procureflow conversations alice    List a user's conversations
    procureflow purchase-requests alice
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console

from procureflow import __version__
from procureflow.cli.output import format_conversation_table, format_purchase_request_table
from procureflow.config import load_settings
from procureflow.db.connection import get_db_context, init_db
from procureflow.errors import DomainError
from procureflow.services.catalog_service import CatalogService
from procureflow.services.checkout_service import CheckoutService, purchase_request_to_dict
from procureflow.services.conversation_service import ConversationService

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="procureflow",
    help="Conversational procurement: catalog, carts and purchase requests",
    no_args_is_help=True,
)
catalog_app = typer.Typer(help="Manage catalog items")
app.add_typer(catalog_app, name="catalog")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to procureflow.yaml config file"
    ),
):
    """ProcureFlow CLI."""
    global _config_path
    _config_path = config


# --- Version ---


@app.command()
def version():
    """Show ProcureFlow version."""
    console.print(f"[bold]ProcureFlow[/bold] v{__version__}")


# --- Server ---


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Start the ProcureFlow HTTP API with uvicorn."""
    import uvicorn

    settings = load_settings(_config_path)
    final_host = host or settings.server.host
    final_port = port or settings.server.port
    console.print(f"[bold]Starting ProcureFlow API on {final_host}:{final_port}[/bold]")
    uvicorn.run(
        "procureflow.api.main:app",
        host=final_host,
        port=final_port,
        log_level=settings.server.log_level.lower(),
        reload=reload,
    )


@app.command("init-db")
def init_db_cmd():
    """Create database tables (existing tables are left alone)."""
    init_db()
    console.print("[green]Database ready.[/green]")


# --- Catalog ---


@catalog_app.command("import")
def catalog_import(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="YAML list of items"),
    user: Optional[str] = typer.Option(None, "--user", help="Registering user id"),
    allow_duplicates: bool = typer.Option(
        False, "--allow-duplicates", help="Register items even when similar ones exist"
    ),
):
    """Register catalog items from a YAML file.

    The file holds a list of mappings with name, category, description
    and price (optionally unit and preferred_supplier). Items that look
    like duplicates are skipped unless --allow-duplicates is given.
    """
    with open(file) as f:
        entries = yaml.safe_load(f) or []
    if not isinstance(entries, list):
        console.print("[red]Expected a YAML list of items.[/red]")
        raise typer.Exit(1)

    init_db()
    created, skipped = 0, 0
    with get_db_context() as db:
        service = CatalogService(db)
        for entry in entries:
            try:
                service.create_item(
                    name=entry.get("name", ""),
                    category=entry.get("category", ""),
                    description=entry.get("description", ""),
                    price=entry.get("price", 0),
                    unit=entry.get("unit"),
                    preferred_supplier=entry.get("preferred_supplier"),
                    created_by_user_id=user,
                    confirm_duplicate=allow_duplicates,
                )
                created += 1
            except DomainError as e:
                skipped += 1
                console.print(f"[yellow]Skipped {entry.get('name')!r}: {e}[/yellow]")
    console.print(f"[green]Imported {created} item(s)[/green], skipped {skipped}.")


# --- Conversations and purchase requests ---


@app.command()
def conversations(
    user: str = typer.Argument(..., help="User id"),
    limit: int = typer.Option(10, "--limit", help="Max conversations"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List a user's most recent conversations."""
    with get_db_context() as db:
        rows = ConversationService(db).list_conversations_for_user(user, limit=limit)
    if not rows:
        console.print("[dim]No conversations.[/dim]")
        return
    console.print(format_conversation_table(rows, as_json=as_json), end="")


@app.command("purchase-requests")
def purchase_requests(
    user: str = typer.Argument(..., help="User id"),
    status: Optional[str] = typer.Option(None, "--status", help="Filter by status"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List a user's purchase requests, newest first."""
    with get_db_context() as db:
        rows = [
            purchase_request_to_dict(pr)
            for pr in CheckoutService(db).get_purchase_requests_for_user(user, status=status)
        ]
    if not rows:
        console.print("[dim]No purchase requests.[/dim]")
        return
    console.print(format_purchase_request_table(rows, as_json=as_json), end="")


# --- Chat ---


@app.command()
def chat(
    user: Optional[str] = typer.Option(None, "--user", help="Acting user id"),
    conversation: Optional[str] = typer.Option(
        None, "--conversation", help="Resume existing conversation ID"
    ),
):
    """Start a conversational procurement REPL.

    Without --user the conversation is anonymous: search and item
    details work, cart and checkout tools ask for a user.
    """
    from procureflow.cli.repl import run_repl
    from procureflow.services.conversation_handler import build_dependencies

    settings = load_settings(_config_path)
    logging.basicConfig(level=settings.server.log_level)
    init_db()
    dependencies = build_dependencies(settings)
    last = asyncio.run(run_repl(dependencies, user, conversation))
    if last:
        _log.debug("REPL finished on conversation %s", last)


if __name__ == "__main__":
    app()
