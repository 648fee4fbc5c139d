"""Interactive conversational REPL for the procurement agent.

Runs turns in-process through the same handler the HTTP route uses,
with Rich rendering for carts, search results and purchase requests.
"""

from rich.console import Console

from procureflow.cli.output import format_cart, format_catalog_items
from procureflow.db.connection import get_db_context
from procureflow.errors import DomainError, build_error_response
from procureflow.services.conversation_handler import (
    OrchestratorDependencies,
    handle_agent_message,
)

console = Console()


def _render_metadata(metadata: dict | None) -> None:
    if not metadata:
        return
    if "items" in metadata and len(metadata["items"]) > 1:
        console.print(format_catalog_items(metadata["items"]), end="")
    if "cart" in metadata and metadata["cart"]["items"]:
        console.print(format_cart(metadata["cart"]), end="")


async def run_repl(
    dependencies: OrchestratorDependencies,
    user_id: str | None,
    conversation_id: str | None = None,
) -> str | None:
    """Run the interactive conversational REPL.

    Args:
        dependencies: Orchestrator collaborators.
        user_id: Acting user. Cart and checkout tools need one.
        conversation_id: Optional conversation to resume. Creates new if None.

    Returns:
        The id of the last conversation used, or None if no turn ran.
    """
    console.print()
    console.print("[bold]ProcureFlow[/bold] - Interactive Mode")
    console.print("Ask for items, manage your cart, or check out. Ctrl+D to exit.")
    console.print()

    while True:
        try:
            user_input = console.input("[bold green]> [/bold green]")
        except EOFError:
            # Ctrl+D
            break

        if not user_input.strip():
            continue

        try:
            with get_db_context() as db:
                response = await handle_agent_message(
                    db,
                    user_id,
                    user_input,
                    conversation_id,
                    dependencies=dependencies,
                )
        except DomainError as e:
            payload = build_error_response(e)
            console.print(f"[red]{payload.error}: {payload.message}[/red]")
            continue
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted[/yellow]")
            continue

        if conversation_id is None:
            console.print(f"[dim]Conversation: {response.conversation_id}[/dim]")
        conversation_id = response.conversation_id
        agent_message = response.messages[-1]
        console.print(agent_message["content"])
        _render_metadata(agent_message.get("metadata"))
        console.print()

    console.print("\n[dim]Session ended.[/dim]")
    return conversation_id
