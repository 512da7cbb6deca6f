import asyncio
from pathlib import Path

import typer

from .main import mcp_server

__version__ = "0.1.0"

cli = typer.Typer(
    name="linear-cache-mcp",
    help="Linear Cache MCP: a reviewed, historical cache of Linear projects and issues.",
    add_completion=False,
)


@cli.command(help="Starts the Linear-Cache-MCP server in STDIO mode (default command).")
def start():
    """Start the server in STDIO mode, waiting for tool calls with a 'workspace_id'."""
    print("Starting Linear-Cache-MCP server in STDIO mode...")
    print("Waiting for tool calls with a 'workspace_id' argument...")
    mcp_server.run(transport="stdio")


@cli.command(help="Show the application's version and exit.")
def version():
    print(f"Linear-Cache-MCP version: {__version__}")


@cli.command(name="cache-stats", help="Print the cache counts of a workspace as JSON.")
def cache_stats(
    workspace: Path = typer.Option(..., "--workspace", "-w", help="Workspace directory holding the cache."),
):
    from .db.database import get_db_session_for_workspace
    from .services import cache_service

    async def _stats():
        async with get_db_session_for_workspace(str(workspace.resolve())) as db:
            return cache_service.get_stats(db)

    stats = asyncio.run(_stats())
    print(stats.model_dump_json(indent=2))


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Handle CLI callback that invokes start command when no subcommand is given."""
    if ctx.invoked_subcommand is None:
        start()


if __name__ == "__main__":
    cli()
