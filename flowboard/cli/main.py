"""
CLI interface for Flowboard
"""
import asyncio
import json
import os
import sys

import click
import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

from ..core.bootstrap import get_container
from ..core.config import Config
from ..core.graph.node_registry import list_node_definitions
from ..core.graph.port_types import compatible_types, known_port_types
from ..layout import LayoutOptions

console = Console(force_terminal=True)

MODES = ['solo', 'prod', 'remote']


def _open_board(board_id: str, mode, enable_provider: bool = False):
    if not Config.validate():
        click.echo("❌ Configuration validation failed. Please check your environment variables.")
        sys.exit(1)
    container = get_container(mode=mode, enable_provider=enable_provider)
    return container.boards.get(board_id)


@click.group()
def cli():
    """Flowboard - graph dataflow engine for creative workflow boards"""
    pass


@cli.command()
@click.option('--port', default=None, type=int, help='Port to run the API server on')
@click.option('--mode', type=click.Choice(MODES), default=None, help='Storage mode')
@click.option('--host', default=None, help='Host to bind to')
def serve(port, mode, host):
    """Run the API server"""
    if mode:
        os.environ['FLOWBOARD_MODE'] = mode
        Config.MODE = mode

    if not Config.validate():
        click.echo("❌ Configuration validation failed. Please check your environment variables.")
        sys.exit(1)

    host = host or Config.API_HOST
    port = port or Config.API_PORT
    click.echo(f"🚀 Starting Flowboard API server in {Config.MODE} mode...")
    click.echo(f"   Host: {host}")
    click.echo(f"   Port: {port}")

    from ..api.server import app
    uvicorn.run(app, host=host, port=port)


@cli.command()
def config():
    """Show current configuration"""
    click.echo("Configuration:")
    click.echo(f"   Mode: {Config.MODE}")
    click.echo(f"   Storage Path: {Config.STORAGE_PATH}")
    click.echo(f"   API Host: {Config.API_HOST}")
    click.echo(f"   API Port: {Config.API_PORT}")
    click.echo(f"   Provider URL: {Config.PROVIDER_URL}")
    click.echo(f"   Grid Snap: {Config.GRID_SNAP}")
    click.echo(f"   Collision Padding: {Config.COLLISION_PADDING}")
    click.echo(f"   Poll Interval: {Config.POLL_INTERVAL}s (retry {Config.POLL_RETRY_INTERVAL}s)")

    if Config.MODE == 'prod':
        click.echo(f"   Supabase URL: {Config.SUPABASE_URL[:50]}..." if Config.SUPABASE_URL else "   Supabase URL: Not set")
        click.echo(f"   Supabase Key: {'Set' if Config.SUPABASE_KEY else 'Not set'}")
    if Config.MODE == 'remote':
        click.echo(f"   Canvas API URL: {Config.CANVAS_API_URL or 'Not set'}")
    click.echo(f"   API Token: {'Set' if Config.API_TOKEN else 'Not set'}")


@cli.command('node-types')
def node_types():
    """List registered node types and their ports"""
    table = Table(title="Node Types", box=box.SIMPLE_HEAVY)
    table.add_column("Type", style="bold cyan")
    table.add_column("Category")
    table.add_column("Inputs")
    table.add_column("Outputs")
    for definition in sorted(list_node_definitions(), key=lambda d: (d.category.value, d.node_type)):
        inputs = ", ".join(f"{p.id}:{p.type}{'*' if p.required else ''}" for p in definition.default_inputs)
        outputs = ", ".join(f"{p.id}:{p.type}" for p in definition.default_outputs)
        table.add_row(definition.node_type, definition.category.value, inputs or "-", outputs or "-")
    console.print(table)
    console.print("[dim]* required input[/dim]")


@cli.command('port-types')
def port_types():
    """List port types and their semantic neighbours"""
    table = Table(title="Port Types", box=box.SIMPLE_HEAVY)
    table.add_column("Type", style="bold cyan")
    table.add_column("Semantically compatible with")
    for name in known_port_types():
        table.add_row(name, ", ".join(compatible_types(name)))
    console.print(table)


@cli.command()
@click.argument('board_id')
@click.option('--mode', type=click.Choice(MODES), default=None, help='Storage mode')
def validate(board_id, mode):
    """Check a board for missing inputs, cycles and bad edges"""
    session = _open_board(board_id, mode)
    result = session.validate()

    if not result.issues:
        console.print(Panel(f"[bold green]✓[/bold green] Board {board_id} is valid", border_style="green"))
    else:
        table = Table(box=box.SIMPLE)
        table.add_column("Severity")
        table.add_column("Type")
        table.add_column("Message")
        table.add_column("Node / Edge", style="dim")
        for issue in result.issues:
            color = "red" if issue.severity == "error" else "yellow"
            table.add_row(f"[{color}]{issue.severity}[/{color}]", issue.type, issue.message,
                          issue.node_id or issue.edge_id or "")
        console.print(table)

    stats = ", ".join(f"{k}={v}" for k, v in result.stats.items())
    console.print(f"[dim]{stats}[/dim]")
    if not result.valid:
        sys.exit(1)


@cli.command()
@click.argument('board_id')
@click.option('--direction', type=click.Choice(['LR', 'TB', 'RL', 'BT']), default='LR', help='Dataflow direction')
@click.option('--node-spacing', default=80.0, help='Gap between nodes in a rank')
@click.option('--rank-spacing', default=120.0, help='Gap between ranks')
@click.option('--select', 'selected', multiple=True, help='Lay out only these node ids (repeatable)')
@click.option('--mode', type=click.Choice(MODES), default=None, help='Storage mode')
def layout(board_id, direction, node_spacing, rank_spacing, selected, mode):
    """Auto-layout a board and save the new positions"""
    session = _open_board(board_id, mode)
    options = LayoutOptions.from_dict({
        "direction": direction,
        "nodeSpacing": node_spacing,
        "rankSpacing": rank_spacing,
    })

    with console.status("[bold cyan]Laying out board...", spinner="dots"):
        result, summary = session.auto_layout(list(selected) or None, options)
        session.flush()

    click.echo(f"✅ Laid out {len(result.positions)} node(s) ({direction})")
    bounds = result.bounds
    click.echo(f"   Bounds: {bounds['width']:.0f} x {bounds['height']:.0f} at ({bounds['x']:.0f}, {bounds['y']:.0f})")
    if result.removed_edges:
        click.echo(f"   Ignored {len(result.removed_edges)} back edge(s) while ranking")
    if summary:
        click.echo(f"   Saved: {summary['succeeded']}/{summary['processed']}")


@cli.command('resolve-collisions')
@click.argument('board_id')
@click.option('--mode', type=click.Choice(MODES), default=None, help='Storage mode')
def resolve_collisions(board_id, mode):
    """Move overlapping nodes apart"""
    session = _open_board(board_id, mode)
    # Loading already resolves overlaps; run again for anything left
    moved, count = session.resolve_collisions()
    click.echo(f"✅ Moved {count} node(s)")
    for node_id, position in moved.items():
        click.echo(f"   {node_id} → ({position.x:.0f}, {position.y:.0f})")


@cli.command()
@click.argument('board_id')
@click.argument('node_id')
@click.option('--mode', type=click.Choice(MODES), default=None, help='Storage mode')
def inputs(board_id, node_id, mode):
    """Show the inputs a node would receive if executed now"""
    session = _open_board(board_id, mode)
    try:
        resolved = session.resolve_inputs(node_id)
    except KeyError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)
    console.print(Panel(
        json.dumps(resolved, indent=2, default=str),
        title=f"[bold]Inputs for {node_id}[/bold]",
        border_style="cyan",
    ))


@cli.command()
@click.argument('board_id')
@click.argument('node_id')
@click.option('--mode', type=click.Choice(MODES), default=None, help='Storage mode')
@click.option('--wait/--no-wait', default=True, help='Keep polling until a long-running job finishes')
def run(board_id, node_id, mode, wait):
    """Execute one node"""
    session = _open_board(board_id, mode, enable_provider=True)

    async def _run():
        node = await session.execute_node(node_id)
        if wait and session.executor.is_polling(node_id):
            with console.status(f"[bold cyan]Waiting for {node_id}...", spinner="dots"):
                await session.executor.wait(node_id)
        await session.close()
        return session.store.get_node(node_id) if node is not None else None

    try:
        node = asyncio.run(_run())
    except Exception as e:
        click.echo(f"❌ Error executing node: {e}")
        sys.exit(1)

    if node is None:
        click.echo("❌ Node was deleted during execution")
        sys.exit(1)

    color = {"completed": "green", "error": "red"}.get(node.status.value, "yellow")
    body = json.dumps(node.result or node.cached_output or {}, indent=2, default=str)
    if node.last_execution and node.last_execution.error:
        body = node.last_execution.error
    console.print(Panel(body, title=f"[bold]{node_id}: {node.status.value}[/bold]", border_style=color))
    if node.status.value == "error":
        sys.exit(1)


@cli.command()
@click.argument('board_id')
@click.option('--mode', type=click.Choice(MODES), default=None, help='Storage mode')
@click.option('--confirm', is_flag=True, help='Skip confirmation prompt')
def clear(board_id, mode, confirm):
    """Delete every node and edge on a board"""
    if (mode or Config.MODE) == 'prod':
        click.echo("❌ Clear command is only available outside prod mode for safety.")
        sys.exit(1)

    if not confirm:
        click.echo(f"⚠️  This will delete ALL nodes and edges on board {board_id}!")
        if not click.confirm("   Are you sure you want to continue?"):
            click.echo("   Cancelled.")
            return

    session = _open_board(board_id, mode)
    if session.persistence is not None and session.persistence.reset_board():
        click.echo(f"✅ Board {board_id} cleared")
    else:
        click.echo(f"❌ Failed to clear board {board_id}")
        sys.exit(1)


if __name__ == '__main__':
    cli()
