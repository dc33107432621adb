"""Typer-based CLI for inspecting and editing CodeFlow canvases."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config_manager import DEFAULT_CANVAS_CONFIG, coerce_value, load_canvas_config, save_canvas_config
from .errors import GraphError, LineRangeError
from .extractor import extract_result, language_for
from .models import Position
from .storage import CanvasManager, load_canvas, save_canvas
from .store import GraphStore
from .surgery import extract_chunk

console = Console()

app = typer.Typer(
    help="CodeFlow — keep a graph of code nodes in sync with its source.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

canvas_grp = typer.Typer(
    help="Canvases — create, fill and inspect saved graphs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
config_grp = typer.Typer(
    help="Configuration — canvas defaults in config.toml.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(canvas_grp, name="canvas")
app.add_typer(config_grp, name="config")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"CodeFlow v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log graph operations."),
):
    """CodeFlow: symbol handles, edges and text surgery for code canvases."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _open_current(cm: CanvasManager) -> tuple[str, GraphStore]:
    name = cm.get_current_canvas()
    if not name:
        raise typer.BadParameter("No canvas loaded. Use 'cf canvas new <name>' first.")
    path = cm.canvas_path(name)
    if not path.exists():
        raise typer.BadParameter(f"Loaded canvas '{name}' does not exist.")
    return name, load_canvas(path)


# ===================================================================
# Text commands
# ===================================================================

@app.command("handles")
def handles(
    file_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source file to scan."),
    language: Optional[str] = typer.Option(None, "--language", "-l", help="Override grammar."),
):
    """List the handles a file would expose on the canvas."""
    text = file_path.read_text(encoding="utf-8", errors="ignore")
    result = extract_result(file_path.name, text, language or language_for(file_path.name))

    if not result.handles:
        typer.echo("No handles found.")
        raise typer.Exit(code=0)

    table = Table(title=f"{file_path.name} ({result.language})")
    table.add_column("Type", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Lines", justify="right")
    table.add_column("Side")
    table.add_column("Exported")
    for h in result.handles:
        table.add_row(
            h.handle_type.value, h.name, f"{h.start_line}-{h.end_line}",
            h.side.value, "yes" if h.exported else "",
        )
    console.print(table)
    if not result.complete:
        console.print("[yellow]Source has syntax errors; handles are best effort.[/yellow]")


@app.command("split")
def split(
    file_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source file."),
    start: int = typer.Argument(..., help="First line (1-indexed)."),
    end: int = typer.Argument(..., help="Last line (inclusive)."),
):
    """Show the chunk and remainder of cutting lines START..END."""
    text = file_path.read_text(encoding="utf-8", errors="ignore")
    try:
        result = extract_chunk(text, start, end)
    except LineRangeError as exc:
        raise typer.BadParameter(str(exc))
    console.print(Panel(result.chunk.rstrip("\n") or " ", title="chunk"))
    console.print(Panel(result.remainder.rstrip("\n") or " ", title="remainder"))


# ===================================================================
# Canvas commands
# ===================================================================

@canvas_grp.command("new")
def canvas_new(name: str = typer.Argument(..., help="Canvas name.")):
    """Create a canvas (if needed) and make it current."""
    cm = CanvasManager()
    cm.create_or_get_canvas(name)
    cm.set_current_canvas(name)
    typer.echo(f"Current canvas: '{name}'.")


@canvas_grp.command("list")
def canvas_list():
    """List saved canvases."""
    cm = CanvasManager()
    names = cm.list_canvases()
    if not names:
        typer.echo("No canvases saved yet.")
        raise typer.Exit(code=0)
    current = cm.get_current_canvas()
    for name in names:
        marker = "*" if name == current else " "
        typer.echo(f"{marker} {name}")


@canvas_grp.command("delete")
def canvas_delete(name: str = typer.Argument(..., help="Canvas to delete.")):
    """Delete a saved canvas."""
    cm = CanvasManager()
    if not cm.delete_canvas(name):
        raise typer.BadParameter(f"Canvas '{name}' not found.")
    typer.echo(f"Deleted canvas '{name}'.")


@canvas_grp.command("add")
def canvas_add(
    file_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to add as a node."),
    x: float = typer.Option(500.0, help="Canvas x position."),
    y: float = typer.Option(500.0, help="Canvas y position."),
    group: Optional[str] = typer.Option(None, "--group", "-g", help="Parent group id."),
):
    """Add a file to the current canvas as an editor node."""
    cm = CanvasManager()
    name, store = _open_current(cm)
    text = file_path.read_text(encoding="utf-8", errors="ignore")
    try:
        node = store.add_editor_node(
            source_text=text,
            file_name=file_path.name,
            position=Position(x, y),
            parent_id=group,
        )
    except GraphError as exc:
        raise typer.BadParameter(str(exc))
    save_canvas(store, cm.canvas_path(name))
    typer.echo(f"Added node {node.node_id} ({node.file_name}) with {len(node.handles)} handle(s).")


@canvas_grp.command("connect")
def canvas_connect(
    source_node: str = typer.Argument(..., help="Source node id."),
    source_handle: str = typer.Argument(..., help="Source handle id."),
    target_node: str = typer.Argument(..., help="Target node id."),
    target_handle: str = typer.Argument(..., help="Target handle id."),
):
    """Connect two handles on the current canvas."""
    cm = CanvasManager()
    name, store = _open_current(cm)
    try:
        edge = store.add_edge(source_node, source_handle, target_node, target_handle)
    except GraphError as exc:
        raise typer.BadParameter(str(exc))
    save_canvas(store, cm.canvas_path(name))
    typer.echo(f"Added edge {edge.edge_id}.")


@canvas_grp.command("show")
def canvas_show():
    """Print the nodes and edges of the current canvas."""
    cm = CanvasManager()
    name, store = _open_current(cm)

    nodes = Table(title=f"Canvas '{name}' — nodes")
    nodes.add_column("Id", style="bold")
    nodes.add_column("Kind", style="cyan")
    nodes.add_column("File")
    nodes.add_column("Parent")
    nodes.add_column("Handles", justify="right")
    for n in store.nodes:
        nodes.add_row(n.node_id, n.kind.value, n.file_name, n.parent_id or "", str(len(n.handles)))
    console.print(nodes)

    if store.edges:
        edges = Table(title="edges")
        edges.add_column("Id", style="bold")
        edges.add_column("Source")
        edges.add_column("Target")
        for e in store.edges:
            edges.add_row(e.edge_id, e.source_handle_id, e.target_handle_id)
        console.print(edges)
    else:
        typer.echo("No edges.")


@canvas_grp.command("export")
def canvas_export(
    output: Path = typer.Option(Path("canvas.render.json"), "--output", "-o", help="Output file."),
):
    """Write the render snapshot of the current canvas as JSON."""
    cm = CanvasManager()
    _name, store = _open_current(cm)
    output.write_text(json.dumps(store.snapshot().to_render(), indent=2), encoding="utf-8")
    typer.echo(f"Exported snapshot to {output}")


# ===================================================================
# Config commands
# ===================================================================

@config_grp.command("show")
def config_show():
    """Show effective canvas configuration."""
    for key, value in load_canvas_config().items():
        typer.echo(f"{key} = {value}")


@config_grp.command("set")
def config_set(
    key: str = typer.Argument(..., help=f"One of: {', '.join(DEFAULT_CANVAS_CONFIG)}"),
    value: str = typer.Argument(..., help="New value (lists as comma separated numbers)."),
):
    """Persist a canvas setting to config.toml."""
    try:
        coerced = coerce_value(key, value)
    except KeyError:
        raise typer.BadParameter(f"Unknown setting '{key}'.")
    except ValueError:
        raise typer.BadParameter(f"Invalid value for '{key}': {value}")
    path = save_canvas_config({key: coerced})
    typer.echo(f"Saved {key} = {coerced} to {path}")


if __name__ == "__main__":
    app()
