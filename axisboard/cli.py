"""
CLI interface for axisboard.

Usage:
    axisboard check board.md
    axisboard values "[0..100, Step 10]"
    axisboard show board.md
    axisboard move board.md "Projects/alpha.md" --x Doing --y 2
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .block import extract_block, parse_axis_values, parse_block
from .board import Board
from .config import CONFIG_FILENAME, EngineSettings, load_or_create_settings, load_settings
from .engine import QueryEngine
from .errors import ConfigError
from .frontmatter import FrontmatterStore
from .index import ChangeIndex
from .logging_config import configure_quiet_mode, enable_debug_mode
from .prompts import TerminalPrompt
from .types import BoardSpec, Document
from .vault import MarkdownVault


# Configure quiet mode by default
# Set AXISBOARD_VERBOSE=1 to enable debug mode via environment
if os.environ.get("AXISBOARD_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"axisboard {version('axisboard')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_vault_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _vault_callback(value: Optional[Path]):
    global _vault_override
    if value is not None:
        _vault_override = value


app = typer.Typer(
    name="axisboard",
    help="Group markdown notes on one or two property axes and move them between buckets.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    vault: Annotated[Optional[Path], typer.Option(
        "--vault",
        envvar="AXISBOARD_VAULT",
        help="Path to the vault directory (default: current directory)",
        callback=_vault_callback,
        is_eager=True,
    )] = None,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
):
    """Group markdown notes on one or two property axes."""


BlockArgument = Annotated[Path, typer.Argument(
    help="File containing the board block (or a note with an ```axisboard fence)",
    exists=True,
    dir_okay=False,
)]


def _vault_root() -> Path:
    return (_vault_override or Path.cwd()).expanduser().resolve()


def _settings(root: Path) -> EngineSettings:
    if (root / CONFIG_FILENAME).exists():
        return load_settings(root)
    return EngineSettings()


def _read_spec(block: Path) -> BoardSpec:
    try:
        return parse_block(extract_block(block.read_text(encoding="utf-8")))
    except ConfigError as e:
        typer.echo(f"Config error: {e}", err=True)
        raise typer.Exit(2)


def _open_board(spec: BoardSpec) -> Board:
    root = _vault_root()
    settings = _settings(root)
    index = ChangeIndex()
    engine = QueryEngine(MarkdownVault(root, settings), settings)
    return Board(
        spec,
        engine,
        store=FrontmatterStore(root, index),
        index=index,
        settings=settings,
    )


def _format_board(board: Board) -> str:
    """Plain-text rendering of a board."""
    lines = []
    if board.spec.title:
        lines.append(board.spec.title)
        lines.append("=" * len(board.spec.title))
    for (x, y), docs in board.cells().items():
        cell = " / ".join(label for label in (x, y) if label is not None)
        names = ", ".join(doc.name for doc in docs) or "-"
        lines.append(f"[{cell}] {names}")
    unassigned = board.unassigned()
    if unassigned:
        lines.append("Unassigned: " + ", ".join(doc.name for doc in unassigned))
    for error in board.errors:
        lines.append(f"! {error}")
    return "\n".join(lines)


def _board_to_dict(board: Board) -> dict:
    def doc_dict(doc: Document) -> dict:
        return {
            "path": doc.path,
            "name": doc.name,
            "display": board.display_values(doc),
            "style": board.card_style(doc),
        }

    return {
        "title": board.spec.title,
        "x_domain": board.x_domain,
        "y_domain": board.y_domain,
        "cells": [
            {"x": x, "y": y, "documents": [doc_dict(d) for d in docs]}
            for (x, y), docs in board.cells().items()
        ],
        "unassigned": [doc_dict(d) for d in board.unassigned()],
        "errors": board.errors,
    }


@app.command()
def init():
    """Create the vault settings file (axisboard.toml) with defaults."""
    root = _vault_root()
    settings = load_or_create_settings(root)
    typer.echo(f"Settings: {root / CONFIG_FILENAME} (default sort {settings.default_sort})")


@app.command()
def check(block: BlockArgument):
    """Parse a board block and print the parsed configuration."""
    spec = _read_spec(block)
    if _json_output:
        from dataclasses import asdict
        typer.echo(json.dumps(asdict(spec), indent=2, default=list))
        return
    typer.echo(f"source: {spec.source}")
    for name in ("x", "y"):
        axis = spec.axis(name)
        if axis is None:
            continue
        flags = [f for f, on in (("exact", axis.exact), ("readonly", axis.readonly)) if on]
        suffix = f" ({', '.join(flags)})" if flags else ""
        typer.echo(f"{name}: {axis.path}{suffix}")
        if axis.values is not None:
            typer.echo(f"  values: {', '.join(axis.values)}")
        if axis.transform:
            typer.echo(f"  transform: {axis.transform}")
    if spec.where:
        typer.echo(f"where: {spec.where}")
    if spec.sort:
        typer.echo(f"sort: {spec.sort.by} {spec.sort.order}")


@app.command()
def values(
    expression: Annotated[str, typer.Argument(
        help="Range like '[0..100, Step 10]' or a comma-separated list"
    )],
):
    """Print the bucket labels of an axis values expression."""
    try:
        parsed = parse_axis_values(expression)
    except ConfigError as e:
        typer.echo(f"Config error: {e}", err=True)
        raise typer.Exit(2)
    if _json_output:
        typer.echo(json.dumps({"values": parsed.values, "exact": parsed.exact}))
        return
    for value in parsed.values:
        typer.echo(value)
    if parsed.exact:
        typer.echo("(exact)")


@app.command()
def show(block: BlockArgument):
    """Run a board query and print the cells."""
    board = _open_board(_read_spec(block))
    if _json_output:
        typer.echo(json.dumps(_board_to_dict(board), indent=2, default=str))
    else:
        typer.echo(_format_board(board))


@app.command()
def move(
    block: BlockArgument,
    document: Annotated[str, typer.Argument(help="Document path (vault-relative) or name")],
    x: Annotated[Optional[str], typer.Option("--x", help="Target bucket on the x axis")] = None,
    y: Annotated[Optional[str], typer.Option("--y", help="Target bucket on the y axis")] = None,
):
    """
    Move a document to another bucket.

    \b
    Examples:
        axisboard move board.md alpha --x Done
        axisboard move board.md Projects/alpha.md --x Doing --y 20
    """
    board = _open_board(_read_spec(block))
    board.prompt = TerminalPrompt(check=board.check_choice)

    doc = board.find(document)
    if doc is None:
        typer.echo(f"Document not found on board: {document}", err=True)
        raise typer.Exit(1)
    if x is None and y is None:
        typer.echo("Nothing to do: give --x and/or --y", err=True)
        raise typer.Exit(1)

    outcome = board.apply_drop(doc, x, y)
    if outcome.cancelled:
        typer.echo(f"Cancelled ({outcome.reason})", err=True)
        raise typer.Exit(1)
    if outcome.error:
        typer.echo(f"Failed to update {doc.path}: {outcome.error}", err=True)
        raise typer.Exit(1)
    if not outcome.updates:
        typer.echo("Nothing to update (axes are readonly)")
        return
    changes = ", ".join(f"{k}={v!r}" for k, v in outcome.updates.items())
    typer.echo(f"Updated {doc.path}: {changes}")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="axisboard CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
