"""Command-line interface for signed directory checksums.

Commands:
    checksums update PATH   -- Write manifests bottom-up where stale
    checksums verify PATH   -- Verify every directory against its manifest
    checksums status PATH   -- List directories whose manifest is stale

Exit codes: 0 clean, 1 changes (or stale/unchecked directories),
2 invalid signature, corrupt manifest, nothing verified or error.
"""

from __future__ import annotations

import json as json_lib
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import ChecksumsConfig, load_config
from .exceptions import ChecksumsError
from .tree import TreeReport, stale_directories, update_tree, verify_tree

logger = logging.getLogger(__name__)

EXIT_CLEAN = 0
EXIT_CHANGES = 1
EXIT_ERROR = 2

app = typer.Typer(
    name="checksums",
    help="Detect changes in directory trees with signed per-directory checksum manifests",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False, show_time=False)],
        force=True,
    )


def _fail(message: str) -> typer.Exit:
    err_console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(EXIT_ERROR)


def _load(ctx: typer.Context) -> ChecksumsConfig:
    try:
        return load_config(ctx.obj)
    except ChecksumsError as exc:
        raise _fail(str(exc))


def _relative(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix() or "."
    except ValueError:
        return str(path)


def _check_root(path: Path) -> Path:
    if not path.is_dir():
        raise _fail(f"Not a directory: {path}")
    return path


PathArgument = typer.Argument(..., help="Root of the directory tree")
ExcludeOption = typer.Option(
    None,
    "--exclude",
    "-x",
    help="Relative path or glob (e.g. '**/.git') to skip; repeatable",
)


@app.callback()
def callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Config file (default: ~/.checksums/config.yaml)",
        dir_okay=False,
    ),
) -> None:
    """Signed per-directory checksum manifests."""
    _configure_logging(verbose)
    ctx.obj = config


@app.command()
def update(
    ctx: typer.Context,
    path: Path = PathArgument,
    force: bool = typer.Option(False, "--force", "-f", help="Rewrite every manifest"),
    exclude: Optional[List[str]] = ExcludeOption,
) -> None:
    """Write checksum manifests, deepest directories first."""
    root = _check_root(path)
    config = _load(ctx)
    try:
        written = update_tree(root, config, force=force, exclude=exclude or [])
    except (ChecksumsError, OSError) as exc:
        raise _fail(str(exc))

    for directory in written:
        console.print(f"[green]✓[/green] {_relative(directory, root)}")
    console.print(f"Updated {len(written)} manifest(s)")


@app.command()
def status(
    ctx: typer.Context,
    path: Path = PathArgument,
    exclude: Optional[List[str]] = ExcludeOption,
) -> None:
    """List directories whose manifest is missing or older than their content."""
    root = _check_root(path)
    config = _load(ctx)
    try:
        stale = stale_directories(root, config, exclude=exclude or [])
    except (ChecksumsError, OSError) as exc:
        raise _fail(str(exc))

    if not stale:
        console.print("[green]All manifests are up to date[/green]")
        return

    for directory in stale:
        console.print(f"[yellow]stale[/yellow] {_relative(directory, root)}")
    raise typer.Exit(EXIT_CHANGES)


def _render_report(report: TreeReport) -> None:
    for directory in report.invalid_signatures:
        console.print(f"[red]✗ invalid signature[/red] {_relative(directory, report.root)}")
    for directory in report.corrupt:
        console.print(f"[red]✗ corrupt manifest[/red] {_relative(directory, report.root)}")
    for directory in report.unchecked:
        console.print(f"[yellow]? unchecked[/yellow] {_relative(directory, report.root)}")

    if report.changes:
        table = Table(title="Changes")
        table.add_column("Directory", style="cyan")
        table.add_column("Item")
        table.add_column("Change")
        for directory, changes in report.changes.items():
            where = _relative(directory, report.root)
            for name in changes.added_items:
                table.add_row(where, name, "[green]added[/green]")
            for name in changes.removed_items:
                table.add_row(where, name, "[red]removed[/red]")
            for item in changes.changed_items:
                table.add_row(where, item.item, "[yellow]changed[/yellow]")
        console.print(table)

    if report.is_clean:
        console.print(f"[green]✓[/green] {report.verified} directories verified, no changes")


@app.command()
def verify(
    ctx: typer.Context,
    path: Path = PathArgument,
    exclude: Optional[List[str]] = ExcludeOption,
    stop_on_invalid: bool = typer.Option(
        False,
        "--stop-on-invalid",
        help="Skip item comparison in directories with an invalid manifest signature",
    ),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
) -> None:
    """Verify every directory against its checksum manifest."""
    root = _check_root(path)
    config = _load(ctx)
    try:
        report = verify_tree(
            root,
            config,
            stop_on_invalid_signature=stop_on_invalid,
            exclude=exclude or [],
        )
    except (ChecksumsError, OSError) as exc:
        raise _fail(str(exc))

    if json_output:
        print(json_lib.dumps(report.to_dict(), indent=2))
    else:
        _render_report(report)

    if report.is_empty:
        raise _fail(f"No directories verified under {root}; check the exclusion patterns")
    if report.has_integrity_errors:
        raise typer.Exit(EXIT_ERROR)
    if not report.is_clean:
        raise typer.Exit(EXIT_CHANGES)


def main() -> None:
    app()


__all__ = ["app", "main"]
