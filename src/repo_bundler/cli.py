"""
CLI entry point for repo-bundler.

Provides a command-line interface for packaging repositories into query-ranked,
token-bounded bundles.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import AnalysisType
from .config_loader import load_config, merge_cli_with_config
from .errors import AllStrategiesFailedError, BundlerError, InvalidRootError
from .orchestrator import Packager
from .scanner import extract_structure
from .strategies import FallbackStrategy

# Initialize CLI app
app = typer.Typer(
    name="repo-bundler",
    help="Package repositories into query-ranked, token-bounded bundles for LLM prompting.",
    add_completion=False,
)

console = Console()


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich (INFO, or DEBUG when verbose)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"repo-bundler version {__version__}")
        raise typer.Exit()


def parse_globs(value: Optional[str]) -> list[str]:
    """Parse comma-separated glob patterns, keeping their order."""
    if not value:
        return []
    return list(dict.fromkeys(g.strip() for g in value.split(",") if g.strip()))


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version", "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Package repositories into query-ranked, token-bounded bundles."""


@app.command()
def pack(
    path: Path = typer.Argument(
        ...,
        help="Path to the repository.",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    query: Optional[str] = typer.Option(
        None,
        "--query", "-q",
        help="Natural-language query used to rank files by relevance.",
    ),
    analysis_type: Optional[AnalysisType] = typer.Option(
        None,
        "--analysis-type", "-t",
        help="Analysis-type hint that boosts matching paths.",
    ),
    max_tokens: Optional[int] = typer.Option(
        None,
        "--max-tokens",
        min=1,
        help="Token budget for the bundle (default: 100,000).",
    ),
    include: Optional[str] = typer.Option(
        None,
        "--include", "-i",
        help="Comma-separated include patterns (e.g., 'src/**/*.py,*.md').",
    ),
    exclude: Optional[str] = typer.Option(
        None,
        "--exclude", "-e",
        help="Comma-separated exclude patterns (e.g., 'dist/**,tests').",
    ),
    component: Optional[str] = typer.Option(
        None,
        "--component",
        help="Package only this sub-directory of the repository.",
    ),
    output: Path = typer.Option(
        Path("repo-bundle.xml"),
        "--output", "-o",
        help="File the bundle is written to.",
    ),
    no_gitignore: bool = typer.Option(
        False,
        "--no-gitignore",
        help="Don't respect .gitignore files.",
    ),
    fallback_only: bool = typer.Option(
        False,
        "--fallback-only",
        help="Skip the plugin and external tool; use the in-process packager only.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable debug logging.",
    ),
) -> None:
    """
    Package a repository into a single bundle file.

    Examples:

        # Bundle everything under the default budget
        repo-bundler pack ./repo

        # Rank files for a question and cap the size
        repo-bundler pack ./repo -q "how does auth work" --max-tokens 20000

        # Only the in-process packager, one component
        repo-bundler pack ./repo --fallback-only --component src/api -o api.xml
    """
    configure_logging(verbose)
    start_time = time.time()

    try:
        config = merge_cli_with_config(
            load_config(path),
            max_tokens=max_tokens,
            include=parse_globs(include),
            exclude=parse_globs(exclude),
            no_gitignore=no_gitignore,
        )
        packager = Packager(config, strategies=[FallbackStrategy()] if fallback_only else None)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task("Packaging repository...", total=None)
            result = packager.package(
                path,
                query=query,
                analysis_type=analysis_type,
                component_path=component,
                output_file=output,
            )
    except InvalidRootError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(2)
    except AllStrategiesFailedError as e:
        console.print(f"[red]Error: {e}[/red]")
        for attempt in e.attempts:
            console.print(f"  {attempt.method.value}: {attempt.error}")
        raise typer.Exit(1)
    except (BundlerError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print()
    console.print("[bold green]✓ Bundle complete![/bold green]")
    console.print()

    included = str(result.file_count)
    if result.total_candidates is not None:
        included += f" of {result.total_candidates}"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_row("Method", result.method_used.value)
    table.add_row("Files included", included)
    table.add_row("Total bytes", f"{result.total_bytes:,}")
    table.add_row("Estimated tokens", f"{result.estimated_tokens:,}")
    table.add_row("Output", str(result.output_path))
    table.add_row("Time", f"{time.time() - start_time:.2f}s")
    console.print(table)

    if result.fallback_error:
        console.print()
        console.print(f"[yellow]Fell back after: {result.fallback_error}[/yellow]")


@app.command()
def tree(
    path: Path = typer.Argument(
        ...,
        help="Path to the repository.",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    max_depth: int = typer.Option(
        5,
        "--max-depth",
        min=1,
        help="Maximum depth shown.",
    ),
    max_entries: int = typer.Option(
        200,
        "--max-entries",
        min=1,
        help="Maximum number of files shown.",
    ),
    exclude: Optional[str] = typer.Option(
        None,
        "--exclude", "-e",
        help="Comma-separated exclude patterns.",
    ),
    no_gitignore: bool = typer.Option(
        False,
        "--no-gitignore",
        help="Don't respect .gitignore files.",
    ),
) -> None:
    """
    Show the directory structure of a repository without packaging it.

    Honours the project config file, `.repomixignore` and `.gitignore` the same
    way `pack` does.
    """
    try:
        config = merge_cli_with_config(
            load_config(path),
            exclude=parse_globs(exclude),
            no_gitignore=no_gitignore,
        )
        structure = extract_structure(
            path,
            exclude=config.exclude,
            limits=replace(config.limits, max_depth=max_depth),
            max_depth=max_depth,
            max_entries=max_entries,
            respect_gitignore=config.respect_gitignore,
        )
    except InvalidRootError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(2)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(structure, markup=False, highlight=False, end="")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
