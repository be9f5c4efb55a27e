"""CLI interface for marksync.

This module provides the command-line interface using Typer with
Rich for terminal output.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated

import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table

from marksync import __version__
from marksync.bookmarks.manager import RunConfig
from marksync.cache import Cache
from marksync.client import Client
from marksync.config import (
    Settings,
    SourceSettings,
    create_default_config,
    get_default_config_path,
    load_settings,
    save_settings,
)
from marksync.models import CacheMode, DiffTag, RunMode, RunReport
from marksync.readers import SourceReader, select_reader
from marksync.store import BookmarkStore
from marksync.sync.service import BookmarkService
from marksync.urls import parse_url

# Configure structlog for CLI
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="marksync",
    help="Import bookmarks from your browsers and cache the bookmarked websites",
    no_args_is_help=True,
)

config_app = typer.Typer(help="Configuration management")
app.add_typer(config_app, name="config")

# Rich console for output
console = Console()

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to config file",
        exists=True,
        dir_okay=False,
    ),
]
DryRunOption = Annotated[
    bool,
    typer.Option(
        "--dry-run",
        "-n",
        help="Don't make any changes, just show what would happen",
    ),
]
ModeOption = Annotated[
    CacheMode | None,
    typer.Option(
        "--mode",
        "-m",
        help="Cache mode, overrides the configured one",
    ),
]


def _configure_logging(level: str) -> None:
    """Route log output through the standard library at the given level."""
    logging.basicConfig(format="%(message)s")
    logging.getLogger().setLevel(level.upper())


def _load(config_path: Path | None, log_level: str | None = None) -> Settings:
    settings = load_settings(config_path)
    _configure_logging(log_level or settings.log_level)
    return settings


def _readers(settings: Settings) -> list[SourceReader]:
    return [select_reader(source.source, source.folders) for source in settings.sources]


def _run(
    settings: Settings,
    config: RunConfig,
    readers: Sequence[SourceReader] = (),
    mode: CacheMode | None = None,
) -> RunReport:
    """Run the bookmark service with a progress display.

    Args:
        settings: Application settings.
        config: What the run should do.
        readers: Source readers to import from.
        mode: Cache mode, overrides the configured one.

    Returns:
        Report of the run.
    """
    cache = Cache(settings.cache_dir, mode or settings.cache_mode)
    config.empty_cache = cache.is_empty()
    config.ignored_urls = list(settings.ignored_urls)
    store = BookmarkStore(settings.bookmarks_path)

    if config.dry_run:
        console.print("[yellow]DRY RUN MODE - No changes will be made[/yellow]\n")

    async def run_service() -> RunReport:
        async with Client(settings.fetch) as client:
            service = BookmarkService(
                config,
                client,
                cache,
                store,
                max_concurrent_requests=settings.fetch.max_concurrent_requests,
            )
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                console=console,
                transient=True,
            ) as progress:
                task: TaskID = progress.add_task("Processing bookmarks...", total=None)

                def update_progress(current: int, total: int, message: str) -> None:
                    progress.update(task, total=total, completed=current, description=message)

                return await service.run(readers, progress_callback=update_progress)

    report = asyncio.run(run_service())
    _display_run_report(report)
    return report


def _display_run_report(report: RunReport) -> None:
    """Display run results in a table.

    Args:
        report: Report with statistics.
    """
    table = Table(title="Run Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="green", justify="right")

    table.add_row("Added", str(report.added))
    table.add_row("Removed", str(report.removed))
    table.add_row("Processed", str(report.processed))
    table.add_row("Cached", str(report.cached))
    table.add_row("Ignored", str(report.ignored))
    table.add_row("Failed", str(report.failed_response))

    console.print(table)
    console.print(report.summary())

    for diff in report.diffs:
        console.print(f"\n[bold]{escape(diff.url)}[/bold]")
        if not diff.has_changes:
            console.print("[dim]No changes[/dim]")
            continue
        for line in diff.lines:
            text = escape(line.line)
            if line.tag == DiffTag.INSERT:
                console.print(f"[green]+ {text}[/green]")
            elif line.tag == DiffTag.DELETE:
                console.print(f"[red]- {text}[/red]")
            else:
                console.print(f"[dim]  {text}[/dim]")


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"marksync version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Import bookmarks and cache the bookmarked websites."""
    pass


@app.command("import")
def import_cmd(
    config_path: ConfigOption = None,
    dry_run: DryRunOption = False,
    log_level: Annotated[str | None, typer.Option("--log-level", help="Logging level")] = None,
) -> None:
    """Import bookmarks from the configured sources without fetching."""
    try:
        settings = _load(config_path, log_level)
        if not settings.sources:
            console.print(
                "[yellow]No bookmark sources configured.[/yellow] "
                "Run [bold]marksync config source PATH[/bold] first."
            )
            raise typer.Exit(1)

        _run(settings, RunConfig(run_mode=RunMode.IMPORT, dry_run=dry_run), _readers(settings))

    except typer.Exit:
        raise
    except Exception as e:
        logger.debug("Import failed", exc_info=True)
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


@app.command()
def fetch(
    config_path: ConfigOption = None,
    fetch_all: Annotated[
        bool,
        typer.Option("--all", "-a", help="Fetch all bookmarks and replace cached websites"),
    ] = False,
    urls: Annotated[
        list[str] | None,
        typer.Option("--url", "-u", help="Fetch and replace only this url (repeatable)"),
    ] = None,
    diff_urls: Annotated[
        list[str] | None,
        typer.Option("--diff", "-d", help="Fetch this url and show changes (repeatable)"),
    ] = None,
    mode: ModeOption = None,
    dry_run: DryRunOption = False,
    log_level: Annotated[str | None, typer.Option("--log-level", help="Logging level")] = None,
) -> None:
    """Fetch and cache bookmarked websites.

    Without options, only websites that are not cached yet are fetched.
    """
    if fetch_all and (urls or diff_urls):
        console.print("[red]Error:[/red] --all can't be combined with --url or --diff")
        raise typer.Exit(1)

    try:
        settings = _load(config_path, log_level)

        if urls or diff_urls:
            config = RunConfig(
                run_mode=RunMode.NONE,
                dry_run=dry_run,
                fetch_urls=list(urls or []),
                diff_urls=list(diff_urls or []),
            )
        else:
            run_mode = RunMode.FETCH_ALL if fetch_all else RunMode.FETCH
            config = RunConfig(run_mode=run_mode, dry_run=dry_run)

        _run(settings, config, mode=mode)

    except Exception as e:
        logger.debug("Fetch failed", exc_info=True)
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


@app.command()
def update(
    config_path: ConfigOption = None,
    mode: ModeOption = None,
    dry_run: DryRunOption = False,
    log_level: Annotated[str | None, typer.Option("--log-level", help="Logging level")] = None,
) -> None:
    """Import bookmarks and fetch websites that are not cached yet."""
    try:
        settings = _load(config_path, log_level)
        config = RunConfig(run_mode=RunMode.UPDATE, dry_run=dry_run)
        _run(settings, config, _readers(settings), mode=mode)

    except Exception as e:
        logger.debug("Update failed", exc_info=True)
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


@app.command()
def add(
    urls: Annotated[list[str], typer.Argument(help="Urls to add")],
    config_path: ConfigOption = None,
    dry_run: DryRunOption = False,
) -> None:
    """Add urls as bookmarks and cache their websites."""
    try:
        settings = _load(config_path)
        _run(settings, RunConfig(run_mode=RunMode.NONE, dry_run=dry_run, add_urls=urls))

    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


@app.command()
def remove(
    urls: Annotated[list[str], typer.Argument(help="Urls to remove")],
    config_path: ConfigOption = None,
    dry_run: DryRunOption = False,
) -> None:
    """Remove bookmarks and their cached websites."""
    try:
        settings = _load(config_path)
        _run(settings, RunConfig(run_mode=RunMode.NONE, dry_run=dry_run, remove_urls=urls))

    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


@app.command()
def ignore(
    urls: Annotated[list[str], typer.Argument(help="Urls to ignore")],
    config_path: ConfigOption = None,
) -> None:
    """Ignore urls in future imports and remove them from the bookmarks."""
    try:
        settings = _load(config_path)
        normalized = [parse_url(url) for url in urls]
        for url in normalized:
            if url not in settings.ignored_urls:
                settings.ignored_urls.append(url)
        save_settings(settings)
        console.print(f"[green]Ignoring {len(normalized)} urls[/green]")

        _run(settings, RunConfig(run_mode=RunMode.NONE))

    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


@app.command()
def clean(
    config_path: ConfigOption = None,
    clean_all: Annotated[
        bool,
        typer.Option("--all", "-a", help="Remove all cached websites"),
    ] = False,
) -> None:
    """Remove cached websites that belong to no bookmark."""
    try:
        settings = _load(config_path)
        store = BookmarkStore(settings.bookmarks_path)
        bookmarks = store.load()
        cache = Cache(settings.cache_dir, settings.cache_mode)

        if clean_all:
            cache.clear(bookmarks)
            store.save(bookmarks)
            console.print(f"[green]Cleared cache of {len(bookmarks)} bookmarks[/green]")
        else:
            removed = cache.remove_orphans(bookmarks.ids())
            console.print(f"[green]Removed {len(removed)} orphaned cache files[/green]")

    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


# Config subcommands
@config_app.command("init")
def config_init(
    path: Annotated[
        Path | None,
        typer.Option(
            "--path",
            "-p",
            help="Path for config file",
        ),
    ] = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite existing config file",
        ),
    ] = False,
) -> None:
    """Create a default configuration file."""
    if path is None:
        path = get_default_config_path()

    if path.exists() and not force:
        console.print(f"[yellow]Config file already exists:[/yellow] {path}")
        console.print("Use --force to overwrite.")
        raise typer.Exit(1)

    try:
        created_path = create_default_config(path)
    except OSError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    console.print(f"[green]Created config file:[/green] {created_path}")
    console.print("\nAdd bookmark sources with [bold]marksync config source PATH[/bold].")


@config_app.command("source")
def config_source(
    source: Annotated[Path, typer.Argument(help="Bookmark file or directory of backups")],
    folders: Annotated[
        str | None,
        typer.Option("--folders", help="Comma-separated folders to import from"),
    ] = None,
    config_path: ConfigOption = None,
) -> None:
    """Add a bookmark source, or update the folders of an existing one."""
    try:
        settings = _load(config_path)
        source = source.expanduser().resolve()
        select_reader(source)
        new_source = SourceSettings(source=source, folders=folders or [])

        settings.sources = [s for s in settings.sources if s.source != source]
        settings.sources.append(new_source)
        save_settings(settings)

        console.print(f"[green]Added bookmark source:[/green] {source}")
        if new_source.folders:
            console.print(f"Folders: {', '.join(new_source.folders)}")

    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


@config_app.command("show")
def config_show(config_path: ConfigOption = None) -> None:
    """Show current configuration."""
    try:
        settings = load_settings(config_path)

        table = Table(title="Current Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Config Path", str(settings.config_path))
        table.add_row("Bookmarks Path", str(settings.bookmarks_path))
        table.add_row("Cache Directory", str(settings.cache_dir))
        table.add_row("Cache Mode", settings.cache_mode.value)
        table.add_row("Log Level", settings.log_level)
        for source in settings.sources:
            folders = ", ".join(source.folders) or "(all)"
            table.add_row("Source", f"{source.source} [{folders}]")
        if not settings.sources:
            table.add_row("Source", "(none)")
        table.add_row("Ignored Urls", str(len(settings.ignored_urls)))
        table.add_row("Max Concurrent Requests", str(settings.fetch.max_concurrent_requests))
        table.add_row("Request Timeout (ms)", str(settings.fetch.request_timeout))
        table.add_row("Request Throttling (ms)", str(settings.fetch.request_throttling))

        console.print(table)

    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


@config_app.command("path")
def config_path_cmd() -> None:
    """Show the default config file path."""
    console.print(f"Default config path: {get_default_config_path()}")


if __name__ == "__main__":
    app()
