"""
CLI for the Durable Project Catalog.

Thin command-line wrapper over the services: scanning, listing, searching,
jumping and catalog maintenance.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Iterator, Optional

import typer
from dotenv import find_dotenv, load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from dpc import __version__
from dpc.core.config import DPCConfig, load_config
from dpc.core.path_utils import display_path
from dpc.core.rules import ConfigurationError, Hint
from dpc.infrastructure.catalog_store import (
    CatalogCorruptError,
    CatalogError,
    CatalogLockedError,
    CatalogNotFoundError,
    CatalogSchemaError,
    ProjectType,
)
from dpc.services import ServicesContainer, create_services

# Initialize Rich Consoles
console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="dpc",
    help="Durable Project Catalog - find, rank and jump to your projects",
    add_completion=False,
)

logger = logging.getLogger(__name__)


@dataclass
class _GlobalOptions:
    database: Optional[Path] = None
    config: Optional[Path] = None
    verbose: bool = False


def _setup_logging(config: DPCConfig, verbose: bool) -> None:
    """Route log records to stderr through rich at the configured level."""
    level_name = "DEBUG" if verbose else config.logging.level.upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown logging level: {config.logging.level!r}")

    logging.basicConfig(
        level=level,
        format=config.logging.format,
        handlers=[RichHandler(console=err_console, show_time=False, show_path=False)],
        force=True,
    )


def _fail(message: str, hint: Optional[str] = None) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {message}")
    if hint:
        err_console.print(f"[dim]{hint}[/dim]")
    raise typer.Exit(1)


@contextmanager
def _cli_errors() -> Iterator[None]:
    """Turn configuration and catalog errors into precise messages and exit code 1."""
    try:
        yield
    except (CatalogCorruptError, CatalogSchemaError) as e:
        _fail(
            str(e),
            "Move the catalog file aside (or delete it) and run `dpc scan` to rebuild it.",
        )
    except CatalogLockedError as e:
        _fail(str(e), "Another dpc process is writing the catalog; try again when it finishes.")
    except CatalogNotFoundError as e:
        _fail(str(e), "Run `dpc scan <directory>` to create the catalog.")
    except CatalogError as e:
        _fail(str(e))
    except (ConfigurationError, FileNotFoundError) as e:
        _fail(str(e))


def _load_config(ctx: typer.Context) -> DPCConfig:
    options: _GlobalOptions = ctx.obj
    config = load_config(options.config)
    _setup_logging(config, options.verbose)
    return config


def _create_services(
    ctx: typer.Context,
    config: Optional[DPCConfig] = None,
    must_exist: bool = True,
) -> ServicesContainer:
    options: _GlobalOptions = ctx.obj
    config = config or _load_config(ctx)
    services = create_services(
        config=config, catalog_path=options.database, must_exist=must_exist
    )
    ctx.call_on_close(services.close)
    return services


def _format_time(value) -> str:
    if value is None:
        return "-"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KiB", "MiB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GiB"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"dpc {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    database: Optional[Path] = typer.Option(
        None, "--database", "-d", help="Catalog database file (overrides DPC_CATALOG_PATH)"
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Configuration file (.yaml, .yml or .json)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version"
    ),
):
    """Durable Project Catalog."""
    # .env values feed the DPC_* overrides read by load_config
    load_dotenv(find_dotenv(usecwd=True))
    ctx.obj = _GlobalOptions(database=database, config=config, verbose=verbose)


@app.command()
def scan(
    ctx: typer.Context,
    roots: Optional[list[Path]] = typer.Argument(
        None, help="Directories to scan (default: current directory)"
    ),
    max_depth: Optional[int] = typer.Option(
        None, "--max-depth", help="Maximum depth below each root"
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", help="Number of parallel directory listers"
    ),
    follow_symlinks: Optional[bool] = typer.Option(
        None, "--follow-symlinks/--no-follow-symlinks", help="Traverse symlinked directories"
    ),
    incremental: Optional[float] = typer.Option(
        None,
        "--incremental",
        metavar="HOURS",
        help="Skip roots already scanned within this many hours",
    ),
):
    """Scan directories and catalog every project found."""
    with _cli_errors():
        cfg = _load_config(ctx)
        if max_depth is not None:
            cfg.scan.max_depth = max_depth
        if workers is not None:
            cfg.scan.max_workers = workers
        if follow_symlinks is not None:
            cfg.scan.follow_symlinks = follow_symlinks

        if incremental is not None and incremental < 0:
            raise ConfigurationError(f"--incremental cannot be negative: {incremental}")

        services = _create_services(ctx, cfg, must_exist=False)
        scan_roots = roots or [Path.cwd()]
        skip_recent = timedelta(hours=incremental) if incremental is not None else None

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=err_console,
            transient=True,
        ) as progress:
            task = progress.add_task("Scanning...", total=None)

            def update_progress(scanned: int, found: int, current: str) -> None:
                progress.update(
                    task,
                    description=f"{scanned} dirs, {found} projects  {display_path(current)}",
                )

            run = services.scan_service.scan(
                scan_roots, progress_callback=update_progress, skip_recent=skip_recent
            )

    if run is None:
        console.print(
            f"[green]All roots were scanned within the last {incremental:g} hour(s); "
            "nothing to do.[/green]"
        )
        return

    # Summary Panel
    summary = Table.grid(padding=1)
    summary.add_column(style="bold")
    summary.add_column()
    summary.add_row("Roots:", ", ".join(display_path(r) for r in run.roots))
    summary.add_row("Projects:", f"[green]{run.discovered_count}[/green]")
    summary.add_row("Directories:", str(run.directories_scanned))
    summary.add_row("Excluded:", str(run.excluded_count))
    if run.skipped_count:
        summary.add_row("Skipped:", f"[yellow]{run.skipped_count}[/yellow]")
    summary.add_row("Duration:", f"{run.duration_seconds:.2f}s")

    title = (
        "[bold yellow]Scan Cancelled[/bold yellow]"
        if run.cancelled
        else "[bold green]Scan Complete[/bold green]"
    )
    console.print(
        Panel(summary, title=title, border_style="yellow" if run.cancelled else "green", expand=False)
    )

    if run.errors:
        console.print("\n[bold yellow]Skipped Directories:[/bold yellow]")
        for error in run.errors[:5]:
            console.print(f"  - {error}")
        if len(run.errors) > 5:
            console.print(f"  ... and {len(run.errors) - 5} more")

    if run.cancelled:
        raise typer.Exit(130)


@app.command("list")
def list_projects(
    ctx: typer.Context,
    text: Optional[str] = typer.Argument(None, help="Substring of path or name"),
    project_type: Optional[str] = typer.Option(
        None, "--type", "-t", help="Project type (rust, node.js, ruby, python, go, java, git, nix)"
    ),
    hint: Optional[str] = typer.Option(None, "--hint", help="Marker kind, e.g. git or cargo"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum number of projects"),
):
    """List cataloged projects, most recently scanned first."""
    type_filter = None
    hint_filter = None
    try:
        if project_type:
            type_filter = ProjectType.parse(project_type)
        if hint:
            hint_filter = Hint(hint.lower())
    except ValueError as e:
        _fail(str(e), f"Known hints: {', '.join(h.value for h in Hint)}")

    with _cli_errors():
        services = _create_services(ctx)
        records = services.catalog_store.query(
            text=text or "", hint=hint_filter, project_type=type_filter, limit=limit
        )

    if not records:
        console.print("[yellow]No projects found.[/yellow]")
        return

    table = Table(title=f"Projects ({len(records)})", border_style="blue")
    table.add_column("Name", style="bold cyan")
    table.add_column("Type", style="green")
    table.add_column("Path")
    table.add_column("Visits", justify="right")
    table.add_column("Last Scanned", style="magenta")

    for record in records:
        table.add_row(
            record.name,
            record.project_type.value,
            display_path(record.path),
            str(record.visit_count),
            _format_time(record.last_scanned),
        )

    console.print(table)


@app.command()
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Fuzzy query matched against project paths"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Number of results"),
):
    """Search projects ranked by match quality and frecency."""
    with _cli_errors():
        services = _create_services(ctx)
        actual_limit = limit if limit is not None else services.config.search.default_limit
        hits = services.access_recorder.rank(query, limit=actual_limit)

    if not hits:
        console.print(f"[yellow]No projects match '{query}'.[/yellow]")
        return

    table = Table(title=f"Results for '{query}'", border_style="blue")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name", style="bold cyan")
    table.add_column("Path")
    table.add_column("Score", justify="right", style="yellow")
    table.add_column("Visits", justify="right")

    for i, hit in enumerate(hits, 1):
        name = f"{hit.record.name} [green]=[/green]" if hit.exact else hit.record.name
        table.add_row(
            str(i), name, display_path(hit.path), f"{hit.score:.2f}", str(hit.record.visit_count)
        )

    console.print(table)


@app.command()
def jump(
    ctx: typer.Context,
    query: str = typer.Argument("", help="Fuzzy query; empty picks the most frecent project"),
):
    """Print the best matching project path and record a visit to it."""
    with _cli_errors():
        services = _create_services(ctx)
        target = services.access_recorder.jump(query)

    if target is None:
        err_console.print(f"[yellow]No project matches '{query}'.[/yellow]")
        raise typer.Exit(1)
    typer.echo(target)


@app.command()
def visit(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Directory that was entered"),
):
    """Record a visit to a directory (silent; used by shell hooks)."""
    with _cli_errors():
        services = _create_services(ctx)
        try:
            services.access_recorder.record(str(path))
        except CatalogNotFoundError:
            logger.debug("No catalog yet; visit not recorded")


@app.command()
def complete(
    ctx: typer.Context,
    query: str = typer.Argument("", help="Partial query"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Number of candidates"),
):
    """Print ranked project paths for shell completion."""
    with _cli_errors():
        services = _create_services(ctx)
        actual_limit = limit if limit is not None else services.config.search.default_limit
        try:
            paths = services.access_recorder.complete(query, limit=actual_limit)
        except CatalogNotFoundError:
            paths = []
    for path in paths:
        typer.echo(path)


@app.command()
def stats(ctx: typer.Context):
    """Show catalog statistics."""
    with _cli_errors():
        services = _create_services(ctx)
        catalog_stats = services.catalog_store.stats()

    grid = Table.grid(padding=1)
    grid.add_column(style="bold")
    grid.add_column()
    grid.add_row("Total Projects:", str(catalog_stats.total_projects))
    grid.add_row("Visited Projects:", str(catalog_stats.visited_projects))
    grid.add_row("Total Visits:", str(catalog_stats.total_visits))
    grid.add_row("Scan Runs:", str(catalog_stats.scan_runs))
    grid.add_row("Last Scan:", _format_time(catalog_stats.last_scan_at))
    grid.add_row("Catalog:", display_path(services.catalog_path))
    grid.add_row("Size:", _format_size(catalog_stats.database_size_bytes))

    console.print(Panel(grid, title="Catalog Statistics", border_style="blue", expand=False))

    if catalog_stats.type_counts:
        type_table = Table(title="Project Types", box=None, show_header=True)
        type_table.add_column("Type", style="cyan")
        type_table.add_column("Projects", justify="right")
        for name, count in catalog_stats.type_counts.items():
            type_table.add_row(name, str(count))
        console.print(Panel(type_table, border_style="blue", expand=False))

    if catalog_stats.hint_counts:
        hint_table = Table(title="Markers", box=None, show_header=True)
        hint_table.add_column("Hint", style="cyan")
        hint_table.add_column("Projects", justify="right")
        for name, count in catalog_stats.hint_counts.items():
            hint_table.add_row(name, str(count))
        console.print(Panel(hint_table, border_style="blue", expand=False))


@app.command()
def clean(
    ctx: typer.Context,
    max_age_days: Optional[int] = typer.Option(
        None, "--max-age-days", help="Remove projects not scanned within this many days"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show what would be removed"),
    missing: bool = typer.Option(
        False, "--missing", help="Also remove projects whose directory no longer exists"
    ),
):
    """Remove stale projects from the catalog."""
    with _cli_errors():
        services = _create_services(ctx)
        days = max_age_days if max_age_days is not None else services.config.clean.max_age_days
        try:
            removed = services.scan_service.clean(
                days,
                dry_run=dry_run,
                missing=missing,
                history_days=services.config.clean.history_days,
            )
        except ValueError as e:
            _fail(str(e))

    if not removed:
        console.print("[green]Nothing to clean.[/green]")
        return

    verb = "Would remove" if dry_run else "Removed"
    console.print(f"[bold]{verb} {len(removed)} project(s):[/bold]")
    for path in removed:
        console.print(f"  - {display_path(path)}")


@app.command()
def forget(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Project directory to remove from the catalog"),
):
    """Remove one project from the catalog."""
    with _cli_errors():
        services = _create_services(ctx)
        deleted = services.catalog_store.delete(path)

    if not deleted:
        _fail(f"Not in catalog: {path}")
    console.print(f"  [green]✓[/green] Forgot {path}")


@app.command()
def history(
    ctx: typer.Context,
    limit: int = typer.Option(10, "--limit", "-n", help="Number of scan runs"),
):
    """Show recent scan runs."""
    with _cli_errors():
        services = _create_services(ctx)
        runs = services.scan_service.history(limit)

    if not runs:
        console.print("[yellow]No scans recorded.[/yellow]")
        return

    table = Table(title="Scan History", border_style="blue")
    table.add_column("Started", style="magenta", no_wrap=True)
    table.add_column("Roots")
    table.add_column("Projects", justify="right", style="green")
    table.add_column("Dirs", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Status")

    for run in runs:
        if run.finished_at is None:
            status = "[red]incomplete[/red]"
        elif run.cancelled:
            status = "[yellow]cancelled[/yellow]"
        else:
            status = "[green]done[/green]"
        table.add_row(
            _format_time(run.started_at),
            ", ".join(display_path(r) for r in run.roots),
            str(run.discovered_count),
            str(run.directories_scanned),
            str(run.skipped_count),
            status,
        )

    console.print(table)


@app.command()
def backup(
    ctx: typer.Context,
    destination: Path = typer.Argument(..., help="File to write the catalog copy to"),
):
    """Write a consistent copy of the catalog."""
    with _cli_errors():
        services = _create_services(ctx)
        written = services.catalog_store.backup(destination)
    console.print(f"  [green]✓[/green] Catalog backed up to {display_path(written)}")


@app.command()
def restore(
    ctx: typer.Context,
    source: Path = typer.Argument(..., help="Backup file written by `dpc backup`"),
):
    """Replace the catalog with the contents of a backup."""
    with _cli_errors():
        services = _create_services(ctx, must_exist=False)
        services.catalog_store.restore(source)
    console.print(f"  [green]✓[/green] Catalog restored from {display_path(source)}")


@app.command("config")
def show_config(ctx: typer.Context):
    """Print the effective configuration as YAML."""
    with _cli_errors():
        cfg = _load_config(ctx)
        options: _GlobalOptions = ctx.obj
        if options.database is not None:
            cfg.catalog.path = str(options.database)
        cfg.rule_configuration()
    typer.echo(cfg.to_yaml(), nl=False)


if __name__ == "__main__":
    app()
