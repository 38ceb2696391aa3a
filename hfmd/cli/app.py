"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import signal
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel

from hfmd import __version__
from hfmd.api.client import HubClient
from hfmd.core.cancellation import CancellationToken
from hfmd.core.coordinator import TransferCoordinator
from hfmd.exceptions import HfmdError
from hfmd.models.config import DownloadConfig
from hfmd.models.entry import FileDescriptor, RepoType, TransferJob, TransferState
from hfmd.storage.config_manager import ConfigManager
from hfmd.utils.formatting import format_size
from hfmd.utils.path import create_dir, default_destination, get_config_dir, parse_repo_ref

from .formatters import (
    format_error_with_suggestions,
    print_config,
    print_job_header,
    print_search_results,
    print_summary_panel,
)
from .progress_manager import ProgressManager
from .selection import build_file_table, filter_files, group_files, select_interactively

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("hfmd")

app = typer.Typer(
    name="hfmd",
    help=(
        "A resumable, concurrent downloader for Hugging Face model and dataset"
        " repositories. Use 'hfmd <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"

EXIT_CANCELLED = 130


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """Hugging Face model downloader"""
    if version:
        console.print(f"[bold]hfmd[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("hfmd").setLevel(log_level)

    if show_config:
        config_manager = ConfigManager(CONFIG_FILE)
        config_data = config_manager.get_config_as_dict()
        if not config_data:
            console.print(
                "[yellow]No config file found; built-in defaults are in use.[/] "
                "Run [cyan]hfmd init[/cyan] to create one."
            )
            config_data = {
                key: getattr(DownloadConfig(), key)
                for key in sorted(DownloadConfig.get_ini_keys())
            }
        print_config(CONFIG_FILE, config_data)
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    token: str | None = typer.Option(
        None, "--token", "-t", help="Access token for gated or private repositories."
    ),
    endpoint: str | None = typer.Option(
        None, "--endpoint", help="Base URL of the hub (default https://huggingface.co)."
    ),
    output_dir: str | None = typer.Option(
        None, "--output-dir", help="Directory repositories are downloaded into."
    ),
    workers: int | None = typer.Option(
        None, "--workers", "-w", help="Default number of simultaneous transfers."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
):
    """Create the configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        key: value
        for key, value in {
            "token": token,
            "endpoint": endpoint,
            "output_dir": output_dir,
            "max_workers": workers,
        }.items()
        if value is not None
    }
    config_manager = ConfigManager(CONFIG_FILE)
    config_manager.save_new_config(settings)
    if token:
        console.print("[green]✓ Using token authentication.[/green]")
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Ready to download! Try: [cyan]hfmd download <org/name>[/cyan]")


def _load_config(cli_options: dict | None = None) -> DownloadConfig:
    return ConfigManager(CONFIG_FILE).load_config(cli_options)


def _resolve_repo(repo: str, dataset: bool) -> tuple[str, RepoType]:
    """Turns a repository argument into an id and type, or exits with usage help."""
    parsed = parse_repo_ref(repo)
    if parsed is None:
        console.print(
            f"[red]✗ '{escape(repo)}' is not a repository id.[/red] "
            "Use [cyan]org/name[/cyan] or a hub URL."
        )
        raise typer.Exit(code=2)
    repo_id, is_dataset = parsed
    return repo_id, RepoType.DATASET if (dataset or is_dataset) else RepoType.MODEL


async def _list_files(
    config: DownloadConfig, repo_id: str, repo_type: RepoType
) -> list[FileDescriptor]:
    async with HubClient(config.endpoint, config.token) as client:
        with console.status(f"[cyan]Listing files of {escape(repo_id)}...[/cyan]"):
            return await client.list_tree(repo_id, config.revision, repo_type)


@app.command()
def search(
    query: str | None = typer.Argument(None, help="Text to search for."),
    author: str | None = typer.Option(
        None, "--author", "-a", help="Only repositories owned by this user or org."
    ),
    dataset: bool = typer.Option(False, "--dataset", "-d", help="Search datasets."),
    sort: str = typer.Option(
        "downloads", "--sort", help="Sort key: downloads, likes or lastModified."
    ),
    limit: int = typer.Option(20, "--limit", "-n", min=1, max=1000),
):
    """Search the hub for models or datasets."""
    config = _load_config()
    repo_type = RepoType.DATASET if dataset else RepoType.MODEL

    async def _search_async():
        async with HubClient(config.endpoint, config.token) as client:
            return await client.search(
                repo_type,
                search=query,
                author=author,
                sort=sort,
                direction="-1",
                limit=limit,
            )

    results = asyncio.run(_search_async())
    print_search_results(console, results, dataset)


@app.command()
def files(
    repo: str = typer.Argument(..., help="Repository id (org/name) or hub URL."),
    dataset: bool = typer.Option(False, "--dataset", "-d", help="It is a dataset."),
    revision: str | None = typer.Option(
        None, "--revision", "-r", help="Branch, tag or commit (default main)."
    ),
):
    """List the files of a repository, grouped by kind."""
    repo_id, repo_type = _resolve_repo(repo, dataset)
    config = _load_config({"revision": revision} if revision else None)

    listing = asyncio.run(_list_files(config, repo_id, repo_type))
    if not listing:
        console.print("[yellow]The repository has no files.[/yellow]")
        return
    console.print(build_file_table(group_files(listing), numbered=False))
    total = sum(d.size_bytes or 0 for d in listing)
    console.print(f"[bold]{len(listing)} files[/bold], {format_size(total)}")


@app.command()
def card(
    repo: str = typer.Argument(..., help="Repository id (org/name) or hub URL."),
    dataset: bool = typer.Option(False, "--dataset", "-d", help="It is a dataset."),
    revision: str | None = typer.Option(None, "--revision", "-r"),
):
    """Show the repository card (README.md)."""
    repo_id, repo_type = _resolve_repo(repo, dataset)
    config = _load_config({"revision": revision} if revision else None)

    async def _card_async():
        async with HubClient(config.endpoint, config.token) as client:
            return await client.fetch_card(repo_id, config.revision, repo_type)

    text = asyncio.run(_card_async())
    if text is None:
        console.print(f"[yellow]No card available for {escape(repo_id)}.[/yellow]")
        raise typer.Exit(code=1)
    console.print(Panel(Markdown(text), title=escape(repo_id), border_style="cyan"))


def _install_signal_handlers(token: CancellationToken) -> list[signal.Signals]:
    """Routes SIGINT/SIGTERM to the job's token where the event loop supports it."""
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, token.cancel)
            installed.append(sig)
        except (NotImplementedError, RuntimeError, ValueError) as e:
            log.debug(f"Signal handler for {sig.name} not installed: {e}")
    return installed


@app.command(name="download")
def download_command(
    repo: str = typer.Argument(..., help="Repository id (org/name) or hub URL."),
    dataset: bool = typer.Option(False, "--dataset", "-d", help="It is a dataset."),
    revision: str | None = typer.Option(
        None, "--revision", "-r", help="Branch, tag or commit (default main)."
    ),
    output: Path | None = typer.Option(
        None,
        "-o",
        "--output",
        help="Destination directory (default <output_dir>/<org>/<name>).",
    ),
    include: list[str] | None = typer.Option(  # noqa: B008
        None, "-i", "--include", help="Only files matching this glob (repeatable)."
    ),
    exclude: list[str] | None = typer.Option(  # noqa: B008
        None, "-x", "--exclude", help="Skip files matching this glob (repeatable)."
    ),
    select_all: bool = typer.Option(
        False, "--all", help="Download every file without the selection prompt."
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Number of simultaneous transfers."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
):
    """Download files from a repository, resuming any partial files."""
    repo_id, repo_type = _resolve_repo(repo, dataset)
    cli_options = {
        key: value
        for key, value in {"revision": revision, "max_workers": workers}.items()
        if value is not None
    }

    try:
        config = _load_config(cli_options)
        listing = asyncio.run(_list_files(config, repo_id, repo_type))
    except HfmdError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e

    selected = filter_files(listing, include, exclude)
    if not selected:
        console.print("[yellow]⚠️  No files match the selection.[/yellow]")
        raise typer.Exit(code=1)
    if not (select_all or include or exclude):
        selected = select_interactively(console, selected)
        if not selected:
            console.print("[yellow]Nothing selected.[/yellow]")
            raise typer.Abort()

    destination = output.expanduser() if output else default_destination(
        config.output_dir, repo_id
    )
    total_bytes = sum(d.size_bytes or 0 for d in selected)
    print_job_header(
        console, repo_id, config.revision, destination, config, len(selected), total_bytes
    )
    if not yes and not typer.confirm("Start the download?", default=True):
        raise typer.Abort()
    create_dir(destination)

    async def _download_async():
        token = CancellationToken()
        job = TransferJob(
            dest_root=destination,
            repo_id=repo_id,
            revision=config.revision,
            repo_type=repo_type,
            files=selected,
            cancel_token=token,
        )
        installed = _install_signal_handlers(token)
        try:
            async with ProgressManager(console=console, title=repo_id) as progress:
                progress.initialize_session(len(selected), total_bytes)
                coordinator = TransferCoordinator(config, progress)
                console.print("[bold cyan]🤗 Starting download session...[/bold cyan]")
                start_time = time.monotonic()
                outcomes = await coordinator.run(job)
                duration = time.monotonic() - start_time
                progress_stats = progress.get_statistics()
        finally:
            loop = asyncio.get_running_loop()
            for sig in installed:
                loop.remove_signal_handler(sig)
        return coordinator, outcomes, duration, progress_stats, token.cancelled

    coordinator, outcomes, duration, progress_stats, cancelled = asyncio.run(
        _download_async()
    )
    print_summary_panel(coordinator.stats, duration, outcomes, progress_stats)

    if cancelled:
        raise typer.Exit(code=EXIT_CANCELLED)
    if any(o.state is TransferState.FAILED for o in outcomes.values()):
        raise typer.Exit(code=1)
    log.debug(f"All {len(outcomes)} files present in '{destination}'")
