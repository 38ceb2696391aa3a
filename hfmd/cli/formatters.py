"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from hfmd.models.config import DownloadConfig
from hfmd.models.entry import RepoInfo, TransferOutcome, TransferState
from hfmd.models.stats import TransferStats
from hfmd.utils.formatting import format_count, format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "AuthenticationError": [
            "• The repository may be gated: accept its terms on the hub website.",
            "• Set a token with `hfmd init --token <TOKEN>` or the HF_TOKEN variable.",
            "• Check that the token has read access to the repository.",
        ],
        "RepositoryNotFoundError": [
            "• Check the spelling of the repository id (e.g. `org/name`).",
            "• Add `--dataset` if this is a dataset repository.",
            "• Private repositories answer 404 without a valid token.",
        ],
        "MissingLengthHeaderError": [
            "• The server did not report the file size, so it cannot be resumed.",
            "• Check the configured endpoint; a proxy may be rewriting responses.",
        ],
        "ConfigurationError": [
            "• Review the values in the configuration file (`hfmd --show-config`).",
            "• Run `hfmd init --force` to write a fresh configuration.",
        ],
        "ClientResponseError": [
            "• A network connection issue occurred.",
            "• The hub might be temporarily unavailable.",
            "• Please try again in a few minutes.",
        ],
        "TimeoutError": [
            "• A transfer timed out, which may indicate network throttling.",
            "• Re-run the same command: partial files are resumed.",
            "• Try reducing the number of `--workers`.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding sensitive data."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if key == "token":
            value = "[hidden]" if value else ""
        elif value is None:
            value = "auto"
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            escape(content.strip()),
            title=f"Configuration ([dim]{escape(str(config_path))}[/dim])",
            border_style="cyan",
        )
    )


def print_job_header(
    console: Console,
    repo_id: str,
    revision: str,
    destination: Path,
    config: DownloadConfig,
    file_count: int,
    total_bytes: int,
):
    """Displays what is about to be downloaded and where."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Repository:", f"[bold]{escape(repo_id)}[/bold] @ {escape(revision)}")
    table.add_row("Destination:", f"[dim]{escape(str(destination))}[/dim]")
    table.add_row("Files:", f"{file_count} ({format_size(total_bytes)})")
    workers = config.effective_workers(file_count)
    table.add_row("Max Workers:", str(workers) if workers else "unbounded")
    table.add_row("Auth:", "[green]Token[/green]" if config.token else "Anonymous")

    console.print(
        Panel(table, title="[bold cyan]🤗 Download[/bold cyan]", border_style="cyan")
    )


def print_search_results(console: Console, results: list[RepoInfo], dataset: bool):
    """Displays hub search results as a table."""
    if not results:
        console.print("[yellow]No repositories matched the search.[/yellow]")
        return

    table = Table(
        title="Datasets" if dataset else "Models",
        box=box.SIMPLE_HEAVY,
        show_edge=False,
    )
    table.add_column("Repository", style="cyan", overflow="fold")
    table.add_column("Task", style="magenta")
    table.add_column("Downloads", justify="right", style="green")
    table.add_column("Likes", justify="right", style="yellow")
    table.add_column("Updated", style="dim")

    for repo in results:
        name = escape(repo.id)
        if repo.gated:
            name += " [red]🔒[/red]"
        table.add_row(
            name,
            escape(repo.pipeline_tag or ""),
            format_count(repo.downloads or 0),
            format_count(repo.likes or 0),
            repo.last_modified.strftime("%Y-%m-%d") if repo.last_modified else "",
        )
    console.print(table)


def print_summary_panel(
    stats: TransferStats,
    duration_s: float,
    outcomes: dict[str, TransferOutcome],
    progress_stats: dict | None = None,
):
    """Displays the final summary of the transfer session."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Downloaded:", f"[bold green]{stats.files_completed}[/bold green]"
    )
    if stats.files_skipped > 0:
        stats_table.add_row(
            "○ Skipped:", f"[yellow]{stats.files_skipped} (exists)[/yellow]"
        )
    if stats.files_cancelled > 0:
        stats_table.add_row(
            "■ Cancelled:", f"[yellow]{stats.files_cancelled} (partial kept)[/yellow]"
        )
    if stats.files_failed > 0:
        stats_table.add_row("✗ Failed:", f"[bold red]{stats.files_failed}[/bold red]")

    stats_table.add_row("", "")

    stats_table.add_row(
        "Transferred:", f"[cyan]{format_size(stats.bytes_transferred)}[/cyan]"
    )
    avg_speed = stats.bytes_transferred / duration_s if duration_s > 0 else 0
    stats_table.add_row(
        "Avg. Speed:", f"[magenta]{format_size(int(avg_speed))}/s[/magenta]"
    )
    if stats.peak_speed_bps > 0:
        stats_table.add_row(
            "Peak Speed:",
            f"[magenta]{format_size(int(stats.peak_speed_bps))}/s[/magenta]",
        )
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    if progress_stats:
        stats_table.add_row("", "")
        stats_table.add_row(
            "Peak Concurrent:",
            f"[green]{progress_stats.get('peak_concurrent', 0)}[/green]",
        )

    if stats.files_failed:
        title = "⚠ [bold]Finished with Errors[/bold]"
        border_color = "red"
    elif stats.files_cancelled:
        title = "■ [bold]Cancelled[/bold]"
        border_color = "yellow"
    else:
        title = "🤗 [bold]Download Complete![/bold]"
        border_color = "green"

    console.print()
    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )

    failed = [o for o in outcomes.values() if o.state is TransferState.FAILED]
    if failed:
        table = Table(title="Failed Files", box=box.SIMPLE, title_style="bold red")
        table.add_column("File", style="cyan", overflow="fold")
        table.add_column("Progress", justify="right", style="dim")
        table.add_column("Error", style="red", overflow="fold")
        for outcome in failed:
            if outcome.total_bytes:
                progress = (
                    f"{format_size(outcome.partial_bytes)} / "
                    f"{format_size(outcome.total_bytes)}"
                )
            else:
                progress = "-"
            table.add_row(
                escape(outcome.path),
                progress,
                escape(f"{outcome.error_type}: {outcome.error}"),
            )
        console.print(table)
        console.print(
            "[dim]Re-run the same command to resume; partial files are kept.[/dim]"
        )

    console.print()
