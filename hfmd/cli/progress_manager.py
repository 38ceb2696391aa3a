"""
Manages a Rich Live display for concurrent file transfers.
Shows overall progress, active transfers and real-time statistics.
"""

import asyncio
from datetime import datetime

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table
from rich.text import Text

from hfmd.models.entry import TransferOutcome, TransferState


class ProgressManager:
    """
    A progress sink that renders every transfer as a Rich progress bar, with
    a header and a session statistics panel.
    """

    def __init__(self, console: Console, title: str = "", transient: bool = False):
        self.console = console
        self.title = title

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=20),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            DownloadColumn(),
            "•",
            TransferSpeedColumn(),
            "•",
            TimeRemainingColumn(),
            console=console,
            transient=transient,
        )

        self.overall_progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            "[progress.percentage]{task.percentage:>3.0f}%",
            DownloadColumn(),
            console=console,
        )

        self._live: Live | None = None
        self._layout: Layout | None = None

        self._stats = {
            "total_files": 0,
            "completed": 0,
            "failed": 0,
            "skipped": 0,
            "cancelled": 0,
            "active_downloads": 0,
            "peak_concurrent": 0,
            "start_time": None,
            "current_speed": 0.0,
            "peak_speed": 0.0,
        }

        self._overall_task_id: TaskID | None = None
        self._task_ids: dict[str, TaskID] = {}
        self._active: set[str] = set()

    def initialize_session(self, total_files: int, total_bytes: int | None = None):
        self._stats["total_files"] = total_files
        self._stats["start_time"] = datetime.now()
        self._overall_task_id = self.overall_progress.add_task(
            "Overall Progress", total=total_bytes or None, start=True
        )

    def update_speed_stats(self, current_speed: float, peak_speed: float):
        self._stats["current_speed"] = current_speed
        self._stats["peak_speed"] = peak_speed

    # Progress sink interface

    def start(self, task_id: str) -> None:
        description = task_id
        if len(description) > 48:
            description = "…" + description[-47:]
        self._task_ids[task_id] = self.progress.add_task(
            escape(description), total=None, start=True
        )
        self._active.add(task_id)
        self._stats["active_downloads"] = len(self._active)
        self._stats["peak_concurrent"] = max(
            self._stats["peak_concurrent"], self._stats["active_downloads"]
        )
        self._update_display()

    def set_total(self, task_id: str, total: int) -> None:
        if (rich_id := self._task_ids.get(task_id)) is not None:
            self.progress.update(rich_id, total=total)

    def advance(self, task_id: str, delta: int) -> None:
        if (rich_id := self._task_ids.get(task_id)) is not None:
            self.progress.advance(rich_id, delta)
        if self._overall_task_id is not None:
            self.overall_progress.advance(self._overall_task_id, delta)
        self._update_display()

    def finish(self, task_id: str, outcome: TransferOutcome) -> None:
        rich_id = self._task_ids.pop(task_id, None)
        if rich_id is not None:
            try:
                self.progress.remove_task(rich_id)
            except KeyError:
                pass
        self._active.discard(task_id)
        self._stats["active_downloads"] = len(self._active)
        key = {
            TransferState.COMPLETED: "completed",
            TransferState.SKIPPED: "skipped",
            TransferState.FAILED: "failed",
            TransferState.CANCELLED: "cancelled",
        }[outcome.state]
        self._stats[key] += 1
        self._update_display()

    # Rendering

    def _create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="stats", size=8),
            Layout(name="progress", ratio=1),
        )
        return layout

    def _generate_header(self) -> Panel:
        if self._stats["start_time"]:
            elapsed = (datetime.now() - self._stats["start_time"]).total_seconds()
            elapsed_str = (
                f"{int(elapsed // 3600):02d}:"
                f"{int((elapsed % 3600) // 60):02d}:{int(elapsed % 60):02d}"
            )
        else:
            elapsed_str = "00:00:00"
        header_text = Text()
        header_text.append("🤗 hfmd ", style="bold cyan")
        if self.title:
            header_text.append("│ ", style="dim")
            header_text.append(self.title, style="bold")
            header_text.append(" ")
        header_text.append("│ ", style="dim")
        header_text.append(f"Session: {elapsed_str}", style="yellow")
        if self._stats["current_speed"] > 0:
            speed_mb = self._stats["current_speed"] / (1024 * 1024)
            header_text.append(" │ ", style="dim")
            header_text.append(f"⚡ {speed_mb:.1f} MB/s", style="magenta")
        return Panel(header_text, border_style="cyan")

    def _generate_stats_panel(self) -> Panel:
        stats_table = Table.grid(padding=(0, 2))
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        finished = (
            self._stats["completed"]
            + self._stats["failed"]
            + self._stats["skipped"]
            + self._stats["cancelled"]
        )
        stats_table.add_row(
            "Downloaded:",
            f"[green]{self._stats['completed']}[/green]",
            "Failed:",
            f"[red]{self._stats['failed']}[/red]",
        )
        stats_table.add_row(
            "Skipped:",
            f"[yellow]{self._stats['skipped']}[/yellow]",
            "Remaining:",
            f"[cyan]{max(0, self._stats['total_files'] - finished)}[/cyan]",
        )
        stats_table.add_row(
            "Active:",
            f"[cyan]{self._stats['active_downloads']}[/cyan]",
            "Peak:",
            f"[magenta]{self._stats['peak_concurrent']}[/magenta]",
        )
        combined = Table.grid()
        combined.add_row(stats_table)
        combined.add_row("")
        if self._overall_task_id is not None:
            combined.add_row(self.overall_progress)
        return Panel(
            combined, title="[bold]📊 Session Statistics[/bold]", border_style="blue"
        )

    def _generate_progress_panel(self) -> Panel:
        if not self._active:
            return Panel(
                Text(
                    "Waiting for transfers to start...",
                    style="dim italic",
                    justify="center",
                ),
                title="[bold]📥 Active Downloads[/bold]",
                border_style="green",
            )
        return Panel(
            self.progress,
            title=f"[bold]📥 Active Downloads ({len(self._active)})[/bold]",
            border_style="green",
        )

    def _update_display(self):
        """
        Updates all panels in the layout, letting the Live object handle refresh rate.
        """
        if not self._layout:
            return

        self._layout["header"].update(self._generate_header())
        self._layout["stats"].update(self._generate_stats_panel())
        self._layout["progress"].update(self._generate_progress_panel())

    def get_statistics(self) -> dict:
        return self._stats.copy()

    async def __aenter__(self):
        self._layout = self._create_layout()
        self._update_display()
        self._live = Live(
            self._layout,
            console=self.console,
            refresh_per_second=12,
            vertical_overflow="visible",
        )
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._live:
            await asyncio.sleep(0.2)
            self._live.stop()
