"""
The orchestrator that fans a job's files out to concurrent transfers and
collects their outcomes.
"""

import asyncio
import contextlib
import logging
import os

import aiohttp
from rich.markup import escape

from hfmd.api.client import content_url
from hfmd.core.progress import NullProgressSink, ProgressSink
from hfmd.core.session import create_transfer_session
from hfmd.core.transfer_task import TransferTask
from hfmd.exceptions import UnsafePathError
from hfmd.models.config import DownloadConfig
from hfmd.models.entry import (
    FileDescriptor,
    TransferJob,
    TransferOutcome,
    TransferState,
)
from hfmd.models.stats import TransferStats
from hfmd.storage.partial_store import PartialFileStore
from hfmd.utils.formatting import format_size

log = logging.getLogger(__name__)


class TransferCoordinator:
    """
    Runs every file of a TransferJob concurrently.

    One task's failure or cancellation never affects its siblings; only the
    job's cancellation token stops transfers, and it reaches all of them.
    """

    def __init__(
        self,
        config: DownloadConfig,
        progress_sink: ProgressSink | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.config = config
        self.progress_sink = progress_sink or NullProgressSink()
        self.stats = TransferStats()
        self._session = session

    def _select_files(self, files: list[FileDescriptor]) -> list[FileDescriptor]:
        """Drops directory entries and repeated paths, keeping first occurrences."""
        unique: dict[str, FileDescriptor] = {}
        for descriptor in files:
            if not descriptor.is_file:
                log.debug(f"Ignoring directory entry '{descriptor.path}'")
                continue
            unique.setdefault(descriptor.path, descriptor)
        if len(unique) < len([f for f in files if f.is_file]):
            log.debug("Collapsed duplicate paths in the selection.")
        return list(unique.values())

    def _find_collisions(
        self, files: list[FileDescriptor], store: PartialFileStore
    ) -> dict[str, str]:
        """
        Maps each path whose local final or partial file is already claimed by
        an earlier descriptor to the reason it cannot be written.

        A repo holding both `X` and `X.part`, or names that sanitize to the
        same local name, would otherwise have two transfers sharing one file.
        """
        owners: dict[str, str] = {}
        collisions: dict[str, str] = {}
        for descriptor in files:
            try:
                local_paths = store.resolve(descriptor.path)
            except UnsafePathError:
                continue  # the transfer itself fails with this error
            keys = [os.path.normcase(str(p)) for p in local_paths]
            owner = next((owners[k] for k in keys if k in owners), None)
            if owner is not None:
                collisions[descriptor.path] = (
                    f"Local file for '{descriptor.path}' collides with '{owner}'"
                )
                continue
            for key in keys:
                owners[key] = descriptor.path
        return collisions

    async def run(self, job: TransferJob) -> dict[str, TransferOutcome]:
        """
        Downloads every selected file of `job`.

        Returns:
            A terminal outcome for every requested file path, keyed by path
            in selection order.
        """
        files = self._select_files(job.files)
        if not files:
            log.info("Nothing to download.")
            return {}

        store = PartialFileStore(job.dest_root)
        collisions = self._find_collisions(files, store)
        runnable = [f for f in files if f.path not in collisions]

        results = {
            path: self._reject(path, reason) for path, reason in collisions.items()
        }
        if runnable:
            results.update(await self._run_transfers(job, runnable, store))

        if job.cancel_token.cancelled:
            log.info("[yellow]Transfers cancelled. Partial files were kept for resuming.[/yellow]")
        return {descriptor.path: results[descriptor.path] for descriptor in files}

    async def _run_transfers(
        self,
        job: TransferJob,
        files: list[FileDescriptor],
        store: PartialFileStore,
    ) -> dict[str, TransferOutcome]:
        workers = self.config.effective_workers(len(files))
        semaphore = asyncio.Semaphore(workers) if workers else None
        log.debug(
            f"Starting {len(files)} transfers into '{job.dest_root}' "
            f"(workers: {workers or 'unbounded'})"
        )

        owns_session = self._session is None
        session = self._session or create_transfer_session(
            workers, headers=self.config.auth_headers()
        )

        try:
            tasks = [
                self._run_one(
                    TransferTask(
                        descriptor,
                        content_url(
                            self.config.endpoint,
                            job.repo_id,
                            job.revision,
                            descriptor.path,
                            job.repo_type,
                        ),
                        store,
                        session,
                        job.cancel_token,
                        self.progress_sink,
                        chunk_size=self.config.chunk_size,
                        max_attempts=self.config.max_attempts,
                        base_delay=self.config.base_delay,
                        durable_writes=self.config.durable_writes,
                        on_bytes=self._on_bytes,
                    ),
                    semaphore,
                )
                for descriptor in files
            ]
            outcomes = await asyncio.gather(*tasks)
        finally:
            if owns_session:
                await session.close()
        return {outcome.path: outcome for outcome in outcomes}

    def _reject(self, path: str, reason: str) -> TransferOutcome:
        outcome = TransferOutcome(
            path=path,
            state=TransferState.FAILED,
            error=reason,
            error_type=UnsafePathError.__name__,
        )
        self.progress_sink.start(path)
        self.progress_sink.finish(path, outcome)
        self.stats.record_outcome(outcome)
        self._log_outcome(outcome)
        return outcome

    async def _run_one(
        self, task: TransferTask, semaphore: asyncio.Semaphore | None
    ) -> TransferOutcome:
        async with semaphore if semaphore else contextlib.nullcontext():
            outcome = await task.run()
        self.stats.record_outcome(outcome)
        self._log_outcome(outcome)
        return outcome

    async def _on_bytes(self, count: int) -> None:
        await self.stats.add_bytes(
            count, getattr(self.progress_sink, "update_speed_stats", None)
        )

    def _log_outcome(self, outcome: TransferOutcome) -> None:
        name = escape(outcome.path)
        if outcome.state is TransferState.COMPLETED:
            log.info(
                f"  [green]✓ Downloaded:[/] {name} "
                f"[dim]({format_size(outcome.total_bytes or 0)})[/dim]"
            )
        elif outcome.state is TransferState.SKIPPED:
            log.info(f"  [yellow]○ Skipping:[/] [dim]{name}[/dim] (already exists)")
        elif outcome.state is TransferState.CANCELLED:
            log.info(f"  [dim]■ Cancelled: {name} (partial kept)[/dim]")
        else:
            log.error(f"  [red]✗ Failed:[/] {name} ({escape(outcome.error or '')})")
