"""
Downloads a single file: resume offset, ranged request, streaming into the
partial file, progress reporting and atomic finalization.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable

import aiohttp

from hfmd.core.cancellation import CancellationToken
from hfmd.core.progress import NullProgressSink, ProgressSink
from hfmd.exceptions import (
    AuthenticationError,
    IncompleteTransferError,
    MissingLengthHeaderError,
    RepositoryNotFoundError,
    TransferCancelledError,
    TransferError,
)
from hfmd.models.entry import FileDescriptor, TransferOutcome, TransferState
from hfmd.storage.partial_store import PartialFileStore

log = logging.getLogger(__name__)

_TRANSITIONS: dict[TransferState, frozenset[TransferState]] = {
    TransferState.PENDING: frozenset(
        {
            TransferState.SKIPPED,
            TransferState.RESUMING,
            TransferState.CANCELLED,
            TransferState.FAILED,
        }
    ),
    TransferState.RESUMING: frozenset(
        {TransferState.STREAMING, TransferState.CANCELLED, TransferState.FAILED}
    ),
    TransferState.STREAMING: frozenset(
        {
            TransferState.FINALIZING,
            TransferState.RESUMING,  # retry after a transient error
            TransferState.CANCELLED,
            TransferState.FAILED,
        }
    ),
    TransferState.FINALIZING: frozenset(
        {TransferState.COMPLETED, TransferState.FAILED}
    ),
}


def _is_transient(error: BaseException) -> bool:
    """Whether a failed attempt is worth retrying from the current partial."""
    if isinstance(error, aiohttp.ClientResponseError):
        return error.status >= 500
    return isinstance(
        error, (aiohttp.ClientError, asyncio.TimeoutError, IncompleteTransferError)
    )


class TransferTask:
    """
    The state machine for downloading one file.

    A task never raises for per-file problems: `run()` always returns a
    terminal TransferOutcome and leaves any partial file in place for a
    later resume.
    """

    def __init__(
        self,
        descriptor: FileDescriptor,
        url: str,
        store: PartialFileStore,
        session: aiohttp.ClientSession,
        cancel_token: CancellationToken,
        progress: ProgressSink | None = None,
        *,
        chunk_size: int = 65536,
        max_attempts: int = 3,
        base_delay: float = 1.5,
        durable_writes: bool = True,
        on_bytes: Callable[[int], Awaitable[None]] | None = None,
    ):
        self.descriptor = descriptor
        self.url = url
        self.store = store
        self.session = session
        self.cancel_token = cancel_token
        self.progress = progress or NullProgressSink()
        self.chunk_size = chunk_size
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.durable_writes = durable_writes
        self.on_bytes = on_bytes

        self.state = TransferState.PENDING
        self.resume_offset = 0
        self.bytes_transferred = 0
        self.total_bytes: int | None = None
        self.outcome: TransferOutcome | None = None

        self._part_path: Path | None = None
        self._reported = 0
        self._total_reported = False

    @property
    def task_id(self) -> str:
        return self.descriptor.path

    def _transition(self, new_state: TransferState) -> None:
        if new_state not in _TRANSITIONS.get(self.state, frozenset()):
            raise RuntimeError(
                f"Illegal transfer transition {self.state.value} -> "
                f"{new_state.value} for '{self.task_id}'"
            )
        log.debug(f"{self.task_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _set_total(self, total: int) -> None:
        if not self._total_reported:
            self.progress.set_total(self.task_id, total)
            self._total_reported = True

    def _report(self, cumulative: int) -> None:
        """Reports cumulative progress as a delta; never moves backwards."""
        if cumulative > self._reported:
            self.progress.advance(self.task_id, cumulative - self._reported)
            self._reported = cumulative

    async def run(self) -> TransferOutcome:
        """Runs the transfer to a terminal state and returns its outcome."""
        self.progress.start(self.task_id)
        error: Exception | None = None
        try:
            await self._run()
        except TransferCancelledError:
            self._transition(TransferState.CANCELLED)
        except Exception as e:
            error = e
            self._transition(TransferState.FAILED)
            log.debug(
                f"Transfer of '{self.task_id}' failed: {e!r}",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )

        partial_bytes = 0
        if self._part_path is not None and self.state in (
            TransferState.FAILED,
            TransferState.CANCELLED,
        ):
            partial_bytes = await self.store.partial_size(self._part_path)

        self.outcome = TransferOutcome(
            path=self.task_id,
            state=self.state,
            bytes_transferred=self.bytes_transferred,
            total_bytes=self.total_bytes,
            error=(str(error) or type(error).__name__) if error else None,
            error_type=type(error).__name__ if error else None,
            partial_bytes=partial_bytes,
        )
        self.progress.finish(self.task_id, self.outcome)
        return self.outcome

    async def _run(self) -> None:
        self.cancel_token.raise_if_cancelled()
        final_path, part_path = self.store.resolve(self.descriptor.path)
        self._part_path = part_path

        existing = await self.store.existing_final_size(final_path)
        if existing is not None:
            self._transition(TransferState.SKIPPED)
            self.total_bytes = existing
            self._set_total(existing)
            self._report(existing)
            return

        for attempt in range(1, self.max_attempts + 1):
            self._transition(TransferState.RESUMING)
            try:
                await self._attempt(part_path)
                break
            except Exception as e:
                if attempt >= self.max_attempts or not _is_transient(e):
                    raise
                delay = self.base_delay * (2 ** (attempt - 1))
                log.debug(
                    f"Transfer attempt {attempt}/{self.max_attempts} for "
                    f"'{self.task_id}' failed: {e!r}. Retrying in {delay:.1f}s..."
                )
                await self.cancel_token.sleep(delay)

        self._transition(TransferState.FINALIZING)
        await self.store.finalize(part_path, final_path)
        self._transition(TransferState.COMPLETED)

    async def _attempt(self, part_path) -> None:
        """One request/stream cycle, continuing from the partial's length."""
        offset = await self.store.prepare_partial(part_path)
        self.resume_offset = offset
        self.cancel_token.raise_if_cancelled()

        self._transition(TransferState.STREAMING)
        headers = {"Range": f"bytes={offset}-"} if offset > 0 else {}
        response = await self.cancel_token.race(
            self.session.get(self.url, headers=headers, allow_redirects=True)
        )
        async with response:
            if response.status == 416 and offset > 0:
                if self.descriptor.size_bytes == offset:
                    log.debug(f"'{self.task_id}' partial already holds every byte.")
                    self.total_bytes = offset
                    self._set_total(offset)
                    self._report(offset)
                    return
                raise TransferError(
                    f"Server rejected resume offset {offset} for '{self.task_id}'."
                )
            if response.status in (401, 403):
                raise AuthenticationError(
                    f"Access denied to '{self.task_id}' (HTTP {response.status})."
                )
            if response.status == 404:
                raise RepositoryNotFoundError(f"File not found: {self.url}")
            response.raise_for_status()

            truncate = False
            if offset > 0 and response.status != 206:
                log.debug(
                    f"Server ignored the range request for '{self.task_id}'; "
                    "restarting from the first byte."
                )
                truncate = True
                offset = 0
                self.resume_offset = 0

            remaining = response.content_length
            if remaining is None:
                raise MissingLengthHeaderError(
                    f"Server did not report a Content-Length for '{self.task_id}'."
                )

            self.total_bytes = offset + remaining
            self._set_total(self.total_bytes)
            self._report(offset)

            received = await self._stream(response, part_path, offset, truncate)
            if received != remaining:
                raise IncompleteTransferError(
                    f"Stream for '{self.task_id}' ended after {received} of "
                    f"{remaining} bytes."
                )

    async def _stream(self, response, part_path, offset: int, truncate: bool) -> int:
        """Appends the body to the partial file chunk by chunk, in receive order."""
        received = 0
        async with self.store.append(part_path, truncate=truncate) as handle:
            while True:
                chunk = await self.cancel_token.race(
                    response.content.read(self.chunk_size)
                )
                if not chunk:
                    break
                await self.store.write_chunk(
                    handle, chunk, durable=self.durable_writes
                )
                received += len(chunk)
                self.bytes_transferred += len(chunk)
                self._report(offset + received)
                if self.on_bytes is not None:
                    await self.on_bytes(len(chunk))
                self.cancel_token.raise_if_cancelled()
        return received
