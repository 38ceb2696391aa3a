"""
The narrow progress interface transfers report through.
"""

from typing import Protocol

from hfmd.models.entry import TransferOutcome


class ProgressSink(Protocol):
    """
    Receives byte-count updates from transfers.

    Task ids are the files' repository paths. A transfer calls `start` once,
    `set_total` at most once and before any `advance`, then `advance` with
    non-negative deltas, and finally `finish` with its terminal outcome.
    """

    def start(self, task_id: str) -> None: ...

    def set_total(self, task_id: str, total: int) -> None: ...

    def advance(self, task_id: str, delta: int) -> None: ...

    def finish(self, task_id: str, outcome: TransferOutcome) -> None: ...


class NullProgressSink:
    """A sink that discards every update."""

    def start(self, task_id: str) -> None:
        pass

    def set_total(self, task_id: str, total: int) -> None:
        pass

    def advance(self, task_id: str, delta: int) -> None:
        pass

    def finish(self, task_id: str, outcome: TransferOutcome) -> None:
        pass
