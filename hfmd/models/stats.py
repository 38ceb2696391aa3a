"""
Dataclass for tracking transfer session statistics.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable

from hfmd.models.entry import TransferOutcome, TransferState


@dataclass
class TransferStats:
    """Tracks statistics for a transfer session, including real-time speed."""

    files_completed: int = 0
    files_skipped: int = 0
    files_failed: int = 0
    files_cancelled: int = 0
    bytes_transferred: int = 0

    # Real-time speed calculation fields
    current_speed_bps: float = 0.0
    peak_speed_bps: float = 0.0
    _speed_samples: list[float] = field(default_factory=list, repr=False)
    _last_progress_time: float = field(default=0.0, repr=False)
    _last_progress_bytes: int = field(default=0, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self):
        self._last_progress_time = time.monotonic()

    @property
    def files_total(self) -> int:
        return (
            self.files_completed
            + self.files_skipped
            + self.files_failed
            + self.files_cancelled
        )

    def record_outcome(self, outcome: TransferOutcome) -> None:
        counters = {
            TransferState.COMPLETED: "files_completed",
            TransferState.SKIPPED: "files_skipped",
            TransferState.FAILED: "files_failed",
            TransferState.CANCELLED: "files_cancelled",
        }
        name = counters[outcome.state]
        setattr(self, name, getattr(self, name) + 1)

    async def add_bytes(
        self, count: int, on_speed: Callable[[float, float], None] | None = None
    ) -> None:
        """
        Adds freshly received bytes and refreshes the speed estimate. Async-safe.
        """
        async with self._lock:
            self.bytes_transferred += count
            now = time.monotonic()
            elapsed = now - self._last_progress_time

            # Update speed roughly twice per second
            if elapsed > 0.5:
                bytes_diff = self.bytes_transferred - self._last_progress_bytes
                if bytes_diff > 0:
                    self._speed_samples.append(bytes_diff / elapsed)
                    # Keep a sliding window of the last 10 speed samples
                    if len(self._speed_samples) > 10:
                        self._speed_samples.pop(0)
                    self.current_speed_bps = sum(self._speed_samples) / len(
                        self._speed_samples
                    )
                    self.peak_speed_bps = max(
                        self.peak_speed_bps, self.current_speed_bps
                    )
                    if on_speed is not None:
                        on_speed(self.current_speed_bps, self.peak_speed_bps)

                self._last_progress_time = now
                self._last_progress_bytes = self.bytes_transferred
