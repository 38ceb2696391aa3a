"""
Data models for repository entries, search results and transfer bookkeeping.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from hfmd.core.cancellation import CancellationToken


class RepoType(str, Enum):
    """Kinds of hub repositories, which differ only in their URL prefixes."""

    MODEL = "model"
    DATASET = "dataset"

    @property
    def api_segment(self) -> str:
        return f"{self.value}s"

    @property
    def resolve_prefix(self) -> str:
        return "datasets/" if self is RepoType.DATASET else ""


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


class FileDescriptor(BaseModel):
    """Remote metadata for one downloadable object. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    path: str
    content_id: str = ""
    size_bytes: int | None = None
    kind: EntryKind = EntryKind.FILE

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def is_file(self) -> bool:
        return self.kind is EntryKind.FILE

    @classmethod
    def from_api(cls, entry: dict[str, Any]) -> "FileDescriptor":
        """
        Builds a descriptor from a hub tree entry.

        LFS-tracked files report the pointer's blob in `oid`/`size`; the real
        object's sha256 and byte size live under `lfs`, so those win.
        """
        lfs = entry.get("lfs") or {}
        kind = (
            EntryKind.DIRECTORY
            if str(entry.get("type", "")).lower() == "directory"
            else EntryKind.FILE
        )
        size = lfs.get("size", entry.get("size"))
        return cls(
            path=entry["path"],
            content_id=lfs.get("oid") or entry.get("oid") or "",
            size_bytes=None if kind is EntryKind.DIRECTORY else size,
            kind=kind,
        )


class RepoInfo(BaseModel):
    """A repository row as returned by the hub's search endpoints."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    author: str | None = None
    sha: str | None = None
    downloads: int = 0
    likes: int = 0
    last_modified: datetime | None = Field(default=None, alias="lastModified")
    private: bool = False
    gated: bool | str = False
    tags: list[str] = Field(default_factory=list)
    pipeline_tag: str | None = None
    library_name: str | None = None


class TransferState(str, Enum):
    """States of a single file transfer."""

    PENDING = "pending"
    SKIPPED = "skipped"
    RESUMING = "resuming"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {
        TransferState.SKIPPED,
        TransferState.COMPLETED,
        TransferState.CANCELLED,
        TransferState.FAILED,
    }
)


@dataclass
class TransferOutcome:
    """The terminal result of one file transfer."""

    path: str
    state: TransferState
    bytes_transferred: int = 0
    total_bytes: int | None = None
    error: str | None = None
    error_type: str | None = None
    # bytes left in the .part file for a later resume
    partial_bytes: int = 0

    @property
    def ok(self) -> bool:
        return self.state in (TransferState.COMPLETED, TransferState.SKIPPED)


@dataclass
class TransferJob:
    """
    One invocation-scoped set of files to download into a destination root.

    The job owns the cancellation token shared by all of its transfers.
    """

    dest_root: Path
    repo_id: str
    revision: str = "main"
    repo_type: RepoType = RepoType.MODEL
    files: list[FileDescriptor] = field(default_factory=list)
    cancel_token: CancellationToken | None = None

    def __post_init__(self):
        self.dest_root = Path(self.dest_root)
        if self.cancel_token is None:
            self.cancel_token = CancellationToken()
