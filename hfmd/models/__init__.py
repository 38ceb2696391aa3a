"""
Data Models Layer.

This package contains the pydantic models and dataclasses that define the
core data structures used throughout the application.
"""

from .config import DownloadConfig
from .entry import (
    EntryKind,
    FileDescriptor,
    RepoInfo,
    RepoType,
    TransferJob,
    TransferOutcome,
    TransferState,
)
from .stats import TransferStats

__all__ = [
    "DownloadConfig",
    "EntryKind",
    "FileDescriptor",
    "RepoInfo",
    "RepoType",
    "TransferJob",
    "TransferOutcome",
    "TransferState",
    "TransferStats",
]
