"""
Manages the on-disk representation of in-progress downloads.

For a destination path P, bytes are streamed into the sibling `P.part` and
the final file at P only ever appears through an atomic rename of a fully
received partial file.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import AsyncIterator

import aiofiles
import aiofiles.os as aios
from pathvalidate import sanitize_filename

from hfmd.exceptions import UnsafePathError

log = logging.getLogger(__name__)

PART_SUFFIX = ".part"


class PartialFileStore:
    """Path composition and partial-file I/O beneath one destination root."""

    def __init__(self, dest_root: Path | str):
        self.dest_root = Path(dest_root)

    def resolve(self, relative_path: str) -> tuple[Path, Path]:
        """
        Maps a repository path to its (final, partial) local paths.

        Remote paths are untrusted input: absolute paths, drive letters and
        `..` segments are rejected rather than normalized away.

        Raises:
            UnsafePathError: If the path is empty or escapes the root.
        """
        posix = PurePosixPath(relative_path)
        if (
            not relative_path
            or posix.is_absolute()
            or PureWindowsPath(relative_path).drive
            or "\\" in relative_path
        ):
            raise UnsafePathError(f"Refusing unsafe remote path: {relative_path!r}")

        segments = []
        for part in posix.parts:
            if part == "..":
                raise UnsafePathError(
                    f"Refusing remote path with '..' segment: {relative_path!r}"
                )
            safe = sanitize_filename(part, platform="auto")
            if not safe:
                raise UnsafePathError(
                    f"Remote path segment {part!r} is not a valid file name."
                )
            segments.append(safe)
        if not segments:
            raise UnsafePathError(f"Refusing unsafe remote path: {relative_path!r}")

        final_path = self.dest_root.joinpath(*segments)
        return final_path, final_path.with_name(final_path.name + PART_SUFFIX)

    async def existing_final_size(self, final_path: Path) -> int | None:
        """Returns the size of an existing final file, or None if absent."""
        if await aios.path.isfile(final_path):
            return (await aios.stat(final_path)).st_size
        return None

    async def partial_size(self, part_path: Path) -> int:
        """Returns how many bytes a partial file holds, 0 when there is none."""
        if await aios.path.isfile(part_path):
            return (await aios.stat(part_path)).st_size
        return 0

    async def prepare_partial(self, part_path: Path) -> int:
        """
        Returns the resume offset for `part_path`, creating an empty partial
        file (and its directory) when none exists yet.
        """
        await aios.makedirs(part_path.parent, exist_ok=True)
        if await aios.path.isfile(part_path):
            return (await aios.stat(part_path)).st_size
        async with aiofiles.open(part_path, "ab"):
            pass
        log.debug(f"Created empty partial file '{part_path}'")
        return 0

    @asynccontextmanager
    async def append(self, part_path: Path, truncate: bool = False) -> AsyncIterator:
        """
        Opens the partial file for sequential appends.

        With `truncate`, existing bytes are discarded first; used when a
        server answered a ranged request with the full body.
        """
        async with aiofiles.open(part_path, "wb" if truncate else "ab") as handle:
            yield handle

    async def write_chunk(self, handle, chunk: bytes, durable: bool = True) -> None:
        """Appends one chunk and flushes it, fsyncing when `durable`."""
        await handle.write(chunk)
        await handle.flush()
        if durable:
            await asyncio.to_thread(os.fsync, handle.fileno())

    async def finalize(self, part_path: Path, final_path: Path) -> None:
        """Atomically promotes a completed partial file to its final path."""
        await aios.makedirs(final_path.parent, exist_ok=True)
        await aios.rename(part_path, final_path)
