"""
filesystem.py
─────────────
File and directory access to the card's mounted filesystem.

All request paths are interpreted under the mount root. A path that is
empty, or that resolves outside the root (via "..", or a symlink), never
exists and never opens.

Directory handles enumerate lazily with os.scandir, one entry per
open_next_file() call, in whatever order the filesystem yields.
"""

import logging
import os
from pathlib import Path
from typing import AsyncIterator

import aiofiles


CHUNK_SIZE = 64 * 1024      # static file read size

logger = logging.getLogger(__name__)


class FileHandle:
    """An opened file or directory, addressed by its path under the root."""

    def __init__(self, real: Path, path: str):
        self._real    = real
        self.path     = path
        self.is_directory = real.is_dir()
        self._entries = None
        self.closed   = False

    @property
    def size(self) -> int:
        if self.is_directory:
            return 0
        return self._real.stat().st_size

    def open_next_file(self) -> "FileHandle | None":
        """Next child of this directory, or None when exhausted."""
        if not self.is_directory or self.closed:
            return None
        try:
            if self._entries is None:
                self._entries = os.scandir(self._real)
            entry = next(self._entries, None)
            if entry is None:
                return None
            parent = self.path.rstrip("/")
            return FileHandle(Path(entry.path), f"{parent}/{entry.name}")
        except OSError as e:
            # enumeration ends at the first directory read error
            logger.warning("Directory read failed in %s: %s", self.path, e)
            self.close()
            return None

    def rewind(self) -> None:
        """Restart directory enumeration from the first entry."""
        self._close_entries()

    async def chunks(self, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Stream the file's bytes, never more than the size seen at open."""
        remaining = self.size
        async with aiofiles.open(self._real, "rb") as f:
            while remaining > 0:
                chunk = await f.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk

    def close(self) -> None:
        self._close_entries()
        self.closed = True

    def _close_entries(self) -> None:
        if self._entries is not None:
            self._entries.close()
            self._entries = None

    def __enter__(self) -> "FileHandle":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        kind = "dir" if self.is_directory else "file"
        return f"<FileHandle {kind} path={self.path!r}>"


class FileSystemView:
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def exists(self, path: str) -> bool:
        return self._locate(path) is not None

    def open(self, path: str) -> FileHandle | None:
        real = self._locate(path)
        if real is None:
            return None
        relative = real.relative_to(self.root).as_posix()
        return FileHandle(real, "/" if relative == "." else f"/{relative}")

    def _locate(self, path: str) -> Path | None:
        """Existing path under the root, or None. Paths the OS rejects never exist."""
        if not path or "\x00" in path:
            return None
        try:
            real = (self.root / path.lstrip("/")).resolve()
            if not real.is_relative_to(self.root) or not real.exists():
                return None
        except OSError as e:
            logger.debug("Rejected path %r: %s", path, e)
            return None
        return real

    def __repr__(self) -> str:
        return f"<FileSystemView root={str(self.root)!r}>"


def mount_view(root: str | Path | None) -> FileSystemView | None:
    """Filesystem view over the card's mount point, or None if unavailable."""
    if root is None:
        logger.info("No filesystem root configured; file browsing disabled.")
        return None
    if not Path(root).is_dir():
        logger.warning("Filesystem root %s is not a directory; file browsing disabled.", root)
        return None

    view = FileSystemView(root)
    logger.info("Serving card filesystem from %s", view.root)
    return view
