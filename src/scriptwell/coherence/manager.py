"""File coherence: per-path async locks and optimistic, atomic writes.

Every mutating tool goes through one FileCoherenceManager so that two tool
calls never read-modify-write the same file at the same time, and a write
based on a stale read is rejected instead of clobbering newer content.

Example:
    coherence = FileCoherenceManager()

    content, version = await coherence.read_with_version(path)
    updated = content.replace("old", "new")
    if not await coherence.write_with_coherence(path, updated, version):
        ...  # someone else changed the file, re-read and retry

Deadlock prevention:
    - ``lock_all`` acquires locks in sorted canonical-path order
    - The registry lock is held only while looking up an entry, never while
      a path lock is held
"""

import asyncio
import contextlib
import logging
import os
import shutil
import tempfile
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class FileLockEntry:
    """Lock and last known version for one canonical path."""

    path: Path
    """Canonical path."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    """Serializes operations on ``path``."""

    version: int | None = None
    """Last version (st_mtime_ns) observed or written by this process."""


def _canonical(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()


def _stat_version(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except FileNotFoundError:
        return None


class FileCoherenceManager:
    """Serializes file operations per canonical path.

    Entries are created lazily and kept for the life of the manager, so a
    path always maps to the same lock.
    """

    def __init__(self) -> None:
        self._entries: dict[Path, FileLockEntry] = {}
        self._registry_lock = asyncio.Lock()

    async def _entry(self, path: str | Path) -> FileLockEntry:
        canonical = _canonical(path)
        async with self._registry_lock:
            entry = self._entries.get(canonical)
            if entry is None:
                entry = FileLockEntry(path=canonical)
                self._entries[canonical] = entry
            return entry

    @contextlib.asynccontextmanager
    async def lock(self, path: str | Path) -> AsyncIterator[Path]:
        """Hold the lock for ``path``. Yields the canonical path."""
        entry = await self._entry(path)
        async with entry.lock:
            yield entry.path

    @contextlib.asynccontextmanager
    async def lock_all(self, paths: Iterable[str | Path]) -> AsyncIterator[list[Path]]:
        """Hold the locks for several paths, acquired in sorted order."""
        canonical = sorted({_canonical(p) for p in paths})
        async with contextlib.AsyncExitStack() as stack:
            for path in canonical:
                await stack.enter_async_context(self.lock(path))
            yield canonical

    async def with_file_lock(self, path: str | Path, op: Callable[[Path], Awaitable[T]]) -> T:
        """Run ``op(canonical_path)`` while holding the path lock."""
        async with self.lock(path) as canonical:
            return await op(canonical)

    async def read_with_version(self, path: str | Path) -> tuple[str, int]:
        """Read a file and its current version under the path lock.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        entry = await self._entry(path)
        async with entry.lock:
            content = await asyncio.to_thread(entry.path.read_text, encoding="utf-8")
            version = _stat_version(entry.path)
            if version is None:
                raise FileNotFoundError(str(entry.path))
            entry.version = version
            return content, version

    async def write_with_coherence(
        self,
        path: str | Path,
        content: str,
        expected_version: int | None,
    ) -> bool:
        """Write ``content`` only if the file is still at ``expected_version``.

        ``expected_version=None`` means the caller saw no file: the write is
        rejected if one has appeared since.

        Returns:
            True if written, False on a version mismatch (nothing is written).
        """
        entry = await self._entry(path)
        async with entry.lock:
            current = _stat_version(entry.path)
            if current != expected_version:
                logger.info(
                    "Rejected stale write to %s",
                    entry.path,
                    extra={"expected": expected_version, "current": current},
                )
                return False
            await asyncio.to_thread(_atomic_write, entry.path, content)
            entry.version = _stat_version(entry.path)
            logger.debug("Wrote %s", entry.path, extra={"version": entry.version, "chars": len(content)})
            return True

    def current_version(self, path: str | Path) -> int | None:
        """Version on disk right now, or None if the file is absent."""
        return _stat_version(_canonical(path))

    def known_version(self, path: str | Path) -> int | None:
        """Last version this manager read or wrote for ``path``."""
        entry = self._entries.get(_canonical(path))
        return entry.version if entry else None

    def is_locked(self, path: str | Path) -> bool:
        entry = self._entries.get(_canonical(path))
        return entry is not None and entry.lock.locked()


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


_NEW_FILE_MODE = 0o666 & ~_current_umask()
"""Mode for files created by a write, as open() would give them."""


def _atomic_write(path: Path, content: str) -> None:
    """Write to a sibling temp file, then replace the target.

    The temp file takes the target's permission bits (mkstemp creates it 0600).
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        try:
            shutil.copymode(path, tmp_name)
        except FileNotFoundError:
            os.chmod(tmp_name, _NEW_FILE_MODE)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise
