"""Tests for per-file locking and version-checked writes."""

import asyncio
import os
from pathlib import Path

import pytest

from scriptwell.coherence.manager import FileCoherenceManager


def _bump_mtime(path: Path, version: int) -> None:
    """Move the file's mtime away from ``version`` regardless of clock granularity."""
    later = version + 5_000_000_000
    os.utime(path, ns=(later, later))


class TestVersionedWrites:
    """Optimistic writes reject stale versions."""

    @pytest.mark.asyncio
    async def test_write_with_matching_version(self, tmp_path: Path) -> None:
        """A write based on the current version succeeds."""
        target = tmp_path / "a.txt"
        target.write_text("one")
        coherence = FileCoherenceManager()

        content, version = await coherence.read_with_version(target)
        assert content == "one"
        assert await coherence.write_with_coherence(target, "two", version)
        assert target.read_text() == "two"
        assert coherence.known_version(target) == coherence.current_version(target)

    @pytest.mark.asyncio
    async def test_stale_write_rejected_without_partial_write(self, tmp_path: Path) -> None:
        """A version mismatch leaves the file untouched."""
        target = tmp_path / "a.txt"
        target.write_text("one")
        coherence = FileCoherenceManager()

        _, version = await coherence.read_with_version(target)
        target.write_text("changed elsewhere")
        _bump_mtime(target, version)

        assert not await coherence.write_with_coherence(target, "mine", version)
        assert target.read_text() == "changed elsewhere"
        assert not any(p.name.endswith(".tmp") for p in tmp_path.iterdir())

    @pytest.mark.asyncio
    async def test_create_requires_absent_file(self, tmp_path: Path) -> None:
        """expected_version=None creates a new file but never overwrites one."""
        coherence = FileCoherenceManager()
        new = tmp_path / "nested" / "new.txt"

        assert await coherence.write_with_coherence(new, "hello", None)
        assert new.read_text() == "hello"
        assert not await coherence.write_with_coherence(new, "again", None)
        assert new.read_text() == "hello"

    @pytest.mark.asyncio
    async def test_read_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            await FileCoherenceManager().read_with_version(tmp_path / "missing.txt")


class TestLocking:
    """Same-path exclusion, different-path overlap."""

    @pytest.mark.asyncio
    async def test_same_path_operations_exclude(self, tmp_path: Path) -> None:
        """Two holders of one path never overlap."""
        coherence = FileCoherenceManager()
        active = 0
        peak = 0

        async def hold(alias: Path) -> None:
            nonlocal active, peak
            async with coherence.lock(alias):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.02)
                active -= 1

        target = tmp_path / "f.txt"
        await asyncio.gather(hold(target), hold(tmp_path / "." / "f.txt"), hold(target))
        assert peak == 1

    @pytest.mark.asyncio
    async def test_different_paths_overlap(self, tmp_path: Path) -> None:
        """Locks on different paths are held at the same time."""
        coherence = FileCoherenceManager()
        both_held = asyncio.Event()
        first_held = asyncio.Event()

        async def first() -> None:
            async with coherence.lock(tmp_path / "a"):
                first_held.set()
                await asyncio.wait_for(both_held.wait(), timeout=1)

        async def second() -> None:
            await first_held.wait()
            async with coherence.lock(tmp_path / "b"):
                assert coherence.is_locked(tmp_path / "a")
                both_held.set()

        await asyncio.gather(first(), second())

    @pytest.mark.asyncio
    async def test_lock_all_uses_canonical_order(self, tmp_path: Path) -> None:
        coherence = FileCoherenceManager()
        async with coherence.lock_all([tmp_path / "b", tmp_path / "a", tmp_path / "a"]) as held:
            assert held == sorted(held)
            assert len(held) == 2


class TestAtomicWrite:
    """Writes either fully land or leave the original untouched."""

    @pytest.mark.asyncio
    async def test_crash_before_rename_keeps_original(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A failure between temp write and rename leaves no partial file."""
        target = tmp_path / "config.json"
        target.write_text('{"ok": true}')
        coherence = FileCoherenceManager()
        _, version = await coherence.read_with_version(target)

        def crash(src: str, dst: str) -> None:
            raise OSError("simulated crash")

        monkeypatch.setattr(os, "replace", crash)
        with pytest.raises(OSError, match="simulated crash"):
            await coherence.write_with_coherence(target, '{"ok": fal', version)

        assert target.read_text() == '{"ok": true}'
        assert [p.name for p in tmp_path.iterdir()] == ["config.json"]

    @pytest.mark.asyncio
    @pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")
    async def test_overwrite_keeps_permission_bits(self, tmp_path: Path) -> None:
        """An executable script stays executable after a rewrite."""
        script = tmp_path / "run.sh"
        script.write_text("#!/bin/sh\necho one\n")
        script.chmod(0o755)
        coherence = FileCoherenceManager()

        _, version = await coherence.read_with_version(script)
        assert await coherence.write_with_coherence(script, "#!/bin/sh\necho two\n", version)

        assert script.stat().st_mode & 0o777 == 0o755

    @pytest.mark.asyncio
    @pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")
    async def test_new_file_follows_umask(self, tmp_path: Path) -> None:
        mask = os.umask(0)
        os.umask(mask)
        new = tmp_path / "new.txt"

        assert await FileCoherenceManager().write_with_coherence(new, "x", None)

        assert new.stat().st_mode & 0o777 == 0o666 & ~mask
