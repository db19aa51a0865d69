"""Tests for script loading, caching and chain resolution."""

import os
from pathlib import Path

import pytest

from scriptwell.foundation.errors import ErrorCode, ScriptwellError
from scriptwell.script.loader import ScriptLoader


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestScriptLoader:
    """Loading from disk."""

    def test_cache_reused_until_mtime_changes(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "a.ai.yaml", "user: one")
        loader = ScriptLoader()

        first = loader.load(path)
        assert loader.load(path) is first

        path.write_text("user: two")
        stat = path.stat()
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 5_000_000_000))
        second = loader.load(path)

        assert second is not first
        assert second.turns[0].messages[0].content == "two"

    def test_missing_script(self, tmp_path: Path) -> None:
        with pytest.raises(ScriptwellError) as exc_info:
            ScriptLoader().load(tmp_path / "nope.ai.yaml")
        assert exc_info.value.code is ErrorCode.SCRIPT_NOT_FOUND

    def test_resolve_chain_next_to_current(self, tmp_path: Path) -> None:
        main = _write(tmp_path / "main.ai.yaml", "user: hi\n-> summarize")
        _write(tmp_path / "summarize.ai.yaml", "user: summarize {{content}}")
        loader = ScriptLoader()

        chained = loader.resolve_chain("summarize", loader.load(main).source_path)
        assert chained.name == "summarize"

    def test_missing_chain_target(self, tmp_path: Path) -> None:
        main = _write(tmp_path / "main.ai.yaml", "user: hi")
        with pytest.raises(ScriptwellError) as exc_info:
            ScriptLoader().resolve_chain("ghost", str(main))
        assert exc_info.value.code is ErrorCode.SCRIPT_CHAIN_NOT_FOUND

    def test_find_searches_flat_and_nested(self, tmp_path: Path) -> None:
        _write(tmp_path / "second" / "debug" / "debug.ai.yaml", "user: nested")
        loader = ScriptLoader()

        found = loader.find("debug", [tmp_path / "first", tmp_path / "second"])
        assert found is not None
        assert found.turns[0].messages[0].content == "nested"
        assert loader.find("upgrade", [tmp_path]) is None

    def test_load_from_directory(self, tmp_path: Path) -> None:
        _write(tmp_path / "review" / "review.ai.yaml", "user: review")
        assert ScriptLoader().load_from_directory(tmp_path / "review").name == "review"
