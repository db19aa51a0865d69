"""Script loading with an mtime-aware cache and chain resolution."""

import logging
import threading
from pathlib import Path

from scriptwell.foundation.errors import ErrorCode, ScriptwellError
from scriptwell.script.model import Script
from scriptwell.script.parser import parse_file

logger = logging.getLogger(__name__)

SCRIPT_SUFFIX = ".ai.yaml"


class ScriptLoader:
    """Loads scripts from disk, caching by canonical path.

    A cached entry is reused only while the file's mtime is unchanged, so
    editing a script between runs picks up the new version.

    Example:
        >>> loader = ScriptLoader()
        >>> script = loader.load("scripts/debug.ai.yaml")
        >>> chained = loader.resolve_chain("summarize", script.source_path)
    """

    def __init__(self) -> None:
        self._cache: dict[Path, tuple[int, Script]] = {}
        self._lock = threading.Lock()

    def load(self, path: str | Path) -> Script:
        """Load a script file.

        Raises:
            ScriptwellError: SCRIPT_NOT_FOUND if the file does not exist.
            ScriptStructureError: If the file is malformed.
        """
        canonical = Path(path).expanduser().resolve()
        if not canonical.is_file():
            raise ScriptwellError(ErrorCode.SCRIPT_NOT_FOUND, {"path": str(path)})

        mtime = canonical.stat().st_mtime_ns
        with self._lock:
            cached = self._cache.get(canonical)
            if cached is not None and cached[0] == mtime:
                return cached[1]

        script = parse_file(canonical)
        with self._lock:
            self._cache[canonical] = (mtime, script)
        logger.debug("Loaded script %s (%d turns)", canonical, len(script.turns))
        return script

    def load_from_directory(self, directory: str | Path) -> Script:
        """Load ``<dir>/<dirname>.ai.yaml``."""
        folder = Path(directory).expanduser().resolve()
        return self.load(folder / f"{folder.name}{SCRIPT_SUFFIX}")

    def resolve_chain(self, name: str, current_path: str | None) -> Script:
        """Load the script a ``-> name`` directive refers to.

        The chained script must sit next to the current one (or in the
        working directory for inline scripts).
        """
        file_name = name if name.endswith(SCRIPT_SUFFIX) else f"{name}{SCRIPT_SUFFIX}"
        base = Path(current_path).parent if current_path else Path.cwd()
        candidate = base / file_name
        if not candidate.is_file():
            raise ScriptwellError(
                ErrorCode.SCRIPT_CHAIN_NOT_FOUND,
                {"name": name, "path": current_path or "<inline>"},
            )
        return self.load(candidate)

    def find(self, name: str, search_dirs: list[Path]) -> Script | None:
        """Find a script by name in the given directories, first hit wins."""
        file_name = name if name.endswith(SCRIPT_SUFFIX) else f"{name}{SCRIPT_SUFFIX}"
        for directory in search_dirs:
            candidate = directory / file_name
            if candidate.is_file():
                return self.load(candidate)
            nested = directory / name / file_name
            if nested.is_file():
                return self.load(nested)
        return None

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
