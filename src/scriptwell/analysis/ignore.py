"""Workspace ignore list (``.scriptwellignore``).

Patterns are fnmatch globs, one per line, ``#`` starts a comment. A trailing
``/`` marks a directory pattern: it matches the directory and everything
below it. Patterns are checked against the full relative path and against
each path segment, so ``*.log`` ignores ``logs/app.log`` as well.
"""

import fnmatch
import logging
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (
    # Package managers and build output
    "node_modules/",
    ".npm/",
    ".cache/",
    "build/",
    "dist/",
    "out/",
    ".gradle/",
    "target/",
    "__pycache__/",
    ".pytest_cache/",
    ".venv/",
    "venv/",
    # VCS
    ".git/",
    ".svn/",
    ".hg/",
    # Editors and OS files
    ".vscode/",
    ".idea/",
    ".vs/",
    "*.swp",
    "*.swo",
    "*~",
    ".DS_Store",
    "Thumbs.db",
    # Logs and temp files
    "*.log",
    "*.tmp",
    "*.temp",
    ".tmp/",
    # Compiled artifacts
    "*.class",
    "*.jar",
    "*.war",
    "*.pyc",
    "*.pyo",
    "*.o",
    "*.so",
    "*.dll",
    "*.exe",
    # Coverage
    "coverage/",
    ".nyc_output/",
    ".coverage/",
    "htmlcov/",
    # Lock files
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
)


def parse_ignore_file(text: str) -> list[str]:
    """Patterns from ignore-file text, skipping blanks and comments."""
    patterns = []
    for line in text.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            patterns.append(stripped)
    return patterns


class IgnoreList:
    """Decides which workspace paths are skipped by scans and listings.

    Example:
        >>> ignore = IgnoreList.for_workspace(Path("."))
        >>> ignore.is_ignored("node_modules/react/index.js")
        True
    """

    def __init__(self, patterns: list[str] | tuple[str, ...] = DEFAULT_IGNORE_PATTERNS) -> None:
        self._dir_patterns: list[str] = []
        self._file_patterns: list[str] = []
        for pattern in patterns:
            self.add(pattern)

    @classmethod
    def for_workspace(cls, root: Path, file_name: str = ".scriptwellignore") -> "IgnoreList":
        """Defaults plus the patterns in ``root/file_name`` when it exists."""
        ignore = cls()
        path = root / file_name
        if path.is_file():
            extra = parse_ignore_file(path.read_text(encoding="utf-8"))
            for pattern in extra:
                ignore.add(pattern)
            logger.debug("Loaded %d ignore patterns from %s", len(extra), path)
        return ignore

    @property
    def patterns(self) -> list[str]:
        return [f"{p}/" for p in self._dir_patterns] + list(self._file_patterns)

    def add(self, pattern: str) -> None:
        pattern = pattern.strip().replace("\\", "/").removeprefix("./")
        if not pattern:
            return
        if pattern.endswith("/"):
            self._dir_patterns.append(pattern.rstrip("/"))
        else:
            self._file_patterns.append(pattern)

    def is_ignored(self, relative_path: str | Path, *, is_dir: bool = False) -> bool:
        """Whether a workspace-relative path is ignored."""
        path = PurePosixPath(str(relative_path).replace("\\", "/"))
        text = str(path)
        parts = path.parts
        directories = parts if is_dir else parts[:-1]

        for pattern in self._dir_patterns:
            if any(fnmatch.fnmatch(part, pattern) for part in directories):
                return True
            if _match_path(text, pattern) or _match_path(text, f"{pattern}/**"):
                return True
        for pattern in self._file_patterns:
            if _match_path(text, pattern):
                return True
            if "/" not in pattern and any(fnmatch.fnmatch(part, pattern) for part in parts):
                return True
        return False


def _match_path(text: str, pattern: str) -> bool:
    """fnmatch with ``**/`` also matching zero directories."""
    if fnmatch.fnmatch(text, pattern):
        return True
    if "**/" in pattern:
        return fnmatch.fnmatch(text, pattern.replace("**/", ""))
    return False
