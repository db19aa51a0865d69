"""Project analysis snapshot persisted at ``.scriptwell/project_analysis.json``.

The snapshot lets a later session start from the last known structure of the
workspace without rescanning. Format::

    {
      "version": 1,
      "projectType": "nodejs",
      "structure": {"directories": [...], "languages": {...}, "fileCount": 3},
      "dependencies": {"src/app.js": ["src/db.js"]},
      "files": {"src/app.js": {"imports": [...], "exports": [...],
                               "functions": [...], "classes": [...]}},
      "generatedAt": "2026-01-01T00:00:00+00:00"
    }
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from scriptwell.analysis.dependencies import (
    CodeDependencyAnalyzer,
    CodeMetadata,
    DependencyMatrix,
    detect_language,
)
from scriptwell.analysis.ignore import IgnoreList

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

# Marker file -> project type, checked in order
_PROJECT_MARKERS: tuple[tuple[str, str], ...] = (
    ("package.json", "nodejs"),
    ("pyproject.toml", "python"),
    ("setup.py", "python"),
    ("requirements.txt", "python"),
    ("go.mod", "go"),
    ("Cargo.toml", "rust"),
    ("build.gradle.kts", "kotlin"),
    ("build.gradle", "java"),
    ("pom.xml", "java"),
    ("CMakeLists.txt", "cpp"),
)

_FRAMEWORKS = (("react", "react"), ("vue", "vue"), ("@angular/core", "angular"))


def detect_project_type(root: Path) -> str:
    """Project type from marker files at the workspace root, or "unknown"."""
    for marker, project_type in _PROJECT_MARKERS:
        path = root / marker
        if not path.is_file():
            continue
        if marker == "package.json":
            return _node_flavor(path)
        return project_type
    return "unknown"


def _node_flavor(package_json: Path) -> str:
    try:
        data = json.loads(package_json.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.debug("Unreadable package.json: %s", e)
        return "nodejs"
    declared = {**data.get("dependencies", {}), **data.get("devDependencies", {})}
    for package, flavor in _FRAMEWORKS:
        if package in declared:
            return flavor
    return "nodejs"


@dataclass(frozen=True, slots=True)
class ProjectAnalysis:
    """Serializable summary of a workspace and its dependency matrix."""

    project_type: str = "unknown"
    structure: dict[str, Any] = field(default_factory=dict)
    dependencies: dict[str, list[str]] = field(default_factory=dict)
    files: dict[str, dict[str, list[str]]] = field(default_factory=dict)
    generated_at: str = ""

    @classmethod
    def from_matrix(cls, root: Path, matrix: DependencyMatrix) -> "ProjectAnalysis":
        paths = sorted(matrix.files)
        directories = sorted({p.split("/", 1)[0] for p in paths if "/" in p})
        languages = Counter(matrix.files[p].language for p in paths)
        return cls(
            project_type=detect_project_type(root),
            structure={
                "directories": directories,
                "languages": dict(sorted(languages.items())),
                "fileCount": len(paths),
            },
            dependencies={p: sorted(matrix.dependencies.get(p, ())) for p in paths},
            files={
                p: {
                    "imports": list(matrix.files[p].imports),
                    "exports": list(matrix.files[p].exports),
                    "functions": list(matrix.files[p].functions),
                    "classes": list(matrix.files[p].classes),
                }
                for p in paths
            },
            generated_at=datetime.now(UTC).isoformat(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "projectType": self.project_type,
            "structure": self.structure,
            "dependencies": self.dependencies,
            "files": self.files,
            "generatedAt": self.generated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectAnalysis":
        return cls(
            project_type=data.get("projectType", "unknown"),
            structure=data.get("structure", {}),
            dependencies={k: list(v) for k, v in data.get("dependencies", {}).items()},
            files=data.get("files", {}),
            generated_at=data.get("generatedAt", ""),
        )

    def to_metadata(self) -> list[CodeMetadata]:
        """Rebuild per-file metadata so a matrix can be restored from the snapshot."""
        return [
            CodeMetadata(
                file_path=path,
                language=detect_language(path),
                imports=tuple(info.get("imports", ())),
                exports=tuple(info.get("exports", ())),
                functions=tuple(info.get("functions", ())),
                classes=tuple(info.get("classes", ())),
            )
            for path, info in sorted(self.files.items())
        ]

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        logger.debug("Saved project analysis to %s", path)

    @classmethod
    def load(cls, path: Path) -> "ProjectAnalysis | None":
        """Load a snapshot. Returns None if it is missing, unreadable or from another version."""
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable project analysis %s: %s", path, e)
            return None
        if not isinstance(data, dict) or data.get("version", 0) != SNAPSHOT_VERSION:
            logger.warning("Ignoring project analysis %s with unsupported version", path)
            return None
        return cls.from_dict(data)


def restore_or_scan(
    analyzer: CodeDependencyAnalyzer,
    root: Path,
    snapshot_path: Path,
    *,
    ignore: IgnoreList | None = None,
    refresh: bool = False,
) -> ProjectAnalysis:
    """Make sure ``analyzer`` holds a matrix for ``root`` and persist a snapshot.

    An existing in-memory matrix wins, then the saved snapshot, then a full
    scan. ``refresh`` forces the scan.
    """
    matrix = analyzer.get_matrix(root)
    if not refresh and not matrix.files:
        snapshot = ProjectAnalysis.load(snapshot_path)
        if snapshot is not None and snapshot.files:
            logger.info("Restored project analysis from %s", snapshot_path)
            analyzer.update_matrix(root, snapshot.to_metadata())
            return snapshot
    if refresh or not matrix.files:
        matrix = analyzer.scan_workspace(root, ignore)
    analysis = ProjectAnalysis.from_matrix(root, matrix)
    analysis.save(snapshot_path)
    return analysis
