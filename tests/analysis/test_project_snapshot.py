"""Tests for the persisted project analysis snapshot."""

import json
from pathlib import Path

from scriptwell.analysis.dependencies import CodeDependencyAnalyzer
from scriptwell.analysis.project import (
    SNAPSHOT_VERSION,
    ProjectAnalysis,
    detect_project_type,
    restore_or_scan,
)


class TestProjectType:
    """Marker-file detection."""

    def test_unknown_without_markers(self, tmp_path: Path) -> None:
        assert detect_project_type(tmp_path) == "unknown"

    def test_react_flavor_from_package_json(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text(json.dumps({"dependencies": {"react": "^18"}}))
        assert detect_project_type(tmp_path) == "react"

    def test_unreadable_package_json_is_plain_node(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text("{not json")
        assert detect_project_type(tmp_path) == "nodejs"

    def test_python_project(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text("[project]\n")
        assert detect_project_type(tmp_path) == "python"


class TestSnapshot:
    """Save, load and restore."""

    def test_scan_then_restore(self, workspace: Path) -> None:
        """A fresh analyzer restores the matrix from the saved snapshot."""
        snapshot = workspace / ".scriptwell" / "project_analysis.json"
        first = restore_or_scan(CodeDependencyAnalyzer(), workspace, snapshot)

        data = json.loads(snapshot.read_text())
        assert data["version"] == SNAPSHOT_VERSION
        assert data["dependencies"]["src/app.js"] == ["src/db.js"]
        assert data["structure"]["fileCount"] == 2

        # Edits after the snapshot are not seen without a refresh
        (workspace / "src" / "extra.js").write_text("export const z = 1;\n")
        analyzer = CodeDependencyAnalyzer()
        restored = restore_or_scan(analyzer, workspace, snapshot)

        assert restored.files == first.files
        assert analyzer.get_matrix(workspace).dependencies["src/app.js"] == frozenset({"src/db.js"})

    def test_refresh_rescans(self, workspace: Path) -> None:
        snapshot = workspace / ".scriptwell" / "project_analysis.json"
        restore_or_scan(CodeDependencyAnalyzer(), workspace, snapshot)
        (workspace / "src" / "extra.js").write_text("export const z = 1;\n")

        refreshed = restore_or_scan(CodeDependencyAnalyzer(), workspace, snapshot, refresh=True)
        assert "src/extra.js" in refreshed.files

    def test_other_version_is_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "snap.json"
        path.write_text(json.dumps({"version": SNAPSHOT_VERSION + 1, "files": {}}))
        assert ProjectAnalysis.load(path) is None

    def test_missing_snapshot_is_none(self, tmp_path: Path) -> None:
        assert ProjectAnalysis.load(tmp_path / "absent.json") is None
