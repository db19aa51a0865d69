"""Tests for the cross-file dependency analyzer."""

from pathlib import Path

from scriptwell.analysis.dependencies import CodeDependencyAnalyzer, resolve_import
from scriptwell.analysis.ignore import IgnoreList


# =============================================================================
# Extraction
# =============================================================================


class TestExtraction:
    """Regex extraction per language."""

    def test_javascript_imports_and_exports(self) -> None:
        source = (
            "import { connect } from './db';\n"
            "const fs = require('fs');\n"
            "export function start() {}\n"
            "export class Server {}\n"
            "const helper = (x) => x;\n"
        )
        meta = CodeDependencyAnalyzer().analyze("src/app.js", source)

        assert meta.language == "javascript"
        assert meta.imports == ("./db", "fs")
        assert "start" in meta.exports
        assert "Server" in meta.exports
        assert "helper" in meta.functions
        assert meta.classes == ("Server",)

    def test_python_exports_default_to_public_names(self) -> None:
        """Without __all__, public defs, classes and assignments are exported."""
        source = (
            "import os, sys\n"
            "from .models import User\n"
            "LIMIT = 10\n"
            "def handler():\n    pass\n"
            "def _private():\n    pass\n"
            "class Api:\n    pass\n"
        )
        meta = CodeDependencyAnalyzer().analyze("pkg/api.py", source)

        assert meta.imports == ("os", "sys", ".models")
        assert set(meta.exports) == {"handler", "Api", "LIMIT"}
        assert "_private" in meta.functions

    def test_python_all_overrides_exports(self) -> None:
        source = '__all__ = ["handler"]\ndef handler():\n    pass\ndef other():\n    pass\n'
        meta = CodeDependencyAnalyzer().analyze("pkg/api.py", source)
        assert meta.exports == ("handler",)

    def test_unknown_language_gives_empty_metadata(self) -> None:
        meta = CodeDependencyAnalyzer().analyze("notes.md", "# import this")
        assert meta.language == "unknown"
        assert meta.is_empty
        assert meta.summary() == ""


# =============================================================================
# Resolution and matrix
# =============================================================================


class TestResolution:
    """Import specifiers map to workspace files."""

    def test_relative_javascript_import(self) -> None:
        files = {"src/app.js", "src/db.js"}
        assert resolve_import("./db", "src/app.js", "javascript", files) == "src/db.js"

    def test_javascript_index_file(self) -> None:
        files = {"src/app.js", "src/lib/index.ts"}
        assert resolve_import("./lib", "src/app.js", "javascript", files) == "src/lib/index.ts"

    def test_relative_python_import(self) -> None:
        files = {"pkg/api.py", "pkg/models.py"}
        assert resolve_import(".models", "pkg/api.py", "python", files) == "pkg/models.py"

    def test_unresolved_import_is_none(self) -> None:
        assert resolve_import("react", "src/app.js", "javascript", {"src/app.js"}) is None

    def test_wildcard_jvm_import_is_skipped(self) -> None:
        assert resolve_import("com.acme.*", "A.kt", "kotlin", {"com/acme/B.kt"}) is None


class TestMatrix:
    """Workspace scans and matrix queries."""

    def test_scan_links_files(self, workspace: Path) -> None:
        """The fixture's app.js depends on db.js; README.md is not tracked."""
        analyzer = CodeDependencyAnalyzer()
        matrix = analyzer.scan_workspace(workspace)

        assert sorted(matrix.files) == ["src/app.js", "src/db.js"]
        assert matrix.dependencies["src/app.js"] == frozenset({"src/db.js"})
        assert matrix.dependents("src/db.js") == frozenset({"src/app.js"})
        assert matrix.related("src/db.js") == ["src/app.js"]

    def test_scan_respects_ignore_list(self, workspace: Path) -> None:
        (workspace / "node_modules" / "lib").mkdir(parents=True)
        (workspace / "node_modules" / "lib" / "index.js").write_text("export const x = 1;\n")
        (workspace / "src" / "gen.js").write_text("export const y = 2;\n")

        ignore = IgnoreList()
        ignore.add("src/gen.js")
        matrix = CodeDependencyAnalyzer().scan_workspace(workspace, ignore)

        assert sorted(matrix.files) == ["src/app.js", "src/db.js"]

    def test_blueprint_is_deterministic(self, workspace: Path) -> None:
        """Two scans of the same workspace give identical blueprints."""
        first = CodeDependencyAnalyzer()
        first.scan_workspace(workspace)
        second = CodeDependencyAnalyzer()
        second.scan_workspace(workspace)

        blueprint = first.generate_blueprint(workspace)
        assert blueprint == second.generate_blueprint(workspace)
        assert "### File: src/app.js" in blueprint
        assert "  - src/app.js -> src/db.js" in blueprint

    def test_empty_workspace_blueprint(self, tmp_path: Path) -> None:
        analyzer = CodeDependencyAnalyzer()
        analyzer.scan_workspace(tmp_path)
        assert "new project" in analyzer.generate_blueprint(tmp_path)

    def test_blueprint_max_files(self, workspace: Path) -> None:
        analyzer = CodeDependencyAnalyzer()
        analyzer.scan_workspace(workspace)
        blueprint = analyzer.generate_blueprint(workspace, max_files=1)
        assert "(1 more files not shown)" in blueprint

    def test_remove_file_drops_edges(self, workspace: Path) -> None:
        analyzer = CodeDependencyAnalyzer()
        analyzer.scan_workspace(workspace)
        matrix = analyzer.remove_file(workspace, "src/db.js")

        assert "src/db.js" not in matrix.files
        assert matrix.dependencies["src/app.js"] == frozenset()

    def test_writing_order_puts_dependencies_first(self, workspace: Path) -> None:
        analyzer = CodeDependencyAnalyzer()
        analyzer.scan_workspace(workspace)
        assert analyzer.writing_order(workspace) == ["src/db.js", "src/app.js"]

    def test_writing_order_breaks_cycles(self, tmp_path: Path) -> None:
        (tmp_path / "a.js").write_text("import './b';\n")
        (tmp_path / "b.js").write_text("import './a';\n")
        analyzer = CodeDependencyAnalyzer()
        analyzer.scan_workspace(tmp_path)
        assert analyzer.writing_order(tmp_path) == ["a.js", "b.js"]

    def test_relativeness_summary(self, workspace: Path) -> None:
        analyzer = CodeDependencyAnalyzer()
        analyzer.scan_workspace(workspace)
        summary = analyzer.relativeness_summary(workspace, workspace / "src" / "app.js")
        assert summary == "[File Relativeness: src/app.js]\nDepends on: src/db.js"
