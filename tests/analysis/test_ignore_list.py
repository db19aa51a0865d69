"""Tests for .scriptwellignore handling."""

from pathlib import Path

from scriptwell.analysis.ignore import IgnoreList, parse_ignore_file


class TestIgnoreList:
    """Default and workspace patterns."""

    def test_defaults_cover_dependency_directories(self) -> None:
        ignore = IgnoreList()
        assert ignore.is_ignored("node_modules/react/index.js")
        assert ignore.is_ignored("node_modules", is_dir=True)
        assert ignore.is_ignored("logs/app.log")
        assert not ignore.is_ignored("src/app.js")

    def test_directory_pattern_does_not_match_file_of_same_name(self) -> None:
        """A trailing slash only matches directories."""
        ignore = IgnoreList(["build/"])
        assert ignore.is_ignored("build/out.js")
        assert not ignore.is_ignored("src/build")

    def test_parse_skips_comments_and_blanks(self) -> None:
        assert parse_ignore_file("# comment\n\n*.bak\n  secrets/  \n") == ["*.bak", "secrets/"]

    def test_workspace_file_extends_defaults(self, tmp_path: Path) -> None:
        (tmp_path / ".scriptwellignore").write_text("generated/\n*.snap\n")
        ignore = IgnoreList.for_workspace(tmp_path)

        assert ignore.is_ignored("generated/api.js")
        assert ignore.is_ignored("tests/__snapshots__/a.snap")
        assert ignore.is_ignored(".git/config")
        assert "generated/" in ignore.patterns

    def test_double_star_matches_zero_directories(self) -> None:
        ignore = IgnoreList(["docs/**/*.md"])
        assert ignore.is_ignored("docs/index.md")
        assert ignore.is_ignored("docs/guide/intro.md")
