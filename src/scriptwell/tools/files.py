"""File tools: read_file, write_file, edit_file, list_files.

Writes go through the FileCoherenceManager (version-checked, atomic) and
refresh the dependency matrix, so later blueprints see the new content.
Every overwrite of an existing file reports a unified diff.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from scriptwell.analysis.patch import diff_stats, generate_patch
from scriptwell.analysis.dependencies import detect_language
from scriptwell.foundation.errors import ErrorKind
from scriptwell.matching.fuzzy import find_best_match
from scriptwell.script.model import ToolResult
from scriptwell.tools.base import BaseTool, ProgressCallback, tool_metadata

logger = logging.getLogger(__name__)

MAX_READ_BYTES = 1_000_000
MAX_LISTED_FILES = 200


def _sanitize_content(content: str, path: str) -> str:
    """Strip markdown fences if the model wrapped file content in them."""
    if not content.startswith("```"):
        return content

    lines = content.split("\n")
    if lines[0].startswith("```"):
        lines = lines[1:]
    if lines and lines[-1].strip() == "```":
        lines = lines[:-1]

    logger.warning("Stripped markdown fences from file content", extra={"path": path})
    return "\n".join(lines)


class _WritingTool(BaseTool):
    """Shared write path for write_file and edit_file."""

    async def _commit(
        self,
        path: Path,
        old_content: str | None,
        new_content: str,
        version: int | None,
    ) -> ToolResult:
        rel = self.relative(path)
        written = await self.ctx.coherence.write_with_coherence(path, new_content, version)
        if not written:
            return ToolResult.failure(
                f"{rel} changed on disk since it was read; nothing was written",
                ErrorKind.TOOL_EXECUTION,
                "Read the file again and reapply the change to the current content.",
            )

        if detect_language(rel) != "unknown":
            meta = self.ctx.analyzer.analyze(rel, new_content)
            self.ctx.analyzer.update_matrix(self.ctx.workspace, meta)

        if old_content is None:
            summary = f"Created {rel} ({len(new_content):,} chars)"
            content = summary
        else:
            patch = generate_patch(rel, old_content, new_content)
            added, removed = diff_stats(patch)
            summary = f"Updated {rel} (+{added} -{removed})"
            content = f"{summary}\n\n{patch}" if patch else f"{rel} unchanged"

        related = self.ctx.analyzer.relativeness_summary(self.ctx.workspace, rel)
        if related:
            content = f"{content}\n\n{related}"
        return ToolResult(content=content, display_text=content if old_content is not None else summary)


# =============================================================================
# read_file
# =============================================================================


@dataclass(frozen=True, slots=True)
class ReadFileParams:
    path: str


@tool_metadata(
    name="read_file",
    simple_description="Read file contents",
    usage_guidance="Use read_file to inspect a file before editing it.",
)
class ReadFileTool(BaseTool):
    """Read a file. Returns the content wrapped in code fences."""

    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File path relative to workspace root"},
        },
        "required": ["path"],
    }
    params_type = ReadFileParams

    async def execute(
        self,
        params: ReadFileParams,
        cancel: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ToolResult:
        self.check_cancelled(cancel)
        path = self.resolve_path(params.path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {params.path}")
        if not path.is_file():
            raise ValueError(f"Not a file: {params.path}")

        size = path.stat().st_size
        if size > MAX_READ_BYTES:
            return ToolResult.failure(
                f"File too large ({size:,} bytes)",
                ErrorKind.INVALID_PARAMETERS,
                "Use the shell tool with grep or head to read part of it.",
            )

        content, _ = await self.ctx.coherence.read_with_version(path)
        return ToolResult(
            content=self.truncate(f"```\n{content}\n```\n({len(content):,} chars)"),
            display_text=f"Read {params.path}",
        )


# =============================================================================
# write_file
# =============================================================================


@dataclass(frozen=True, slots=True)
class WriteFileParams:
    path: str
    content: str


@tool_metadata(
    name="write_file",
    simple_description="Create or overwrite a file",
    mutates=True,
    usage_guidance="Use write_file for new files; use edit_file to change part of an existing file.",
)
class WriteFileTool(_WritingTool):
    """Write a whole file, creating parent directories as needed."""

    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File path relative to workspace root"},
            "content": {
                "type": "string",
                "description": "Complete file content. Raw text, no markdown fences.",
            },
        },
        "required": ["path", "content"],
    }
    params_type = WriteFileParams

    async def execute(
        self,
        params: WriteFileParams,
        cancel: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ToolResult:
        self.check_cancelled(cancel)
        path = self.resolve_path(params.path)
        if path.is_dir():
            raise ValueError(f"Is a directory: {params.path}")
        new_content = _sanitize_content(params.content, params.path)

        old_content: str | None = None
        version: int | None = None
        if path.exists():
            old_content, version = await self.ctx.coherence.read_with_version(path)
        self.check_cancelled(cancel)
        return await self._commit(path, old_content, new_content, version)


# =============================================================================
# edit_file
# =============================================================================


@dataclass(frozen=True, slots=True)
class EditFileParams:
    path: str
    old_string: str
    new_string: str
    line: int | None = None


@tool_metadata(
    name="edit_file",
    simple_description="Replace a block of text in an existing file",
    mutates=True,
    usage_guidance=(
        "Include 3-5 lines of context in old_string. Small whitespace or spelling "
        "differences are tolerated; pass line to point at the expected location."
    ),
)
class EditFileTool(_WritingTool):
    """Replace the best match of ``old_string`` with ``new_string``.

    The match is exact when possible, otherwise the closest region found by
    the fuzzy matcher above the similarity threshold. No match means no write.
    """

    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File path relative to workspace root"},
            "old_string": {"type": "string", "description": "Text to replace, with surrounding context"},
            "new_string": {"type": "string", "description": "Replacement text. Raw text, no markdown fences."},
            "line": {"type": "integer", "description": "Optional 1-based line where old_string starts"},
        },
        "required": ["path", "old_string", "new_string"],
    }
    params_type = EditFileParams

    async def execute(
        self,
        params: EditFileParams,
        cancel: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ToolResult:
        self.check_cancelled(cancel)
        if not params.old_string:
            raise ValueError("old_string must not be empty; use write_file to create files")
        path = self.resolve_path(params.path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {params.path}. Use write_file to create new files.")
        if not path.is_file():
            raise ValueError(f"Not a file: {params.path}")

        content, version = await self.ctx.coherence.read_with_version(path)
        new_string = _sanitize_content(params.new_string, params.path)
        if on_progress is not None:
            on_progress(f"Locating edit in {params.path}")

        threshold = None if params.line is not None else self.ctx.config.fuzzy_min_similarity
        match = await asyncio.to_thread(
            find_best_match, content, params.old_string, hint_line=params.line, min_similarity=threshold
        )
        if match is None:
            preview = params.old_string[:100] + ("..." if len(params.old_string) > 100 else "")
            return ToolResult.failure(
                f"Could not find a close enough match for old_string in {params.path}",
                ErrorKind.INVALID_PARAMETERS,
                f"Looking for:\n{preview}\n\nRead the file and copy the exact text to replace.",
            )
        if match.strategy != "exact":
            logger.info(
                "Applied fuzzy edit",
                extra={"path": params.path, "similarity": round(match.similarity, 3), "line": match.start_line},
            )

        updated = content[:match.start] + new_string + content[match.end:]
        self.check_cancelled(cancel)
        result = await self._commit(path, content, updated, version)
        if result.success and match.strategy != "exact":
            note = f"(matched lines {match.start_line}-{match.end_line} at {match.similarity:.0%} similarity)"
            return ToolResult(content=f"{result.content}\n{note}", display_text=result.display_text)
        return result


# =============================================================================
# list_files
# =============================================================================


@dataclass(frozen=True, slots=True)
class ListFilesParams:
    path: str = "."
    pattern: str = "*"
    recursive: bool = False


@tool_metadata(
    name="list_files",
    simple_description="List files in a directory",
    usage_guidance="Use pattern to filter by name (e.g. '*.py'). Ignored paths are skipped.",
)
class ListFilesTool(BaseTool):
    """List files under a directory, relative to the workspace."""

    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Directory relative to workspace (default: root)"},
            "pattern": {"type": "string", "description": "Glob to filter file names (default: all)"},
            "recursive": {"type": "boolean", "description": "Descend into subdirectories"},
        },
    }
    params_type = ListFilesParams

    def reads(self, params: ListFilesParams) -> tuple[str, ...]:
        return (params.path,)

    def targets(self, params: ListFilesParams) -> tuple[str, ...]:
        return ()

    async def execute(
        self,
        params: ListFilesParams,
        cancel: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ToolResult:
        directory = self.resolve_path(params.path)
        if not directory.is_dir():
            raise ValueError(f"Not a directory: {params.path}")

        ignore = self.ctx.ignore
        candidates = directory.rglob(params.pattern) if params.recursive else directory.glob(params.pattern)
        files: list[str] = []
        for entry in sorted(candidates):
            self.check_cancelled(cancel)
            rel = self.relative(entry)
            is_dir = entry.is_dir()
            if ignore is not None and ignore.is_ignored(rel, is_dir=is_dir):
                continue
            files.append(f"{rel}/" if is_dir else rel)
            if len(files) >= MAX_LISTED_FILES:
                files.append(f"... (limited to {MAX_LISTED_FILES} entries)")
                break
        return ToolResult(content="\n".join(files) or "(no matching files)", display_text=f"Listed {params.path}")
