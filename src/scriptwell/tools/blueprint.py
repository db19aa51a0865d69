"""dependency_blueprint tool: expose the dependency matrix to the model."""

import asyncio
from dataclasses import dataclass
from pathlib import Path

from scriptwell.analysis.project import restore_or_scan
from scriptwell.foundation.config import get_config
from scriptwell.script.model import ToolResult
from scriptwell.tools.base import BaseTool, ProgressCallback, tool_metadata


@dataclass(frozen=True, slots=True)
class BlueprintParams:
    file: str | None = None
    targets: tuple[str, ...] = ()
    refresh: bool = False


@tool_metadata(
    name="dependency_blueprint",
    simple_description="Describe the workspace's files, exports and import graph",
    usage_guidance=(
        "Call before writing several related files. Pass file to get the names "
        "that file may use, or targets to get a dependency-first writing order."
    ),
)
class DependencyBlueprintTool(BaseTool):
    """Blueprint of every tracked file, a per-file constraint, or a writing plan."""

    parameters = {
        "type": "object",
        "properties": {
            "file": {"type": "string", "description": "Return coherence constraints for this file"},
            "targets": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Files to order for writing (dependencies first)",
            },
            "refresh": {"type": "boolean", "description": "Rescan the workspace first"},
        },
    }
    params_type = BlueprintParams

    def targets(self, params: BlueprintParams) -> tuple[str, ...]:
        return ()

    def reads(self, params: BlueprintParams) -> tuple[str, ...]:
        return (".",)

    async def execute(
        self,
        params: BlueprintParams,
        cancel: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ToolResult:
        self.check_cancelled(cancel)
        root = self.ctx.workspace
        analyzer = self.ctx.analyzer
        snapshot = root / Path(get_config().analysis.snapshot_path)
        if on_progress is not None and (params.refresh or not analyzer.get_matrix(root).files):
            on_progress("Scanning workspace")
        await asyncio.to_thread(
            restore_or_scan, analyzer, root, snapshot, ignore=self.ctx.ignore, refresh=params.refresh
        )
        self.check_cancelled(cancel)

        if params.file:
            self.resolve_path(params.file)
            text = analyzer.constraint_for_file(root, params.file) or f"No tracked relations for {params.file}."
            return ToolResult(content=text, display_text=f"Constraints for {params.file}")
        if params.targets:
            text = analyzer.file_writing_plan(root, [self.relative(self.resolve_path(t)) for t in params.targets])
            return ToolResult(content=text, display_text="File writing plan")

        text = analyzer.generate_blueprint(root, max_files=get_config().analysis.max_blueprint_files)
        return ToolResult(content=self.truncate(text), display_text="Dependency blueprint")
