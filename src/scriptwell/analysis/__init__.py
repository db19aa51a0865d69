"""Workspace analysis: dependency matrix, ignore list, snapshots and patches."""

from scriptwell.analysis.dependencies import (
    CodeDependencyAnalyzer,
    CodeMetadata,
    DependencyMatrix,
)
from scriptwell.analysis.ignore import DEFAULT_IGNORE_PATTERNS, IgnoreList
from scriptwell.analysis.patch import diff_stats, generate_patch
from scriptwell.analysis.project import ProjectAnalysis, restore_or_scan

__all__ = [
    "DEFAULT_IGNORE_PATTERNS",
    "CodeDependencyAnalyzer",
    "CodeMetadata",
    "DependencyMatrix",
    "IgnoreList",
    "ProjectAnalysis",
    "diff_stats",
    "generate_patch",
    "restore_or_scan",
]
