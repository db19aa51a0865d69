"""Unified diffs for file overwrites."""

import difflib


def generate_patch(path: str, old_content: str, new_content: str, *, context: int = 3) -> str:
    """Unified diff from ``old_content`` to ``new_content``.

    Headers are ``--- a/<path>`` / ``+++ b/<path>``. Identical inputs give "".
    """
    if old_content == new_content:
        return ""
    display = path.lstrip("/")
    diff = difflib.unified_diff(
        old_content.splitlines(keepends=True),
        new_content.splitlines(keepends=True),
        fromfile=f"a/{display}",
        tofile=f"b/{display}",
        n=context,
    )
    lines = []
    for line in diff:
        if not line.endswith("\n"):
            line += "\n\\ No newline at end of file\n"
        lines.append(line)
    return "".join(lines)


def diff_stats(patch: str) -> tuple[int, int]:
    """(added, removed) line counts of a unified diff."""
    added = removed = 0
    for line in patch.splitlines():
        if line.startswith("+") and not line.startswith("+++"):
            added += 1
        elif line.startswith("-") and not line.startswith("---"):
            removed += 1
    return added, removed
