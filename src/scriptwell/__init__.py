"""Scriptwell - agentic script execution.

Runs ``.ai.yaml`` scripts: multi-turn conversations with a language model,
interleaved with tool calls against a workspace, kept consistent by per-file
locking and a cross-file dependency matrix.
"""

__version__ = "0.1.0"
