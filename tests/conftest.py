"""Pytest fixtures for Scriptwell tests."""

import os
from pathlib import Path

import pytest

from scriptwell.engine.engine import EngineServices
from scriptwell.foundation.config import reset_config
from scriptwell.foundation.types import EngineConfig, ScriptwellConfig
from scriptwell.models.mock import MockModel
from scriptwell.tools.base import ToolContext


@pytest.fixture(autouse=True)
def clean_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Isolate every test from real config files and SCRIPTWELL_* variables."""
    for key in list(os.environ):
        if key.startswith("SCRIPTWELL_") or key == "GEMINI_API_KEY":
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    reset_config()
    yield
    reset_config()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A small project with a JS module graph."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "db.js").write_text(
        "export function connect() {\n  return {};\n}\n"
    )
    (root / "src" / "app.js").write_text(
        "import { connect } from './db';\n"
        "export function start() {\n  return connect();\n}\n"
    )
    (root / "README.md").write_text("# demo\n")
    return root


@pytest.fixture
def tool_context(workspace: Path) -> ToolContext:
    return ToolContext(workspace=workspace)


@pytest.fixture
def config() -> ScriptwellConfig:
    return ScriptwellConfig(engine=EngineConfig(max_turns=10, max_tool_iterations=5, max_chain_depth=3))


@pytest.fixture
def services(workspace: Path, config: ScriptwellConfig) -> EngineServices:
    return EngineServices.create(workspace, config=config)


@pytest.fixture
def mock_model() -> MockModel:
    """Mock model answering "ok"."""
    return MockModel(responses=["ok"])
