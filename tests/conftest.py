"""Shared fixtures for the test-suite."""

from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
)

import pytest
from helpers import (
    RecordingReporter,
    ScriptedPlanner,
)


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def scripted() -> Callable[..., ScriptedPlanner]:
    """Factory: ``scripted(reply, reply, ...)`` builds a planner replaying those replies."""

    def factory(*replies: Any) -> ScriptedPlanner:
        return ScriptedPlanner(replies)

    return factory


@pytest.fixture
def project(tmp_path: Path) -> Dict[str, Any]:
    """A small project: one reviewable file plus files that must be skipped."""
    (tmp_path / "a.js").write_text("var x = 1\n", encoding="utf-8")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "config").write_text("[core]\n", encoding="utf-8")
    (tmp_path / "node_modules" / "pkg").mkdir(parents=True)
    (tmp_path / "node_modules" / "pkg" / "index.js").write_text("x\n", encoding="utf-8")
    return {"root": str(tmp_path), "a_js": str(tmp_path / "a.js")}
