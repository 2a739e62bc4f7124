"""
Shared pytest fixtures for axisboard tests.

Provides a small vault of markdown notes and scripted edit prompts.
"""

from pathlib import Path
from typing import Any, Optional

import pytest
import yaml

from axisboard.config import EngineSettings
from axisboard.engine import QueryEngine
from axisboard.vault import MarkdownVault


def write_note(root: Path, rel: str, frontmatter: Optional[dict] = None, body: str = "") -> Path:
    """Write a markdown note with optional YAML frontmatter."""
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    text = body
    if frontmatter is not None:
        fm = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True)
        text = f"---\n{fm}---\n{body}"
    path.write_text(text, encoding="utf-8")
    return path


class ScriptedPrompt:
    """
    Edit prompt that answers from a script.

    Each answer is returned in order; None means the user cancelled.
    Calls are recorded for assertions.
    """

    def __init__(self, values: Optional[list[Any]] = None, exact: Optional[list[Any]] = None):
        self.values = list(values or [])
        self.exact = list(exact or [])
        self.value_calls: list[tuple] = []
        self.exact_calls: list[tuple] = []

    def choose_value(self, axis: str, target_label: str, candidates: list[Any]) -> Optional[Any]:
        self.value_calls.append((axis, target_label, list(candidates)))
        return self.values.pop(0) if self.values else None

    def choose_exact(self, axis: str, target_label: str, low: float, high: float) -> Optional[float]:
        self.exact_calls.append((axis, target_label, low, high))
        return self.exact.pop(0) if self.exact else None


class RecordingStore:
    """Property store that records writes instead of touching files."""

    def __init__(self, fail: bool = False):
        self.writes: list[tuple[str, dict]] = []
        self.fail = fail

    def read(self, handle: str) -> dict:
        return {}

    def write(self, handle: str, updates: dict) -> None:
        from axisboard.errors import PersistenceError
        if self.fail:
            raise PersistenceError("disk full")
        self.writes.append((handle, dict(updates)))


@pytest.fixture
def vault_root(tmp_path) -> Path:
    """A vault with a few project notes, an archive and an inbox."""
    root = tmp_path / "vault"
    write_note(root, "Projects/alpha.md", {
        "status": "Todo", "effort": 3, "priority": 2, "tags": ["work"],
    }, "Alpha project.\n")
    write_note(root, "Projects/beta.md", {
        "status": "Doing", "effort": 13, "priority": 1, "tags": ["work/urgent"],
    }, "Beta project.\n")
    write_note(root, "Projects/gamma.md", {
        "status": "Done", "effort": 14, "priority": 3, "labels": ["red", "blue"],
    }, "Gamma project.\n")
    write_note(root, "Projects/sub/delta.md", {
        "status": "Doing", "effort": 2, "priority": 2,
    }, "Delta project with an #Idea tag.\n")
    write_note(root, "Archive/old.md", {"status": "Done", "effort": 40}, "Old.\n")
    write_note(root, "Inbox/loose.md", None, "No frontmatter, just #idea/later.\n")
    write_note(root, "Projects/.hidden/secret.md", {"status": "Todo"})
    (root / "Projects" / "notes.txt").write_text("not markdown")
    return root


@pytest.fixture
def vault(vault_root) -> MarkdownVault:
    return MarkdownVault(vault_root, EngineSettings())


@pytest.fixture
def engine(vault) -> QueryEngine:
    return QueryEngine(vault, vault.settings)


@pytest.fixture
def make_prompt():
    """Factory for scripted prompts: make_prompt(values=[...], exact=[...])."""
    return ScriptedPrompt


@pytest.fixture
def make_store():
    """Factory for recording stores: make_store(fail=False)."""
    return RecordingStore


@pytest.fixture
def note():
    """Factory writing notes: note(root, "dir/name.md", {...}, "body")."""
    return write_note
