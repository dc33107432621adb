"""Pytest configuration and fixtures for CodeFlow tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from codeflow.models import Node, NodeKind, Position
from codeflow.storage import CanvasManager
from codeflow.store import GraphStore


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to the sample JavaScript project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def temp_canvas_manager(temp_dir: Path, monkeypatch) -> CanvasManager:
    """Create a CanvasManager with temporary storage."""
    canvas_dir = temp_dir / "canvases"
    state_file = temp_dir / "state.json"

    # Patch both config AND storage modules (storage imports at module load)
    monkeypatch.setattr("codeflow.config.BASE_DIR", temp_dir)
    monkeypatch.setattr("codeflow.config.CANVAS_DIR", canvas_dir)
    monkeypatch.setattr("codeflow.config.STATE_FILE", state_file)
    monkeypatch.setattr("codeflow.storage.CANVAS_DIR", canvas_dir)
    monkeypatch.setattr("codeflow.storage.STATE_FILE", state_file)

    return CanvasManager()


@pytest.fixture
def store() -> GraphStore:
    """An empty graph store."""
    return GraphStore()


@pytest.fixture
def sample_js_code() -> str:
    """Sample JavaScript module for testing the extractor."""
    return """import { helper } from './helper.js';
import React, * as NS from 'react';

export function foo(a, b) {
  return helper(a) + b;
}

function bar() {
  return 1;
}

export const baz = () => {
  return 'hello world';
};

class Widget {}
"""


@pytest.fixture
def sample_python_code() -> str:
    """Sample Python module for testing the extractor."""
    return '''import os
from pathlib import Path as P

@decorator
def hello():
    return 1

class _Private:
    pass

CONSTANT = 3
'''


@pytest.fixture
def exporter_and_importer(store: GraphStore):
    """Two editor nodes wired by an import edge on ``foo``.

    Returns ``(store, edge)``.
    """
    store.add_node(Node(
        node_id="1",
        kind=NodeKind.EDITOR,
        file_name="./utils.js",
        source_text="export function foo() {}\n",
        position=Position(0, 0),
    ))
    store.add_node(Node(
        node_id="2",
        kind=NodeKind.EDITOR,
        file_name="./main.js",
        source_text="import { foo } from './utils.js';\n",
        position=Position(400, 0),
    ))
    edge = store.add_edge("1", "1:function:foo", "2", "2:plain_import:foo")
    return store, edge


@pytest.fixture
def add_group(store: GraphStore):
    """Factory adding a group node to the store fixture."""
    def _add(node_id: str, x: float, y: float, parent_id=None) -> Node:
        return store.add_node(Node(
            node_id=node_id,
            kind=NodeKind.GROUP,
            position=Position(x, y),
            parent_id=parent_id,
        ))
    return _add
