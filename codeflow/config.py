"""Configuration paths and canvas defaults for CodeFlow."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("CODEFLOW_HOME", str(Path.home() / ".codeflow"))).expanduser()
CANVAS_DIR = BASE_DIR / "canvases"
STATE_FILE = BASE_DIR / "state.json"

LANGUAGE_MAP = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
}

# Overrides from ~/.codeflow/config.toml (set via `cf config set`)
from .config_manager import load_canvas_config  # noqa: E402

_canvas_config = load_canvas_config()

DEFAULT_LANGUAGE = str(_canvas_config["language"])
LINE_HEIGHT = int(_canvas_config["line_height"])
DEFAULT_VIEWPORT = {
    "x": 0.0,
    "y": 0.0,
    "zoom": float(_canvas_config["zoom"]),
}
NEW_NODE_POSITION = tuple(float(v) for v in _canvas_config["new_node_position"])
LOADER_WORKERS = int(_canvas_config["loader_workers"])


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    CANVAS_DIR.mkdir(parents=True, exist_ok=True)
