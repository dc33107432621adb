"""Configuration manager for CodeFlow canvas settings using TOML files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

import toml

logger = logging.getLogger(__name__)


DEFAULT_CANVAS_CONFIG: Dict[str, Any] = {
    "line_height": 16,
    "zoom": 1.5,
    "new_node_position": [500.0, 500.0],
    "loader_workers": 2,
    "language": "javascript",
}


def config_file() -> Path:
    # Imported lazily: config.py loads this module while it initialises.
    from .config import BASE_DIR

    return BASE_DIR / "config.toml"


def load_canvas_config() -> Dict[str, Any]:
    """Load the ``[canvas]`` section from the TOML config file.

    Returns:
        Canvas settings merged over :data:`DEFAULT_CANVAS_CONFIG`.
        Falls back to the defaults if the file is missing or unreadable.
    """
    path = config_file()
    merged = DEFAULT_CANVAS_CONFIG.copy()
    if not path.exists():
        return merged

    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return merged

    merged.update(payload.get("canvas", {}))
    return merged


def save_canvas_config(values: Dict[str, Any]) -> Path:
    """Write canvas settings to the TOML config file.

    Other top-level sections already in the file are preserved.
    """
    path = config_file()
    path.parent.mkdir(parents=True, exist_ok=True)

    existing: Dict[str, Any] = {}
    if path.exists():
        try:
            existing = toml.loads(path.read_text(encoding="utf-8"))
        except toml.TomlDecodeError:
            existing = {}

    canvas = existing.get("canvas", {})
    canvas.update(values)
    existing["canvas"] = canvas
    path.write_text(toml.dumps(existing), encoding="utf-8")
    return path


def coerce_value(key: str, raw: str) -> Any:
    """Convert a CLI string into the type of the default for *key*."""
    if key not in DEFAULT_CANVAS_CONFIG:
        raise KeyError(key)
    default = DEFAULT_CANVAS_CONFIG[key]
    if isinstance(default, bool):
        return raw.lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, list):
        return [float(part) for part in raw.split(",")]
    return raw
