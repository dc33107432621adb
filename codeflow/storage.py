"""Persistence for canvases: JSON documents plus the active-canvas pointer.

A saved canvas holds node records without handles (handles are always
recomputed from ``source_text`` when loading), edge records and the viewport.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import CANVAS_DIR, DEFAULT_VIEWPORT, STATE_FILE, ensure_base_dirs
from .errors import GraphError
from .models import Node, NodeKind, Position
from .store import GraphStore, default_nodes

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


# ===================================================================
# CanvasManager  (named canvases / active canvas)
# ===================================================================

class CanvasManager:
    """Manage saved canvas files and the active canvas state."""

    def __init__(self) -> None:
        ensure_base_dirs()

    def list_canvases(self) -> List[str]:
        if not CANVAS_DIR.exists():
            return []
        return sorted(p.stem for p in CANVAS_DIR.glob("*.json"))

    def canvas_path(self, name: str) -> Path:
        return CANVAS_DIR / f"{name}.json"

    def create_or_get_canvas(self, name: str) -> Path:
        path = self.canvas_path(name)
        if not path.exists():
            save_canvas(new_store(), path)
        return path

    def set_current_canvas(self, name: str) -> None:
        ensure_base_dirs()
        STATE_FILE.write_text(
            json.dumps({"current_canvas": name}, indent=2),
            encoding="utf-8",
        )

    def get_current_canvas(self) -> Optional[str]:
        if not STATE_FILE.exists():
            return None
        try:
            payload = json.loads(STATE_FILE.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return None
        return payload.get("current_canvas")

    def delete_canvas(self, name: str) -> bool:
        path = self.canvas_path(name)
        if not path.exists():
            return False
        path.unlink()
        if self.get_current_canvas() == name:
            STATE_FILE.write_text(
                json.dumps({"current_canvas": None}, indent=2),
                encoding="utf-8",
            )
        return True


# ===================================================================
# Serialisation
# ===================================================================

def new_store(settings: Optional[Dict[str, Any]] = None) -> GraphStore:
    store = GraphStore(settings=settings)
    for node in default_nodes(settings):
        store.add_node(node)
    return store


def canvas_to_dict(store: GraphStore) -> Dict[str, Any]:
    return {
        "version": FORMAT_VERSION,
        "nodes": [
            {
                "id": n.node_id,
                "kind": n.kind.value,
                "fileName": n.file_name,
                "sourceText": n.source_text,
                "position": n.position.to_dict(),
                "parentId": n.parent_id,
                "hidden": n.hidden,
                "data": n.data,
            }
            for n in store.nodes
        ],
        "edges": [
            {
                "id": e.edge_id,
                "source": e.source_node_id,
                "sourceHandle": e.source_handle_id,
                "target": e.target_node_id,
                "targetHandle": e.target_handle_id,
            }
            for e in store.edges
        ],
        "viewport": dict(store.viewport),
        "settings": dict(store.settings),
    }


def canvas_from_dict(payload: Dict[str, Any]) -> GraphStore:
    """Rebuild a store from a saved document.

    Nodes are re-added in saved order (parents first), which re-extracts
    every handle.  Edges whose handles no longer exist are skipped.
    """
    version = payload.get("version", FORMAT_VERSION)
    if version > FORMAT_VERSION:
        raise ValueError(f"Canvas format {version} is newer than supported {FORMAT_VERSION}")

    store = GraphStore(
        viewport=payload.get("viewport") or DEFAULT_VIEWPORT,
        settings=payload.get("settings") or {},
    )
    for record in payload.get("nodes", []):
        store.add_node(Node(
            node_id=str(record["id"]),
            kind=NodeKind(record.get("kind", NodeKind.EDITOR.value)),
            file_name=record.get("fileName", ""),
            source_text=record.get("sourceText", ""),
            position=Position.from_dict(record.get("position") or {}),
            parent_id=record.get("parentId"),
            hidden=bool(record.get("hidden", False)),
            data=dict(record.get("data") or {}),
        ))

    for record in payload.get("edges", []):
        try:
            store.add_edge(
                record["source"], record["sourceHandle"],
                record["target"], record["targetHandle"],
                edge_id=record.get("id"),
            )
        except GraphError as exc:
            logger.warning("Skipping saved edge %s: %s", record.get("id"), exc)
    return store


def save_canvas(store: GraphStore, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(canvas_to_dict(store), indent=2), encoding="utf-8")


def load_canvas(path: Path) -> GraphStore:
    return canvas_from_dict(json.loads(path.read_text(encoding="utf-8")))
