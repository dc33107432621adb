"""Core data models shared by the extractor, reconciler, resolver and store."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class NodeKind(str, Enum):
    EDITOR = "editor"
    GROUP = "group"
    SETTINGS = "settings"
    PREVIEW = "preview"


class HandleType(str, Enum):
    FUNCTION = "function"
    SELECTION = "selection"
    PLAIN_IMPORT = "plain_import"


class HandleSide(str, Enum):
    OUTPUT = "output"
    INPUT = "input"


@dataclass(frozen=True)
class Position:
    """A canvas coordinate, absolute or relative to the parent group."""
    x: float = 0.0
    y: float = 0.0

    def __add__(self, other: "Position") -> "Position":
        return Position(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Position") -> "Position":
        return Position(self.x - other.x, self.y - other.y)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Position":
        return cls(float(payload.get("x", 0.0)), float(payload.get("y", 0.0)))


def handle_id_for(
    node_id: str,
    handle_type: HandleType,
    name: str,
    occurrence: int = 0,
) -> str:
    """Build the content-derived id of a handle.

    The same ``(node_id, handle_type, name)`` always yields the same id, so a
    re-parse of unchanged text reproduces identical handles.  *occurrence*
    disambiguates a name declared more than once in the same node.
    """
    base = f"{node_id}:{handle_type.value}:{name}"
    return base if occurrence == 0 else f"{base}#{occurrence}"


@dataclass(frozen=True)
class Handle:
    handle_id: str
    node_id: str
    handle_type: HandleType
    name: str
    source_range: Tuple[int, int]
    side: HandleSide = HandleSide.OUTPUT
    exported: bool = False

    def __post_init__(self) -> None:
        start, end = self.source_range
        if start < 1 or end < start:
            raise ValueError(
                f"Invalid source range {self.source_range} for handle {self.handle_id}"
            )

    @property
    def key(self) -> Tuple[HandleType, str]:
        """Identity used to match handles across re-parses."""
        return (self.handle_type, self.name)

    @property
    def start_line(self) -> int:
        return self.source_range[0]

    @property
    def end_line(self) -> int:
        return self.source_range[1]

    def __str__(self) -> str:
        return f"{self.handle_type.value} {self.name} [{self.start_line}-{self.end_line}]"


@dataclass(frozen=True)
class Node:
    node_id: str
    kind: NodeKind
    file_name: str = ""
    source_text: str = ""
    handles: Tuple[Handle, ...] = ()
    position: Position = field(default_factory=Position)
    parent_id: Optional[str] = None
    hidden: bool = False
    data: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_group(self) -> bool:
        return self.kind is NodeKind.GROUP

    @property
    def is_editor(self) -> bool:
        return self.kind is NodeKind.EDITOR

    def handle(self, handle_id: str) -> Optional[Handle]:
        for h in self.handles:
            if h.handle_id == handle_id:
                return h
        return None

    def to_render(self) -> Dict[str, Any]:
        """Shape consumed by the rendering collaborator."""
        data: Dict[str, Any] = dict(self.data)
        if self.kind is NodeKind.EDITOR:
            data.update({
                "fileName": self.file_name,
                "value": self.source_text,
                "handles": [
                    {
                        "id": h.handle_id,
                        "type": h.side.value,
                        "handleType": h.handle_type.value,
                        "name": h.name,
                        "loc": {"start": h.start_line, "end": h.end_line},
                    }
                    for h in self.handles
                ],
            })
        return {
            "id": self.node_id,
            "kind": self.kind.value,
            "position": self.position.to_dict(),
            "parentId": self.parent_id,
            "hidden": self.hidden,
            "data": data,
        }


@dataclass(frozen=True)
class Edge:
    edge_id: str
    source_node_id: str
    source_handle_id: str
    target_node_id: str
    target_handle_id: str

    def touches(self, node_id: str) -> bool:
        return node_id in (self.source_node_id, self.target_node_id)

    def handle_ids(self) -> Tuple[str, str]:
        return (self.source_handle_id, self.target_handle_id)


@dataclass(frozen=True)
class GraphSnapshot:
    """Immutable view of the graph published after every store mutation."""
    nodes: Tuple[Node, ...]
    edges: Tuple[Edge, ...]
    viewport: Dict[str, float] = field(default_factory=dict, compare=False)
    version: int = 0

    def node(self, node_id: str) -> Optional[Node]:
        for n in self.nodes:
            if n.node_id == node_id:
                return n
        return None

    def to_render(self) -> Dict[str, List[Dict[str, Any]]]:
        hidden = {n.node_id for n in self.nodes if n.hidden}
        return {
            "nodes": [n.to_render() for n in self.nodes],
            "edges": [
                {
                    "id": e.edge_id,
                    "source": e.source_node_id,
                    "sourceHandle": e.source_handle_id,
                    "target": e.target_node_id,
                    "targetHandle": e.target_handle_id,
                    "hidden": e.source_node_id in hidden or e.target_node_id in hidden,
                }
                for e in self.edges
            ],
        }
