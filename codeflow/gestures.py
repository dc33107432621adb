"""Translate connection-drag gestures into store operations.

Dragging from a handle and releasing it somewhere means different things
depending on the handle and on what it was dropped onto:

==============  ==================  =======================================
handle          dropped on          result
==============  ==================  =======================================
function        pane / group        chunk moves into a new exported module
selection       pane / group        same, named after the new node
function/sel.   editor node         chunk moves into that node at the line
plain import    pane / group        (nothing, logged)
function        pane + ``import``   new node importing the symbol, wired
any             another handle      edge between the two handles
==============  ==================  =======================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from . import config
from .errors import ValidationError
from .models import Edge, HandleSide, HandleType, Node, Position
from .store import GraphStore
from .surgery import line_at_offset

logger = logging.getLogger(__name__)


class DropKind(str, Enum):
    PANE = "pane"
    GROUP = "group"
    NODE = "node"
    HANDLE = "handle"


@dataclass(frozen=True)
class DropTarget:
    """Where a connection drag ended, in canvas coordinates."""
    kind: DropKind
    position: Position = field(default_factory=Position)
    node_id: Optional[str] = None
    handle_id: Optional[str] = None
    line: Optional[int] = None
    create_import: bool = False

    @classmethod
    def pane(cls, position: Position, create_import: bool = False) -> "DropTarget":
        return cls(DropKind.PANE, position=position, create_import=create_import)

    @classmethod
    def group(cls, group_id: str, position: Position, create_import: bool = False) -> "DropTarget":
        return cls(DropKind.GROUP, position=position, node_id=group_id, create_import=create_import)

    @classmethod
    def node(cls, node_id: str, line: int) -> "DropTarget":
        return cls(DropKind.NODE, node_id=node_id, line=line)

    @classmethod
    def handle(cls, node_id: str, handle_id: str) -> "DropTarget":
        return cls(DropKind.HANDLE, node_id=node_id, handle_id=handle_id)


def drop_line(
    store: GraphStore,
    node_id: str,
    canvas_y: float,
    line_height: int = config.LINE_HEIGHT,
) -> int:
    """Line of *node_id* under a drop at vertical canvas coordinate *canvas_y*."""
    top = store.absolute_position(node_id).y
    return line_at_offset(canvas_y - top, line_height)


def handle_connection_drop(
    store: GraphStore,
    from_node_id: str,
    from_handle_id: str,
    target: DropTarget,
) -> Optional[Union[Node, Edge]]:
    """Apply the connection-drag-end gesture; returns what was created."""
    handle = store.get_handle(from_node_id, from_handle_id)

    if target.kind is DropKind.HANDLE:
        if target.node_id is None or target.handle_id is None:
            raise ValidationError("Handle drop needs a node id and a handle id")
        dropped_on = store.get_handle(target.node_id, target.handle_id)
        if handle.side is HandleSide.INPUT and dropped_on.side is HandleSide.OUTPUT:
            return store.add_edge(target.node_id, target.handle_id, from_node_id, from_handle_id)
        return store.add_edge(from_node_id, from_handle_id, target.node_id, target.handle_id)

    if target.kind is DropKind.NODE:
        if target.node_id is None or target.line is None:
            raise ValidationError("Node drop needs a node id and a line")
        if handle.handle_type is HandleType.PLAIN_IMPORT:
            logger.debug("Import handle %s dropped on node %s; ignored", from_handle_id, target.node_id)
            return None
        return store.move_chunk(from_node_id, from_handle_id, target.node_id, target.line)

    parent_id: Optional[str] = None
    position = target.position
    if target.kind is DropKind.GROUP:
        if target.node_id is None:
            raise ValidationError("Group drop needs a group id")
        parent_id = target.node_id
        position = position - store.absolute_position(parent_id)

    if target.create_import and handle.handle_type is HandleType.FUNCTION:
        source = store.get_node(from_node_id)
        if parent_id is None and source.parent_id is not None:
            parent_id = source.parent_id
            position = target.position - store.absolute_position(parent_id)
        return store.create_import_node(from_node_id, from_handle_id, position, parent_id=parent_id)

    if handle.handle_type is HandleType.PLAIN_IMPORT:
        logger.debug("Import handle %s dropped on empty canvas; ignored", from_handle_id)
        return None
    return store.extract_to_new_node(from_node_id, from_handle_id, position, parent_id=parent_id)
