"""Graph state store: the single owner of nodes, handles and edges.

Every public mutation follows the same shape: validate the request, build
the new node and edge collections on the side, check the graph invariants on
the result, then swap it in and publish one immutable snapshot.  A failing
operation raises before the swap, so the store never holds a half-applied
change.  Operations are serialised on a re-entrant lock, so completions
arriving from loader threads never interleave with each other or with the
caller's own gestures.

Invariants checked on every commit:

- every edge references an existing handle on an existing node,
- every ``parent_id`` names an existing group and parent chains never loop,
- nodes are ordered so each parent precedes its children,
- handle ids are unique within a node.
"""

from __future__ import annotations

import functools
import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from . import config
from .errors import (
    DanglingReferenceError,
    HandleNotFoundError,
    InvariantViolation,
    NodeNotFoundError,
    ParentCycleError,
    ValidationError,
)
from .extractor import (
    SymbolExtractor,
    default_extractor,
    ensure_exported,
    language_for,
    render_import,
)
from .membership import Membership, resolve_membership
from .models import (
    Edge,
    GraphSnapshot,
    Handle,
    HandleSide,
    HandleType,
    Node,
    NodeKind,
    Position,
    handle_id_for,
)
from .reconciler import reconcile_edges
from .surgery import extract_chunk, insert_chunk, line_count

logger = logging.getLogger(__name__)

Listener = Callable[[GraphSnapshot], None]

_EXTRACTABLE = (HandleType.FUNCTION, HandleType.SELECTION)
_SELECTION_NAME = "selection"
_EXTENSIONS = {"javascript": ".js", "python": ".py"}


def _serialized(method):
    """Run *method* while holding the store lock."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class GraphStore:
    """Authoritative node/edge collections behind atomic operations."""

    def __init__(
        self,
        extractor: Optional[SymbolExtractor] = None,
        viewport: Optional[Dict[str, float]] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._extractor = extractor or default_extractor()
        self._nodes: Dict[str, Node] = {}
        self._edges: Dict[str, Edge] = {}
        self._listeners: List[Listener] = []
        self._version = 0
        self._lock = threading.RLock()
        self.viewport: Dict[str, float] = dict(viewport or config.DEFAULT_VIEWPORT)
        self.settings: Dict[str, Any] = dict(settings or {})

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> Tuple[Node, ...]:
        return tuple(self._nodes.values())

    @property
    def edges(self) -> Tuple[Edge, ...]:
        return tuple(self._edges.values())

    @property
    def version(self) -> int:
        return self._version

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: str) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NodeNotFoundError(node_id) from None

    def get_handle(self, node_id: str, handle_id: str) -> Handle:
        handle = self.get_node(node_id).handle(handle_id)
        if handle is None:
            raise HandleNotFoundError(node_id, handle_id)
        return handle

    def children(self, group_id: str) -> List[Node]:
        return [n for n in self._nodes.values() if n.parent_id == group_id]

    def descendants(self, group_id: str) -> List[Node]:
        return _descendants(self._nodes, group_id)

    def absolute_position(self, node_id: str) -> Position:
        return _absolute(self._nodes, self.get_node(node_id))

    @_serialized
    def snapshot(self) -> GraphSnapshot:
        return GraphSnapshot(
            nodes=self.nodes,
            edges=self.edges,
            viewport=dict(self.viewport),
            version=self._version,
        )

    def gutter_markers(self, node_id: str) -> List[Dict[str, Any]]:
        """Line annotations the text widget renders for each handle."""
        return [
            {
                "handleId": h.handle_id,
                "handleType": h.handle_type.value,
                "startLine": h.start_line,
                "endLine": h.end_line,
            }
            for h in self.get_node(node_id).handles
        ]

    @_serialized
    def next_node_id(self) -> str:
        candidate = len(self._nodes) + 1
        while str(candidate) in self._nodes:
            candidate += 1
        return str(candidate)

    @_serialized
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for every published snapshot.

        Returns a callable that removes the listener again.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def check_invariants(self) -> None:
        _validate(self._nodes, self._edges)

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    @_serialized
    def add_node(self, node: Node) -> Node:
        """Insert *node*; editor nodes get handles extracted from their text."""
        if node.node_id in self._nodes:
            raise ValidationError(f"Node id already in use: {node.node_id}")
        if node.parent_id is not None:
            self._require_group(node.parent_id)

        if node.is_editor:
            node = replace(node, handles=self._extract(node.node_id, node.file_name, node.source_text))
        else:
            node = replace(node, handles=())

        nodes = dict(self._nodes)
        nodes[node.node_id] = node
        self._commit(nodes, self._edges, f"add_node {node.node_id}")
        return node

    @_serialized
    def add_editor_node(
        self,
        source_text: str = "",
        file_name: str = "",
        position: Optional[Position] = None,
        parent_id: Optional[str] = None,
        node_id: Optional[str] = None,
    ) -> Node:
        node_id = node_id or self.next_node_id()
        return self.add_node(Node(
            node_id=node_id,
            kind=NodeKind.EDITOR,
            file_name=file_name or f"newFile-{node_id}.js",
            source_text=source_text,
            position=position or Position(*config.NEW_NODE_POSITION),
            parent_id=parent_id,
        ))

    @_serialized
    def remove_node(self, node_id: str) -> Node:
        """Delete a node together with its handles and every edge touching it.

        Children of a removed group move up to its parent (or the canvas)
        and keep their on-canvas location.
        """
        removed = self.get_node(node_id)
        nodes = dict(self._nodes)
        del nodes[node_id]
        for child in [n for n in nodes.values() if n.parent_id == node_id]:
            nodes[child.node_id] = replace(
                child,
                parent_id=removed.parent_id,
                position=removed.position + child.position,
            )

        edges = {eid: e for eid, e in self._edges.items() if not e.touches(node_id)}
        self._commit(nodes, edges, f"remove_node {node_id}")
        return removed

    @_serialized
    def update_node_text(self, node_id: str, text: str) -> Node:
        """Store new text for an editor node, re-extract and reconcile edges."""
        node = self._require_editor(node_id)
        nodes = dict(self._nodes)
        edges = self._retext(nodes, self._edges, node, text)
        self._commit(nodes, edges, f"update_node_text {node_id}")
        return nodes[node_id]

    @_serialized
    def rename_file(self, node_id: str, file_name: str) -> Node:
        node = self.get_node(node_id)
        renamed = replace(node, file_name=file_name)
        nodes = dict(self._nodes)
        nodes[node_id] = renamed
        edges = self._edges
        if node.is_editor and language_for(file_name) != language_for(node.file_name):
            edges = self._retext(nodes, edges, renamed, renamed.source_text)
        self._commit(nodes, edges, f"rename_file {node_id}")
        return nodes[node_id]

    @_serialized
    def set_hidden(self, node_id: str, hidden: bool) -> Node:
        nodes = dict(self._nodes)
        nodes[node_id] = replace(self.get_node(node_id), hidden=hidden)
        self._commit(nodes, self._edges, f"set_hidden {node_id}")
        return nodes[node_id]

    @_serialized
    def update_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the settings payload and mirror it on every settings node."""
        nodes = dict(self._nodes)
        for node in self._nodes.values():
            if node.kind is NodeKind.SETTINGS:
                nodes[node.node_id] = replace(node, data={**node.data, "settings": dict(settings)})
        self._commit(nodes, self._edges, "update_settings")
        self.settings = dict(settings)
        return self.settings

    @_serialized
    def set_selection(
        self,
        node_id: str,
        selection: Optional[Tuple[int, int]],
    ) -> Node:
        """Create, move or clear the single selection handle of a node."""
        node = self._require_editor(node_id)
        kept = tuple(h for h in node.handles if h.handle_type is not HandleType.SELECTION)

        if selection is not None:
            start, end = selection
            total = line_count(node.source_text)
            if start > end or start < 1 or end > total:
                raise ValidationError(
                    f"Selection {start}-{end} outside node {node_id} ({total} lines)"
                )
            kept = kept + (_selection_handle(node_id, start, end),)

        nodes = dict(self._nodes)
        nodes[node_id] = replace(node, handles=kept)
        result = reconcile_edges(node_id, node.handles, kept, self._edges.values())
        self._commit(nodes, _edge_map(result.edges), f"set_selection {node_id}")
        return nodes[node_id]

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    @_serialized
    def add_edge(
        self,
        source_node_id: str,
        source_handle_id: str,
        target_node_id: str,
        target_handle_id: str,
        edge_id: Optional[str] = None,
    ) -> Edge:
        self.get_handle(source_node_id, source_handle_id)
        self.get_handle(target_node_id, target_handle_id)
        if source_node_id == target_node_id:
            raise ValidationError("An edge cannot connect a node to itself")
        for existing in self._edges.values():
            if (existing.source_handle_id, existing.target_handle_id) == (source_handle_id, target_handle_id):
                raise ValidationError(
                    f"Handles already connected by edge {existing.edge_id}"
                )

        edge_id = edge_id or f"edge:{source_handle_id}->{target_handle_id}"
        if edge_id in self._edges:
            raise ValidationError(f"Edge id already in use: {edge_id}")

        edge = Edge(edge_id, source_node_id, source_handle_id, target_node_id, target_handle_id)
        edges = dict(self._edges)
        edges[edge_id] = edge
        self._commit(self._nodes, edges, f"add_edge {edge_id}")
        return edge

    @_serialized
    def remove_edge(self, edge_id: str) -> Edge:
        if edge_id not in self._edges:
            raise ValidationError(f"Edge not found: {edge_id}")
        edges = dict(self._edges)
        removed = edges.pop(edge_id)
        self._commit(self._nodes, edges, f"remove_edge {edge_id}")
        return removed

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    @_serialized
    def set_parent(self, node_id: str, membership: Membership) -> Node:
        """Apply a membership decision to *node_id*."""
        node = self.get_node(node_id)
        if not membership.changed:
            return node
        if membership.parent_id is not None:
            self._require_group(membership.parent_id)
            if membership.parent_id == node_id or any(
                d.node_id == membership.parent_id for d in self.descendants(node_id)
            ):
                raise ParentCycleError(
                    f"Group {membership.parent_id} cannot contain its ancestor {node_id}"
                )

        nodes = dict(self._nodes)
        nodes[node_id] = replace(node, parent_id=membership.parent_id, position=membership.position)
        self._commit(nodes, self._edges, f"set_parent {node_id} -> {membership.parent_id}")
        return nodes[node_id]

    @_serialized
    def drag_node(
        self,
        node_id: str,
        position: Position,
        candidate_group_ids: Sequence[str] = (),
    ) -> Node:
        """Drag-end gesture: move the node, then resolve its group.

        *position* is in the node's current frame; *candidate_group_ids* are
        the groups whose bounds contain the node after the drag.
        """
        node = self.get_node(node_id)
        excluded = {node_id} | {d.node_id for d in self.descendants(node_id)}
        candidates = [
            self._require_group(gid) for gid in dict.fromkeys(candidate_group_ids)
            if gid not in excluded
        ]
        moved = replace(node, position=position)
        prior = self._nodes.get(node.parent_id) if node.parent_id else None
        membership = resolve_membership(
            moved, candidates, prior, locate=lambda n: _absolute(self._nodes, n),
        )

        nodes = dict(self._nodes)
        nodes[node_id] = replace(moved, parent_id=membership.parent_id, position=membership.position)
        self._commit(nodes, self._edges, f"drag_node {node_id}")
        return nodes[node_id]

    # ------------------------------------------------------------------
    # Text surgery gestures
    # ------------------------------------------------------------------

    @_serialized
    def extract_to_new_node(
        self,
        node_id: str,
        handle_id: str,
        position: Position,
        parent_id: Optional[str] = None,
        new_node_id: Optional[str] = None,
    ) -> Node:
        """Cut the lines of a handle out into a fresh editor node.

        The chunk is marked as exported in the new node; edges on symbols
        that moved follow them.
        """
        source, handle = self._require_extractable(node_id, handle_id)
        if parent_id is not None:
            self._require_group(parent_id)
        split = extract_chunk(source.source_text, handle.start_line, handle.end_line)

        language = language_for(source.file_name)
        new_node_id = new_node_id or self.next_node_id()
        if new_node_id in self._nodes:
            raise ValidationError(f"Node id already in use: {new_node_id}")
        stem = handle.name if handle.handle_type is HandleType.FUNCTION else f"extracted-{new_node_id}"
        new_node = Node(
            node_id=new_node_id,
            kind=NodeKind.EDITOR,
            file_name=f"./{stem}{_EXTENSIONS.get(language, '.js')}",
            source_text=ensure_exported(split.chunk, language),
            position=position,
            parent_id=parent_id,
        )
        new_node = replace(new_node, handles=self._extract(new_node_id, new_node.file_name, new_node.source_text))

        nodes = dict(self._nodes)
        nodes[new_node_id] = new_node
        edges = _transfer_edges(self._edges, source, handle.source_range, new_node, ())
        edges = self._retext(nodes, edges, source, split.remainder, keep_selection=False)
        self._commit(nodes, edges, f"extract_to_new_node {node_id}/{handle_id} -> {new_node_id}")
        return new_node

    @_serialized
    def move_chunk(
        self,
        node_id: str,
        handle_id: str,
        target_node_id: str,
        at_line: int,
    ) -> Node:
        """Cut the lines of a handle and splice them into another node."""
        source, handle = self._require_extractable(node_id, handle_id)
        target = self._require_editor(target_node_id)
        if target_node_id == node_id:
            raise ValidationError("Source and target of a chunk move must differ")
        split = extract_chunk(source.source_text, handle.start_line, handle.end_line)
        combined = insert_chunk(target.source_text, split.chunk, at_line)

        nodes = dict(self._nodes)
        previous_target = target.handles
        edges = self._retext(nodes, self._edges, target, combined)
        edges = _transfer_edges(edges, source, handle.source_range, nodes[target_node_id], previous_target)
        edges = self._retext(nodes, edges, source, split.remainder, keep_selection=False)
        self._commit(nodes, edges, f"move_chunk {node_id}/{handle_id} -> {target_node_id}@{at_line}")
        return nodes[target_node_id]

    @_serialized
    def create_import_node(
        self,
        node_id: str,
        handle_id: str,
        position: Position,
        parent_id: Optional[str] = None,
        new_node_id: Optional[str] = None,
    ) -> Node:
        """Create a node importing a symbol of *node_id* and wire the edge."""
        source = self._require_editor(node_id)
        handle = self.get_handle(node_id, handle_id)
        if handle.handle_type is not HandleType.FUNCTION:
            raise ValidationError(f"Only declared symbols can be imported, not {handle.handle_type.value}")
        parent_id = parent_id or source.parent_id
        if parent_id is not None:
            self._require_group(parent_id)

        language = language_for(source.file_name)
        new_node_id = new_node_id or self.next_node_id()
        if new_node_id in self._nodes:
            raise ValidationError(f"Node id already in use: {new_node_id}")
        file_name = f"newFile-{new_node_id}{_EXTENSIONS.get(language, '.js')}"
        text = render_import(handle.name, source.file_name, language)
        importer = Node(
            node_id=new_node_id,
            kind=NodeKind.EDITOR,
            file_name=file_name,
            source_text=text,
            position=position,
            parent_id=parent_id,
        )
        importer = replace(importer, handles=self._extract(new_node_id, file_name, text))

        nodes = dict(self._nodes)
        nodes[new_node_id] = importer
        edges = dict(self._edges)
        target = next(
            (h for h in importer.handles
             if h.handle_type is HandleType.PLAIN_IMPORT and h.name == handle.name),
            None,
        )
        if target is not None:
            edge_id = f"edge:{handle.handle_id}->{target.handle_id}"
            edges[edge_id] = Edge(edge_id, node_id, handle.handle_id, new_node_id, target.handle_id)
        self._commit(nodes, edges, f"create_import_node {node_id}/{handle_id} -> {new_node_id}")
        return importer

    @_serialized
    def load_file(
        self,
        file_id: str,
        text: str,
        position: Optional[Position] = None,
        origin_node_id: Optional[str] = None,
        parent_id: Optional[str] = None,
    ) -> Optional[Node]:
        """Completion of an asynchronous file load.

        A load whose originating node has been removed in the meantime is
        dropped without touching the graph.
        """
        if origin_node_id is not None and origin_node_id not in self._nodes:
            logger.debug("Discarding load of %s: node %s is gone", file_id, origin_node_id)
            return None
        if parent_id is not None and parent_id not in self._nodes:
            parent_id = None
        return self.add_editor_node(
            source_text=text,
            file_name=file_id,
            position=position,
            parent_id=parent_id,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _extract(self, node_id: str, file_name: str, text: str) -> Tuple[Handle, ...]:
        return self._extractor.extract(node_id, text, language_for(file_name)).handles

    def _retext(
        self,
        nodes: Dict[str, Node],
        edges: Dict[str, Edge],
        node: Node,
        text: str,
        keep_selection: bool = True,
    ) -> Dict[str, Edge]:
        """Put *text* on *node* inside *nodes*; return the reconciled edges.

        The selection handle survives when it still fits the new text, unless
        *keep_selection* is false (its lines were just cut away).
        """
        current = nodes[node.node_id]
        result = self._extractor.extract(node.node_id, text, language_for(current.file_name))
        total = line_count(text)
        new_symbols = result.handles
        if not result.complete:
            # Symbols lost to a transient syntax error keep their last known handle
            recovered = {h.key for h in new_symbols}
            stale = tuple(
                h for h in current.handles
                if h.handle_type is not HandleType.SELECTION
                and h.key not in recovered
                and h.end_line <= total
            )
            if stale:
                logger.warning(
                    "Node %s does not parse cleanly; keeping %d last known handle(s)",
                    node.node_id, len(stale),
                )
                new_symbols = tuple(sorted(new_symbols + stale, key=lambda h: h.source_range))

        selection = tuple(
            h for h in current.handles
            if keep_selection and h.handle_type is HandleType.SELECTION and h.end_line <= total
        )
        new_handles = new_symbols + selection
        nodes[node.node_id] = replace(current, source_text=text, handles=new_handles)
        result_edges = reconcile_edges(node.node_id, current.handles, new_handles, edges.values())
        return _edge_map(result_edges.edges)

    def _require_group(self, node_id: str) -> Node:
        node = self.get_node(node_id)
        if not node.is_group:
            raise ValidationError(f"Node {node_id} is a {node.kind.value}, not a group")
        return node

    def _require_editor(self, node_id: str) -> Node:
        node = self.get_node(node_id)
        if not node.is_editor:
            raise ValidationError(f"Node {node_id} is a {node.kind.value}, not an editor")
        return node

    def _require_extractable(self, node_id: str, handle_id: str) -> Tuple[Node, Handle]:
        node = self._require_editor(node_id)
        handle = self.get_handle(node_id, handle_id)
        if handle.handle_type not in _EXTRACTABLE:
            raise ValidationError(f"Handle {handle_id} does not span extractable text")
        return node, handle

    def _commit(self, nodes: Dict[str, Node], edges: Dict[str, Edge], action: str) -> None:
        ordered = _validate(nodes, edges)
        self._nodes = ordered
        self._edges = dict(edges)
        self._version += 1
        logger.debug("v%d %s (%d nodes, %d edges)", self._version, action, len(ordered), len(edges))
        self._publish()

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener %r failed", listener)


# ===================================================================
# Helpers
# ===================================================================

def default_nodes(settings: Optional[Dict[str, Any]] = None) -> List[Node]:
    """Nodes a fresh canvas starts with."""
    return [
        Node(
            node_id="settings",
            kind=NodeKind.SETTINGS,
            position=Position(0.0, 0.0),
            data={"settings": dict(settings or {})},
        ),
    ]


def _selection_handle(node_id: str, start: int, end: int) -> Handle:
    return Handle(
        handle_id=handle_id_for(node_id, HandleType.SELECTION, _SELECTION_NAME),
        node_id=node_id,
        handle_type=HandleType.SELECTION,
        name=_SELECTION_NAME,
        source_range=(start, end),
        side=HandleSide.OUTPUT,
    )


def _edge_map(edges: Iterable[Edge]) -> Dict[str, Edge]:
    return {e.edge_id: e for e in edges}


def _transfer_edges(
    edges: Dict[str, Edge],
    source: Node,
    moved_range: Tuple[int, int],
    destination: Node,
    previous_destination: Tuple[Handle, ...],
) -> Dict[str, Edge]:
    """Re-point edges of symbols that moved from *source* to *destination*.

    A symbol moved when its whole range lies inside *moved_range* and the
    destination now declares the same ``(handle_type, name)`` without having
    declared it before.  Edges that would end up inside one node are dropped.
    """
    start, end = moved_range
    before = {h.key for h in previous_destination}
    arrived = {h.key: h for h in destination.handles if h.key not in before}
    moved: Dict[str, Handle] = {}
    for handle in source.handles:
        if handle.handle_type is HandleType.SELECTION:
            continue
        if start <= handle.start_line and handle.end_line <= end and handle.key in arrived:
            moved[handle.handle_id] = arrived[handle.key]
    if not moved:
        return edges

    out: Dict[str, Edge] = {}
    for edge_id, edge in edges.items():
        updated = edge
        if edge.source_node_id == source.node_id and edge.source_handle_id in moved:
            target = moved[edge.source_handle_id]
            updated = replace(updated, source_node_id=target.node_id, source_handle_id=target.handle_id)
        if edge.target_node_id == source.node_id and edge.target_handle_id in moved:
            target = moved[edge.target_handle_id]
            updated = replace(updated, target_node_id=target.node_id, target_handle_id=target.handle_id)
        if updated.source_node_id == updated.target_node_id:
            logger.info("Dropping edge %s: both ends now in node %s", edge_id, updated.source_node_id)
            continue
        out[edge_id] = updated
    return out


def _absolute(nodes: Dict[str, Node], node: Node) -> Position:
    position = node.position
    current = node
    for _ in range(len(nodes)):
        if current.parent_id is None:
            return position
        parent = nodes.get(current.parent_id)
        if parent is None:
            return position
        position = position + parent.position
        current = parent
    raise ParentCycleError(f"Parent chain of node {node.node_id} does not terminate")


def _descendants(nodes: Dict[str, Node], group_id: str) -> List[Node]:
    found: List[Node] = []
    frontier = [group_id]
    seen = {group_id}
    while frontier:
        parent = frontier.pop()
        for node in nodes.values():
            if node.parent_id == parent and node.node_id not in seen:
                seen.add(node.node_id)
                found.append(node)
                frontier.append(node.node_id)
    return found


def _validate(nodes: Dict[str, Node], edges: Dict[str, Edge]) -> Dict[str, Node]:
    """Check every graph invariant; return *nodes* ordered parents first."""
    limit = len(nodes)
    for node in nodes.values():
        ids = [h.handle_id for h in node.handles]
        if len(ids) != len(set(ids)):
            raise InvariantViolation(f"Duplicate handle ids on node {node.node_id}")
        if node.parent_id is None:
            continue
        parent = nodes.get(node.parent_id)
        if parent is None:
            raise DanglingReferenceError(
                f"Node {node.node_id} references missing parent {node.parent_id}"
            )
        if not parent.is_group:
            raise InvariantViolation(f"Parent {parent.node_id} of {node.node_id} is not a group")
        current: Optional[Node] = parent
        steps = 0
        while current is not None:
            if current.node_id == node.node_id or steps > limit:
                raise ParentCycleError(f"Parent chain of node {node.node_id} loops")
            steps += 1
            current = nodes.get(current.parent_id) if current.parent_id else None

    for edge in edges.values():
        for node_id, handle_id in (
            (edge.source_node_id, edge.source_handle_id),
            (edge.target_node_id, edge.target_handle_id),
        ):
            node = nodes.get(node_id)
            if node is None or node.handle(handle_id) is None:
                raise DanglingReferenceError(
                    f"Edge {edge.edge_id} references missing handle {node_id}/{handle_id}"
                )

    return _order_parents_first(nodes)


def _order_parents_first(nodes: Dict[str, Node]) -> Dict[str, Node]:
    ordered: Dict[str, Node] = {}

    def _place(node: Node) -> None:
        if node.node_id in ordered:
            return
        if node.parent_id is not None:
            _place(nodes[node.parent_id])
        ordered[node.node_id] = node

    for node in nodes.values():
        _place(node)
    return ordered
