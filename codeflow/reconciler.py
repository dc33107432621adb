"""Carry edges across a re-parse of one node's handles."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Sequence, Tuple

from .models import Edge, Handle, HandleType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reconciliation:
    edges: Tuple[Edge, ...]
    carried: Tuple[str, ...] = ()
    dropped: Tuple[str, ...] = ()


def match_handles(
    old_handles: Sequence[Handle],
    new_handles: Sequence[Handle],
) -> Dict[str, str]:
    """Map old handle ids to new handle ids by ``(handle_type, name)``.

    Ids are not compared since they may be freshly computed.  When a key
    appears more than once, occurrences are paired in declaration order.
    """
    pending: Dict[Tuple[HandleType, str], List[Handle]] = {}
    for handle in new_handles:
        pending.setdefault(handle.key, []).append(handle)

    mapping: Dict[str, str] = {}
    for handle in old_handles:
        candidates = pending.get(handle.key)
        if candidates:
            mapping[handle.handle_id] = candidates.pop(0).handle_id
    return mapping


def reconcile_edges(
    node_id: str,
    old_handles: Sequence[Handle],
    new_handles: Sequence[Handle],
    current_edges: Iterable[Edge],
) -> Reconciliation:
    """Rewrite or drop the edges of *node_id* after its handles changed.

    - an edge on an old handle that survives is re-pointed at the new id,
    - an edge on an old handle that disappeared is dropped,
    - edges not touching *node_id* pass through unchanged.

    New handles never gain edges here; edges only come from explicit
    connection gestures.
    """
    mapping = match_handles(old_handles, new_handles)
    old_ids = {h.handle_id for h in old_handles}

    edges: List[Edge] = []
    carried: List[str] = []
    dropped: List[str] = []

    for edge in current_edges:
        if not edge.touches(node_id):
            edges.append(edge)
            continue

        updated = edge
        severed = False
        if edge.source_node_id == node_id and edge.source_handle_id in old_ids:
            new_id = mapping.get(edge.source_handle_id)
            if new_id is None:
                severed = True
            else:
                updated = replace(updated, source_handle_id=new_id)
        if edge.target_node_id == node_id and edge.target_handle_id in old_ids:
            new_id = mapping.get(edge.target_handle_id)
            if new_id is None:
                severed = True
            else:
                updated = replace(updated, target_handle_id=new_id)

        if severed:
            dropped.append(edge.edge_id)
            continue
        if updated != edge:
            carried.append(edge.edge_id)
        edges.append(updated)

    if dropped:
        logger.info("Dropped %d edge(s) of node %s: %s", len(dropped), node_id, ", ".join(dropped))
    return Reconciliation(edges=tuple(edges), carried=tuple(carried), dropped=tuple(dropped))
