"""Geometry-driven group membership for dragged nodes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .models import Node, Position

logger = logging.getLogger(__name__)

Locator = Callable[[Node], Position]


@dataclass(frozen=True)
class Membership:
    parent_id: Optional[str]
    position: Position
    changed: bool = True


def resolve_membership(
    node: Node,
    candidate_groups: Sequence[Node],
    prior_parent: Optional[Node],
    locate: Optional[Locator] = None,
) -> Membership:
    """Decide the parent group of *node* after a drag.

    Args:
        node:             The dragged node; its position is in the frame of
                          *prior_parent* (absolute when it has none).
        candidate_groups: Groups whose bounding box contains the node, as
                          reported by the renderer.
        prior_parent:     The node's current parent group, if any.
        locate:           Returns the absolute position of a node.  Defaults
                          to the node's own position, which is exact for
                          top-level groups.

    Returns:
        The new ``parent_id`` and the position expressed in that parent's
        frame.  Ambiguous geometry (several candidates) leaves the node as
        it is.
    """
    locate = locate or (lambda n: n.position)
    unchanged = Membership(parent_id=node.parent_id, position=node.position, changed=False)

    if prior_parent is not None:
        absolute = locate(prior_parent) + node.position
    else:
        absolute = node.position

    if len(candidate_groups) > 1:
        logger.debug(
            "Node %s dropped on %d overlapping groups; membership unchanged",
            node.node_id, len(candidate_groups),
        )
        return unchanged

    if len(candidate_groups) == 1:
        group = candidate_groups[0]
        if group.node_id == node.parent_id:
            return unchanged
        return Membership(parent_id=group.node_id, position=absolute - locate(group))

    if prior_parent is not None:
        return Membership(parent_id=None, position=absolute)
    return unchanged
