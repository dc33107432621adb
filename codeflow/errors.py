"""Exception hierarchy for graph operations.

Content problems (unparseable text, ambiguous geometry) never raise.  Bad
gesture input raises a :class:`ValidationError` before anything is mutated.
Broken graph invariants raise :class:`InvariantViolation` and abort the whole
operation.
"""

from __future__ import annotations


class GraphError(Exception):
    """Base class for every error raised by the graph store."""


class ValidationError(GraphError, ValueError):
    """A gesture referenced something invalid; nothing was changed."""


class NodeNotFoundError(ValidationError):
    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node not found: {node_id}")
        self.node_id = node_id


class HandleNotFoundError(ValidationError):
    def __init__(self, node_id: str, handle_id: str) -> None:
        super().__init__(f"Handle '{handle_id}' not found on node '{node_id}'")
        self.node_id = node_id
        self.handle_id = handle_id


class LineRangeError(ValidationError):
    """Line bounds outside the text or in the wrong order."""


class InvariantViolation(GraphError):
    """The graph would end up in a state that must never exist."""


class DanglingReferenceError(InvariantViolation):
    """An edge would reference a handle or node that does not exist."""


class ParentCycleError(InvariantViolation):
    """A group would become its own ancestor."""
