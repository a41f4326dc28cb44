"""
Hierarchy -- id-indexed arena of parent pointers.

Responsibility:
    Represents account and cost-center trees as ``{node_id: parent_id}``
    with explicit cycle detection on insert and re-parent.  Nodes never hold
    live references to each other.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Services load the
    tenant's nodes into an arena, ask it whether a change is legal, then
    persist.

Failure modes:
    - InvalidHierarchyError when a parent is unknown, a node is its own
      ancestor, or a delete would orphan children.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar

from ledger_kernel.exceptions import InvalidHierarchyError

NodeId = TypeVar("NodeId", bound=Hashable)


@dataclass(frozen=True)
class HierarchyNode(Generic[NodeId]):
    node_id: NodeId
    parent_id: NodeId | None = None


class HierarchyArena(Generic[NodeId]):
    """
    Forest of nodes keyed by id.

    Guarantees:
        - Every parent pointer refers to a node in the arena.
        - No node is its own ancestor.
    """

    def __init__(self, nodes: Iterable[HierarchyNode[NodeId]] = ()):
        self._parents: dict[NodeId, NodeId | None] = {}
        pending = list(nodes)
        for node in pending:
            self._parents[node.node_id] = node.parent_id
        for node in pending:
            if node.parent_id is not None and node.parent_id not in self._parents:
                raise InvalidHierarchyError(
                    str(node.node_id), str(node.parent_id), "parent does not exist"
                )
            if self._reaches(node.parent_id, node.node_id):
                raise InvalidHierarchyError(
                    str(node.node_id), str(node.parent_id), "cycle detected"
                )

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._parents

    def __len__(self) -> int:
        return len(self._parents)

    def parent_of(self, node_id: NodeId) -> NodeId | None:
        return self._parents[node_id]

    def _reaches(self, start: NodeId | None, target: NodeId) -> bool:
        """True if walking parent pointers from ``start`` hits ``target``."""
        seen: set[NodeId] = set()
        current = start
        while current is not None:
            if current == target:
                return True
            if current in seen:
                return True
            seen.add(current)
            current = self._parents.get(current)
        return False

    def check_parent(self, node_id: NodeId, parent_id: NodeId | None) -> None:
        """
        Validate that ``node_id`` may hang under ``parent_id``.

        Raises:
            InvalidHierarchyError: parent unknown, self-parent, or the parent
                is a descendant of the node (would close a cycle).
        """
        if parent_id is None:
            return
        if parent_id not in self._parents:
            raise InvalidHierarchyError(str(node_id), str(parent_id), "parent does not exist")
        if parent_id == node_id:
            raise InvalidHierarchyError(str(node_id), str(parent_id), "node cannot be its own parent")
        if self._reaches(parent_id, node_id):
            raise InvalidHierarchyError(str(node_id), str(parent_id), "cycle detected")

    def add(self, node_id: NodeId, parent_id: NodeId | None = None) -> None:
        if node_id in self._parents:
            raise InvalidHierarchyError(str(node_id), str(parent_id), "node already exists")
        if parent_id is not None and parent_id not in self._parents:
            raise InvalidHierarchyError(str(node_id), str(parent_id), "parent does not exist")
        self._parents[node_id] = parent_id

    def move(self, node_id: NodeId, parent_id: NodeId | None) -> None:
        self.check_parent(node_id, parent_id)
        self._parents[node_id] = parent_id

    def remove(self, node_id: NodeId) -> None:
        if self.children(node_id):
            raise InvalidHierarchyError(str(node_id), None, "node has children")
        del self._parents[node_id]

    def children(self, node_id: NodeId) -> list[NodeId]:
        return [n for n, p in self._parents.items() if p == node_id]

    def descendants(self, node_id: NodeId) -> list[NodeId]:
        """All nodes below ``node_id``, breadth-first."""
        result: list[NodeId] = []
        frontier = [node_id]
        while frontier:
            nxt: list[NodeId] = []
            for current in frontier:
                kids = self.children(current)
                result.extend(kids)
                nxt.extend(kids)
            frontier = nxt
        return result

    def ancestors(self, node_id: NodeId) -> list[NodeId]:
        """Parent chain from nearest to root."""
        chain: list[NodeId] = []
        current = self._parents.get(node_id)
        while current is not None:
            chain.append(current)
            current = self._parents.get(current)
        return chain

    def roots(self) -> list[NodeId]:
        return [n for n, p in self._parents.items() if p is None]
