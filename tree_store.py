"""
In-memory keyed container for budget nodes.

The store performs no validation; allocation rules live in allocation.py
and structural rules in lifecycle.py.
"""

import copy
import logging
from typing import Dict, Iterable, Iterator, List, Optional

from budget_models import BudgetNode
from exceptions import NotFound

logger = logging.getLogger(__name__)


class TreeStore:
    """
    Keyed arena of BudgetNode objects.

    Iteration order is insertion order, which keeps all() stable within a
    session. A single logical owner is assumed.
    """

    def __init__(self, nodes: Optional[Iterable[BudgetNode]] = None):
        self._nodes: Dict[str, BudgetNode] = {}
        for node in nodes or []:
            self.upsert(node)

    def get(self, node_id: str) -> BudgetNode:
        """
        Get a node by id.

        Raises:
            NotFound: If no node has the given id
        """
        try:
            return self._nodes[node_id]
        except KeyError:
            logger.error(f"Lookup of unknown node '{node_id}'")
            raise NotFound(f"Node '{node_id}' does not exist", details={"node_id": node_id}) from None

    def find(self, node_id: Optional[str]) -> Optional[BudgetNode]:
        """Return the node with the given id, or None."""
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def all(self) -> List[BudgetNode]:
        return list(self._nodes.values())

    def ids(self) -> List[str]:
        return list(self._nodes)

    def upsert(self, node: BudgetNode) -> None:
        """Insert a node or replace the node with the same id."""
        self._nodes[node.id] = node

    def remove_many(self, node_ids: Iterable[str]) -> int:
        """
        Remove every listed node that exists.

        Returns:
            Number of nodes removed
        """
        removed = 0
        for node_id in node_ids:
            if self._nodes.pop(node_id, None) is not None:
                removed += 1
        return removed

    def children(self, node_id: str) -> List[BudgetNode]:
        """Return the existing children of a node in child_ids order."""
        node = self.get(node_id)
        return [self._nodes[child_id] for child_id in node.child_ids if child_id in self._nodes]

    def parent_ids_of(self, node_id: str) -> List[str]:
        """
        Ids of every node listing node_id as a child.

        Categories have one such parent; the budget root has one per bank.
        """
        return [node.id for node in self._nodes.values() if node_id in node.child_ids]

    def descendant_ids(self, node_id: str) -> List[str]:
        """
        Collect every id strictly below a node, depth-first pre-order.

        Ids already visited are skipped, so a corrupted tree with a cycle
        still terminates.
        """
        root = self.get(node_id)
        descendants: List[str] = []
        seen = {node_id}
        stack = list(reversed(root.child_ids))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            node = self._nodes.get(current)
            if node is None:
                continue
            descendants.append(current)
            stack.extend(reversed(node.child_ids))
        return descendants

    def ancestor_ids(self, node_id: str) -> List[str]:
        """Return ids from the top-most ancestor down to the direct parent."""
        node = self.get(node_id)
        ancestors: List[str] = []
        seen = {node_id}
        parent = self._nodes.get(node.parent_id) if node.parent_id else None
        while parent is not None and parent.id not in seen:
            ancestors.append(parent.id)
            seen.add(parent.id)
            parent = self._nodes.get(parent.parent_id) if parent.parent_id else None
        ancestors.reverse()
        return ancestors

    def copy(self) -> "TreeStore":
        """Return a deep snapshot that can be mutated independently."""
        return TreeStore(copy.deepcopy(list(self._nodes.values())))

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[BudgetNode]:
        return iter(list(self._nodes.values()))

    def __repr__(self) -> str:
        return f"<TreeStore(nodes={len(self._nodes)})>"


# The lifecycle API speaks of "trees"; a tree is a store snapshot.
BudgetTree = TreeStore
