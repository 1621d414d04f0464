"""
Connection routing between parent and child blocks.

Produces framework-independent drawing primitives (segments and arrow
anchors) for every parent/child pair. The output is fully recomputable from
the tree, the focused id, and any in-flight drag positions.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from budget_models import BudgetNode, NodeKind, Position
from config_manager import get_section
from layout import block_size
from tree_store import BudgetTree

logger = logging.getLogger(__name__)

VERTICAL = "vertical"
HORIZONTAL = "horizontal"


@dataclass(frozen=True)
class Segment:
    """A straight line piece of a connection."""
    start: Position
    end: Position
    orientation: str

    @property
    def length(self) -> float:
        return abs(self.end.x - self.start.x) + abs(self.end.y - self.start.y)


@dataclass(frozen=True)
class Arrow:
    """Arrowhead glyph whose tip touches the child's top-centre."""
    tip: Position


@dataclass
class Edge:
    """
    Drawable connection from a parent to one child.

    Attributes:
        parent_id: Parent node id
        child_id: Child node id
        segments: Vertical drop, optional horizontal run, vertical rise into the child
        arrow: Arrowhead at the child's top-centre
        color: Parent colour when the parent is focused, neutral grey otherwise
        show_all_descendants: Selecting this edge focuses the parent with its
            full descendant set (edges leaving a bank)
    """
    parent_id: str
    child_id: str
    segments: List[Segment] = field(default_factory=list)
    arrow: Optional[Arrow] = None
    color: str = "#6B7280"
    show_all_descendants: bool = False


def _position(node: BudgetNode, positions: Optional[Mapping[str, Position]]) -> Position:
    if positions and node.id in positions:
        return positions[node.id]
    return node.position


def edge_in_focus(tree: BudgetTree, parent: BudgetNode, focused_id: str) -> bool:
    """Whether edges leaving parent are drawn while focused_id is focused."""
    if parent.id == focused_id or focused_id in parent.child_ids:
        return True
    focused = tree.find(focused_id)
    return focused is not None and parent.id == focused.parent_id


def route_edge(
    parent: BudgetNode,
    child: BudgetNode,
    positions: Optional[Mapping[str, Position]] = None,
    focused_id: Optional[str] = None,
    config: Optional[Mapping[str, Any]] = None
) -> Edge:
    """Build the segments and arrow for one parent/child pair."""
    settings = get_section(config, "connections")
    gap = settings["gap"]

    parent_pos = _position(parent, positions)
    child_pos = _position(child, positions)
    parent_size = block_size(parent.kind)
    child_size = block_size(child.kind)

    start = Position(parent_pos.x + parent_size.width / 2, parent_pos.y + parent_size.height)
    end = Position(child_pos.x + child_size.width / 2, child_pos.y)
    mid_y = start.y + gap

    is_bank_to_budget = parent.kind is NodeKind.BANK and child.kind is NodeKind.BUDGET
    needs_horizontal = start.x != end.x or len(parent.child_ids) > 1 or is_bank_to_budget

    segments = [Segment(start, Position(start.x, mid_y), VERTICAL)]
    if needs_horizontal:
        segments.append(Segment(Position(start.x, mid_y), Position(end.x, mid_y), HORIZONTAL))
    segments.append(Segment(Position(end.x, mid_y), end, VERTICAL))

    return Edge(
        parent_id=parent.id,
        child_id=child.id,
        segments=segments,
        arrow=Arrow(tip=end),
        color=parent.color if focused_id == parent.id else settings["line_color"],
        show_all_descendants=parent.kind is NodeKind.BANK,
    )


def route_connections(
    tree: BudgetTree,
    focused_id: Optional[str] = None,
    positions: Optional[Mapping[str, Position]] = None,
    config: Optional[Mapping[str, Any]] = None
) -> List[Edge]:
    """
    Route every parent/child connection in the tree.

    Args:
        tree: Current tree snapshot
        focused_id: Focused node id, or None when focus mode is off
        positions: Positions overriding the stored ones (drag in progress)
        config: Optional configuration dictionary

    Returns:
        Edges in tree order, parents first, children in child_ids order
    """
    edges = []
    for parent in tree:
        if parent.is_leaf:
            continue
        if focused_id is not None and not edge_in_focus(tree, parent, focused_id):
            continue
        for child_id in parent.child_ids:
            child = tree.find(child_id)
            if child is None:
                logger.warning(f"Skipping edge to missing child '{child_id}' of '{parent.id}'")
                continue
            edges.append(route_edge(parent, child, positions, focused_id, config))

    logger.debug(f"Routed {len(edges)} connection(s) (focus={focused_id})")
    return edges
