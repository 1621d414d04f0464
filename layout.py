"""
Layout model for the budget canvas.

Pure functions mapping the tree (plus explicit view values such as the
screen width or zoom scale) to canvas coordinates. Nothing here mutates
the tree; callers apply returned positions through lifecycle.move_node.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from budget_models import KIND_CONFIG, TOTAL_NODE_ID, BlockSize, BudgetNode, NodeKind, Position
from config_manager import get_section
from tree_store import BudgetTree

logger = logging.getLogger(__name__)

PRIMARY_BANK_POSITION = Position(60, 30)
FIRST_LINKED_BANK_X = 260
BANK_ROW_Y = 30
TOTAL_ROW_Y = 230


def block_size(kind: Union[NodeKind, str]) -> BlockSize:
    """Fixed block size for a node kind."""
    return KIND_CONFIG[NodeKind(kind)].size


def block_center(node: BudgetNode, position: Optional[Position] = None) -> Position:
    """Visual centre of a block, optionally at an overridden position."""
    position = position or node.position
    size = block_size(node.kind)
    return Position(position.x + size.width / 2, position.y + size.height / 2)


def center_offset(
    screen_width: float,
    nodes: Iterable[BudgetNode],
    viewport_height: Optional[float] = None,
    scale: float = 1.0,
    config: Optional[Mapping[str, Any]] = None
) -> Position:
    """
    Canvas translation that puts the budget root's centre at the viewport centre.

    Args:
        screen_width: Viewport width
        nodes: Nodes on the canvas
        viewport_height: Viewport height (defaults to layout.viewport_height)
        scale: Current zoom scale; the block centre is scaled before offsetting
        config: Optional configuration dictionary

    Returns:
        Translation to apply to the canvas
    """
    settings = get_section(config, "layout")
    if viewport_height is None:
        viewport_height = settings["viewport_height"]

    total = next((node for node in nodes if node.id == TOTAL_NODE_ID), None)
    if total is not None:
        position = total.position
    else:
        default = settings["default_total_position"]
        position = Position(default["x"], default["y"])
        logger.debug("Budget root missing; centring on default position")

    size = block_size(NodeKind.BUDGET)
    center_x = (position.x + size.width / 2) * scale
    center_y = (position.y + size.height / 2) * scale

    return Position(screen_width / 2 - center_x, viewport_height / 2 - center_y)


def focus_position(
    node: BudgetNode,
    screen_width: float,
    viewport_height: Optional[float] = None,
    config: Optional[Mapping[str, Any]] = None
) -> Position:
    """Canvas translation that brings a node's centre to the viewport centre."""
    if viewport_height is None:
        viewport_height = get_section(config, "layout")["viewport_height"]
    center = block_center(node)
    return Position(screen_width / 2 - center.x, viewport_height / 2 - center.y)


def is_descendant_of(
    tree: BudgetTree,
    ancestor: BudgetNode,
    target_id: str,
    _visited: Optional[set] = None
) -> bool:
    """Return True if target_id appears anywhere below ancestor."""
    if target_id in ancestor.child_ids:
        return True

    visited = _visited if _visited is not None else set()
    visited.add(ancestor.id)
    for child_id in ancestor.child_ids:
        child = tree.find(child_id)
        if child is None or child.id in visited:
            continue
        if is_descendant_of(tree, child, target_id, visited):
            return True
    return False


def focus_visibility(
    tree: BudgetTree,
    node_id: str,
    focused_id: str,
    show_all_descendants: bool
) -> bool:
    """
    Whether a node is shown while focus mode is on.

    Visible: the focused node, its direct parent(s), and either its direct
    children or, with show_all_descendants, everything below it.
    """
    focused = tree.find(focused_id)
    if focused is None:
        return False

    if node_id == focused_id or node_id in tree.parent_ids_of(focused_id):
        return True

    if show_all_descendants:
        return node_id in tree.descendant_ids(focused_id)
    return node_id in focused.child_ids


def clamp_zoom(scale: float, config: Optional[Mapping[str, Any]] = None) -> float:
    """Clamp a zoom scale into the configured bounds."""
    zoom = get_section(config, "zoom")
    return min(max(scale, zoom["min_scale"]), zoom["max_scale"])


def apply_zoom(current: float, delta: float, config: Optional[Mapping[str, Any]] = None) -> float:
    """
    Apply one zoom step; out-of-range requests clamp instead of failing.

    The result is rounded to two places so repeated 0.1 steps land on the
    bounds exactly.
    """
    return clamp_zoom(round(current + delta, 2), config)


def new_child_position(
    tree: BudgetTree,
    parent_id: str,
    config: Optional[Mapping[str, Any]] = None
) -> Position:
    """
    Default slot for a child about to be appended under parent_id.

    The slot sits below the parent, at the place the new child will occupy
    once all siblings are centred around the parent.
    """
    settings = get_section(config, "layout")
    parent = tree.find(parent_id)
    if parent is None:
        return Position(50, 50)

    child_index = len(parent.child_ids)
    total_children = child_index + 1
    offset_from_center = child_index - (total_children - 1) / 2
    return Position(
        parent.position.x + offset_from_center * settings["child_horizontal_spacing"],
        parent.position.y + settings["child_vertical_offset"],
    )


def arrange_children(
    tree: BudgetTree,
    parent_id: str,
    config: Optional[Mapping[str, Any]] = None
) -> Dict[str, Position]:
    """
    Evenly spaced positions for all children of a parent, centred below it.

    Returns an empty mapping for banks, whose only child is the budget root.
    """
    settings = get_section(config, "layout")
    parent = tree.get(parent_id)
    if parent.kind is NodeKind.BANK:
        return {}

    siblings = tree.children(parent_id)
    total_children = len(siblings)
    updates = {}
    for index, sibling in enumerate(siblings):
        offset_from_center = index - (total_children - 1) / 2
        updates[sibling.id] = Position(
            parent.position.x + offset_from_center * settings["child_horizontal_spacing"],
            parent.position.y + settings["child_vertical_offset"],
        )
    return updates


def bank_row_positions(count: int, config: Optional[Mapping[str, Any]] = None) -> List[Position]:
    """
    Positions for a row of banks: the primary wallet first, linked banks after it.
    """
    spacing = get_section(config, "layout")["bank_horizontal_spacing"]
    if count <= 0:
        return []
    return [PRIMARY_BANK_POSITION] + [
        Position(FIRST_LINKED_BANK_X + index * spacing, BANK_ROW_Y)
        for index in range(count - 1)
    ]


def total_position(bank_positions: List[Position]) -> Position:
    """Budget root position, centred between the first and last bank."""
    if not bank_positions:
        return Position(PRIMARY_BANK_POSITION.x, TOTAL_ROW_Y)
    center_x = (bank_positions[0].x + bank_positions[-1].x) / 2
    return Position(center_x, TOTAL_ROW_Y)
