"""
View state for the budget canvas: focus mode and zoom.

Focus mode has two states. Unfocused is the initial state; selecting a node
or an edge moves to Focused(node_id, show_all_descendants); selecting
another node moves directly to the new Focused state; reset returns to
Unfocused. Values are immutable and every transition returns a new one.
"""

import enum
import logging
from dataclasses import dataclass, replace
from typing import Any, List, Mapping, Optional

from budget_models import NodeKind
from config_manager import get_section
from layout import apply_zoom, clamp_zoom, focus_visibility
from tree_store import BudgetTree

logger = logging.getLogger(__name__)


class FocusMode(enum.Enum):
    UNFOCUSED = "unfocused"
    FOCUSED = "focused"


@dataclass(frozen=True)
class ViewState:
    """
    Focus and zoom values passed explicitly to layout and routing.

    Attributes:
        focused_id: Focused node id (None when unfocused)
        show_all_descendants: Whether focus shows the full subtree
        scale: Zoom scale
    """
    focused_id: Optional[str] = None
    show_all_descendants: bool = False
    scale: float = 0.5

    @classmethod
    def initial(cls, config: Optional[Mapping[str, Any]] = None) -> "ViewState":
        return cls(scale=get_section(config, "zoom")["default_scale"])

    @property
    def mode(self) -> FocusMode:
        return FocusMode.UNFOCUSED if self.focused_id is None else FocusMode.FOCUSED

    def focus(self, node_id: str, show_all_descendants: bool = False) -> "ViewState":
        logger.debug(f"Focus on {node_id} (show_all_descendants={show_all_descendants})")
        return replace(self, focused_id=node_id, show_all_descendants=show_all_descendants)

    def select_edge(self, tree: BudgetTree, parent_id: str) -> "ViewState":
        """Focus an edge's parent; edges leaving a bank show the full subtree."""
        parent = tree.get(parent_id)
        return self.focus(parent_id, show_all_descendants=parent.kind is NodeKind.BANK)

    def reset_focus(self) -> "ViewState":
        if self.focused_id is not None:
            logger.debug(f"Focus reset from {self.focused_id}")
        return replace(self, focused_id=None, show_all_descendants=False)

    def zoom(self, delta: float, config: Optional[Mapping[str, Any]] = None) -> "ViewState":
        scale = apply_zoom(self.scale, delta, config)
        logger.debug(f"Zoom {self.scale:.2f} -> {scale:.2f}")
        return replace(self, scale=scale)

    def zoom_in(self, config: Optional[Mapping[str, Any]] = None) -> "ViewState":
        return self.zoom(get_section(config, "zoom")["step"], config)

    def zoom_out(self, config: Optional[Mapping[str, Any]] = None) -> "ViewState":
        return self.zoom(-get_section(config, "zoom")["step"], config)

    def with_scale(self, scale: float, config: Optional[Mapping[str, Any]] = None) -> "ViewState":
        return replace(self, scale=clamp_zoom(scale, config))

    def is_visible(self, tree: BudgetTree, node_id: str) -> bool:
        """Every node is visible when unfocused; otherwise apply the focus filter."""
        if self.focused_id is None:
            return True
        return focus_visibility(tree, node_id, self.focused_id, self.show_all_descendants)

    def visible_ids(self, tree: BudgetTree) -> List[str]:
        return [node.id for node in tree if self.is_visible(tree, node.id)]
