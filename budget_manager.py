"""
Budget manager: the single owner of the current tree and view state.

Presentation gestures (drag, edge/node selection, zoom, add child, edit,
delete, transactions) are translated one-to-one into lifecycle operations.
After each successful mutation the structure is checked, the conservation
audit is re-run, and the tree is handed to the persistence collaborator.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from allocation import (
    calculate_total_from_banks,
    compute_display_amount,
    compute_display_denominator,
    find_conservation_violations,
    summarize,
)
from budget_models import DEFAULT_COLOR, DEFAULT_ICON, BudgetNode, BudgetSummary, Position, Result, TransactionType
from config_manager import get_section
from connections import Edge, route_connections
from database_ops import DatabaseManager
from layout import arrange_children, center_offset, focus_position
from lifecycle import (
    DeletePreview,
    apply_positions,
    build_initial_tree,
    check_structure,
    create_category,
    delete_category,
    move_node,
    post_transaction,
    preview_delete,
    remove_transaction,
    update_category,
)
from tree_store import BudgetTree
from view_state import ViewState

# Configure logging
logger = logging.getLogger(__name__)


class BudgetManager:
    """
    Manages the budget tree for one user session.

    Holds the current tree snapshot and the view state, applies gestures
    through the lifecycle API, and persists after each mutation when a
    DatabaseManager is attached.
    """

    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        config: Optional[Mapping[str, Any]] = None,
        tree: Optional[BudgetTree] = None
    ):
        """
        Initialize the budget manager.

        Args:
            db_manager: Optional persistence collaborator
            config: Optional configuration dictionary
            tree: Optional starting tree (otherwise empty until load())
        """
        self.db_manager = db_manager
        self.config = config
        self.tree = tree if tree is not None else BudgetTree()
        self.view = ViewState.initial(config)
        logger.info("Budget manager initialized")

    # ------------------------------------------------------------------
    # Loading and committing
    # ------------------------------------------------------------------

    def load(self) -> BudgetTree:
        """
        Load the tree from the persistence collaborator.

        Returns:
            The loaded tree (empty if nothing is stored)
        """
        if self.db_manager is None:
            logger.debug("No database manager attached; keeping in-memory tree")
            return self.tree

        tree = BudgetTree(self.db_manager.load_tree())
        if len(tree):
            check_structure(tree)
            self._audit(tree)
        self.tree = tree
        self.view = ViewState.initial(self.config)
        logger.info(f"Loaded budget tree with {len(tree)} nodes")
        return tree

    def initialize(
        self,
        banks: Iterable[Mapping[str, Any]],
        categories: Optional[Iterable[Mapping[str, Any]]] = None
    ) -> BudgetTree:
        """Replace the current tree with a freshly built one and persist it."""
        self._commit(build_initial_tree(banks, categories, self.config))
        return self.tree

    def _audit(self, tree: BudgetTree) -> List[str]:
        violations = find_conservation_violations(tree, self.config)
        if violations:
            logger.error(f"Conservation violated for nodes: {', '.join(violations)}")
        return violations

    def _commit(self, tree: BudgetTree) -> None:
        check_structure(tree)
        self._audit(tree)
        self.tree = tree
        if self.view.focused_id is not None and self.view.focused_id not in tree:
            self.view = self.view.reset_focus()
        if self.db_manager is not None:
            self.db_manager.save_tree(self.tree.all())

    def _arranged(self, tree: BudgetTree, parent_id: Optional[str]) -> BudgetTree:
        if not parent_id or parent_id not in tree:
            return tree
        if not get_section(self.config, "layout")["auto_arrange"]:
            return tree
        return apply_positions(tree, arrange_children(tree, parent_id, self.config))

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------

    def drag(self, node_id: str, position: Union[Position, Tuple[float, float]]) -> BudgetTree:
        """Move a block to a new canvas position."""
        self._commit(move_node(self.tree, node_id, position))
        return self.tree

    def select_edge(self, parent_id: str) -> ViewState:
        """Focus the parent of a tapped connection line."""
        self.view = self.view.select_edge(self.tree, parent_id)
        return self.view

    def select_node(self, node_id: str, show_all_descendants: bool = False) -> ViewState:
        self.tree.get(node_id)
        self.view = self.view.focus(node_id, show_all_descendants)
        return self.view

    def reset_focus(self) -> ViewState:
        self.view = self.view.reset_focus()
        return self.view

    def zoom(self, delta: float) -> ViewState:
        """Zoom by delta; the scale is clamped to the configured bounds."""
        self.view = self.view.zoom(delta, self.config)
        return self.view

    def zoom_in(self) -> ViewState:
        self.view = self.view.zoom_in(self.config)
        return self.view

    def zoom_out(self) -> ViewState:
        self.view = self.view.zoom_out(self.config)
        return self.view

    def add_child(
        self,
        parent_id: str,
        name: str,
        allocated_amount: Union[str, float],
        icon: str = DEFAULT_ICON,
        color: str = DEFAULT_COLOR
    ) -> Result:
        """
        Create a category under parent_id.

        Returns:
            Result with a CreateOutcome whose tree is the committed tree
        """
        result = create_category(
            self.tree, name, allocated_amount, icon, color, parent_id, config=self.config
        )
        if not result.ok:
            return result

        tree = self._arranged(result.value.tree, parent_id)
        self._commit(tree)
        return Result.success(replace(result.value, tree=tree, node=tree.get(result.value.node.id)))

    def edit_node(
        self,
        node_id: str,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        allocated_amount: Union[str, float, None] = None
    ) -> Result:
        """Edit a node's name, icon, colour, or allocation."""
        result = update_category(
            self.tree, node_id, name=name, icon=icon, color=color,
            allocated_amount=allocated_amount, config=self.config
        )
        if result.ok:
            self._commit(result.value)
        return result

    def preview_delete(self, node_id: str) -> DeletePreview:
        return preview_delete(self.tree, node_id, self.config)

    def delete_node(self, node_id: str) -> Result:
        """
        Delete a node and its subtree.

        Returns:
            Result with a DeleteOutcome; returned_amount is the money the
            caller should credit back to the former parent
        """
        result = delete_category(self.tree, node_id, self.config)
        if not result.ok:
            return result

        tree = self._arranged(result.value.tree, result.value.parent_id)
        self._commit(tree)
        return Result.success(replace(result.value, tree=tree))

    def post_transaction(
        self,
        category_id: str,
        amount: Union[str, float],
        description: str = "",
        date: Optional[datetime] = None,
        type: Union[TransactionType, str] = TransactionType.EXPENSE,
        merchant: Optional[str] = None
    ) -> Result:
        result = post_transaction(
            self.tree, category_id, amount, description, date, type, merchant, self.config
        )
        if result.ok:
            self._commit(result.value.tree)
        return result

    def remove_transaction(self, category_id: str, transaction_id: str) -> Result:
        result = remove_transaction(self.tree, category_id, transaction_id, self.config)
        if result.ok:
            self._commit(result.value)
        return result

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def summary(self, total_balance: Optional[float] = None) -> BudgetSummary:
        """
        Summary statistics for the header.

        Args:
            total_balance: Balance from the balance collaborator; defaults
                to the sum of bank balances in the tree
        """
        if total_balance is None:
            total_balance = calculate_total_from_banks(self.tree)
        return summarize(self.tree, total_balance)

    def display_amounts(self) -> Dict[str, Tuple[float, float]]:
        """(display amount, denominator) per node id."""
        return {
            node.id: (compute_display_amount(node, self.tree), compute_display_denominator(node, self.tree))
            for node in self.tree
        }

    def visible_nodes(self) -> List[BudgetNode]:
        return [node for node in self.tree if self.view.is_visible(self.tree, node.id)]

    def edges(self, positions: Optional[Mapping[str, Position]] = None) -> List[Edge]:
        return route_connections(self.tree, self.view.focused_id, positions, self.config)

    def center_offset(self, screen_width: float) -> Position:
        """Canvas translation centring the budget root at the current zoom."""
        return center_offset(screen_width, self.tree, scale=self.view.scale, config=self.config)

    def focus_offset(self, screen_width: float) -> Optional[Position]:
        """Canvas translation centring the focused node, or None when unfocused."""
        if self.view.focused_id is None:
            return None
        return focus_position(self.tree.get(self.view.focused_id), screen_width, config=self.config)
