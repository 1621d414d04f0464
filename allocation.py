"""
Allocation engine for the budget tree.

Validates user input for category creation and edits, enforces the
conservation rule (children may never be allocated more than their
parent's unspent allocation), and derives the presentation amounts shown
on each block.
"""

import logging
import math
from typing import Any, Iterable, List, Mapping, Optional, Union

from budget_models import BudgetNode, BudgetSummary, NodeKind, Result
from config_manager import get_section
from exceptions import InsufficientParentBudget, ValidationError, ValidationReason
from tree_store import BudgetTree

logger = logging.getLogger(__name__)


def round_amount(amount: float, config: Optional[Mapping[str, Any]] = None) -> float:
    """Round a money amount to the configured number of decimal places."""
    places = get_section(config, "validation")["amount_decimal_places"]
    return round(amount, places)


def validate_category(
    name: Optional[str],
    allocated_amount_text: Union[str, float, None],
    config: Optional[Mapping[str, Any]] = None
) -> Result:
    """
    Validate category input before any mutation.

    Args:
        name: Proposed display name
        allocated_amount_text: Proposed allocation as typed by the user
            (numbers are accepted and formatted first)
        config: Optional configuration dictionary

    Returns:
        Result whose value is the parsed amount, or whose error is a
        ValidationError describing the first failed check
    """
    name_result = validate_name(name, config)
    if not name_result.ok:
        return name_result
    return validate_amount(allocated_amount_text, config)


def validate_name(name: Optional[str], config: Optional[Mapping[str, Any]] = None) -> Result:
    """Validate a display name; the result value is the trimmed name."""
    rules = get_section(config, "validation")

    if not name or not name.strip():
        return _invalid("Category name is required", ValidationReason.EMPTY_NAME)

    name = name.strip()
    if len(name) < rules["min_name_length"]:
        return _invalid(
            f"Name must be at least {rules['min_name_length']} character",
            ValidationReason.NAME_TOO_SHORT
        )
    if len(name) > rules["max_name_length"]:
        return _invalid(
            f"Name must be less than {rules['max_name_length']} characters",
            ValidationReason.NAME_TOO_LONG
        )
    return Result.success(name)


def validate_amount(
    allocated_amount_text: Union[str, float, None],
    config: Optional[Mapping[str, Any]] = None
) -> Result:
    """Validate an allocation amount; the result value is the parsed float."""
    rules = get_section(config, "validation")

    text = "" if allocated_amount_text is None else str(allocated_amount_text).strip()
    if not text:
        return _invalid("Budget amount is required", ValidationReason.EMPTY_AMOUNT)

    try:
        amount = float(text.replace(",", ""))
    except ValueError:
        return _invalid("Budget must be a valid number", ValidationReason.NOT_A_NUMBER)
    if math.isnan(amount):
        return _invalid("Budget must be a valid number", ValidationReason.NOT_A_NUMBER)

    if amount < rules["min_budget"]:
        return _invalid(
            f"Budget must be at least ${rules['min_budget']:,.2f}",
            ValidationReason.BELOW_MINIMUM
        )
    if amount > rules["max_budget"]:
        return _invalid(
            f"Budget cannot exceed ${rules['max_budget']:,.0f}",
            ValidationReason.ABOVE_MAXIMUM
        )

    return Result.success(amount)


def _invalid(message: str, reason: ValidationReason) -> Result:
    logger.debug(f"Validation failed ({reason.value}): {message}")
    return Result.failure(ValidationError(message, reason=reason))


def children_allocated(
    node: BudgetNode,
    tree: BudgetTree,
    exclude_id: Optional[str] = None
) -> float:
    """Sum the allocations of a node's children, optionally skipping one child."""
    return sum(
        child.allocated_amount
        for child in tree.children(node.id)
        if child.id != exclude_id
    )


def available_for_children(
    node: BudgetNode,
    tree: BudgetTree,
    exclude_id: Optional[str] = None,
    config: Optional[Mapping[str, Any]] = None
) -> float:
    """Money a node can still hand out to (new or resized) children."""
    available = node.allocated_amount - node.spent_amount - children_allocated(node, tree, exclude_id)
    return round_amount(available, config)


def validate_child_allocation(
    tree: BudgetTree,
    parent_id: str,
    proposed_amount: float,
    exclude_id: Optional[str] = None,
    config: Optional[Mapping[str, Any]] = None
) -> Result:
    """
    Check that a parent can fund a child allocation.

    Args:
        tree: Current tree snapshot
        parent_id: Id of the funding parent
        proposed_amount: Allocation requested for the child
        exclude_id: Existing child whose current allocation is ignored
            (used when resizing that child)
        config: Optional configuration dictionary

    Returns:
        Result whose value is the available amount, or an
        InsufficientParentBudget error carrying it

    Raises:
        NotFound: If the parent does not exist
    """
    parent = tree.get(parent_id)
    available = available_for_children(parent, tree, exclude_id, config)

    if round_amount(proposed_amount, config) > available:
        logger.info(
            f"Allocation of ${proposed_amount:,.2f} under '{parent.name}' rejected; "
            f"${available:,.2f} available"
        )
        return Result.failure(InsufficientParentBudget(
            f"Only ${available:,.2f} available from parent budget",
            available=available,
            parent_id=parent_id,
        ))

    return Result.success(available)


def total_category_spent(tree: BudgetTree) -> float:
    """Total spending across every category in the tree."""
    return sum(node.spent_amount for node in tree if node.kind is NodeKind.CATEGORY)


def compute_display_amount(node: BudgetNode, tree: BudgetTree) -> float:
    """
    Presentation-ready remaining/unallocated amount for a block.

    The budget root shows unallocated cash: its allocation minus every
    category's spending, minus what its direct children still hold
    (allocation less their own spending), so money already withdrawn is
    not counted twice. A category with children shows what it has not
    spent or passed down; a leaf shows allocation less spending; a bank
    shows its balance.
    """
    if node.kind is NodeKind.BUDGET:
        remaining_cash = node.allocated_amount - total_category_spent(tree)
        earmarked = sum(
            child.allocated_amount - child.spent_amount
            for child in tree.children(node.id)
        )
        return round_amount(remaining_cash - earmarked)
    if node.kind is NodeKind.CATEGORY:
        if node.is_leaf:
            return round_amount(node.allocated_amount - node.spent_amount)
        return round_amount(node.allocated_amount - node.spent_amount - children_allocated(node, tree))
    if node.kind is NodeKind.BANK:
        return node.allocated_amount
    raise ValueError(f"Unhandled node kind: {node.kind}")


def compute_display_denominator(node: BudgetNode, tree: BudgetTree) -> float:
    """The "of $Y" figure: compute_display_amount without the children's share."""
    if node.kind is NodeKind.BUDGET:
        return round_amount(node.allocated_amount - total_category_spent(tree))
    if node.kind is NodeKind.CATEGORY:
        return round_amount(node.allocated_amount - node.spent_amount)
    if node.kind is NodeKind.BANK:
        return node.allocated_amount
    raise ValueError(f"Unhandled node kind: {node.kind}")


def subtree_remaining(tree: BudgetTree, node_id: str) -> float:
    """
    Unspent, unassigned money held by a node and everything below it.

    This is the figure shown when confirming a delete.
    """
    total = 0.0
    for current_id in [node_id] + tree.descendant_ids(node_id):
        current = tree.get(current_id)
        total += current.allocated_amount - current.spent_amount - children_allocated(current, tree)
    return total


def calculate_total_from_banks(nodes: Iterable[BudgetNode]) -> float:
    """Sum of all bank balances."""
    return sum(node.allocated_amount for node in nodes if node.kind is NodeKind.BANK)


def summarize(nodes: Iterable[BudgetNode], total_balance: float) -> BudgetSummary:
    """
    Calculate budget summary statistics.

    Args:
        nodes: Nodes to aggregate (banks are counted separately)
        total_balance: Balance supplied by the balance collaborator

    Returns:
        BudgetSummary
    """
    nodes = list(nodes)
    non_bank = [node for node in nodes if node.kind is not NodeKind.BANK]
    banks = [node for node in nodes if node.kind is NodeKind.BANK]

    total_budget = sum(node.allocated_amount for node in non_bank)
    total_spent = sum(node.spent_amount for node in non_bank)
    percentage_used = (total_spent / total_budget * 100) if total_budget > 0 else 0.0

    return BudgetSummary(
        total_budget=total_budget,
        total_spent=total_spent,
        available=total_balance - total_spent,
        percentage_used=percentage_used,
        category_count=sum(1 for node in non_bank if node.kind is NodeKind.CATEGORY),
        bank_count=len(banks),
        total_bank_balance=calculate_total_from_banks(banks),
    )


def find_conservation_violations(
    tree: BudgetTree,
    config: Optional[Mapping[str, Any]] = None
) -> List[str]:
    """
    Ids of non-bank nodes whose children hold more than the node's unspent allocation.

    Banks are skipped: their only child is the budget root, which is funded
    by all banks together.
    """
    violations = []
    for node in tree:
        if node.kind is NodeKind.BANK or node.is_leaf:
            continue
        if available_for_children(node, tree, config=config) < 0:
            violations.append(node.id)
    return violations
