"""
Lifecycle operations for budget tree nodes.

Every operation takes a tree snapshot and returns a new one, leaving the
input untouched, so a failed call never applies a partial change.
Validation problems come back as Result failures for the caller to show
to the user unchanged. Missing ids (NotFound) and changes that would break
the tree's shape (StructuralViolation) are logged and raised.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from allocation import (
    available_for_children,
    children_allocated,
    round_amount,
    subtree_remaining,
    validate_amount,
    validate_category,
    validate_child_allocation,
    validate_name,
)
from budget_models import (
    DEFAULT_COLOR,
    DEFAULT_ICON,
    TOTAL_NODE_ID,
    BudgetNode,
    NodeKind,
    NodeTransaction,
    Position,
    Result,
    TransactionType,
)
from config_manager import get_section
from exceptions import (
    InsufficientParentBudget,
    NotFound,
    SpendingFloorViolation,
    StructuralViolation,
    ValidationError,
    ValidationReason,
)
from layout import arrange_children, bank_row_positions, new_child_position, total_position
from tree_store import BudgetTree

logger = logging.getLogger(__name__)

BANK_COLORS = ['#3B82F6', '#F59E0B', '#8B5CF6', '#EC4899', '#14B8A6']
PRIMARY_BANK_COLOR = '#10B981'
TOTAL_NODE_NAME = "Current Budget"
TOTAL_NODE_ICON = "cash"
TOTAL_NODE_COLOR = '#6366F1'


@dataclass
class CreateOutcome:
    """New tree plus the node that was created."""
    tree: BudgetTree
    node: BudgetNode


@dataclass
class DeleteOutcome:
    """
    Result of a cascading delete.

    Attributes:
        tree: Tree without the deleted subtree
        deleted_ids: The deleted root followed by its descendants
        parent_id: Former parent of the deleted root
        returned_amount: Unspent allocation of the deleted root
            (allocated - spent, never negative) for the caller to credit to
            the parent's unallocated pool
        subtree_remaining: Unspent, unassigned money across the whole
            deleted subtree
    """
    tree: BudgetTree
    deleted_ids: List[str]
    parent_id: Optional[str]
    returned_amount: float
    subtree_remaining: float


@dataclass
class DeletePreview:
    """What a delete would remove, for confirmation prompts."""
    node: BudgetNode
    descendants: List[BudgetNode] = field(default_factory=list)
    subtree_remaining: float = 0.0
    returned_amount: float = 0.0
    parent: Optional[BudgetNode] = None


@dataclass
class TransactionOutcome:
    """New tree plus the transaction that was posted."""
    tree: BudgetTree
    transaction: NodeTransaction


def generate_id() -> str:
    """Generate a new node or transaction id."""
    return uuid.uuid4().hex


def _structural_violation(message: str, **details: Any) -> StructuralViolation:
    logger.error(f"Structural violation: {message} {details}")
    return StructuralViolation(message, details=details)


def _returned_amount(node: BudgetNode, config: Optional[Mapping[str, Any]] = None) -> float:
    return round_amount(max(0.0, node.allocated_amount - node.spent_amount), config)


def create_category(
    tree: BudgetTree,
    name: str,
    allocated_amount: Union[str, float],
    icon: str = DEFAULT_ICON,
    color: str = DEFAULT_COLOR,
    parent_id: str = TOTAL_NODE_ID,
    position: Optional[Position] = None,
    config: Optional[Mapping[str, Any]] = None
) -> Result:
    """
    Create a category under a parent.

    Args:
        tree: Current tree snapshot
        name: Display name
        allocated_amount: Allocation (number or user-typed text)
        icon: Icon name
        color: Hex colour
        parent_id: Id of the funding parent
        position: Canvas position (defaults to the next child slot below the parent)
        config: Optional configuration dictionary

    Returns:
        Result with a CreateOutcome, or a ValidationError /
        InsufficientParentBudget failure
    """
    validation = validate_category(name, allocated_amount, config)
    if not validation.ok:
        return validation
    amount = validation.value

    parent = tree.get(parent_id)
    if not parent.config.can_add_children:
        raise _structural_violation(
            f"Categories cannot be added under a {parent.kind.value} node",
            parent_id=parent_id
        )

    allocation = validate_child_allocation(tree, parent_id, amount, config=config)
    if not allocation.ok:
        return allocation

    new_tree = tree.copy()
    node_id = generate_id()
    if node_id in new_tree:
        raise _structural_violation("Generated id already exists", node_id=node_id)

    node = BudgetNode(
        id=node_id,
        name=name.strip(),
        kind=NodeKind.CATEGORY,
        allocated_amount=amount,
        spent_amount=0.0,
        parent_id=parent_id,
        child_ids=[],
        position=position or new_child_position(tree, parent_id, config),
        icon=icon,
        color=color,
    )
    new_tree.upsert(node)
    new_tree.get(parent_id).child_ids.append(node_id)

    logger.info(f"Created category '{node.name}' (${amount:,.2f}) under '{parent.name}'")
    return Result.success(CreateOutcome(tree=new_tree, node=node))


def update_category(
    tree: BudgetTree,
    node_id: str,
    name: Optional[str] = None,
    icon: Optional[str] = None,
    color: Optional[str] = None,
    allocated_amount: Union[str, float, None] = None,
    config: Optional[Mapping[str, Any]] = None
) -> Result:
    """
    Edit a node's name, icon, colour, or allocation.

    A new allocation must fit into the parent's pool (ignoring the node's
    current allocation) and must still cover what the node's own children
    hold.

    Returns:
        Result with the new tree, or a validation failure
    """
    node = tree.get(node_id)

    new_name = node.name
    if name is not None:
        name_result = validate_name(name, config)
        if not name_result.ok:
            return name_result
        new_name = name_result.value

    new_amount = node.allocated_amount
    if allocated_amount is not None:
        amount_result = validate_amount(allocated_amount, config)
        if not amount_result.ok:
            return amount_result
        new_amount = amount_result.value

        if node.kind is NodeKind.CATEGORY and node.parent_id:
            allocation = validate_child_allocation(
                tree, node.parent_id, new_amount, exclude_id=node_id, config=config
            )
            if not allocation.ok:
                return allocation

        if node.kind is not NodeKind.BANK:
            held_by_children = round_amount(children_allocated(node, tree), config)
            if held_by_children > round_amount(new_amount - node.spent_amount, config):
                return Result.failure(ValidationError(
                    f"Sub-categories already hold ${held_by_children:,.2f}",
                    reason=ValidationReason.BELOW_CHILD_ALLOCATIONS,
                    details={"node_id": node_id},
                ))

    new_tree = tree.copy()
    updated = new_tree.get(node_id)
    updated.name = new_name
    updated.allocated_amount = new_amount
    if icon is not None:
        updated.icon = icon
    if color is not None:
        updated.color = color

    logger.info(f"Updated node '{node_id}' ({new_name}, ${new_amount:,.2f})")
    return Result.success(new_tree)


def preview_delete(tree: BudgetTree, node_id: str, config: Optional[Mapping[str, Any]] = None) -> DeletePreview:
    """Describe what delete_category would remove without changing anything."""
    node = tree.get(node_id)
    return DeletePreview(
        node=node,
        descendants=[tree.get(descendant_id) for descendant_id in tree.descendant_ids(node_id)],
        subtree_remaining=round_amount(subtree_remaining(tree, node_id), config),
        returned_amount=_returned_amount(node, config),
        parent=tree.find(node.parent_id),
    )


def delete_category(tree: BudgetTree, node_id: str, config: Optional[Mapping[str, Any]] = None) -> Result:
    """
    Delete a node and all of its descendants.

    The parent's allocation is left as is; the deleted root's unspent
    remainder is reported in the outcome instead.

    Returns:
        Result with a DeleteOutcome

    Raises:
        NotFound: If node_id does not exist
        StructuralViolation: If the node kind cannot be deleted
    """
    node = tree.get(node_id)
    if not node.config.can_delete:
        raise _structural_violation(f"A {node.kind.value} node cannot be deleted", node_id=node_id)

    ids_to_delete = [node_id] + tree.descendant_ids(node_id)
    remaining = round_amount(subtree_remaining(tree, node_id), config)

    new_tree = tree.copy()
    for parent_id in tree.parent_ids_of(node_id):
        parent = new_tree.get(parent_id)
        parent.child_ids = [child_id for child_id in parent.child_ids if child_id != node_id]
    new_tree.remove_many(ids_to_delete)

    returned = _returned_amount(node, config)
    logger.info(
        f"Deleted '{node.name}' and {len(ids_to_delete) - 1} descendant(s); "
        f"${returned:,.2f} returned to parent '{node.parent_id}'"
    )
    return Result.success(DeleteOutcome(
        tree=new_tree,
        deleted_ids=ids_to_delete,
        parent_id=node.parent_id,
        returned_amount=returned,
        subtree_remaining=remaining,
    ))


def _parse_transaction_amount(amount: Any, config: Optional[Mapping[str, Any]] = None) -> Result:
    rules = get_section(config, "validation")
    try:
        value = float(str(amount).replace(",", "").strip())
    except ValueError:
        return Result.failure(ValidationError(
            "Amount must be a valid number", reason=ValidationReason.NOT_A_NUMBER
        ))
    if math.isnan(value):
        return Result.failure(ValidationError(
            "Amount must be a valid number", reason=ValidationReason.NOT_A_NUMBER
        ))
    if value <= 0:
        return Result.failure(ValidationError(
            "Amount must be greater than $0.00", reason=ValidationReason.BELOW_MINIMUM
        ))
    if value > rules["max_budget"]:
        return Result.failure(ValidationError(
            f"Amount cannot exceed ${rules['max_budget']:,.0f}", reason=ValidationReason.ABOVE_MAXIMUM
        ))
    return Result.success(value)


def _apply_spent_delta(
    tree: BudgetTree,
    node: BudgetNode,
    delta: float,
    config: Optional[Mapping[str, Any]] = None
) -> Result:
    """
    Compute the node's new spent amount for a signed delta.

    Spent never drops below zero. In lenient mode the floor is applied and
    logged; with spending.strict_floor the change is refused. An increase
    on a node with children must leave room for what the children hold.

    Returns:
        Result with (new_spent, applied_delta)
    """
    raw_spent = node.spent_amount + delta
    if raw_spent < 0:
        if get_section(config, "spending")["strict_floor"]:
            return Result.failure(SpendingFloorViolation(
                f"Spent for '{node.name}' cannot go below $0.00",
                details={"node_id": node.id, "shortfall": round_amount(-raw_spent, config)},
            ))
        logger.warning(
            f"Spent for '{node.name}' floored at $0.00 (would have been ${raw_spent:,.2f})"
        )
        new_spent = 0.0
    else:
        new_spent = round_amount(raw_spent, config)

    if new_spent > node.spent_amount and node.kind is not NodeKind.BANK and not node.is_leaf:
        available = available_for_children(node, tree, config=config)
        if round_amount(new_spent - node.spent_amount, config) > available:
            return Result.failure(InsufficientParentBudget(
                f"Only ${available:,.2f} available to spend in {node.name}",
                available=available,
                parent_id=node.id,
            ))

    return Result.success((new_spent, round_amount(new_spent - node.spent_amount, config)))


def post_transaction(
    tree: BudgetTree,
    category_id: str,
    amount: Union[str, float],
    description: str = "",
    date: Optional[datetime] = None,
    type: Union[TransactionType, str] = TransactionType.EXPENSE,
    merchant: Optional[str] = None,
    config: Optional[Mapping[str, Any]] = None
) -> Result:
    """
    Append a transaction to a node and adjust its spent amount.

    Expenses add to spent, income subtracts from it, floored at zero. The
    signed change actually applied is stored on the transaction so removal
    can reverse it exactly.

    Returns:
        Result with a TransactionOutcome, or a validation failure
    """
    node = tree.get(category_id)
    if node.kind is NodeKind.BANK:
        raise _structural_violation("Transactions cannot be posted to a bank", node_id=category_id)

    parsed = _parse_transaction_amount(amount, config)
    if not parsed.ok:
        return parsed
    value = parsed.value

    tx_type = TransactionType(type)
    delta = value if tx_type is TransactionType.EXPENSE else -value
    spent_result = _apply_spent_delta(tree, node, delta, config)
    if not spent_result.ok:
        return spent_result
    new_spent, applied = spent_result.value

    transaction = NodeTransaction(
        id=generate_id(),
        amount=value,
        description=description,
        date=date or datetime.now(UTC),
        type=tx_type,
        merchant=merchant,
        applied_delta=applied,
    )

    new_tree = tree.copy()
    updated = new_tree.get(category_id)
    updated.spent_amount = new_spent
    updated.transactions.append(transaction)

    logger.info(
        f"Posted {tx_type.value} of ${value:,.2f} to '{node.name}'; spent now ${new_spent:,.2f}"
    )
    return Result.success(TransactionOutcome(tree=new_tree, transaction=transaction))


def remove_transaction(
    tree: BudgetTree,
    category_id: str,
    transaction_id: str,
    config: Optional[Mapping[str, Any]] = None
) -> Result:
    """
    Remove a transaction and reverse the spent change it applied.

    Returns:
        Result with the new tree

    Raises:
        NotFound: If the node or the transaction does not exist
    """
    node = tree.get(category_id)
    transaction = next((t for t in node.transactions if t.id == transaction_id), None)
    if transaction is None:
        logger.error(f"Transaction '{transaction_id}' not found on '{category_id}'")
        raise NotFound(
            f"Transaction '{transaction_id}' does not exist",
            details={"node_id": category_id, "transaction_id": transaction_id},
        )

    spent_result = _apply_spent_delta(tree, node, -transaction.applied_delta, config)
    if not spent_result.ok:
        return spent_result
    new_spent, _ = spent_result.value

    new_tree = tree.copy()
    updated = new_tree.get(category_id)
    updated.spent_amount = new_spent
    updated.transactions = [t for t in updated.transactions if t.id != transaction_id]

    logger.info(f"Removed transaction '{transaction_id}' from '{node.name}'; spent now ${new_spent:,.2f}")
    return Result.success(new_tree)


def get_category_transactions(tree: BudgetTree, category_id: str) -> List[NodeTransaction]:
    """Transactions of a node, newest first."""
    node = tree.get(category_id)
    return sorted(node.transactions, key=lambda t: t.date, reverse=True)


def move_node(tree: BudgetTree, node_id: str, position: Union[Position, Tuple[float, float]]) -> BudgetTree:
    """Return a tree with one node dragged to a new position."""
    return apply_positions(tree, {node_id: position})


def apply_positions(
    tree: BudgetTree,
    updates: Mapping[str, Union[Position, Tuple[float, float]]]
) -> BudgetTree:
    """Return a tree with several node positions replaced."""
    for node_id in updates:
        tree.get(node_id)
    new_tree = tree.copy()
    for node_id, position in updates.items():
        if not isinstance(position, Position):
            position = Position(*position)
        new_tree.get(node_id).position = position
    return new_tree


def get_descendants(tree: BudgetTree, node_id: str) -> List[str]:
    """Ids strictly below a node, depth-first."""
    return tree.descendant_ids(node_id)


def get_ancestors(tree: BudgetTree, node_id: str) -> List[str]:
    """Ids from the root down to the node's parent (the node itself excluded)."""
    return tree.ancestor_ids(node_id)


def check_structure(tree: BudgetTree) -> None:
    """
    Verify the shape of the tree.

    Checks: exactly one budget root with id "total"; banks have no parent
    and every other node has one; child references exist, are unique, and
    agree with the child's parent_id (the budget root may be listed by
    several banks); every category is listed by exactly one node; no node
    is its own ancestor; every category reaches the budget root.

    Raises:
        StructuralViolation: On the first problem found
    """
    roots = [node for node in tree if node.kind is NodeKind.BUDGET]
    if len(roots) != 1 or roots[0].id != TOTAL_NODE_ID:
        raise _structural_violation(
            "Tree must contain exactly one budget root",
            budget_ids=[node.id for node in roots]
        )

    references: Dict[str, int] = {}
    for node in tree:
        if node.kind is NodeKind.BANK and node.parent_id is not None:
            raise _structural_violation("Bank nodes cannot have a parent", node_id=node.id)
        if node.kind is not NodeKind.BANK and node.parent_id is None:
            raise _structural_violation("Only bank nodes may lack a parent", node_id=node.id)
        if node.parent_id is not None and node.parent_id not in tree:
            raise _structural_violation("Parent does not exist", node_id=node.id, parent_id=node.parent_id)
        if len(set(node.child_ids)) != len(node.child_ids):
            raise _structural_violation("Duplicate child reference", node_id=node.id)

        for child_id in node.child_ids:
            child = tree.find(child_id)
            if child is None:
                raise _structural_violation("Child does not exist", node_id=node.id, child_id=child_id)
            if child.kind is NodeKind.BANK:
                raise _structural_violation("A bank cannot be a child", node_id=node.id, child_id=child_id)
            if child.kind is not NodeKind.BUDGET and child.parent_id != node.id:
                raise _structural_violation(
                    "Child's parent_id disagrees with parent", node_id=node.id, child_id=child_id
                )
            references[child_id] = references.get(child_id, 0) + 1

    for node in tree:
        if node.kind is not NodeKind.CATEGORY:
            continue
        if references.get(node.id, 0) != 1:
            raise _structural_violation(
                "Category must be listed by exactly one parent",
                node_id=node.id,
                references=references.get(node.id, 0)
            )

        seen = {node.id}
        current = tree.find(node.parent_id)
        while current is not None and current.kind is NodeKind.CATEGORY:
            if current.id in seen:
                raise _structural_violation("Cycle detected", node_id=node.id)
            seen.add(current.id)
            current = tree.find(current.parent_id)
        if current is None or current.kind is not NodeKind.BUDGET:
            raise _structural_violation("Category is not connected to the budget root", node_id=node.id)


def build_initial_tree(
    banks: Iterable[Mapping[str, Any]],
    categories: Optional[Iterable[Mapping[str, Any]]] = None,
    config: Optional[Mapping[str, Any]] = None
) -> BudgetTree:
    """
    Build the starting canvas from bank balances.

    The first bank is the primary wallet; the rest form a row to its
    right. The budget root sits below them, centred, funded by the sum of
    all balances. Optional starting categories (mappings with name,
    allocated, and optionally spent, parent, icon, color, id) are attached
    in order; this is the one place spent is set directly.

    Raises:
        StructuralViolation: If no bank is given or the result is malformed
    """
    banks = list(banks)
    if not banks:
        raise _structural_violation("At least one bank is required to fund the budget")

    tree = BudgetTree()
    positions = bank_row_positions(len(banks), config)
    bank_ids = []
    for index, (bank, position) in enumerate(zip(banks, positions)):
        is_primary = index == 0
        node = BudgetNode(
            id=str(bank.get("id") or generate_id()),
            name=bank["name"],
            kind=NodeKind.BANK,
            allocated_amount=float(bank.get("balance", 0.0)),
            parent_id=None,
            child_ids=[TOTAL_NODE_ID],
            position=position,
            icon=bank.get("icon", "wallet" if is_primary else "card"),
            color=bank.get("color", PRIMARY_BANK_COLOR if is_primary else BANK_COLORS[(index - 1) % len(BANK_COLORS)]),
        )
        tree.upsert(node)
        bank_ids.append(node.id)

    total_balance = sum(tree.get(bank_id).allocated_amount for bank_id in bank_ids)
    tree.upsert(BudgetNode(
        id=TOTAL_NODE_ID,
        name=TOTAL_NODE_NAME,
        kind=NodeKind.BUDGET,
        allocated_amount=total_balance,
        parent_id=bank_ids[0],
        position=total_position(positions),
        icon=TOTAL_NODE_ICON,
        color=TOTAL_NODE_COLOR,
    ))

    touched_parents = []
    for category in categories or []:
        parent_id = category.get("parent", TOTAL_NODE_ID)
        parent = tree.get(parent_id)
        node = BudgetNode(
            id=str(category.get("id") or generate_id()),
            name=category["name"],
            kind=NodeKind.CATEGORY,
            allocated_amount=float(category.get("allocated", 0.0)),
            spent_amount=float(category.get("spent", 0.0)),
            parent_id=parent_id,
            icon=category.get("icon", DEFAULT_ICON),
            color=category.get("color", DEFAULT_COLOR),
        )
        tree.upsert(node)
        parent.child_ids.append(node.id)
        if parent_id not in touched_parents:
            touched_parents.append(parent_id)

    for parent_id in touched_parents:
        for node_id, position in arrange_children(tree, parent_id, config).items():
            tree.get(node_id).position = position

    check_structure(tree)
    logger.info(
        f"Built initial tree with {len(bank_ids)} bank(s) and ${total_balance:,.2f} to allocate"
    )
    return tree
