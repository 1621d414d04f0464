"""
Data models for the hierarchical budget tree.

A single node type, BudgetNode, is discriminated by NodeKind. Parent and
child links are plain id references so the tree lives in a keyed arena
(see tree_store.TreeStore) rather than as nested objects.
"""

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

from exceptions import BudgetTreeError

TOTAL_NODE_ID = "total"
DEFAULT_ICON = "wallet"
DEFAULT_COLOR = "#3B82F6"


def as_utc(value: datetime) -> datetime:
    """
    Return an aware UTC datetime.

    Naive values (caller input, or SQLite rows, which drop tzinfo) are
    taken to be UTC already; aware values are converted.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class NodeKind(enum.Enum):
    """Enumeration of node kinds."""
    BANK = "bank"
    BUDGET = "budget"
    CATEGORY = "category"


class TransactionType(enum.Enum):
    """Direction of a posted transaction."""
    EXPENSE = "expense"
    INCOME = "income"


@dataclass(frozen=True)
class Position:
    """Canvas coordinates of a block's top-left corner."""
    x: float
    y: float


@dataclass(frozen=True)
class BlockSize:
    """Fixed rendered size of a block."""
    width: float
    height: float


@dataclass(frozen=True)
class KindConfig:
    """
    Per-kind constants.

    Attributes:
        size: Rendered block size, shared by layout and connection routing
        can_delete: Whether the node may be removed by the user
        can_add_children: Whether categories may be created under the node
    """
    size: BlockSize
    can_delete: bool
    can_add_children: bool


KIND_CONFIG: Dict[NodeKind, KindConfig] = {
    NodeKind.BANK: KindConfig(size=BlockSize(140, 110), can_delete=False, can_add_children=False),
    NodeKind.BUDGET: KindConfig(size=BlockSize(150, 130), can_delete=False, can_add_children=True),
    NodeKind.CATEGORY: KindConfig(size=BlockSize(130, 120), can_delete=True, can_add_children=True),
}


@dataclass
class NodeTransaction:
    """
    A transaction owned by a single node.

    Attributes:
        id: Generated transaction id
        amount: Positive transaction amount
        description: Free-text description
        date: When the transaction happened
        type: Expense or income
        merchant: Optional merchant name
        applied_delta: Signed change actually applied to the node's spent
            amount when the transaction was posted (after the zero floor)
    """
    id: str
    amount: float
    description: str
    date: datetime
    type: TransactionType
    merchant: Optional[str] = None
    applied_delta: float = 0.0

    def __post_init__(self) -> None:
        self.type = TransactionType(self.type)
        self.date = as_utc(self.date)


@dataclass
class BudgetNode:
    """
    A bank, the budget root, or a spending category.

    Attributes:
        id: Unique id, stable for the node's lifetime
        name: Display label
        kind: NodeKind discriminator
        allocated_amount: Money allocated to this node
        spent_amount: Money consumed directly by this node
        parent_id: Parent node id (None only for banks)
        child_ids: Ordered child ids, in creation order
        position: Canvas position
        icon: Icon name (presentation only)
        color: Hex colour (presentation only)
        transactions: Transactions owned by this node, in posting order
    """
    id: str
    name: str
    kind: NodeKind
    allocated_amount: float = 0.0
    spent_amount: float = 0.0
    parent_id: Optional[str] = None
    child_ids: List[str] = field(default_factory=list)
    position: Position = field(default_factory=lambda: Position(0, 0))
    icon: str = DEFAULT_ICON
    color: str = DEFAULT_COLOR
    transactions: List[NodeTransaction] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.kind = NodeKind(self.kind)
        if not isinstance(self.position, Position):
            self.position = Position(*self.position)

    @property
    def is_leaf(self) -> bool:
        return not self.child_ids

    @property
    def config(self) -> KindConfig:
        return KIND_CONFIG[self.kind]

    def __repr__(self) -> str:
        return (
            f"<BudgetNode(id='{self.id}', kind={self.kind.value}, name='{self.name}', "
            f"allocated={self.allocated_amount}, spent={self.spent_amount})>"
        )


@dataclass
class BudgetSummary:
    """
    Aggregate figures for the header of the budget screen.

    Attributes:
        total_budget: Sum of allocations over non-bank nodes
        total_spent: Sum of spending over non-bank nodes
        available: Supplied total balance minus total spent
        percentage_used: total_spent / total_budget * 100 (0 when no budget)
        category_count: Number of category nodes
        bank_count: Number of bank nodes
        total_bank_balance: Sum of bank balances
    """
    total_budget: float
    total_spent: float
    available: float
    percentage_used: float
    category_count: int
    bank_count: int
    total_bank_balance: float


@dataclass
class Result:
    """
    Outcome of a validation or lifecycle call.

    Exactly one of value/error is meaningful: when error is None the call
    succeeded and value holds its product.
    """
    value: Any = None
    error: Optional[BudgetTreeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, error: BudgetTreeError) -> "Result":
        return cls(error=error)
