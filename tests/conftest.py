"""
Shared fixtures for the budget tree test suite.

The sample tree mirrors the documented scenarios: two banks funding a
budget root of $1,348.17, with Rent ($1,000 allocated, $1,000 spent),
Groceries ($100) and Fun ($100) directly under it.
"""

import copy

import pytest

from budget_models import BudgetNode, NodeKind, Position
from config_manager import DEFAULT_CONFIG
from lifecycle import build_initial_tree
from tree_store import BudgetTree

SAMPLE_BANKS = [
    {"id": "bank1", "name": "Wallet", "balance": 1200.0},
    {"id": "bank2", "name": "Savings", "balance": 148.17},
]

SAMPLE_CATEGORIES = [
    {"id": "cat1", "name": "Rent", "allocated": 1000.0, "spent": 1000.0},
    {"id": "cat2", "name": "Groceries", "allocated": 100.0},
    {"id": "cat3", "name": "Fun", "allocated": 100.0},
]


@pytest.fixture
def config():
    """Fresh copy of the default configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


@pytest.fixture
def strict_config(config):
    """Configuration that refuses to floor spent amounts at zero."""
    config["spending"]["strict_floor"] = True
    return config


@pytest.fixture
def sample_tree() -> BudgetTree:
    """Budget root of $1,348.17 with three categories."""
    return build_initial_tree(SAMPLE_BANKS, SAMPLE_CATEGORIES)


@pytest.fixture
def single_category_tree() -> BudgetTree:
    """Budget root of $1,348.17 with only the fully spent Rent category."""
    return build_initial_tree(SAMPLE_BANKS, SAMPLE_CATEGORIES[:1])


@pytest.fixture
def nested_tree(sample_tree) -> BudgetTree:
    """
    Sample tree with a two-level branch under Fun.

    Fun (cat3, 100) -> Outings (sub1, 50, spent 20) -> Tickets (sub2, 20, spent 5)
    """
    tree = sample_tree.copy()
    cat3 = tree.get("cat3")

    tree.upsert(BudgetNode(
        id="sub1", name="Outings", kind=NodeKind.CATEGORY,
        allocated_amount=50.0, spent_amount=20.0, parent_id="cat3",
        child_ids=["sub2"], position=Position(cat3.position.x, cat3.position.y + 200),
    ))
    tree.upsert(BudgetNode(
        id="sub2", name="Tickets", kind=NodeKind.CATEGORY,
        allocated_amount=20.0, spent_amount=5.0, parent_id="sub1",
        position=Position(cat3.position.x, cat3.position.y + 400),
    ))
    cat3.child_ids.append("sub1")
    return tree
