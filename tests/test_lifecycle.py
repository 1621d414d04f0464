"""
Unit tests for lifecycle operations.

Every operation returns a new tree; tests check the returned tree, that the
input tree is untouched, and that the conservation rule still holds.
"""

import logging
from dataclasses import replace
from datetime import UTC, datetime

import pytest

from allocation import find_conservation_violations
from budget_models import Position, TransactionType
from exceptions import (
    InsufficientParentBudget,
    NotFound,
    SpendingFloorViolation,
    StructuralViolation,
    ValidationReason,
)
from lifecycle import (
    build_initial_tree,
    check_structure,
    create_category,
    delete_category,
    get_ancestors,
    get_category_transactions,
    get_descendants,
    move_node,
    post_transaction,
    preview_delete,
    remove_transaction,
    update_category,
)


class TestCreateCategory:
    """Tests for create_category."""

    def test_create_under_leaf_category(self, sample_tree):
        """Creating under a childless category makes the new id its only child."""
        result = create_category(sample_tree, "Groceries", 50, "cart", "#F59E0B", parent_id="cat3")

        assert result.ok
        new_tree, node = result.value.tree, result.value.node
        assert new_tree.get("cat3").child_ids == [node.id]
        assert node.parent_id == "cat3"
        assert node.allocated_amount == 50
        assert node.spent_amount == 0
        assert node.child_ids == []
        assert node.icon == "cart"
        assert sample_tree.get("cat3").child_ids == []
        assert node.id not in sample_tree

    def test_new_child_placed_below_parent(self, sample_tree):
        node = create_category(sample_tree, "Games", "25", parent_id="cat3").value.node
        cat3 = sample_tree.get("cat3")
        assert node.position == Position(cat3.position.x, cat3.position.y + 200)

    def test_name_is_trimmed(self, sample_tree):
        node = create_category(sample_tree, "  Games  ", "25", parent_id="cat3").value.node
        assert node.name == "Games"

    def test_over_allocation_fails(self, sample_tree):
        result = create_category(sample_tree, "Travel", 500)

        assert not result.ok
        assert isinstance(result.error, InsufficientParentBudget)
        assert result.error.available == pytest.approx(148.17)

    def test_validation_failure_returned(self, sample_tree):
        result = create_category(sample_tree, "", 10)
        assert result.error.reason is ValidationReason.EMPTY_NAME

    def test_bank_parent_rejected(self, sample_tree):
        with pytest.raises(StructuralViolation):
            create_category(sample_tree, "Travel", 10, parent_id="bank1")

    def test_missing_parent_raises(self, sample_tree):
        with pytest.raises(NotFound):
            create_category(sample_tree, "Travel", 10, parent_id="missing")


class TestUpdateCategory:
    """Tests for update_category."""

    def test_rename_and_restyle(self, sample_tree):
        result = update_category(sample_tree, "cat2", name=" Food ", icon="cart", color="#000000")

        assert result.ok
        node = result.value.get("cat2")
        assert (node.name, node.icon, node.color) == ("Food", "cart", "#000000")
        assert sample_tree.get("cat2").name == "Groceries"

    def test_resize_within_parent_pool(self, sample_tree):
        result = update_category(sample_tree, "cat2", allocated_amount="248.17")
        assert result.ok
        assert result.value.get("cat2").allocated_amount == pytest.approx(248.17)

    def test_resize_beyond_parent_pool_fails(self, sample_tree):
        result = update_category(sample_tree, "cat2", allocated_amount=300)
        assert isinstance(result.error, InsufficientParentBudget)

    def test_resize_below_child_allocations_fails(self, nested_tree):
        result = update_category(nested_tree, "cat3", allocated_amount=40)

        assert result.error.reason is ValidationReason.BELOW_CHILD_ALLOCATIONS
        assert result.error.message == "Sub-categories already hold $50.00"

    def test_invalid_name_rejected(self, sample_tree):
        result = update_category(sample_tree, "cat2", name="x" * 60)
        assert result.error.reason is ValidationReason.NAME_TOO_LONG


class TestDeleteCategory:
    """Tests for delete_category and preview_delete."""

    def test_removes_exactly_the_subtree(self, nested_tree):
        """Only the node and its descendants disappear; other nodes are unchanged."""
        result = delete_category(nested_tree, "cat3")

        assert result.ok
        outcome = result.value
        assert outcome.deleted_ids == ["cat3", "sub1", "sub2"]
        assert set(outcome.tree.ids()) == set(nested_tree.ids()) - {"cat3", "sub1", "sub2"}

        for node in outcome.tree:
            original = nested_tree.get(node.id)
            if node.id == "total":
                assert node == replace(original, child_ids=["cat1", "cat2"])
            else:
                assert node == original

    def test_reports_returned_amount(self, nested_tree):
        outcome = delete_category(nested_tree, "cat3").value
        assert outcome.parent_id == "total"
        assert outcome.returned_amount == pytest.approx(100.0)
        assert outcome.subtree_remaining == pytest.approx(75.0)

    def test_overspent_node_returns_nothing(self, sample_tree):
        sample_tree.get("cat1").spent_amount = 1200.0
        assert delete_category(sample_tree, "cat1").value.returned_amount == 0.0

    def test_delete_leaf_in_middle(self, nested_tree):
        outcome = delete_category(nested_tree, "sub2").value
        assert outcome.tree.get("sub1").child_ids == []
        assert outcome.parent_id == "sub1"

    @pytest.mark.parametrize("node_id", ["total", "bank1"])
    def test_protected_nodes(self, sample_tree, node_id):
        with pytest.raises(StructuralViolation):
            delete_category(sample_tree, node_id)

    def test_preview_delete(self, nested_tree):
        preview = preview_delete(nested_tree, "cat3")
        assert preview.node.id == "cat3"
        assert [node.id for node in preview.descendants] == ["sub1", "sub2"]
        assert preview.parent.id == "total"
        assert preview.returned_amount == pytest.approx(100.0)
        assert preview.subtree_remaining == pytest.approx(75.0)


class TestTransactions:
    """Tests for posting and removing transactions."""

    def test_post_then_remove_round_trips(self, sample_tree):
        posted = post_transaction(sample_tree, "cat2", "30.25", description="Market")
        assert posted.ok
        tree = posted.value.tree
        transaction = posted.value.transaction
        assert tree.get("cat2").spent_amount == pytest.approx(30.25)
        assert transaction.applied_delta == pytest.approx(30.25)
        assert tree.get("cat2").transactions == [transaction]

        removed = remove_transaction(tree, "cat2", transaction.id)
        assert removed.ok
        assert removed.value.get("cat2").spent_amount == pytest.approx(0.0)
        assert removed.value.get("cat2").transactions == []

    def test_income_reduces_spent(self, sample_tree):
        result = post_transaction(sample_tree, "cat1", 200, type=TransactionType.INCOME)
        assert result.value.tree.get("cat1").spent_amount == pytest.approx(800.0)
        assert result.value.transaction.applied_delta == pytest.approx(-200.0)

    def test_income_floored_at_zero_in_lenient_mode(self, sample_tree, caplog):
        """Income larger than spent floors at zero and logs a warning."""
        with caplog.at_level(logging.WARNING):
            result = post_transaction(sample_tree, "cat2", 40, type="income")

        assert result.ok
        tree = result.value.tree
        assert tree.get("cat2").spent_amount == 0.0
        assert result.value.transaction.applied_delta == 0.0
        assert "floored" in caplog.text

        removed = remove_transaction(tree, "cat2", result.value.transaction.id)
        assert removed.value.get("cat2").spent_amount == 0.0

    def test_round_trip_after_floor(self, sample_tree):
        """Removing an expense posted after a floored income restores the prior spent."""
        tree = post_transaction(sample_tree, "cat2", 40, type="income").value.tree
        posted = post_transaction(tree, "cat2", 25)
        removed = remove_transaction(posted.value.tree, "cat2", posted.value.transaction.id)
        assert removed.value.get("cat2").spent_amount == 0.0

    def test_strict_mode_refuses_floor(self, sample_tree, strict_config):
        result = post_transaction(sample_tree, "cat2", 40, type="income", config=strict_config)

        assert not result.ok
        assert isinstance(result.error, SpendingFloorViolation)
        assert result.error.details["shortfall"] == pytest.approx(40.0)

    def test_spending_on_parent_limited_by_children(self, nested_tree):
        """A node with children may only spend what it has not passed down."""
        result = post_transaction(nested_tree, "cat3", 60)
        assert isinstance(result.error, InsufficientParentBudget)
        assert result.error.available == pytest.approx(50.0)

        assert post_transaction(nested_tree, "cat3", 50).ok

    @pytest.mark.parametrize("amount, reason", [
        ("0", ValidationReason.BELOW_MINIMUM),
        (-5, ValidationReason.BELOW_MINIMUM),
        ("abc", ValidationReason.NOT_A_NUMBER),
        ("2000000", ValidationReason.ABOVE_MAXIMUM),
    ])
    def test_invalid_amounts(self, sample_tree, amount, reason):
        result = post_transaction(sample_tree, "cat2", amount)
        assert result.error.reason is reason

    def test_bank_rejects_transactions(self, sample_tree):
        with pytest.raises(StructuralViolation):
            post_transaction(sample_tree, "bank1", 10)

    def test_remove_unknown_transaction(self, sample_tree):
        with pytest.raises(NotFound):
            remove_transaction(sample_tree, "cat2", "missing")

    def test_transactions_newest_first(self, sample_tree):
        tree = post_transaction(sample_tree, "cat2", 5, date=datetime(2024, 1, 1)).value.tree
        tree = post_transaction(tree, "cat2", 7, date=datetime(2024, 3, 1)).value.tree
        tree = post_transaction(tree, "cat2", 9, date=datetime(2024, 2, 1)).value.tree

        amounts = [t.amount for t in get_category_transactions(tree, "cat2")]
        assert amounts == [7, 9, 5]

    def test_naive_dates_list_alongside_default_dates(self, sample_tree):
        """A caller-supplied naive date is taken as UTC."""
        tree = post_transaction(sample_tree, "cat2", 5, date=datetime(2024, 1, 1)).value.tree
        tree = post_transaction(tree, "cat2", 7).value.tree

        listed = get_category_transactions(tree, "cat2")
        assert [t.amount for t in listed] == [7, 5]
        assert listed[1].date == datetime(2024, 1, 1, tzinfo=UTC)


class TestConservation:
    """The conservation rule holds after every successful operation."""

    def test_sequence_of_operations(self, sample_tree):
        tree = sample_tree
        created = create_category(tree, "Games", 60, parent_id="cat3").value
        tree = created.tree
        tree = create_category(tree, "Arcade", 30, parent_id=created.node.id).value.tree
        tree = post_transaction(tree, "cat3", 40).value.tree
        tree = update_category(tree, "cat2", allocated_amount=248.17).value
        tree = post_transaction(tree, created.node.id, 30).value.tree
        tree = delete_category(tree, "cat1").value.tree

        assert find_conservation_violations(tree) == []
        check_structure(tree)

    def test_rejected_operations_leave_tree_unchanged(self, sample_tree):
        snapshot = sample_tree.copy()
        create_category(sample_tree, "Travel", 500)
        update_category(sample_tree, "cat2", allocated_amount=1000)
        post_transaction(sample_tree, "cat2", "abc")

        assert [n for n in sample_tree] == [n for n in snapshot]


class TestTraversalAndMoves:
    """Tests for traversal helpers and position updates."""

    def test_get_descendants_and_ancestors(self, nested_tree):
        assert get_descendants(nested_tree, "cat3") == ["sub1", "sub2"]
        assert get_ancestors(nested_tree, "sub2") == ["bank1", "total", "cat3", "sub1"]

    def test_move_node(self, sample_tree):
        moved = move_node(sample_tree, "cat1", (10, 20))
        assert moved.get("cat1").position == Position(10, 20)
        assert sample_tree.get("cat1").position != Position(10, 20)

    def test_move_missing_node(self, sample_tree):
        with pytest.raises(NotFound):
            move_node(sample_tree, "missing", Position(0, 0))


class TestCheckStructure:
    """Tests for check_structure."""

    def test_valid_tree_passes(self, nested_tree):
        check_structure(nested_tree)

    def test_duplicate_child_reference(self, sample_tree):
        sample_tree.get("total").child_ids.append("cat1")
        with pytest.raises(StructuralViolation):
            check_structure(sample_tree)

    def test_missing_child(self, sample_tree):
        sample_tree.get("cat2").child_ids.append("ghost")
        with pytest.raises(StructuralViolation):
            check_structure(sample_tree)

    def test_parent_mismatch(self, sample_tree):
        sample_tree.get("cat2").parent_id = "cat3"
        with pytest.raises(StructuralViolation):
            check_structure(sample_tree)

    def test_cycle_detected(self, sample_tree):
        total = sample_tree.get("total")
        total.child_ids = ["cat3"]
        cat1, cat2 = sample_tree.get("cat1"), sample_tree.get("cat2")
        cat1.parent_id, cat1.child_ids = "cat2", ["cat2"]
        cat2.parent_id, cat2.child_ids = "cat1", ["cat1"]

        with pytest.raises(StructuralViolation) as exc_info:
            check_structure(sample_tree)
        assert "Cycle" in exc_info.value.message

    def test_second_budget_root(self, sample_tree):
        sample_tree.get("cat2").kind = sample_tree.get("total").kind
        with pytest.raises(StructuralViolation):
            check_structure(sample_tree)


class TestBuildInitialTree:
    """Tests for build_initial_tree."""

    def test_banks_fund_the_root(self, sample_tree):
        total = sample_tree.get("total")
        assert total.allocated_amount == pytest.approx(1348.17)
        assert total.parent_id == "bank1"
        assert sample_tree.get("bank1").child_ids == ["total"]
        assert sample_tree.get("bank2").child_ids == ["total"]

    def test_positions(self):
        tree = build_initial_tree([
            {"id": "a", "name": "Wallet", "balance": 10},
            {"id": "b", "name": "Checking", "balance": 20},
            {"id": "c", "name": "Savings", "balance": 30},
        ])
        assert tree.get("a").position == Position(60, 30)
        assert tree.get("b").position == Position(260, 30)
        assert tree.get("c").position == Position(460, 30)
        assert tree.get("total").position == Position(260, 230)

    def test_starting_categories_are_arranged(self, sample_tree):
        positions = [sample_tree.get(node_id).position for node_id in ("cat1", "cat2", "cat3")]
        assert positions == [Position(-20, 430), Position(160, 430), Position(340, 430)]

    def test_requires_a_bank(self):
        with pytest.raises(StructuralViolation):
            build_initial_tree([])
