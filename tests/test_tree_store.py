"""
Unit tests for the keyed node store.
"""

import pytest

from budget_models import BudgetNode, NodeKind
from exceptions import NotFound
from tree_store import BudgetTree, TreeStore


class TestLookup:
    """Tests for get/find and container behaviour."""

    def test_get_missing_raises_not_found(self, sample_tree):
        with pytest.raises(NotFound) as exc_info:
            sample_tree.get("nope")
        assert exc_info.value.details == {"node_id": "nope"}

    def test_find_missing_returns_none(self, sample_tree):
        assert sample_tree.find("nope") is None
        assert sample_tree.find(None) is None

    def test_container_protocol(self, sample_tree):
        """Stores report membership, size, and iterate in insertion order."""
        assert "total" in sample_tree
        assert "nope" not in sample_tree
        assert len(sample_tree) == 6
        assert [node.id for node in sample_tree] == ["bank1", "bank2", "total", "cat1", "cat2", "cat3"]
        assert sample_tree.ids() == [node.id for node in sample_tree.all()]

    def test_budget_tree_alias(self):
        assert BudgetTree is TreeStore

    def test_upsert_replaces_existing(self, sample_tree):
        sample_tree.upsert(BudgetNode(id="cat2", name="Food", kind=NodeKind.CATEGORY, parent_id="total"))
        assert sample_tree.get("cat2").name == "Food"
        assert len(sample_tree) == 6


class TestTraversal:
    """Tests for children, parents, descendants, and ancestors."""

    def test_children_in_child_order(self, sample_tree):
        assert [child.id for child in sample_tree.children("total")] == ["cat1", "cat2", "cat3"]

    def test_budget_root_has_one_parent_per_bank(self, sample_tree):
        assert sample_tree.parent_ids_of("total") == ["bank1", "bank2"]
        assert sample_tree.parent_ids_of("cat1") == ["total"]

    def test_descendants_depth_first_pre_order(self, nested_tree):
        assert nested_tree.descendant_ids("total") == ["cat1", "cat2", "cat3", "sub1", "sub2"]
        assert nested_tree.descendant_ids("cat3") == ["sub1", "sub2"]
        assert nested_tree.descendant_ids("sub2") == []

    def test_ancestors_from_root_to_parent(self, nested_tree):
        assert nested_tree.ancestor_ids("sub2") == ["bank1", "total", "cat3", "sub1"]
        assert nested_tree.ancestor_ids("bank1") == []

    def test_descendants_terminate_on_cycle(self):
        """A corrupted tree with a cycle still terminates."""
        tree = TreeStore([
            BudgetNode(id="a", name="A", kind=NodeKind.CATEGORY, parent_id="b", child_ids=["b"]),
            BudgetNode(id="b", name="B", kind=NodeKind.CATEGORY, parent_id="a", child_ids=["a"]),
        ])
        assert tree.descendant_ids("a") == ["b"]
        assert tree.ancestor_ids("a") == ["b"]


class TestSnapshots:
    """Tests for copy and bulk removal."""

    def test_copy_is_independent(self, sample_tree):
        snapshot = sample_tree.copy()
        snapshot.get("cat1").name = "Mortgage"
        snapshot.get("total").child_ids.append("x")

        assert sample_tree.get("cat1").name == "Rent"
        assert sample_tree.get("total").child_ids == ["cat1", "cat2", "cat3"]

    def test_remove_many_counts_existing(self, sample_tree):
        assert sample_tree.remove_many(["cat1", "cat2", "missing"]) == 2
        assert "cat1" not in sample_tree
        assert len(sample_tree) == 4
