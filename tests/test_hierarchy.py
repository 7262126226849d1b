"""
Tests for the hierarchy composition engine.

Covers attach/detach/move validation, depth repair, tree queries and the
section audit, all against the in-memory repository.
"""

import random
import unittest
from datetime import date
from typing import Dict, Optional

from trellis.config import ConfigManager
from trellis.errors import DataIntegrityError
from trellis.hierarchy import (
    AncestryChecker,
    DepthRepair,
    HierarchyMutator,
    TreeQueryService,
    HierarchyAuditor,
)
from trellis.models import (
    Item,
    ItemType,
    ItemStatus,
    TreeFilter,
    CompositionErrorCode,
    AttachChildItemInput,
    DetachChildItemInput,
)
from trellis.repository import InMemoryItemRepository
from trellis.rules import CompositionRule, CompositionRules, RuleTable


DEFAULT_SETTINGS = ConfigManager("does-not-exist.yaml")


def make_item(
    item_id: str,
    item_type: ItemType = ItemType.TASK,
    section_id: str = "s1",
    start: Optional[date] = None,
    end: Optional[date] = None,
    **kwargs
) -> Item:
    """Build an unattached item with sensible defaults."""
    return Item(
        id=item_id,
        project_id="p1",
        section_id=section_id,
        type=item_type,
        title=item_id.replace("-", " ").title(),
        start_date=start,
        end_date=end,
        **kwargs
    )


def stored_item(item_id: str, start: date, end: date, **kwargs) -> Item:
    """An item as another writer may have stored it, skipping model validation."""
    return Item.model_construct(
        id=item_id,
        project_id="p1",
        section_id="s1",
        type=ItemType.TASK,
        title=item_id.title(),
        start_date=start,
        end_date=end,
        **kwargs
    )


class VanishingRowRepository(InMemoryItemRepository):
    """Drops one item right before the next parent pointer write."""

    def __init__(self, items, vanishing_id: str):
        super().__init__(items)
        self.vanishing_id = vanishing_id

    def update_item_parent_and_depth(self, item_id, parent_id, depth):
        self._items.pop(self.vanishing_id, None)
        return super().update_item_parent_and_depth(item_id, parent_id, depth)


def permissive_rules(max_depth: int = 10) -> CompositionRules:
    """A policy where every type may contain every type."""
    table = RuleTable(register_defaults=False)
    for parent_type in ItemType:
        for child_type in ItemType:
            table.register_rule(CompositionRule(parent_type, child_type, max_depth))
    return CompositionRules(table)


def true_depth(repository: InMemoryItemRepository, item_id: str) -> int:
    """Count parent hops to the root, failing the test on a cycle."""
    hops = 0
    seen = {item_id}
    item = repository.get_item(item_id)
    while item.parent_item_id is not None:
        if item.parent_item_id in seen:
            raise AssertionError(f"cycle through {item.parent_item_id}")
        seen.add(item.parent_item_id)
        item = repository.get_item(item.parent_item_id)
        hops += 1
    return hops


def shape(repository: InMemoryItemRepository, section_id: str = "s1") -> Dict[str, tuple]:
    """Parent pointer and cached depth of every item in a section."""
    return {
        item.id: (item.parent_item_id, item.item_depth)
        for item in repository.list_items_in_section(section_id)
    }


class HierarchyTestCase(unittest.TestCase):
    """Shared fixtures for mutator tests."""

    def make_mutator(self, rules=None, max_depth=3, margin=5) -> HierarchyMutator:
        return HierarchyMutator(
            self.repo,
            rules=rules,
            max_depth=max_depth,
            traversal_margin=margin,
            settings=DEFAULT_SETTINGS
        )

    def assertForestConsistent(self, max_depth: int):
        for item in self.repo.list_items_in_section("s1"):
            depth = true_depth(self.repo, item.id)
            self.assertEqual(item.item_depth, depth, f"cached depth of {item.id}")
            self.assertLessEqual(depth, max_depth)


class TestAttach(HierarchyTestCase):
    """Test attach validation order and effects."""

    def setUp(self):
        self.repo = InMemoryItemRepository([
            make_item("goal", ItemType.GOAL, start=date(2026, 1, 1), end=date(2026, 12, 31)),
            make_item("milestone", ItemType.MILESTONE, start=date(2026, 2, 1), end=date(2026, 3, 31)),
            make_item("task-a", start=date(2026, 2, 1), end=date(2026, 2, 10)),
            make_item("task-b", start=date(2026, 2, 5), end=date(2026, 2, 6)),
            make_item("note", ItemType.NOTE),
            make_item("other-section", section_id="s2"),
        ])
        self.mutator = self.make_mutator()

    def test_attach_success(self):
        """Test a valid attach writes the parent pointer and depth."""
        result = self.mutator.attach("milestone", "goal")

        self.assertTrue(result.success)
        self.assertIsNone(result.error)
        self.assertEqual(result.item.parent_item_id, "goal")
        self.assertEqual(result.item.item_depth, 1)
        self.assertEqual(self.repo.get_item("milestone").item_depth, 1)

    def test_attach_with_input_model(self):
        """Test the operation interface accepts request models."""
        result = self.mutator.attach_child_item(
            AttachChildItemInput(child_item_id="task-a", parent_item_id="milestone", user_id="u1")
        )
        self.assertTrue(result.success)
        self.assertEqual(self.repo.get_item("task-a").parent_item_id, "milestone")

    def test_self_reference(self):
        result = self.mutator.attach("goal", "goal")
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, CompositionErrorCode.SELF_REFERENCE)

    def test_missing_child_or_parent(self):
        """Test unknown ids are reported as not found."""
        missing_child = self.mutator.attach("ghost", "goal")
        missing_parent = self.mutator.attach("task-a", "ghost")

        self.assertEqual(missing_child.error_code, CompositionErrorCode.NOT_FOUND)
        self.assertIn("Child", missing_child.error.message)
        self.assertEqual(missing_parent.error_code, CompositionErrorCode.NOT_FOUND)
        self.assertIn("Parent", missing_parent.error.message)

    def test_already_has_parent(self):
        """Test re-attaching without detaching first is refused."""
        self.assertTrue(self.mutator.attach("milestone", "goal").success)

        result = self.mutator.attach("milestone", "task-a")

        self.assertEqual(result.error_code, CompositionErrorCode.ALREADY_HAS_PARENT)
        self.assertEqual(self.repo.get_item("milestone").parent_item_id, "goal")

    def test_different_section(self):
        """Test cross-section attach fails even when everything else is valid."""
        permissive = self.make_mutator(rules=permissive_rules(), max_depth=10)

        result = permissive.attach("other-section", "task-a")

        self.assertEqual(result.error_code, CompositionErrorCode.DIFFERENT_SECTION)
        self.assertIsNone(self.repo.get_item("other-section").parent_item_id)

    def test_cycle_detected(self):
        """Test attaching A under B then B under A is refused."""
        self.assertTrue(self.mutator.attach("task-b", "task-a").success)

        result = self.mutator.attach("task-a", "task-b")

        self.assertEqual(result.error_code, CompositionErrorCode.CYCLE_DETECTED)
        self.assertIsNone(self.repo.get_item("task-a").parent_item_id)
        self.assertEqual(self.repo.get_item("task-b").parent_item_id, "task-a")

    def test_composition_invalid(self):
        """Test the rule table rejects disallowed type pairs."""
        result = self.mutator.attach("task-a", "note")

        self.assertEqual(result.error_code, CompositionErrorCode.COMPOSITION_INVALID)
        self.assertIn("note items cannot contain task items", result.error.message)
        self.assertIsNone(self.repo.get_item("task-a").parent_item_id)

    def test_composition_depth_limit(self):
        """Test a pair allowed shallow is refused deeper down."""
        table = RuleTable(register_defaults=False)
        table.register_rule(CompositionRule(ItemType.TASK, ItemType.TASK, max_depth=1))
        mutator = self.make_mutator(rules=CompositionRules(table))

        self.assertTrue(mutator.attach("task-b", "task-a").success)
        self.repo.add_item(make_item("task-c"))
        result = mutator.attach("task-c", "task-b")

        self.assertEqual(result.error_code, CompositionErrorCode.COMPOSITION_INVALID)
        self.assertIn("deeper than level 1", result.error.message)

    def test_envelope_child_ends_after_parent(self):
        """Test [Feb 1, Feb 5] under [Jan 1, Jan 31] is refused."""
        self.repo.add_item(make_item("january", start=date(2026, 1, 1), end=date(2026, 1, 31)))
        self.repo.add_item(make_item("february", start=date(2026, 2, 1), end=date(2026, 2, 5)))

        result = self.mutator.attach("february", "january")

        self.assertEqual(result.error_code, CompositionErrorCode.PARENT_ENVELOPE_VIOLATION)
        self.assertIn("after parent ends 2026-01-31", result.error.message)
        self.assertIsNone(self.repo.get_item("february").parent_item_id)

    def test_envelope_child_starts_before_parent(self):
        result = self.mutator.attach("goal", "milestone")
        # goal cannot sit under a milestone at all; use tasks for the date check
        self.assertEqual(result.error_code, CompositionErrorCode.COMPOSITION_INVALID)

        self.repo.add_item(make_item("early", start=date(2026, 1, 20), end=date(2026, 2, 2)))
        result = self.mutator.attach("early", "task-a")

        self.assertEqual(result.error_code, CompositionErrorCode.PARENT_ENVELOPE_VIOLATION)
        self.assertIn("before parent starts", result.error.message)

    def test_envelope_exempt_pairing(self):
        """Test undated child types skip the date containment check."""
        self.repo.add_item(make_item("late-note", ItemType.NOTE, start=date(2027, 5, 1)))

        result = self.mutator.attach("late-note", "task-a")

        self.assertTrue(result.success)

    def test_envelope_with_reversed_child_dates(self):
        """Test a stored child whose end precedes its start is still contained."""
        self.repo.add_item(make_item("short", start=date(2026, 1, 1), end=date(2026, 1, 10)))
        self.repo.add_item(stored_item("reversed", date(2026, 1, 20), date(2026, 1, 5)))

        result = self.mutator.attach("reversed", "short")

        self.assertEqual(result.error_code, CompositionErrorCode.PARENT_ENVELOPE_VIOLATION)
        self.assertIn("after parent ends 2026-01-10", result.error.message)
        self.assertIsNone(self.repo.get_item("reversed").parent_item_id)

    def test_row_vanishing_before_write(self):
        """Test a row deleted between validation and write yields not-found and no writes."""
        repo = VanishingRowRepository([make_item("keeper"), make_item("leaver")], "leaver")
        mutator = HierarchyMutator(repo, max_depth=3, settings=DEFAULT_SETTINGS)

        result = mutator.attach("leaver", "keeper")

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, CompositionErrorCode.NOT_FOUND)
        self.assertIn("leaver", result.error.message)
        self.assertIsNotNone(repo.get_item("leaver"))
        self.assertIsNone(repo.get_item("leaver").parent_item_id)

    def test_max_depth_exceeded(self):
        """Test attaching past the maximum depth leaves both items untouched."""
        mutator = self.make_mutator(rules=permissive_rules(), max_depth=3)
        for i in range(5):
            self.repo.add_item(make_item(f"chain-{i}"))
        for i in range(1, 4):
            self.assertTrue(mutator.attach(f"chain-{i}", f"chain-{i - 1}").success)

        result = mutator.attach("chain-4", "chain-3")

        self.assertEqual(result.error_code, CompositionErrorCode.MAX_DEPTH_EXCEEDED)
        self.assertIn("3", result.error.message)
        self.assertEqual(self.repo.get_item("chain-4").parent_item_id, None)
        self.assertEqual(self.repo.get_item("chain-4").item_depth, 0)
        self.assertEqual(self.repo.get_item("chain-3").parent_item_id, "chain-2")
        self.assertEqual(self.repo.get_item("chain-3").item_depth, 3)

    def test_max_depth_counts_moved_subtree(self):
        """Test a subtree that would overflow at its new depth is refused."""
        mutator = self.make_mutator(rules=permissive_rules(), max_depth=3)
        for item_id in ("top", "mid", "sub-root", "sub-child", "sub-leaf"):
            self.repo.add_item(make_item(item_id))
        self.assertTrue(mutator.attach("mid", "top").success)
        self.assertTrue(mutator.attach("sub-child", "sub-root").success)
        self.assertTrue(mutator.attach("sub-leaf", "sub-child").success)
        before = shape(self.repo)

        # sub-root would land at 2, its leaf at 4
        result = mutator.attach("sub-root", "mid")

        self.assertEqual(result.error_code, CompositionErrorCode.MAX_DEPTH_EXCEEDED)
        self.assertEqual(shape(self.repo), before)

    def test_composition_checked_inside_moved_subtree(self):
        """Test edges inside the moved subtree are re-checked at their new depth."""
        table = RuleTable(register_defaults=False)
        table.register_rule(CompositionRule(ItemType.GOAL, ItemType.TASK, max_depth=3))
        table.register_rule(CompositionRule(ItemType.TASK, ItemType.NOTE, max_depth=1))
        mutator = self.make_mutator(rules=CompositionRules(table))

        self.assertTrue(mutator.attach("note", "task-a").success)
        result = mutator.attach("task-a", "goal")

        self.assertEqual(result.error_code, CompositionErrorCode.COMPOSITION_INVALID)
        self.assertIn("Note:", result.error.message)
        self.assertIsNone(self.repo.get_item("task-a").parent_item_id)


class TestDetachAndMove(HierarchyTestCase):
    """Test detach, move and their depth bookkeeping."""

    def setUp(self):
        self.repo = InMemoryItemRepository([make_item(f"t{i}") for i in range(8)])
        self.mutator = self.make_mutator(rules=permissive_rules(), max_depth=10)
        # t0 -> t1 -> t2 -> t3, t1 -> t4
        for child, parent in (("t1", "t0"), ("t2", "t1"), ("t3", "t2"), ("t4", "t1")):
            self.assertTrue(self.mutator.attach(child, parent).success)

    def test_detach_repairs_subtree_depths(self):
        """Test detaching makes the item a root and shifts its subtree up."""
        result = self.mutator.detach("t1")

        self.assertTrue(result.success)
        self.assertIsNone(result.item.parent_item_id)
        self.assertEqual(result.item.item_depth, 0)
        self.assertEqual(result.updated_descendants, 3)
        self.assertEqual(self.repo.get_item("t2").item_depth, 1)
        self.assertEqual(self.repo.get_item("t3").item_depth, 2)
        self.assertEqual(self.repo.get_item("t4").item_depth, 1)
        self.assertForestConsistent(10)

    def test_detach_with_input_model(self):
        result = self.mutator.detach_child_item(DetachChildItemInput(child_item_id="t3"))
        self.assertTrue(result.success)
        self.assertIsNone(self.repo.get_item("t3").parent_item_id)

    def test_detach_root_is_an_error(self):
        result = self.mutator.detach("t0")
        self.assertEqual(result.error_code, CompositionErrorCode.NO_PARENT)

    def test_detach_missing_item(self):
        result = self.mutator.detach("ghost")
        self.assertEqual(result.error_code, CompositionErrorCode.NOT_FOUND)

    def test_depth_repair_shifts_subtree_by_constant_offset(self):
        """Test a 3-level subtree attached under a depth-2 parent shifts uniformly."""
        # subtree: t5 -> t6 -> t7
        self.assertTrue(self.mutator.attach("t6", "t5").success)
        self.assertTrue(self.mutator.attach("t7", "t6").success)
        before = {i: self.repo.get_item(i).item_depth for i in ("t5", "t6", "t7")}

        result = self.mutator.attach("t5", "t2")

        self.assertTrue(result.success)
        self.assertEqual(result.updated_descendants, 2)
        offsets = {i: self.repo.get_item(i).item_depth - before[i] for i in before}
        self.assertEqual(set(offsets.values()), {3})
        self.assertForestConsistent(10)

    def test_detach_then_reattach_matches_single_attach(self):
        """Test detach(X); attach(X, P) ends where attach(X, P) would."""
        fresh = InMemoryItemRepository([make_item(f"t{i}") for i in range(8)])
        fresh_mutator = HierarchyMutator(
            fresh, rules=permissive_rules(), max_depth=10, settings=DEFAULT_SETTINGS
        )
        for child, parent in (("t1", "t0"), ("t2", "t1"), ("t3", "t2"), ("t4", "t1")):
            fresh_mutator.attach(child, parent)
        self.assertTrue(fresh_mutator.attach("t5", "t3").success)

        self.assertTrue(self.mutator.attach("t5", "t4").success)
        self.assertTrue(self.mutator.detach("t5").success)
        self.assertTrue(self.mutator.attach("t5", "t3").success)

        self.assertEqual(shape(self.repo), shape(fresh))

    def test_move_to_new_parent(self):
        """Test moving an attached subtree re-homes it and fixes depths."""
        result = self.mutator.move_item_to_new_parent("t2", "t4")

        self.assertTrue(result.success)
        self.assertEqual(self.repo.get_item("t2").parent_item_id, "t4")
        self.assertEqual(self.repo.get_item("t2").item_depth, 3)
        self.assertEqual(self.repo.get_item("t3").item_depth, 4)
        self.assertForestConsistent(10)

    def test_move_to_none_detaches(self):
        result = self.mutator.move("t3", None)
        self.assertTrue(result.success)
        self.assertIsNone(self.repo.get_item("t3").parent_item_id)

    def test_move_root_attaches(self):
        result = self.mutator.move("t6", "t0")
        self.assertTrue(result.success)
        self.assertEqual(self.repo.get_item("t6").item_depth, 1)

    def test_move_under_own_descendant_rolls_back(self):
        """Test a failed attach after a successful detach leaves no partial state."""
        before = shape(self.repo)

        result = self.mutator.move("t1", "t3")

        self.assertEqual(result.error_code, CompositionErrorCode.CYCLE_DETECTED)
        self.assertEqual(shape(self.repo), before)

    def test_move_rejected_by_envelope_rolls_back(self):
        self.repo.add_item(make_item("window", start=date(2026, 1, 1), end=date(2026, 1, 31)))
        self.repo.add_item(make_item("dated", start=date(2026, 3, 1), end=date(2026, 3, 2)))
        self.assertTrue(self.mutator.attach("dated", "t0").success)
        before = shape(self.repo)

        result = self.mutator.move("dated", "window")

        self.assertEqual(result.error_code, CompositionErrorCode.PARENT_ENVELOPE_VIOLATION)
        self.assertEqual(shape(self.repo), before)

    def test_move_missing_item(self):
        result = self.mutator.move("ghost", "t0")
        self.assertEqual(result.error_code, CompositionErrorCode.NOT_FOUND)

    def test_random_operations_keep_invariants(self):
        """Test acyclicity, depth bound and cached depths after every random mutation."""
        rng = random.Random(20260118)
        ids = [f"t{i}" for i in range(8)]
        mutator = self.make_mutator(rules=permissive_rules(), max_depth=4)

        for _ in range(300):
            operation = rng.choice(["attach", "detach", "move"])
            item_id = rng.choice(ids)
            target = rng.choice(ids + [None])
            if operation == "attach" and target is not None:
                mutator.attach(item_id, target)
            elif operation == "detach":
                mutator.detach(item_id)
            else:
                mutator.move(item_id, target)

            self.assertForestConsistent(4)


class TestDepthRepair(unittest.TestCase):
    """Test planning and applying cached depth rewrites."""

    def setUp(self):
        self.repo = InMemoryItemRepository([
            make_item("top"),
            make_item("kid", parent_item_id="top", item_depth=2),
            make_item("grandkid", parent_item_id="kid", item_depth=2),
        ])
        self.ancestry = AncestryChecker(self.repo, traversal_limit=8)
        self.repair = DepthRepair(self.ancestry)

    def test_plan_skips_correct_depths(self):
        plan = self.repair.plan(self.ancestry.collect_descendants("top"), 0)
        self.assertEqual([(u.id, u.depth) for u in plan], [("kid", 1)])

    def test_repair_writes_one_batch(self):
        self.assertEqual(self.repair.repair("top", 1), 1)
        self.assertEqual(self.repo.get_item("kid").item_depth, 2)
        self.assertEqual(self.repo.get_item("grandkid").item_depth, 3)
        self.assertEqual(self.repair.repair("top", 1), 0)


class TestTreeQueries(unittest.TestCase):
    """Test read-side tree construction and navigation."""

    def setUp(self):
        self.repo = InMemoryItemRepository()
        mutator = HierarchyMutator(
            self.repo, rules=permissive_rules(), max_depth=6, settings=DEFAULT_SETTINGS
        )
        # root
        #   a (order 2)
        #     a1
        #       a1x
        #         a1x-leaf
        #     a2
        #   b (order 1)
        #     b1
        # other-root
        self.repo.add_item(make_item("root"))
        self.repo.add_item(make_item("a", order_index=2))
        self.repo.add_item(make_item("b", order_index=1))
        for item_id in ("a1", "a2", "a1x", "a1x-leaf", "b1"):
            self.repo.add_item(make_item(item_id))
        self.repo.add_item(make_item("other-root"))
        self.repo.add_item(make_item("archived-root", status=ItemStatus.ARCHIVED))
        self.repo.add_item(make_item("elsewhere", section_id="s2"))
        for child, parent in (
            ("a", "root"), ("b", "root"), ("a1", "a"), ("a2", "a"),
            ("a1x", "a1"), ("a1x-leaf", "a1x"), ("b1", "b"),
        ):
            self.assertTrue(mutator.attach(child, parent).success)
        self.queries = TreeQueryService(self.repo, settings=DEFAULT_SETTINGS, traversal_limit=10)

    def test_children_ordered_by_order_index(self):
        children = self.queries.get_children("root")
        self.assertEqual([c.id for c in children], ["b", "a"])

    def test_get_parent(self):
        self.assertEqual(self.queries.get_parent("a1").id, "a")
        self.assertIsNone(self.queries.get_parent("root"))
        self.assertIsNone(self.queries.get_parent("ghost"))

    def test_get_all_descendants_matches_paths(self):
        """Test descendants are exactly the items whose path passes through the node."""
        for node_id in ("root", "a", "a1", "b"):
            descendants = {item.id for item in self.queries.get_all_descendants(node_id)}
            through = set()
            for item in self.repo.list_items_in_section("s1"):
                path_ids = [entry.item_id for entry in self.queries.get_item_path(item.id)]
                if node_id in path_ids[:-1]:
                    through.add(item.id)
            self.assertEqual(descendants, through, node_id)

        self.assertEqual(len(self.queries.get_all_descendants("root")), 7)
        self.assertEqual(self.queries.get_all_descendants("ghost"), [])

    def test_item_path_is_root_first(self):
        path = self.queries.get_item_path("a1x-leaf")

        self.assertEqual([p.item_id for p in path], ["root", "a", "a1", "a1x", "a1x-leaf"])
        self.assertEqual([p.depth for p in path], [0, 1, 2, 3, 4])
        self.assertEqual(path[-1].title, "A1X Leaf")
        self.assertEqual(self.queries.get_item_path("ghost"), [])

    def test_get_root_item(self):
        self.assertEqual(self.queries.get_root_item("a1x-leaf").id, "root")
        self.assertEqual(self.queries.get_root_item("root").id, "root")
        self.assertIsNone(self.queries.get_root_item("ghost"))

    def test_tree_for_section(self):
        """Test the forest view, counts and ordering."""
        trees = self.queries.get_roadmap_item_tree(TreeFilter(section_id="s1"))

        self.assertEqual([t.item.id for t in trees], ["root", "other-root"])
        root = trees[0]
        self.assertEqual(root.child_count, 2)
        self.assertEqual(root.descendant_count, 7)
        self.assertEqual([c.item.id for c in root.children], ["b", "a"])
        a = root.children[1]
        self.assertEqual(a.child_count, 2)
        self.assertEqual(a.descendant_count, 4)
        self.assertEqual(a.children[0].children[0].children[0].item.id, "a1x-leaf")

    def test_tree_archived_and_roots_only(self):
        with_archived = self.queries.get_roadmap_item_tree(
            TreeFilter(section_id="s1", include_archived=True, include_children=False)
        )

        self.assertIn("archived-root", [t.item.id for t in with_archived])
        self.assertTrue(all(not t.children and t.descendant_count == 0 for t in with_archived))

    def test_tree_for_project_and_single_item(self):
        project_roots = self.queries.get_roadmap_item_tree(TreeFilter(project_id="p1"))
        self.assertEqual(
            sorted(t.item.id for t in project_roots),
            ["elsewhere", "other-root", "root"]
        )

        single = self.queries.get_roadmap_item_tree(TreeFilter(item_id="a"))
        self.assertEqual(len(single), 1)
        self.assertEqual(single[0].descendant_count, 4)
        self.assertEqual(self.queries.get_roadmap_item_tree(TreeFilter(item_id="ghost")), [])

    def test_top_level_items(self):
        roots = self.queries.get_top_level_items(section_id="s1")
        self.assertEqual([r.id for r in roots], ["root", "other-root"])


class TestDataIntegrity(unittest.TestCase):
    """Test traversals stop on corrupted parent pointers."""

    def setUp(self):
        # x <-> y form a cycle; the chain c0..c5 is deeper than the limit below
        items = [
            make_item("x", parent_item_id="y", item_depth=1),
            make_item("y", parent_item_id="x", item_depth=1),
            make_item("free"),
            make_item("c0"),
        ]
        items += [make_item(f"c{i}", parent_item_id=f"c{i - 1}", item_depth=i) for i in range(1, 6)]
        self.repo = InMemoryItemRepository(items)
        self.queries = TreeQueryService(self.repo, traversal_limit=3, settings=DEFAULT_SETTINGS)

    def test_path_through_cycle_raises(self):
        with self.assertRaises(DataIntegrityError):
            self.queries.get_item_path("x")

    def test_deep_chain_raises(self):
        with self.assertRaises(DataIntegrityError):
            self.queries.get_root_item("c5")
        with self.assertRaises(DataIntegrityError):
            self.queries.get_all_descendants("c0")
        with self.assertRaises(DataIntegrityError):
            self.queries.build_tree(self.repo.get_item("c0"))

    def test_mutator_reports_data_integrity(self):
        """Test corrupted data surfaces as a failure result, not an exception."""
        mutator = HierarchyMutator(
            self.repo, rules=permissive_rules(), max_depth=3, settings=DEFAULT_SETTINGS
        )
        result = mutator.attach("free", "x")

        self.assertEqual(result.error_code, CompositionErrorCode.DATA_INTEGRITY)
        self.assertIsNone(self.repo.get_item("free").parent_item_id)


class TestHierarchyAuditor(unittest.TestCase):
    """Test the section audit and depth recompute."""

    def setUp(self):
        self.repo = InMemoryItemRepository([
            make_item("goal", ItemType.GOAL, start=date(2026, 1, 1), end=date(2026, 1, 31)),
            make_item("task", parent_item_id="goal", item_depth=1,
                      start=date(2026, 1, 5), end=date(2026, 1, 6)),
            make_item("stale", parent_item_id="task", item_depth=7),
            make_item("late", parent_item_id="goal", item_depth=1,
                      start=date(2026, 3, 1), end=date(2026, 3, 2)),
            make_item("note-parent", ItemType.NOTE),
            make_item("bad-type", parent_item_id="note-parent", item_depth=1),
            make_item("loop-a", parent_item_id="loop-b", item_depth=1),
            make_item("loop-b", parent_item_id="loop-a", item_depth=1),
            make_item("orphan", parent_item_id="deleted", item_depth=1),
            make_item("foreign-parent", section_id="s2"),
            make_item("cross", parent_item_id="foreign-parent", item_depth=1),
        ])
        self.auditor = HierarchyAuditor(self.repo, max_depth=3, settings=DEFAULT_SETTINGS)

    def issues_for(self, report, item_id):
        return {issue.code for issue in report.issues if issue.item_id == item_id}

    def test_audit_reports_each_violation(self):
        report = self.auditor.audit_section("s1")

        self.assertFalse(report.ok)
        self.assertEqual(report.items_checked, 10)
        self.assertEqual(self.issues_for(report, "task"), set())
        self.assertEqual(self.issues_for(report, "stale"), {"depth_mismatch"})
        self.assertEqual(self.issues_for(report, "late"), {"envelope"})
        self.assertEqual(self.issues_for(report, "bad-type"), {"composition"})
        self.assertEqual(self.issues_for(report, "loop-a"), {"cycle"})
        self.assertEqual(self.issues_for(report, "orphan"), {"orphan_parent"})
        self.assertEqual(self.issues_for(report, "cross"), {"cross_section"})

    def test_recompute_depths(self):
        fixed = self.auditor.recompute_depths("s1")

        self.assertEqual(fixed, 1)
        self.assertEqual(self.repo.get_item("stale").item_depth, 2)
        self.assertEqual(self.repo.get_item("loop-a").item_depth, 1)
        self.assertNotIn("depth_mismatch", self.auditor.audit_section("s1").codes())

    def test_clean_section(self):
        repo = InMemoryItemRepository([make_item("solo")])
        report = HierarchyAuditor(repo, settings=DEFAULT_SETTINGS).audit_section("s1")
        self.assertTrue(report.ok)

    def test_reversed_dates_outside_parent(self):
        repo = InMemoryItemRepository([
            make_item("short", start=date(2026, 1, 1), end=date(2026, 1, 10)),
            stored_item("reversed", date(2026, 1, 20), date(2026, 1, 5), parent_item_id="short", item_depth=1),
        ])
        report = HierarchyAuditor(repo, settings=DEFAULT_SETTINGS).audit_section("s1")

        self.assertEqual(report.codes(), ["envelope"])


if __name__ == '__main__':
    unittest.main()
