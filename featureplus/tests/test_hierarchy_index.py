import unittest

from featureplus.errors import CycleError
from featureplus.store import HierarchyIndex


class HierarchyIndexTests(unittest.TestCase):
    def setUp(self) -> None:
        self.index = HierarchyIndex()
        self.index.attach("g1", None, "p1")
        self.index.attach("s1", "g1", "p1")
        self.index.attach("s2", "g1", "p1")
        self.index.attach("s1a", "s1", "p1")
        self.index.attach("g2", None, "p2")

    def test_children_keep_insertion_order(self) -> None:
        self.assertEqual(self.index.children_of("g1"), ["s1", "s2"])
        self.assertEqual(self.index.children_of("s2"), [])

    def test_roots_filter_by_project(self) -> None:
        self.assertEqual(self.index.roots(), ["g1", "g2"])
        self.assertEqual(self.index.roots("p1"), ["g1"])

    def test_ancestors_descendants_and_depth(self) -> None:
        self.assertEqual(self.index.ancestors("s1a"), ["s1", "g1"])
        self.assertEqual(self.index.descendants("g1"), ["s1", "s1a", "s2"])
        self.assertEqual(self.index.depth("s1a"), 2)
        self.assertEqual(self.index.depth("g1"), 0)

    def test_attach_under_own_descendant_raises_and_changes_nothing(self) -> None:
        with self.assertRaises(CycleError) as ctx:
            self.index.attach("g1", "s1a")

        self.assertEqual(ctx.exception.child_id, "g1")
        self.assertIsNone(self.index.parent_of("g1"))
        self.assertEqual(self.index.children_of("s1a"), [])

    def test_self_parent_is_a_cycle(self) -> None:
        with self.assertRaises(CycleError):
            self.index.ensure_can_attach("s2", "s2")

    def test_move_updates_both_parents(self) -> None:
        self.index.attach("s2", "s1")

        self.assertEqual(self.index.children_of("g1"), ["s1"])
        self.assertEqual(self.index.children_of("s1"), ["s1a", "s2"])
        self.assertEqual(self.index.parent_of("s2"), "s1")

    def test_detach_removes_sibling_entry(self) -> None:
        self.index.detach("s2")

        self.assertNotIn("s2", self.index)
        self.assertEqual(self.index.children_of("g1"), ["s1"])

    def test_rekey_moves_edges_in_place(self) -> None:
        self.index.rekey("s1", "42")

        self.assertEqual(self.index.children_of("g1"), ["42", "s2"])
        self.assertEqual(self.index.parent_of("s1a"), "42")
        self.assertEqual(self.index.children_of("42"), ["s1a"])
        self.assertNotIn("s1", self.index)


if __name__ == "__main__":
    unittest.main()
