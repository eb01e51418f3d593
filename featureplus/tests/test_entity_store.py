import unittest

from featureplus.errors import CycleError
from featureplus.models import FEATURE, PROJECT, TASK, Feature, Project, Task
from featureplus.store import EntityStore, HierarchyIndex, TagIndex


def _feature(fid: str, parent: str | None = None, **extra) -> Feature:
    return Feature(id=fid, project_id="p1", parent_feature_id=parent, title=f"F{fid}", **extra)


class EntityStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = EntityStore()
        self.hierarchy = HierarchyIndex()
        self.tags = TagIndex()
        self.store.attach_observer(self.hierarchy)
        self.store.attach_observer(self.tags)
        self.store.put(Project(id="p1", name="Demo"))

    def test_put_get_and_list_by_type(self) -> None:
        self.store.put(_feature("1"))
        self.store.put(_feature("2", "1"))

        self.assertEqual(self.store.get(FEATURE, "2").parent_feature_id, "1")
        self.assertEqual([f.id for f in self.store.list(FEATURE)], ["1", "2"])
        self.assertEqual(self.store.count(PROJECT), 1)
        self.assertIsNone(self.store.get(TASK, "1"))

    def test_put_returns_replaced_record(self) -> None:
        self.store.put(_feature("1"))
        previous = self.store.put(_feature("1").model_copy(update={"title": "Renamed"}))

        self.assertEqual(previous.title, "F1")
        self.assertEqual(self.store.get(FEATURE, "1").title, "Renamed")

    def test_remove_unknown_id_is_noop(self) -> None:
        self.assertIsNone(self.store.remove(FEATURE, "missing"))
        self.assertIsNone(self.store.remove(FEATURE, ""))

    def test_rejected_put_leaves_store_and_indices_untouched(self) -> None:
        self.store.put(_feature("1"))
        self.store.put(_feature("2", "1"))

        with self.assertRaises(CycleError):
            self.store.put(_feature("1", "2"))

        self.assertIsNone(self.store.get(FEATURE, "1").parent_feature_id)
        self.assertEqual(self.hierarchy.children_of("1"), ["2"])
        self.assertIsNone(self.hierarchy.parent_of("1"))

    def test_rekey_rewrites_references_and_indices(self) -> None:
        self.store.put(_feature("tmp-a", tags=["api"]))
        self.store.put(_feature("2", "tmp-a"))
        self.store.put(Task(id="t1", feature_id="tmp-a", task_name="Wire it"))

        self.store.rekey(FEATURE, "tmp-a", "10")

        self.assertIsNone(self.store.get(FEATURE, "tmp-a"))
        self.assertEqual(self.store.get(FEATURE, "10").id, "10")
        self.assertEqual(self.store.get(FEATURE, "2").parent_feature_id, "10")
        self.assertEqual(self.store.get(TASK, "t1").feature_id, "10")
        self.assertEqual(self.hierarchy.children_of("10"), ["2"])
        self.assertEqual(self.hierarchy.parent_of("2"), "10")
        self.assertEqual(self.tags.by_tag("api"), {"10"})

    def test_rekey_keeps_position(self) -> None:
        self.store.put(_feature("1"))
        self.store.put(_feature("tmp-b"))
        self.store.put(_feature("3"))

        self.store.rekey(FEATURE, "tmp-b", "2")

        self.assertEqual(list(self.store.iter_ids(FEATURE)), ["1", "2", "3"])

    def test_subscribe_receives_events_until_unsubscribed(self) -> None:
        events = []
        unsubscribe = self.store.subscribe(events.append)

        self.store.put(_feature("1"))
        self.store.rekey(FEATURE, "1", "9")
        self.store.remove(FEATURE, "9")
        unsubscribe()
        self.store.put(_feature("2"))

        self.assertEqual([e.action for e in events], ["put", "rekey", "remove"])
        self.assertEqual(events[1].previous_id, "1")

    def test_failing_listener_does_not_block_writes(self) -> None:
        def _boom(event) -> None:
            raise RuntimeError("listener bug")

        self.store.subscribe(_boom)
        with self.assertLogs("featureplus.store", level="ERROR"):
            self.store.put(_feature("1"))
        self.assertTrue(self.store.contains(FEATURE, "1"))

    def test_clear_resets_observers(self) -> None:
        self.store.put(_feature("1", tags=["ui"]))
        self.store.clear()

        self.assertEqual(self.store.count(FEATURE), 0)
        self.assertEqual(self.hierarchy.roots(), [])
        self.assertEqual(self.tags.catalogue(), [])

    def test_attach_observer_replays_existing_records(self) -> None:
        self.store.put(_feature("1"))
        self.store.put(_feature("2", "1"))
        late = HierarchyIndex()

        self.store.attach_observer(late)

        self.assertEqual(late.children_of("1"), ["2"])


if __name__ == "__main__":
    unittest.main()
