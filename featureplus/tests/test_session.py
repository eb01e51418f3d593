import unittest

import aiosqlite

from featureplus.db.sqlite_migrations import run_migrations
from featureplus.errors import RecoverableError
from featureplus.gateway import SqliteGateway
from featureplus.models import FEATURE, PROJECT, TASK, Feature, Task
from featureplus.scripts.feature_tree import build_tree
from featureplus.session import FeatureSession, close_session, get_session, open_session


class FeatureSessionTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.gateway = SqliteGateway(self.db)
        project = await self.gateway.create(PROJECT, {"name": "Demo"})
        self.project_id = str(project["id"])
        self.session = FeatureSession(self.gateway)

    async def asyncTearDown(self) -> None:
        await self.session.close()
        await self.db.close()

    async def test_group_and_sub_feature_counts_end_to_end(self) -> None:
        await self.session.hydrate(self.project_id)
        sync, counts = self.session.sync, self.session.counts

        group = await sync.create(Feature(project_id=self.project_id, title="Group1"))
        self.assertEqual(counts.child_feature_count(group.id), 0)

        sub = await sync.create(Feature(project_id=self.project_id, parent_feature_id=group.id, title="Sub1"))
        self.assertEqual(counts.child_feature_count(group.id), 1)
        self.assertEqual(self.session.hierarchy.parent_of(sub.id), group.id)

        await sync.delete(FEATURE, sub.id)
        self.assertEqual(counts.child_feature_count(group.id), 0)

    async def test_hydrate_loads_project_features_tasks_and_catalogue(self) -> None:
        group = await self.gateway.create(FEATURE, {"project_id": self.project_id, "title": "Group1"})
        sub = await self.gateway.create(
            FEATURE,
            {"project_id": self.project_id, "parent_feature_id": group["id"], "title": "Sub1"},
        )
        await self.gateway.create(TASK, {"sub_feature_id": sub["id"], "task_name": "Build", "task_type": "DB"})
        await self.gateway.set_feature_tags(str(sub["id"]), "api ui")

        stats = await self.session.hydrate(self.project_id)

        self.assertEqual(stats["features"], 2)
        self.assertEqual(stats["tasks"], 1)
        self.assertEqual(self.session.counts.subtree_task_count(str(group["id"])), 1)
        self.assertEqual(self.session.tags.autocomplete("ap"), ["api"])
        self.assertEqual(self.session.hydrated_projects, [self.project_id])

    async def test_tag_edits_round_trip_through_sqlite(self) -> None:
        await self.session.hydrate(self.project_id)
        group = await self.session.sync.create(Feature(project_id=self.project_id, title="Group1"))

        await self.session.sync.add_tags(group.id, "api, ui ;backend")
        await self.session.sync.add_tags(group.id, "api, ui ;backend")

        self.assertEqual(self.session.tags.tags_of(group.id), ["api", "ui", "backend"])
        remote = await self.gateway.read(FEATURE, group.id)
        self.assertEqual(remote["tags"], ["api", "ui", "backend"])

    async def test_remote_rejection_rolls_back_task(self) -> None:
        await self.session.hydrate(self.project_id)
        group = await self.session.sync.create(Feature(project_id=self.project_id, title="Group1"))
        await self.gateway.delete(FEATURE, group.id)

        mutation = self.session.sync.create(Task(feature_id=group.id, task_name="Orphan"))
        with self.assertRaises(RecoverableError) as ctx:
            await mutation
        self.assertEqual(ctx.exception.kind, "validation")
        self.assertEqual(self.session.counts.task_count(group.id), 0)

    async def test_refresh_evicts_records_deleted_remotely(self) -> None:
        await self.session.hydrate(self.project_id)
        group = await self.session.sync.create(Feature(project_id=self.project_id, title="Group1"))
        await self.gateway.delete(FEATURE, group.id)

        self.assertIsNone(await self.session.refresh(FEATURE, group.id))
        self.assertIsNone(self.session.store.get(FEATURE, group.id))

    async def test_refresh_of_deleted_group_evicts_its_subtree(self) -> None:
        await self.session.hydrate(self.project_id)
        group = await self.session.sync.create(Feature(project_id=self.project_id, title="Group1"))
        sub = await self.session.sync.create(
            Feature(project_id=self.project_id, parent_feature_id=group.id, title="Sub1")
        )
        await self.session.sync.create(Task(sub_feature_id=sub.id, task_name="Build"))
        await self.gateway.delete(FEATURE, group.id)

        self.assertIsNone(await self.session.refresh(FEATURE, group.id))

        self.assertIsNone(self.session.store.get(FEATURE, sub.id))
        self.assertEqual(self.session.store.count(TASK), 0)
        self.assertEqual(self.session.counts.child_feature_count(group.id), 0)
        self.assertEqual(self.session.hierarchy.roots(self.project_id), [])

    async def test_feature_tree_view(self) -> None:
        await self.session.hydrate(self.project_id)
        group = await self.session.sync.create(Feature(project_id=self.project_id, title="Group1"))
        await self.session.sync.create(Feature(project_id=self.project_id, parent_feature_id=group.id, title="Sub1"))
        await self.session.sync.add_tags(group.id, "api")

        tree = build_tree(self.session, self.project_id)
        self.assertEqual(tree[0]["title"], "Group1")
        self.assertEqual(tree[0]["counts"]["child_features"], 1)
        self.assertEqual(tree[0]["children"][0]["title"], "Sub1")
        self.assertEqual(build_tree(self.session, self.project_id, tag="missing"), [])

    async def test_module_session_is_a_singleton(self) -> None:
        opened = await open_session(self.gateway)
        try:
            self.assertIs(get_session(), opened)
        finally:
            await close_session()
        with self.assertRaises(RuntimeError):
            get_session()


if __name__ == "__main__":
    unittest.main()
