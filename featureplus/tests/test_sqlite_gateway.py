import unittest

import aiosqlite

from featureplus.db.sqlite_migrations import SCHEMA_VERSION, run_migrations
from featureplus.errors import ConflictError, NotFoundError, RemoteValidationError
from featureplus.gateway import RemoteGateway, SqliteGateway
from featureplus.models import FEATURE, PROJECT, TASK


class SqliteGatewayTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.gateway = SqliteGateway(self.db)
        self.project = await self.gateway.create(PROJECT, {"name": "Demo"})
        self.group = await self.gateway.create(FEATURE, {"project_id": self.project["id"], "title": "Group 1"})

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def _sub(self, title: str, parent_id) -> dict:
        return await self.gateway.create(
            FEATURE,
            {"project_id": self.project["id"], "parent_feature_id": parent_id, "title": title},
        )

    async def test_implements_remote_gateway_protocol(self) -> None:
        self.assertIsInstance(self.gateway, RemoteGateway)

    async def test_migrations_are_idempotent(self) -> None:
        await run_migrations(self.db)
        async with self.db.execute("SELECT COUNT(*), MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
        self.assertEqual(row[0], 1)
        self.assertEqual(row[1], SCHEMA_VERSION)

    async def test_create_assigns_ids_and_defaults(self) -> None:
        self.assertEqual(self.project["config"], {})
        self.assertIsInstance(self.group["id"], int)
        self.assertEqual(self.group["status"], "todo")
        self.assertEqual(self.group["priority"], "medium")
        self.assertIsNone(self.group["parent_feature_id"])
        self.assertEqual(self.group["tags"], [])
        self.assertTrue(self.group["updated_at"])

    async def test_invalid_payloads_are_rejected(self) -> None:
        with self.assertRaises(RemoteValidationError):
            await self.gateway.create(FEATURE, {"project_id": self.project["id"], "title": ""})
        with self.assertRaises(RemoteValidationError):
            await self.gateway.create(FEATURE, {"project_id": self.project["id"], "title": "x", "status": "blocked"})
        with self.assertRaises(RemoteValidationError):
            await self.gateway.create(FEATURE, {"project_id": 999, "title": "x"})
        with self.assertRaises(RemoteValidationError):
            await self.gateway.create(TASK, {"feature_id": self.group["id"], "task_name": "x", "task_type": "Ops"})

    async def test_stale_base_version_is_a_conflict(self) -> None:
        updated = await self.gateway.patch(
            FEATURE, str(self.group["id"]), {"title": "Renamed"}, base_version=self.group["updated_at"]
        )
        self.assertEqual(updated["title"], "Renamed")
        self.assertGreater(updated["updated_at"], self.group["updated_at"])

        with self.assertRaises(ConflictError):
            await self.gateway.patch(
                FEATURE, str(self.group["id"]), {"title": "Again"}, base_version=self.group["updated_at"]
            )

    async def test_move_under_own_descendant_is_rejected(self) -> None:
        sub = await self._sub("Sub 1", self.group["id"])
        with self.assertRaises(RemoteValidationError):
            await self.gateway.patch(FEATURE, str(self.group["id"]), {"parent_feature_id": sub["id"]})

    async def test_set_feature_tags_replaces_membership(self) -> None:
        tagged = await self.gateway.set_feature_tags(str(self.group["id"]), "api, ui ;#backend")
        self.assertEqual(tagged["tags"], ["api", "ui", "backend"])

        tagged = await self.gateway.set_feature_tags(str(self.group["id"]), "api")
        self.assertEqual(tagged["tags"], ["api"])
        rows = await self.gateway.list_tags()
        self.assertEqual([r["tag_name"] for r in rows], ["api"])
        self.assertEqual(rows[0]["feature_id"], self.group["id"])

    async def test_list_filters(self) -> None:
        sub = await self._sub("Sub 1", self.group["id"])
        await self.gateway.create(TASK, {"sub_feature_id": sub["id"], "task_name": "Build"})
        other = await self.gateway.create(PROJECT, {"name": "Other"})
        await self.gateway.create(FEATURE, {"project_id": other["id"], "title": "Elsewhere"})

        features = await self.gateway.list(FEATURE, project_id=str(self.project["id"]))
        children = await self.gateway.list(FEATURE, parent_feature_id=self.group["id"])
        tasks = await self.gateway.list(TASK, project_id=self.project["id"])

        self.assertEqual([f["title"] for f in features], ["Group 1", "Sub 1"])
        self.assertEqual([f["id"] for f in children], [sub["id"]])
        self.assertEqual([t["task_name"] for t in tasks], ["Build"])
        self.assertEqual(tasks[0]["comments"], [])

    async def test_feature_delete_cascades(self) -> None:
        sub = await self._sub("Sub 1", self.group["id"])
        deeper = await self._sub("Sub 1a", sub["id"])
        await self.gateway.create(TASK, {"sub_feature_id": deeper["id"], "task_name": "Build"})
        await self.gateway.set_feature_tags(str(sub["id"]), "api")

        await self.gateway.delete(FEATURE, str(sub["id"]))

        with self.assertRaises(NotFoundError):
            await self.gateway.read(FEATURE, str(deeper["id"]))
        self.assertEqual(await self.gateway.list(TASK), [])
        self.assertEqual(await self.gateway.list_tags(), [])
        self.assertEqual(len(await self.gateway.list(FEATURE)), 1)
        with self.assertRaises(NotFoundError):
            await self.gateway.delete(FEATURE, str(sub["id"]))

    async def test_category_is_part_of_the_base_schema(self) -> None:
        feature = await self.gateway.create(
            FEATURE, {"project_id": self.project["id"], "title": "Login", "category": "Auth"}
        )
        self.assertEqual(feature["category"], "Auth")
        self.assertEqual(self.group["category"], "")

    async def test_group_with_sub_features_cannot_change_project(self) -> None:
        other = await self.gateway.create(PROJECT, {"name": "Other"})
        await self._sub("Sub 1", self.group["id"])

        with self.assertRaises(RemoteValidationError):
            await self.gateway.patch(FEATURE, str(self.group["id"]), {"project_id": other["id"]})
        leaf = await self._sub("Leaf", None)
        moved = await self.gateway.patch(FEATURE, str(leaf["id"]), {"project_id": other["id"]})
        self.assertEqual(moved["project_id"], other["id"])

    async def test_unknown_ids_are_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            await self.gateway.read(FEATURE, "tmp-abc")
        with self.assertRaises(NotFoundError):
            await self.gateway.read(TASK, "42")


if __name__ == "__main__":
    unittest.main()
