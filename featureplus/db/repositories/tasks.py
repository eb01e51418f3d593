"""SQLite implementation of the task table."""
from __future__ import annotations

import json

import aiosqlite


class SqliteTaskRepository:
    """SQLite-backed task storage. Attachments and comments ride along as JSON."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    @staticmethod
    def _values(data: dict) -> tuple:
        return (
            data.get("feature_id") or None,
            data.get("sub_feature_id") or None,
            data.get("task_type", "UI"),
            data.get("task_name", ""),
            data.get("description", ""),
            json.dumps(data.get("attachments") or []),
            json.dumps(data.get("comments") or []),
            data.get("created_by_user", "") or "",
        )

    async def insert(self, data: dict, now: str) -> int:
        async with self.db.execute(
            """INSERT INTO tasks (
                feature_id, sub_feature_id, task_type, task_name, description,
                attachments_json, comments_json, created_by_user, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (*self._values(data), now, now),
        ) as cur:
            task_id = cur.lastrowid or 0
        await self.db.commit()
        return task_id

    async def update(self, task_id: int, data: dict, now: str) -> None:
        await self.db.execute(
            """UPDATE tasks SET
                feature_id = ?, sub_feature_id = ?, task_type = ?, task_name = ?,
                description = ?, attachments_json = ?, comments_json = ?,
                created_by_user = ?, updated_at = ?
            WHERE id = ?""",
            (*self._values(data), now, task_id),
        )
        await self.db.commit()

    async def get_by_id(self, task_id: int) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM tasks WHERE id = ?", (task_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def list_all(self, project_id: int | None = None) -> list[dict]:
        if project_id is not None:
            async with self.db.execute(
                """SELECT t.* FROM tasks t
                   JOIN features f ON f.id = COALESCE(t.sub_feature_id, t.feature_id)
                   WHERE f.project_id = ?
                   ORDER BY t.id""",
                (project_id,),
            ) as cur:
                return [dict(r) for r in await cur.fetchall()]
        async with self.db.execute("SELECT * FROM tasks ORDER BY id") as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_by_feature(self, feature_id: int) -> list[dict]:
        """Tasks owned directly by ``feature_id``."""
        async with self.db.execute(
            "SELECT * FROM tasks WHERE COALESCE(sub_feature_id, feature_id) = ? ORDER BY id",
            (feature_id,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def delete(self, task_id: int) -> None:
        await self.db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        await self.db.commit()

    async def delete_by_features(self, feature_ids: list[int]) -> None:
        if not feature_ids:
            return
        placeholders = ", ".join("?" for _ in feature_ids)
        await self.db.execute(
            f"""DELETE FROM tasks
                WHERE feature_id IN ({placeholders}) OR sub_feature_id IN ({placeholders})""",
            (*feature_ids, *feature_ids),
        )
        await self.db.commit()
