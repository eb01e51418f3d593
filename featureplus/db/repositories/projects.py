"""SQLite project storage."""
from __future__ import annotations

import json

import aiosqlite


class SqliteProjectRepository:
    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def insert(self, data: dict, now: str) -> int:
        async with self.db.execute(
            """INSERT INTO projects (
                name, description, status, owner_id, config_json, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                data.get("name", ""),
                data.get("description", ""),
                data.get("status", "active"),
                data.get("owner_id", ""),
                json.dumps(data.get("config") or {}),
                now,
                now,
            ),
        ) as cur:
            project_id = cur.lastrowid or 0
        await self.db.commit()
        return project_id

    async def update(self, project_id: int, data: dict, now: str) -> None:
        await self.db.execute(
            """UPDATE projects SET
                name = ?, description = ?, status = ?, owner_id = ?,
                config_json = ?, updated_at = ?
            WHERE id = ?""",
            (
                data.get("name", ""),
                data.get("description", ""),
                data.get("status", "active"),
                data.get("owner_id", ""),
                json.dumps(data.get("config") or {}),
                now,
                project_id,
            ),
        )
        await self.db.commit()

    async def get_by_id(self, project_id: int) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM projects WHERE id = ?", (project_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def list_all(self) -> list[dict]:
        async with self.db.execute("SELECT * FROM projects ORDER BY id") as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def delete(self, project_id: int) -> None:
        await self.db.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        await self.db.commit()
