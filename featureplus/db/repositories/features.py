"""SQLite implementation of the feature table, groups and sub-features alike."""
from __future__ import annotations

import aiosqlite

_COLUMNS = (
    "project_id",
    "parent_feature_id",
    "title",
    "description",
    "status",
    "priority",
    "assignee_id",
    "category",
)


def _values(data: dict) -> tuple:
    return (
        data.get("project_id"),
        data.get("parent_feature_id") or None,
        data.get("title", ""),
        data.get("description", ""),
        data.get("status", "todo"),
        data.get("priority", "medium"),
        data.get("assignee_id", "") or "",
        data.get("category", "") or "",
    )


class SqliteFeatureRepository:
    """SQLite-backed feature storage. Parent links live on the child row."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def insert(self, data: dict, now: str) -> int:
        placeholders = ", ".join("?" for _ in _COLUMNS)
        async with self.db.execute(
            f"""INSERT INTO features ({", ".join(_COLUMNS)}, created_at, updated_at)
                VALUES ({placeholders}, ?, ?)""",
            (*_values(data), now, now),
        ) as cur:
            feature_id = cur.lastrowid or 0
        await self.db.commit()
        return feature_id

    async def update(self, feature_id: int, data: dict, now: str) -> None:
        assignments = ", ".join(f"{col} = ?" for col in _COLUMNS)
        await self.db.execute(
            f"UPDATE features SET {assignments}, updated_at = ? WHERE id = ?",
            (*_values(data), now, feature_id),
        )
        await self.db.commit()

    async def get_by_id(self, feature_id: int) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM features WHERE id = ?", (feature_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def list_all(self, project_id: int | None = None) -> list[dict]:
        if project_id is not None:
            async with self.db.execute(
                "SELECT * FROM features WHERE project_id = ? ORDER BY id",
                (project_id,),
            ) as cur:
                return [dict(r) for r in await cur.fetchall()]
        async with self.db.execute("SELECT * FROM features ORDER BY id") as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_children(self, feature_id: int) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM features WHERE parent_feature_id = ? ORDER BY id",
            (feature_id,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def ancestor_ids(self, feature_id: int) -> list[int]:
        """Parent chain of ``feature_id``, nearest first."""
        query = """
            WITH RECURSIVE chain(id, parent_feature_id, depth) AS (
                SELECT id, parent_feature_id, 0 FROM features WHERE id = ?
                UNION
                SELECT f.id, f.parent_feature_id, chain.depth + 1
                FROM features f JOIN chain ON f.id = chain.parent_feature_id
                WHERE chain.depth < 10000
            )
            SELECT id FROM chain WHERE depth > 0 ORDER BY depth
        """
        async with self.db.execute(query, (feature_id,)) as cur:
            return [row[0] for row in await cur.fetchall()]

    async def subtree_ids(self, feature_id: int) -> list[int]:
        """``feature_id`` and every feature below it."""
        query = """
            WITH RECURSIVE subtree(id) AS (
                SELECT id FROM features WHERE id = ?
                UNION
                SELECT f.id FROM features f JOIN subtree ON f.parent_feature_id = subtree.id
            )
            SELECT id FROM subtree
        """
        async with self.db.execute(query, (feature_id,)) as cur:
            return [row[0] for row in await cur.fetchall()]

    async def delete_many(self, feature_ids: list[int]) -> None:
        if not feature_ids:
            return
        placeholders = ", ".join("?" for _ in feature_ids)
        await self.db.execute(
            f"DELETE FROM features WHERE id IN ({placeholders})",
            tuple(feature_ids),
        )
        await self.db.commit()

