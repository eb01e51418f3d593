"""Feature tag membership rows."""
from __future__ import annotations

import aiosqlite


class SqliteFeatureTagRepository:
    """One row per (feature, tag name)."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def replace_for_feature(
        self,
        feature_id: int,
        tag_names: list[str],
        now: str,
        created_by_user: str = "",
    ) -> None:
        """Delete the feature's memberships, then insert ``tag_names`` in order."""
        await self.db.execute("DELETE FROM feature_tags WHERE feature_id = ?", (feature_id,))
        for idx, name in enumerate(tag_names):
            await self.db.execute(
                """INSERT OR IGNORE INTO feature_tags
                    (feature_id, tag_name, created_by_user, sort_order, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (feature_id, name, created_by_user, idx, now),
            )
        await self.db.commit()

    async def list_for_feature(self, feature_id: int) -> list[str]:
        async with self.db.execute(
            "SELECT tag_name FROM feature_tags WHERE feature_id = ? ORDER BY sort_order, tag_name",
            (feature_id,),
        ) as cur:
            return [row[0] for row in await cur.fetchall()]

    async def list_for_features(self, feature_ids: list[int]) -> dict[int, list[str]]:
        if not feature_ids:
            return {}
        placeholders = ", ".join("?" for _ in feature_ids)
        result: dict[int, list[str]] = {fid: [] for fid in feature_ids}
        async with self.db.execute(
            f"""SELECT feature_id, tag_name FROM feature_tags
                WHERE feature_id IN ({placeholders})
                ORDER BY feature_id, sort_order, tag_name""",
            tuple(feature_ids),
        ) as cur:
            for row in await cur.fetchall():
                result.setdefault(row[0], []).append(row[1])
        return result

    async def list_all(self) -> list[dict]:
        async with self.db.execute(
            """SELECT tag_name, feature_id, created_by_user FROM feature_tags
               ORDER BY tag_name, feature_id"""
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def delete_for_features(self, feature_ids: list[int]) -> None:
        if not feature_ids:
            return
        placeholders = ", ".join("?" for _ in feature_ids)
        await self.db.execute(
            f"DELETE FROM feature_tags WHERE feature_id IN ({placeholders})",
            tuple(feature_ids),
        )
        await self.db.commit()
