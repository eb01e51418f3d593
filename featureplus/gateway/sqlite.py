"""RemoteGateway backed by a local SQLite database.

Plays the part of the authoritative store for the CLI and for tests: integer
ids, server timestamps, optimistic-concurrency checks on ``updated_at``.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from featureplus import config
from featureplus.db.connection import connect
from featureplus.db.repositories import (
    SqliteFeatureRepository,
    SqliteFeatureTagRepository,
    SqliteProjectRepository,
    SqliteTaskRepository,
)
from featureplus.db.sqlite_migrations import run_migrations
from featureplus.errors import ConflictError, NotFoundError, RemoteValidationError
from featureplus.models import FEATURE, FEATURE_PRIORITIES, FEATURE_STATUSES, PROJECT, TASK
from featureplus.tagging import coerce_tag_list, parse_tag_input

logger = logging.getLogger("featureplus.db")


def _int_id(entity_type: str, value: Any) -> int:
    try:
        return int(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(f"{entity_type} {value} not found", entity_type=entity_type, entity_id=str(value)) from None


def _ref(value: Any) -> Optional[int]:
    if value in (None, "", 0, "0"):
        return None
    try:
        return int(str(value))
    except ValueError:
        raise RemoteValidationError(f"invalid reference: {value}") from None


class SqliteGateway:
    """aiosqlite implementation of ``RemoteGateway``."""

    def __init__(self, db: aiosqlite.Connection, *, owns_connection: bool = False):
        self.db = db
        self.projects = SqliteProjectRepository(db)
        self.features = SqliteFeatureRepository(db)
        self.tasks = SqliteTaskRepository(db)
        self.tags = SqliteFeatureTagRepository(db)
        self._owns_connection = owns_connection
        self._last_stamp: Optional[datetime] = None

    @classmethod
    async def open(cls, path: str | Path | None = None) -> "SqliteGateway":
        db = await connect(path or config.DB_PATH)
        await run_migrations(db)
        return cls(db, owns_connection=True)

    async def close(self) -> None:
        if self._owns_connection:
            await self.db.close()

    def _now(self) -> str:
        # Strictly increasing so updated_at works as a version token.
        stamp = datetime.now(timezone.utc)
        if self._last_stamp is not None and stamp <= self._last_stamp:
            stamp = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = stamp
        return stamp.isoformat(timespec="microseconds")

    # ── RemoteGateway ──────────────────────────────────────────────

    async def create(self, entity_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        now = self._now()
        if entity_type == PROJECT:
            data = self._project_data(payload)
            new_id = await self.projects.insert(data, now)
        elif entity_type == FEATURE:
            data = await self._feature_data(payload)
            new_id = await self.features.insert(data, now)
            await self.tags.replace_for_feature(new_id, coerce_tag_list(payload.get("tags")), now)
        elif entity_type == TASK:
            data = await self._task_data(payload)
            new_id = await self.tasks.insert(data, now)
        else:
            raise RemoteValidationError(f"unknown entity type: {entity_type}")
        logger.info("Created %s %s", entity_type, new_id)
        return await self.read(entity_type, str(new_id))

    async def read(self, entity_type: str, entity_id: str) -> dict[str, Any]:
        row_id = _int_id(entity_type, entity_id)
        if entity_type == PROJECT:
            row = await self.projects.get_by_id(row_id)
        elif entity_type == FEATURE:
            row = await self.features.get_by_id(row_id)
        elif entity_type == TASK:
            row = await self.tasks.get_by_id(row_id)
        else:
            raise RemoteValidationError(f"unknown entity type: {entity_type}")
        if row is None:
            raise NotFoundError(f"{entity_type} {entity_id} not found", entity_type=entity_type, entity_id=str(entity_id))
        return await self._wire(entity_type, row)

    async def update(
        self,
        entity_type: str,
        entity_id: str,
        payload: dict[str, Any],
        *,
        base_version: Optional[str] = None,
    ) -> dict[str, Any]:
        current = await self.read(entity_type, entity_id)
        self._check_version(entity_type, entity_id, current, base_version)
        row_id = _int_id(entity_type, entity_id)
        now = self._now()
        if entity_type == PROJECT:
            await self.projects.update(row_id, self._project_data(payload), now)
        elif entity_type == FEATURE:
            data = await self._feature_data(payload, feature_id=row_id)
            await self.features.update(row_id, data, now)
            if "tags" in payload:
                await self.tags.replace_for_feature(row_id, coerce_tag_list(payload.get("tags")), now)
        else:
            await self.tasks.update(row_id, await self._task_data(payload), now)
        return await self.read(entity_type, entity_id)

    async def patch(
        self,
        entity_type: str,
        entity_id: str,
        fields: dict[str, Any],
        *,
        base_version: Optional[str] = None,
    ) -> dict[str, Any]:
        current = await self.read(entity_type, entity_id)
        merged = {**current, **fields}
        return await self.update(entity_type, entity_id, merged, base_version=base_version)

    async def delete(self, entity_type: str, entity_id: str) -> None:
        row_id = _int_id(entity_type, entity_id)
        await self.read(entity_type, entity_id)
        if entity_type == PROJECT:
            roots = [row["id"] for row in await self.features.list_all(row_id)]
            await self._delete_features(roots)
            await self.projects.delete(row_id)
        elif entity_type == FEATURE:
            await self._delete_features(await self.features.subtree_ids(row_id))
        else:
            await self.tasks.delete(row_id)
        logger.info("Deleted %s %s", entity_type, entity_id)

    async def list(self, entity_type: str, **filters: Any) -> list[dict[str, Any]]:
        project_id = _ref(filters.get("project_id"))
        if entity_type == PROJECT:
            rows = await self.projects.list_all()
        elif entity_type == FEATURE:
            parent_id = _ref(filters.get("parent_feature_id"))
            if parent_id is not None:
                rows = await self.features.list_children(parent_id)
            else:
                rows = await self.features.list_all(project_id)
        elif entity_type == TASK:
            feature_id = _ref(filters.get("feature_id"))
            if feature_id is not None:
                rows = await self.tasks.list_by_feature(feature_id)
            else:
                rows = await self.tasks.list_all(project_id)
        else:
            raise RemoteValidationError(f"unknown entity type: {entity_type}")
        if entity_type == FEATURE:
            tag_map = await self.tags.list_for_features([row["id"] for row in rows])
            return [self._feature_wire(row, tag_map.get(row["id"], [])) for row in rows]
        return [await self._wire(entity_type, row) for row in rows]

    async def set_feature_tags(self, feature_id: str, tags_input: str) -> dict[str, Any]:
        current = await self.read(FEATURE, feature_id)
        row_id = _int_id(FEATURE, feature_id)
        now = self._now()
        await self.tags.replace_for_feature(row_id, parse_tag_input(tags_input), now)
        await self.features.update(row_id, current, now)
        return await self.read(FEATURE, feature_id)

    async def list_tags(self) -> list[dict[str, Any]]:
        return await self.tags.list_all()

    # ── helpers ────────────────────────────────────────────────────

    async def _delete_features(self, feature_ids: list[int]) -> None:
        scope: list[int] = []
        for fid in feature_ids:
            for sub_id in await self.features.subtree_ids(fid):
                if sub_id not in scope:
                    scope.append(sub_id)
        await self.tasks.delete_by_features(scope)
        await self.tags.delete_for_features(scope)
        await self.features.delete_many(scope)

    @staticmethod
    def _check_version(entity_type: str, entity_id: str, current: dict[str, Any], base_version: Optional[str]) -> None:
        if base_version is None or base_version == current.get("updated_at"):
            return
        raise ConflictError(
            f"{entity_type} {entity_id} changed since {base_version}",
            entity_type=entity_type,
            entity_id=str(entity_id),
        )

    async def _wire(self, entity_type: str, row: dict) -> dict[str, Any]:
        if entity_type == PROJECT:
            data = dict(row)
            data["config"] = json.loads(data.pop("config_json", None) or "{}")
            return data
        if entity_type == FEATURE:
            return self._feature_wire(row, await self.tags.list_for_feature(row["id"]))
        data = dict(row)
        data["attachments"] = json.loads(data.pop("attachments_json", None) or "[]")
        data["comments"] = json.loads(data.pop("comments_json", None) or "[]")
        return data

    @staticmethod
    def _feature_wire(row: dict, tags: list[str]) -> dict[str, Any]:
        data = dict(row)
        data["tags"] = list(tags)
        return data

    @staticmethod
    def _project_data(payload: dict[str, Any]) -> dict[str, Any]:
        name = str(payload.get("name") or "").strip()
        if not name:
            raise RemoteValidationError("project name is required", entity_type=PROJECT)
        return {**payload, "name": name}

    async def _feature_data(self, payload: dict[str, Any], feature_id: int | None = None) -> dict[str, Any]:
        title = str(payload.get("title") or "").strip()
        if not title:
            raise RemoteValidationError("feature title is required", entity_type=FEATURE)
        status = payload.get("status") or "todo"
        if status not in FEATURE_STATUSES:
            raise RemoteValidationError(f"invalid status: {status}", entity_type=FEATURE)
        priority = payload.get("priority") or "medium"
        if priority not in FEATURE_PRIORITIES:
            raise RemoteValidationError(f"invalid priority: {priority}", entity_type=FEATURE)
        project_id = _ref(payload.get("project_id"))
        if project_id is None or await self.projects.get_by_id(project_id) is None:
            raise RemoteValidationError(f"project {payload.get('project_id')} does not exist", entity_type=FEATURE)
        parent_id = _ref(payload.get("parent_feature_id"))
        if parent_id is not None:
            parent = await self.features.get_by_id(parent_id)
            if parent is None:
                raise RemoteValidationError(f"parent feature {parent_id} does not exist", entity_type=FEATURE)
            if parent["project_id"] != project_id:
                raise RemoteValidationError(f"parent feature {parent_id} is in another project", entity_type=FEATURE)
            if feature_id is not None and (
                parent_id == feature_id or feature_id in await self.features.ancestor_ids(parent_id)
            ):
                raise RemoteValidationError(
                    f"feature {feature_id} cannot be placed under {parent_id}: cycle",
                    entity_type=FEATURE,
                )
        if feature_id is not None:
            # Sub-features always live in their parent's project.
            for child in await self.features.list_children(feature_id):
                if child["project_id"] != project_id:
                    raise RemoteValidationError(
                        f"feature {feature_id} has sub-features in project {child['project_id']}",
                        entity_type=FEATURE,
                    )
        return {
            **payload,
            "title": title,
            "status": status,
            "priority": priority,
            "project_id": project_id,
            "parent_feature_id": parent_id,
        }

    async def _task_data(self, payload: dict[str, Any]) -> dict[str, Any]:
        name = str(payload.get("task_name") or "").strip()
        if not name:
            raise RemoteValidationError("task name is required", entity_type=TASK)
        feature_id = _ref(payload.get("feature_id"))
        sub_feature_id = _ref(payload.get("sub_feature_id"))
        owners = [ref for ref in (feature_id, sub_feature_id) if ref is not None]
        if len(owners) != 1:
            raise RemoteValidationError("a task needs exactly one owner", entity_type=TASK)
        owner = await self.features.get_by_id(owners[0])
        if owner is None:
            raise RemoteValidationError(f"owner feature {owners[0]} does not exist", entity_type=TASK)
        project = await self.projects.get_by_id(owner["project_id"])
        project_config = json.loads((project or {}).get("config_json") or "{}")
        allowed = project_config.get("task_types") or list(config.DEFAULT_TASK_TYPES)
        task_type = payload.get("task_type") or "UI"
        if task_type not in allowed:
            raise RemoteValidationError(f"invalid task type: {task_type}", entity_type=TASK)
        return {
            **payload,
            "task_name": name,
            "task_type": task_type,
            "feature_id": feature_id,
            "sub_feature_id": sub_feature_id,
        }
