"""Process-wide FeaturePlus session: store, indices and coordinator wired together."""
from __future__ import annotations

import logging
from typing import Any, Optional

from featureplus.errors import NotFoundError
from featureplus.gateway.base import RemoteGateway
from featureplus.models import FEATURE, PROJECT, TASK, Entity, TagMembership, parse_entity
from featureplus.store import CountAggregator, EntityStore, HierarchyIndex, TagIndex
from featureplus.sync import SyncCoordinator

logger = logging.getLogger("featureplus.session")


class FeatureSession:
    """One consistent client view over a remote project store.

    Readers use ``store``, ``hierarchy``, ``tags`` and ``counts``; every write
    goes through ``sync``.
    """

    def __init__(self, gateway: RemoteGateway, **coordinator_options: Any) -> None:
        self.gateway = gateway
        self.store = EntityStore()
        self.hierarchy = HierarchyIndex()
        self.tags = TagIndex()
        self.store.attach_observer(self.hierarchy)
        self.store.attach_observer(self.tags)
        self.counts = CountAggregator(self.store, self.hierarchy)
        self.sync = SyncCoordinator(self.store, self.hierarchy, self.tags, gateway, **coordinator_options)
        self._hydrated: list[str] = []

    async def hydrate(self, project_id: str) -> dict[str, int]:
        """Read-through load of one project. Records with pending mutations are left alone."""
        project = parse_entity(PROJECT, await self.gateway.read(PROJECT, project_id))
        features = [parse_entity(FEATURE, row) for row in await self.gateway.list(FEATURE, project_id=project.id)]
        tasks = [parse_entity(TASK, row) for row in await self.gateway.list(TASK, project_id=project.id)]
        memberships = [TagMembership.model_validate(row) for row in await self.gateway.list_tags()]

        stats = {
            "projects": self.sync.ingest([project]),
            "features": self.sync.ingest(_parents_first(features)),
            "tasks": self.sync.ingest(tasks),
        }
        self.tags.register_catalogue(m.tag_name for m in memberships)
        stats["catalogue"] = len(self.tags.catalogue())
        if project.id not in self._hydrated:
            self._hydrated.append(project.id)
        logger.info(
            "Hydrated project %s: features=%s tasks=%s catalogue=%s",
            project.id,
            stats["features"],
            stats["tasks"],
            stats["catalogue"],
        )
        return stats

    async def refresh(self, entity_type: str, entity_id: str) -> Optional[Entity]:
        """Re-read one record. A record the remote no longer has is evicted."""
        entity_id = self.sync.resolve_id(entity_type, entity_id)
        try:
            data = await self.gateway.read(entity_type, entity_id)
        except NotFoundError:
            logger.info("%s %s no longer exists remotely; evicting", entity_type, entity_id)
            self.sync.evict(entity_type, entity_id)
            return None
        entity = parse_entity(entity_type, data)
        self.sync.ingest([entity])
        return self.store.get(entity_type, entity.id)

    @property
    def hydrated_projects(self) -> list[str]:
        return list(self._hydrated)

    async def close(self) -> None:
        await self.sync.drain()
        self.store.clear()
        self.sync.reset()
        self._hydrated.clear()
        logger.info("Session closed")


def _parents_first(features: list[Entity]) -> list[Entity]:
    """Order features so every parent is ingested before its children."""
    by_id = {f.id: f for f in features}
    ordered: list[Entity] = []
    placed: set[str] = set()

    def _place(feature: Entity, trail: set[str]) -> None:
        if feature.id in placed or feature.id in trail:
            return
        parent_id = getattr(feature, "parent_feature_id", None)
        if parent_id in by_id:
            _place(by_id[parent_id], trail | {feature.id})
        placed.add(feature.id)
        ordered.append(feature)

    for feature in features:
        _place(feature, set())
    return ordered


_session: FeatureSession | None = None


async def open_session(gateway: RemoteGateway, **coordinator_options: Any) -> FeatureSession:
    """Create the process-wide session, closing any previous one."""
    global _session
    if _session is not None:
        await close_session()
    _session = FeatureSession(gateway, **coordinator_options)
    logger.info("Session opened")
    return _session


def get_session() -> FeatureSession:
    if _session is None:
        raise RuntimeError("FeaturePlus session is not open")
    return _session


async def close_session() -> None:
    global _session
    if _session is not None:
        await _session.close()
        _session = None
