"""Parent -> children index over Features."""
from __future__ import annotations

from typing import Optional

from featureplus.errors import CycleError
from featureplus.models import FEATURE, PROJECT, Entity


class HierarchyIndex:
    """Derived feature forest.

    Children keep insertion order. Every write validates first and applies
    second, so a rejected attach leaves the index untouched.
    """

    def __init__(self) -> None:
        self._parent: dict[str, Optional[str]] = {}
        self._children: dict[str, dict[str, None]] = {}
        self._project: dict[str, str] = {}

    # ── reads ──────────────────────────────────────────────────────

    def __contains__(self, feature_id: object) -> bool:
        return feature_id in self._parent

    def parent_of(self, feature_id: str) -> Optional[str]:
        return self._parent.get(feature_id)

    def children_of(self, feature_id: str) -> list[str]:
        return list(self._children.get(feature_id, ()))

    def roots(self, project_id: str | None = None) -> list[str]:
        return [
            fid
            for fid, parent in self._parent.items()
            if parent is None and (project_id is None or self._project.get(fid) == project_id)
        ]

    def ancestors(self, feature_id: str) -> list[str]:
        """Parent chain from the direct parent up to the feature group."""
        chain: list[str] = []
        seen = {feature_id}
        current = self._parent.get(feature_id)
        while current is not None and current not in seen:
            chain.append(current)
            seen.add(current)
            current = self._parent.get(current)
        return chain

    def descendants(self, feature_id: str) -> list[str]:
        """All features below ``feature_id``, depth-first pre-order."""
        result: list[str] = []
        stack = list(reversed(self.children_of(feature_id)))
        seen = {feature_id}
        while stack:
            fid = stack.pop()
            if fid in seen:
                continue
            seen.add(fid)
            result.append(fid)
            stack.extend(reversed(self.children_of(fid)))
        return result

    def depth(self, feature_id: str) -> int:
        return len(self.ancestors(feature_id))

    # ── writes ─────────────────────────────────────────────────────

    def ensure_can_attach(self, child_id: str, parent_id: Optional[str]) -> None:
        if parent_id is None:
            return
        if parent_id == child_id:
            raise CycleError(child_id, parent_id)
        seen: set[str] = set()
        current: Optional[str] = parent_id
        while current is not None and current not in seen:
            if current == child_id:
                raise CycleError(child_id, parent_id)
            seen.add(current)
            current = self._parent.get(current)

    def attach(self, child_id: str, parent_id: Optional[str], project_id: str = "") -> None:
        """Place ``child_id`` under ``parent_id`` (``None`` makes it a group)."""
        self.ensure_can_attach(child_id, parent_id)
        if project_id:
            self._project[child_id] = project_id
        if child_id in self._parent and self._parent[child_id] == parent_id:
            return
        self._unlink(child_id)
        self._parent[child_id] = parent_id
        if parent_id is not None:
            self._children.setdefault(parent_id, {})[child_id] = None

    def detach(self, feature_id: str) -> None:
        """Drop a feature from the index. Its own child set is kept while non-empty."""
        self._unlink(feature_id)
        self._parent.pop(feature_id, None)
        self._project.pop(feature_id, None)
        if not self._children.get(feature_id):
            self._children.pop(feature_id, None)

    def _unlink(self, feature_id: str) -> None:
        if feature_id not in self._parent:
            return
        old_parent = self._parent[feature_id]
        if old_parent is None:
            return
        siblings = self._children.get(old_parent)
        if siblings is not None:
            siblings.pop(feature_id, None)
            if not siblings:
                del self._children[old_parent]

    def rekey(self, old_id: str, new_id: str) -> None:
        if old_id == new_id:
            return
        if old_id in self._parent:
            parent = self._parent[old_id]
            self._parent = {(new_id if key == old_id else key): value for key, value in self._parent.items()}
            if parent is not None and parent in self._children:
                self._children[parent] = {
                    (new_id if key == old_id else key): None for key in self._children[parent]
                }
        if old_id in self._project:
            self._project[new_id] = self._project.pop(old_id)
        children = self._children.pop(old_id, None)
        if children:
            self._children[new_id] = children
            for child in children:
                self._parent[child] = new_id

    # ── store observer ─────────────────────────────────────────────

    def validate_put(self, previous: Optional[Entity], entity: Entity) -> None:
        if entity.entity_type != FEATURE:
            return
        parent_id = getattr(entity, "parent_feature_id", None)
        if previous is not None and getattr(previous, "parent_feature_id", None) == parent_id:
            return
        self.ensure_can_attach(entity.id, parent_id)

    def entity_put(self, previous: Optional[Entity], entity: Entity) -> None:
        if entity.entity_type != FEATURE:
            return
        self.attach(entity.id, getattr(entity, "parent_feature_id", None), getattr(entity, "project_id", ""))

    def entity_removed(self, entity: Entity) -> None:
        if entity.entity_type == FEATURE:
            self.detach(entity.id)

    def entity_rekeyed(self, entity_type: str, old_id: str, new_id: str) -> None:
        if entity_type == FEATURE:
            self.rekey(old_id, new_id)
        elif entity_type == PROJECT:
            for fid, project_id in list(self._project.items()):
                if project_id == old_id:
                    self._project[fid] = new_id

    def reset(self) -> None:
        self._parent.clear()
        self._children.clear()
        self._project.clear()
