"""Derived child-feature and task counts."""
from __future__ import annotations

from collections import Counter

from featureplus.models import FEATURE, TASK, FeatureCounts
from featureplus.store.entity_store import EntityStore
from featureplus.store.hierarchy import HierarchyIndex


class CountAggregator:
    """Read-only views recomputed from the store on every call.

    Nothing is cached, so the numbers cannot drift from the records. Per-feature
    fan-out is small enough that a scan per read is fine.
    """

    def __init__(self, store: EntityStore, hierarchy: HierarchyIndex) -> None:
        self.store = store
        self.hierarchy = hierarchy

    def child_feature_count(self, feature_id: str) -> int:
        return len(self.hierarchy.children_of(feature_id))

    def descendant_count(self, feature_id: str) -> int:
        return len(self.hierarchy.descendants(feature_id))

    def task_count(self, feature_id: str) -> int:
        return len(self.store.list(TASK, lambda t: t.owner_id == feature_id))

    def subtree_task_count(self, feature_id: str) -> int:
        scope = {feature_id, *self.hierarchy.descendants(feature_id)}
        return len(self.store.list(TASK, lambda t: t.owner_id in scope))

    def task_type_breakdown(self, feature_id: str) -> dict[str, int]:
        counts = Counter(
            task.task_type or "unknown"
            for task in self.store.list(TASK, lambda t: t.owner_id == feature_id)
        )
        return dict(sorted(counts.items()))

    def summary(self, feature_id: str) -> FeatureCounts:
        feature = self.store.get(FEATURE, feature_id)
        return FeatureCounts(
            feature_id=feature_id,
            title=getattr(feature, "title", ""),
            child_features=self.child_feature_count(feature_id),
            descendant_features=self.descendant_count(feature_id),
            tasks=self.task_count(feature_id),
            subtree_tasks=self.subtree_task_count(feature_id),
            task_types=self.task_type_breakdown(feature_id),
        )

    def project_summary(self, project_id: str) -> list[FeatureCounts]:
        """One summary per feature group of the project."""
        return [self.summary(fid) for fid in self.hierarchy.roots(project_id)]
