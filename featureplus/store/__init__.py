"""In-memory entity store and its derived indices."""

from featureplus.store.entity_store import ChangeEvent, EntityStore, StoreObserver
from featureplus.store.hierarchy import HierarchyIndex
from featureplus.store.tags import TagIndex
from featureplus.store.counts import CountAggregator

__all__ = [
    "ChangeEvent",
    "EntityStore",
    "StoreObserver",
    "HierarchyIndex",
    "TagIndex",
    "CountAggregator",
]
