"""Tag name <-> feature id index with autocomplete."""
from __future__ import annotations

from typing import Iterable, Optional

from featureplus import config
from featureplus.models import FEATURE, Entity
from featureplus.tagging import canonical_tags, dedupe_tags, merge_tags, parse_tag_input


class TagIndex:
    """Bidirectional tag membership index.

    ``_by_tag`` never holds an empty bucket; the catalogue is the union of live
    tags and names registered from the remote membership list.
    """

    def __init__(self, min_query_chars: int | None = None) -> None:
        self._by_tag: dict[str, dict[str, None]] = {}
        self._by_feature: dict[str, list[str]] = {}
        self._remote_catalogue: dict[str, None] = {}
        self._seen_order: dict[str, None] = {}
        self.min_query_chars = min_query_chars or config.TAG_AUTOCOMPLETE_MIN_CHARS

    # Input helpers exposed for callers that build tag edits.
    parse = staticmethod(parse_tag_input)
    merge = staticmethod(merge_tags)
    canonical = staticmethod(canonical_tags)

    # ── reads ──────────────────────────────────────────────────────

    def tags_of(self, feature_id: str) -> list[str]:
        return list(self._by_feature.get(feature_id, ()))

    def by_tag(self, tag_name: str) -> set[str]:
        return set(self._by_tag.get(tag_name, ()))

    def catalogue(self) -> list[str]:
        return [
            name
            for name in self._seen_order
            if name in self._by_tag or name in self._remote_catalogue
        ]

    def tag_counts(self) -> dict[str, int]:
        return {name: len(bucket) for name, bucket in self._by_tag.items()}

    def autocomplete(self, query: str, exclude: Iterable[str] = ()) -> list[str]:
        """Case-insensitive substring suggestions, silent below the length threshold."""
        query = query or ""
        if len(query) < self.min_query_chars:
            return []
        needle = query.strip().lower()
        if not needle:
            return []
        excluded = set(exclude)
        return [
            name
            for name in self.catalogue()
            if needle in name.lower() and name not in excluded
        ]

    # ── writes ─────────────────────────────────────────────────────

    def register_catalogue(self, names: Iterable[str]) -> None:
        for name in names:
            name = str(name or "").strip()
            if name:
                self._remote_catalogue[name] = None
                self._seen_order.setdefault(name, None)

    def add_membership(self, feature_id: str, tag_name: str) -> None:
        tags = self._by_feature.setdefault(feature_id, [])
        if tag_name in tags:
            return
        tags.append(tag_name)
        self._by_tag.setdefault(tag_name, {})[feature_id] = None
        self._seen_order.setdefault(tag_name, None)

    def remove_tag(self, feature_id: str, tag_name: str) -> bool:
        """Delete one membership, pruning empty buckets. Returns True if it existed."""
        tags = self._by_feature.get(feature_id)
        if not tags or tag_name not in tags:
            return False
        tags.remove(tag_name)
        if not tags:
            del self._by_feature[feature_id]
        bucket = self._by_tag.get(tag_name)
        if bucket is not None:
            bucket.pop(feature_id, None)
            if not bucket:
                del self._by_tag[tag_name]
        return True

    def set_tags(self, feature_id: str, tags: Iterable[str]) -> None:
        wanted = dedupe_tags(tags)
        for name in self.tags_of(feature_id):
            if name not in wanted:
                self.remove_tag(feature_id, name)
        for name in wanted:
            self.add_membership(feature_id, name)
        if feature_id in self._by_feature:
            # Keep the feature's own order identical to the record's.
            self._by_feature[feature_id] = list(wanted)

    def drop_feature(self, feature_id: str) -> None:
        for name in self.tags_of(feature_id):
            self.remove_tag(feature_id, name)

    def rekey(self, old_id: str, new_id: str) -> None:
        tags = self._by_feature.pop(old_id, None)
        if tags is None:
            return
        self._by_feature[new_id] = tags
        for name in tags:
            bucket = self._by_tag.get(name)
            if bucket is not None and old_id in bucket:
                self._by_tag[name] = {(new_id if key == old_id else key): None for key in bucket}

    # ── store observer ─────────────────────────────────────────────

    def validate_put(self, previous: Optional[Entity], entity: Entity) -> None:
        return None

    def entity_put(self, previous: Optional[Entity], entity: Entity) -> None:
        if entity.entity_type == FEATURE:
            self.set_tags(entity.id, getattr(entity, "tags", []))

    def entity_removed(self, entity: Entity) -> None:
        if entity.entity_type == FEATURE:
            self.drop_feature(entity.id)

    def entity_rekeyed(self, entity_type: str, old_id: str, new_id: str) -> None:
        if entity_type == FEATURE:
            self.rekey(old_id, new_id)

    def reset(self) -> None:
        self._by_tag.clear()
        self._by_feature.clear()
        self._remote_catalogue.clear()
        self._seen_order.clear()
