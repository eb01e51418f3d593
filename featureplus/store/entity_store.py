"""Session-scoped in-memory cache of Project/Feature/Task records."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Protocol

from featureplus.models import ENTITY_TYPES, FEATURE, PROJECT, TASK, Entity, entity_type_of

logger = logging.getLogger("featureplus.store")

# Foreign references rewritten when a record is re-keyed: target type -> (holder type, field)
_REFERENCES: dict[str, tuple[tuple[str, str], ...]] = {
    PROJECT: ((FEATURE, "project_id"),),
    FEATURE: (
        (FEATURE, "parent_feature_id"),
        (TASK, "feature_id"),
        (TASK, "sub_feature_id"),
    ),
}


@dataclass(frozen=True)
class ChangeEvent:
    action: str  # "put" | "remove" | "rekey" | "clear"
    entity_type: str
    entity_id: str
    previous_id: str = ""


class StoreObserver(Protocol):
    """Derived index kept in lockstep with the store."""

    def validate_put(self, previous: Optional[Entity], entity: Entity) -> None: ...

    def entity_put(self, previous: Optional[Entity], entity: Entity) -> None: ...

    def entity_removed(self, entity: Entity) -> None: ...

    def entity_rekeyed(self, entity_type: str, old_id: str, new_id: str) -> None: ...

    def reset(self) -> None: ...


class EntityStore:
    """Records keyed by ``(entity_type, id)``.

    Writes are synchronous and atomic from the caller's point of view:
    observers validate a put before it is committed, and are updated in the
    same call once it is.
    """

    def __init__(self) -> None:
        self._entities: dict[str, dict[str, Entity]] = {etype: {} for etype in ENTITY_TYPES}
        self._observers: list[StoreObserver] = []
        self._listeners: list[Callable[[ChangeEvent], None]] = []

    def attach_observer(self, observer: StoreObserver) -> None:
        self._observers.append(observer)
        for etype in ENTITY_TYPES:
            for entity in self._entities[etype].values():
                observer.entity_put(None, entity)

    def subscribe(self, listener: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Store listener failed on %s %s:%s", event.action, event.entity_type, event.entity_id)

    def _bucket(self, entity_type: str) -> dict[str, Entity]:
        try:
            return self._entities[entity_type]
        except KeyError:
            raise ValueError(f"unknown entity type: {entity_type}") from None

    # ── reads ──────────────────────────────────────────────────────

    def get(self, entity_type: str, entity_id: str | None) -> Optional[Entity]:
        if not entity_id:
            return None
        return self._bucket(entity_type).get(str(entity_id))

    def contains(self, entity_type: str, entity_id: str | None) -> bool:
        return self.get(entity_type, entity_id) is not None

    def list(
        self,
        entity_type: str,
        predicate: Callable[[Entity], bool] | None = None,
    ) -> list[Entity]:
        rows = list(self._bucket(entity_type).values())
        if predicate is None:
            return rows
        return [row for row in rows if predicate(row)]

    def iter_ids(self, entity_type: str) -> Iterator[str]:
        return iter(list(self._bucket(entity_type)))

    def count(self, entity_type: str) -> int:
        return len(self._bucket(entity_type))

    # ── writes ─────────────────────────────────────────────────────

    def put(self, entity: Entity) -> Optional[Entity]:
        """Insert or replace a record. Returns the record it replaced."""
        etype = entity_type_of(entity)
        if not entity.id:
            raise ValueError(f"{etype} record has no id")
        bucket = self._bucket(etype)
        previous = bucket.get(entity.id)
        for observer in self._observers:
            observer.validate_put(previous, entity)
        bucket[entity.id] = entity
        for observer in self._observers:
            observer.entity_put(previous, entity)
        self._emit(ChangeEvent("put", etype, entity.id))
        return previous

    def remove(self, entity_type: str, entity_id: str | None) -> Optional[Entity]:
        """Remove a record. Unknown ids are a no-op."""
        if not entity_id:
            return None
        entity = self._bucket(entity_type).pop(str(entity_id), None)
        if entity is None:
            return None
        for observer in self._observers:
            observer.entity_removed(entity)
        self._emit(ChangeEvent("remove", entity_type, entity.id))
        return entity

    def rekey(self, entity_type: str, old_id: str, new_id: str) -> Optional[Entity]:
        """Move a record to a new id, rewriting every reference to it."""
        bucket = self._bucket(entity_type)
        entity = bucket.get(old_id)
        if entity is None or old_id == new_id:
            return entity
        if new_id in bucket:
            # A read-through refresh got there first; the temp record takes its place.
            logger.warning("Rekey %s %s -> %s replaces an existing record", entity_type, old_id, new_id)
            self.remove(entity_type, new_id)
            bucket = self._bucket(entity_type)
        rekeyed = entity.model_copy(update={"id": new_id})
        self._entities[entity_type] = {
            (new_id if key == old_id else key): (rekeyed if key == old_id else value)
            for key, value in bucket.items()
            if key != new_id
        }
        for holder_type, field in _REFERENCES.get(entity_type, ()):
            holders = self._entities[holder_type]
            for holder_id, holder in list(holders.items()):
                if getattr(holder, field, None) == old_id:
                    holders[holder_id] = holder.model_copy(update={field: new_id})
        for observer in self._observers:
            observer.entity_rekeyed(entity_type, old_id, new_id)
        self._emit(ChangeEvent("rekey", entity_type, new_id, previous_id=old_id))
        return rekeyed

    def clear(self) -> None:
        for etype in ENTITY_TYPES:
            self._entities[etype] = {}
        for observer in self._observers:
            observer.reset()
        self._emit(ChangeEvent("clear", "", ""))
