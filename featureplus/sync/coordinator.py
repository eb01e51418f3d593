"""Optimistic mutation coordinator.

Every write to the entity store goes through here. A mutation is applied to
the store (and, through the store's observers, to the indices) as soon as it
starts, then sent to the remote gateway. The server response is reconciled
into the store on success; on failure the touched records are put back the
way they were before the mutation started.

Ordering: at most one mutation per ``(entity_type, entity_id)`` is in flight.
Later submits on the same key wait in a FIFO queue and start only once the
previous one has settled.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from typing import Any, Callable, Iterable, Optional

from featureplus import config
from featureplus.errors import (
    CycleError,
    FeaturePlusError,
    NetworkError,
    NotFoundError,
    RecoverableError,
    ValidationError,
)
from featureplus.gateway.base import RemoteGateway
from featureplus.models import (
    FEATURE,
    FEATURE_PRIORITIES,
    FEATURE_STATUSES,
    PROJECT,
    TASK,
    Entity,
    Feature,
    parse_entity,
)
from featureplus.observability import record_mutation, record_rollback, start_span
from featureplus.store.entity_store import EntityStore
from featureplus.store.hierarchy import HierarchyIndex
from featureplus.store.tags import TagIndex
from featureplus.sync.operations import (
    CREATE,
    DELETE,
    PATCH,
    UPDATE,
    CreateOp,
    DeleteOp,
    Mutation,
    MutationState,
    Operation,
    PatchOp,
    UpdateOp,
)
from featureplus.tagging import canonical_tags, merge_tags, parse_tag_input

logger = logging.getLogger("featureplus.sync")

# Fields holding a reference to another record, and the type they point at.
_REFERENCE_FIELDS = {
    "project_id": PROJECT,
    "parent_feature_id": FEATURE,
    "feature_id": FEATURE,
    "sub_feature_id": FEATURE,
}
_SERVER_MANAGED = {"id", "created_at", "updated_at"}

Key = tuple[str, str]


class SyncCoordinator:
    """Single writer for the entity store and its indices."""

    def __init__(
        self,
        store: EntityStore,
        hierarchy: HierarchyIndex,
        tags: TagIndex,
        gateway: RemoteGateway,
        *,
        history_limit: int | None = None,
        temp_id_prefix: str | None = None,
    ) -> None:
        self.store = store
        self.hierarchy = hierarchy
        self.tags = tags
        self.gateway = gateway
        self._temp_prefix = temp_id_prefix or config.TEMP_ID_PREFIX
        self._max_history = history_limit or config.MUTATION_HISTORY
        self._active: dict[Key, Mutation] = {}
        self._queues: dict[Key, deque[Mutation]] = {}
        self._creating: dict[Key, Mutation] = {}
        self._aliases: dict[Key, str] = {}
        # Last record the server accepted, per key. Delete rollbacks restore from here.
        self._committed: dict[Key, Entity] = {}
        self._tasks: set[asyncio.Task] = set()
        self._history: dict[str, Mutation] = {}
        self._history_order: list[str] = []

    # ── public commands ────────────────────────────────────────────

    def create(self, entity: Entity, *, on_settled: Callable[[Mutation], None] | None = None) -> Mutation:
        return self.submit(CreateOp(entity), on_settled=on_settled)

    def update(self, entity: Entity, *, on_settled: Callable[[Mutation], None] | None = None) -> Mutation:
        return self.submit(UpdateOp(entity), on_settled=on_settled)

    def patch(
        self,
        entity_type: str,
        entity_id: str,
        *,
        on_settled: Callable[[Mutation], None] | None = None,
        **fields: Any,
    ) -> Mutation:
        return self.submit(PatchOp(entity_type, entity_id, fields=fields), on_settled=on_settled)

    def delete(
        self,
        entity_type: str,
        entity_id: str,
        *,
        on_settled: Callable[[Mutation], None] | None = None,
    ) -> Mutation:
        return self.submit(DeleteOp(entity_type, entity_id), on_settled=on_settled)

    def move_feature(
        self,
        feature_id: str,
        parent_feature_id: str | None,
        *,
        on_settled: Callable[[Mutation], None] | None = None,
    ) -> Mutation:
        return self.patch(FEATURE, feature_id, parent_feature_id=parent_feature_id, on_settled=on_settled)

    def add_tags(
        self,
        feature_id: str,
        raw_input: str,
        *,
        on_settled: Callable[[Mutation], None] | None = None,
    ) -> Mutation:
        """Union parsed tags into the feature's tags once the remote accepts them."""
        if not parse_tag_input(raw_input):
            raise ValidationError("no tags found in input", field="tags")
        op = PatchOp(
            FEATURE,
            feature_id,
            compute=lambda current: {"tags": merge_tags(current.tags, raw_input)},
            optimistic=False,
        )
        return self.submit(op, on_settled=on_settled)

    def replace_tags(
        self,
        feature_id: str,
        raw_input: str,
        *,
        on_settled: Callable[[Mutation], None] | None = None,
    ) -> Mutation:
        op = PatchOp(
            FEATURE,
            feature_id,
            compute=lambda current: {"tags": parse_tag_input(raw_input)},
            optimistic=False,
        )
        return self.submit(op, on_settled=on_settled)

    def remove_tag(
        self,
        feature_id: str,
        tag_name: str,
        *,
        on_settled: Callable[[Mutation], None] | None = None,
    ) -> Mutation:
        op = PatchOp(
            FEATURE,
            feature_id,
            compute=lambda current: {"tags": [t for t in current.tags if t != tag_name]},
            optimistic=False,
        )
        return self.submit(op, on_settled=on_settled)

    def submit(self, op: Operation, *, on_settled: Callable[[Mutation], None] | None = None) -> Mutation:
        """Validate, then start or queue one mutation.

        ValidationError and CycleError are raised here, before anything touches
        the store. Must be called from the event loop the coordinator runs on.
        """
        entity_type = op.entity_type
        entity_id = self.resolve_id(entity_type, op.entity_id) if op.entity_id else ""
        entity: Optional[Entity] = None

        if op.kind == CREATE:
            entity = self._resolve_entity_refs(op.entity)
            if not entity_id:
                entity_id = self._new_temp_id()
            elif self.store.contains(entity_type, entity_id):
                raise ValidationError(f"{entity_type} {entity_id} already exists", field="id")
            entity = entity.model_copy(update={"id": entity_id})
            self._validate_entity(entity)
        elif op.kind == UPDATE:
            if not entity_id or not self.store.contains(entity_type, entity_id):
                raise ValidationError(f"{entity_type} {entity_id or '?'} is not loaded", field="id")
            entity = self._resolve_entity_refs(op.entity).model_copy(update={"id": entity_id})
            self._validate_entity(entity)
        elif op.kind == PATCH:
            current = self.store.get(entity_type, entity_id)
            if current is None:
                raise ValidationError(f"{entity_type} {entity_id or '?'} is not loaded", field="id")
            if op.fields:
                fields = self._resolve_refs(op.fields)
                self._check_patch_fields(current, fields)
                self._validate_entity(self._patched(current, fields))
        elif op.kind != DELETE:
            raise ValidationError(f"unsupported operation: {op.kind}")

        mutation = Mutation(op, entity_type, entity_id, on_settled=on_settled)
        mutation.entity = entity
        if op.kind == CREATE and entity_id.startswith(self._temp_prefix):
            mutation.temp_id = entity_id
        self._remember(mutation)

        key = mutation.key
        if key in self._active:
            self._queues.setdefault(key, deque()).append(mutation)
            logger.debug("Queued %r behind %r", mutation, self._active[key])
        else:
            self._start(mutation)
        return mutation

    # ── reads ──────────────────────────────────────────────────────

    def resolve_id(self, entity_type: str, entity_id: str) -> str:
        """Follow a committed temp id to its server id."""
        return self._aliases.get((entity_type, str(entity_id)), str(entity_id))

    def is_pending(self, entity_type: str, entity_id: str) -> bool:
        key = (entity_type, self.resolve_id(entity_type, entity_id))
        return key in self._active or bool(self._queues.get(key))

    @property
    def is_quiescent(self) -> bool:
        return not self._active and not any(self._queues.values())

    @property
    def pending_count(self) -> int:
        return len(self._active) + sum(len(q) for q in self._queues.values())

    async def drain(self) -> None:
        """Wait until no mutation is pending or queued."""
        while self._tasks or not self.is_quiescent:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(0)

    def get_mutation(self, mutation_id: str) -> Optional[Mutation]:
        return self._history.get(mutation_id)

    def list_mutations(self, limit: int = 20) -> list[dict[str, Any]]:
        ids = self._history_order[: max(0, int(limit))]
        return [self._history[mid].as_dict() for mid in ids if mid in self._history]

    def get_observability_snapshot(self) -> dict[str, Any]:
        active = [m.as_dict() for m in self._active.values()]
        return {
            "active_mutation_count": len(active),
            "active_mutations": active,
            "queued_mutation_count": sum(len(q) for q in self._queues.values()),
            "recent_mutations": self.list_mutations(limit=10),
            "tracked_mutation_count": len(self._history_order),
        }

    # ── hydration ──────────────────────────────────────────────────

    def ingest(self, entities: Iterable[Entity]) -> int:
        """Load server records without a round-trip. Records with pending work are skipped."""
        loaded = 0
        for entity in entities:
            if self.is_pending(entity.entity_type, entity.id):
                logger.debug("Skipping refresh of %s %s: mutation pending", entity.entity_type, entity.id)
                continue
            try:
                self.store.put(entity)
            except CycleError as exc:
                logger.warning("Skipping %s %s from remote: %s", entity.entity_type, entity.id, exc)
                continue
            self._committed[(entity.entity_type, entity.id)] = entity
            loaded += 1
        return loaded

    def evict(self, entity_type: str, entity_id: str) -> bool:
        """Drop a record the remote no longer has, along with everything under it."""
        if self.is_pending(entity_type, entity_id):
            return False
        entity_id = self.resolve_id(entity_type, entity_id)
        if not self.store.contains(entity_type, entity_id):
            return False
        removed = self._remove_cascade(entity_type, entity_id)
        self._forget(removed)
        logger.info("Evicted %s %s (%s records)", entity_type, entity_id, len(removed))
        return True

    def reset(self) -> None:
        self._aliases.clear()
        self._committed.clear()
        self._creating.clear()
        self._history.clear()
        self._history_order.clear()

    # ── state machine ──────────────────────────────────────────────

    def _start(self, mutation: Mutation) -> None:
        key = mutation.key
        self._active[key] = mutation
        mutation.mark_started()
        try:
            self._apply_optimistic(mutation)
        except FeaturePlusError as exc:
            self._settle_failure(mutation, exc)
            self._finish(mutation, key)
            return

        if mutation.noop:
            logger.debug("No-op %r", mutation)
            self._settle_success(mutation, self.store.get(*mutation.key))
            self._finish(mutation, key)
            return

        task = asyncio.get_running_loop().create_task(self._run(mutation, key))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, mutation: Mutation, key: Key) -> None:
        attributes = {
            "featureplus.mutation_id": mutation.id,
            "featureplus.kind": mutation.kind,
            "featureplus.entity_type": mutation.entity_type,
        }
        with start_span("featureplus.mutation", attributes):
            try:
                await self._await_dependencies(mutation)
                response = await self._send(mutation)
            except asyncio.CancelledError:
                self._rollback(mutation)
                self._settle_failure(mutation, NetworkError("request cancelled"))
                self._finish(mutation, key)
                raise
            except Exception as exc:
                self._rollback(mutation)
                self._settle_failure(mutation, exc)
            else:
                try:
                    result = self._reconcile(mutation, response)
                except FeaturePlusError as exc:
                    self._rollback(mutation)
                    self._settle_failure(mutation, exc)
                else:
                    self._settle_success(mutation, result)
        self._finish(mutation, key)

    def _finish(self, mutation: Mutation, key: Key) -> None:
        self._active.pop(key, None)
        if mutation.key != key:
            self._active.pop(mutation.key, None)
        queue = self._queues.get(mutation.key)
        if not queue:
            self._queues.pop(mutation.key, None)
            return
        nxt = queue.popleft()
        if not queue:
            del self._queues[mutation.key]
        self._start(nxt)

    def _apply_optimistic(self, mutation: Mutation) -> None:
        etype, eid = mutation.key
        current = self.store.get(etype, eid)

        if mutation.kind == CREATE:
            entity = self._resolve_entity_refs(mutation.entity)
            self._validate_entity(entity)
            mutation.entity = entity
            mutation.depends_on = self._pending_dependencies(entity.model_dump())
            self.store.put(entity)
            mutation.applied = True
            if mutation.temp_id:
                self._creating[mutation.key] = mutation
            return

        if mutation.kind == DELETE:
            if current is None:
                mutation.noop = True
                return
            removed = self._remove_cascade(etype, eid)
            # Sub-records still being created were never committed and are not put back.
            mutation.snapshots = [
                self._committed.get((entity.entity_type, entity.id), entity)
                for entity in removed
                if (entity.entity_type, entity.id) not in self._creating
            ]
            mutation.applied = True
            return

        if current is None:
            raise NotFoundError(f"{etype} {eid} no longer exists", entity_type=etype, entity_id=eid)
        # Earlier mutations on this key have settled, so the live record is the committed one.
        self._committed[mutation.key] = current
        mutation.snapshots = [current]
        mutation.base_version = current.updated_at or None

        if mutation.kind == UPDATE:
            entity = self._resolve_entity_refs(mutation.entity).model_copy(update={"id": eid})
            self._validate_entity(entity)
            mutation.entity = entity
            mutation.depends_on = self._pending_dependencies(entity.model_dump())
            self.store.put(entity)
            mutation.applied = True
            return

        op: PatchOp = mutation.op  # type: ignore[assignment]
        fields = op.compute(current) if op.compute else dict(op.fields)
        fields = self._resolve_refs(fields)
        self._check_patch_fields(current, fields)
        if all(getattr(current, name) == value for name, value in fields.items()):
            mutation.noop = True
            return
        entity = self._patched(current, fields)
        self._validate_entity(entity)
        mutation.fields = fields
        mutation.entity = entity
        mutation.depends_on = self._pending_dependencies(fields)
        if op.optimistic:
            self.store.put(entity)
            mutation.applied = True

    async def _await_dependencies(self, mutation: Mutation) -> None:
        for dependency in mutation.depends_on:
            await dependency.settled()
            if dependency.state != MutationState.COMMITTED:
                raise NotFoundError(
                    f"{dependency.entity_type} {dependency.temp_id or dependency.entity_id} was never created",
                    entity_type=dependency.entity_type,
                    entity_id=dependency.entity_id,
                )

    async def _send(self, mutation: Mutation) -> Optional[dict[str, Any]]:
        etype, eid = mutation.key
        if mutation.kind == CREATE:
            entity = self.store.get(etype, eid)
            if entity is None:
                raise NotFoundError(f"{etype} {eid} was removed before it was sent", entity_type=etype, entity_id=eid)
            return await self.gateway.create(etype, self._payload(entity))

        if mutation.kind == UPDATE:
            entity = self.store.get(etype, eid) or mutation.entity
            return await self.gateway.update(etype, eid, self._payload(entity), base_version=mutation.base_version)

        if mutation.kind == PATCH:
            fields = self._resolve_refs(mutation.fields)
            if etype == FEATURE and set(fields) == {"tags"}:
                return await self.gateway.set_feature_tags(eid, canonical_tags(fields["tags"]))
            return await self.gateway.patch(etype, eid, fields, base_version=mutation.base_version)

        try:
            await self.gateway.delete(etype, eid)
        except NotFoundError:
            logger.info("Delete of %s %s: already gone on the remote", etype, eid)
        return None

    def _reconcile(self, mutation: Mutation, response: Optional[dict[str, Any]]) -> Optional[Entity]:
        if mutation.kind == DELETE or response is None:
            return None
        etype, eid = mutation.key
        server = parse_entity(etype, response)
        server_id = server.id or eid

        if mutation.kind == CREATE:
            if mutation.temp_id:
                self._creating.pop((etype, mutation.temp_id), None)
                self._aliases[(etype, mutation.temp_id)] = server_id
            if server_id != eid:
                self._rekey(etype, eid, server_id)
                mutation.entity_id = server_id
            if not server.id:
                server = server.model_copy(update={"id": server_id})
            if not self.store.contains(etype, server_id):
                logger.info("Created %s %s was removed locally meanwhile; not restoring it", etype, server_id)
                return server
            self._put_server(server)
            return server

        if not self.store.contains(etype, server_id):
            logger.info("%s %s was removed locally meanwhile; ignoring server copy", etype, server_id)
            return server
        self._put_server(server)
        return server

    def _rollback(self, mutation: Mutation) -> None:
        if not mutation.applied:
            return
        etype, eid = mutation.key
        if mutation.kind == CREATE:
            if mutation.temp_id:
                self._creating.pop((etype, mutation.temp_id), None)
            self.store.remove(etype, eid)
            return
        if mutation.kind == DELETE:
            for snapshot in reversed(mutation.snapshots):
                key = (snapshot.entity_type, snapshot.id)
                if not self.store.contains(*key):
                    self._restore(self._committed.get(key, snapshot))
            return
        for entity in mutation.snapshots:
            if self.store.contains(entity.entity_type, entity.id):
                self._restore(entity)

    def _settle_success(self, mutation: Mutation, result: Optional[Entity]) -> None:
        if mutation.kind == DELETE:
            self._forget(mutation.snapshots)
        elif result is not None:
            self._committed[(result.entity_type, result.id)] = result
        mutation.result = result
        mutation.mark_finished(MutationState.COMMITTED)
        logger.info("Committed %s %s %s (%sms)", mutation.kind, mutation.entity_type, mutation.entity_id, mutation.duration_ms)
        record_mutation(mutation.entity_type, mutation.kind, "committed", mutation.duration_ms)
        self._notify(mutation)

    def _settle_failure(self, mutation: Mutation, exc: BaseException) -> None:
        if isinstance(exc, RecoverableError):
            error = exc
        else:
            error = RecoverableError(
                f"{mutation.kind} {mutation.entity_type} {mutation.entity_id} rolled back: {exc}",
                cause=exc,
                mutation=mutation,
            )
        if mutation.temp_id:
            self._creating.pop((mutation.entity_type, mutation.temp_id), None)
        mutation.error = error
        mutation.mark_finished(MutationState.ROLLED_BACK)
        logger.error("Rolled back %s %s %s: %s", mutation.kind, mutation.entity_type, mutation.entity_id, exc)
        record_mutation(mutation.entity_type, mutation.kind, "rolled_back", mutation.duration_ms)
        record_rollback(mutation.entity_type, error.kind)
        self._notify(mutation)

    def _notify(self, mutation: Mutation) -> None:
        if mutation.stale or mutation.on_settled is None:
            return
        try:
            mutation.on_settled(mutation)
        except Exception:
            logger.exception("on_settled callback failed for %r", mutation)

    # ── helpers ────────────────────────────────────────────────────

    def _new_temp_id(self) -> str:
        return f"{self._temp_prefix}{uuid.uuid4().hex[:12]}"

    def _remember(self, mutation: Mutation) -> None:
        self._history[mutation.id] = mutation
        self._history_order.insert(0, mutation.id)
        if len(self._history_order) > self._max_history:
            for stale_id in self._history_order[self._max_history:]:
                self._history.pop(stale_id, None)
            self._history_order = self._history_order[: self._max_history]

    def _rekey(self, entity_type: str, old_id: str, new_id: str) -> None:
        self.store.rekey(entity_type, old_id, new_id)
        old_key, new_key = (entity_type, old_id), (entity_type, new_id)
        committed = self._committed.pop(old_key, None)
        if committed is not None:
            self._committed[new_key] = committed.model_copy(update={"id": new_id})
        queued = self._queues.pop(old_key, None)
        if queued:
            for waiting in queued:
                waiting.entity_id = new_id
            self._queues.setdefault(new_key, deque()).extend(queued)
        active = self._active.pop(old_key, None)
        if active is not None:
            self._active[new_key] = active

    def _resolve_refs(self, fields: dict[str, Any]) -> dict[str, Any]:
        resolved = dict(fields)
        for name, target in _REFERENCE_FIELDS.items():
            value = resolved.get(name)
            if value:
                resolved[name] = self.resolve_id(target, value)
        return resolved

    def _resolve_entity_refs(self, entity: Entity) -> Entity:
        present = {name: getattr(entity, name) for name in _REFERENCE_FIELDS if hasattr(entity, name)}
        resolved = self._resolve_refs(present)
        changes = {name: value for name, value in resolved.items() if value != present[name]}
        return entity.model_copy(update=changes) if changes else entity

    def _pending_dependencies(self, fields: dict[str, Any]) -> list[Mutation]:
        deps: list[Mutation] = []
        for name, target in _REFERENCE_FIELDS.items():
            value = fields.get(name)
            if not value:
                continue
            creating = self._creating.get((target, str(value)))
            if creating is not None and creating not in deps:
                deps.append(creating)
        return deps

    @staticmethod
    def _check_patch_fields(current: Entity, fields: dict[str, Any]) -> None:
        unknown = sorted(set(fields) - set(type(current).model_fields))
        if unknown:
            raise ValidationError(f"unknown {current.entity_type} field(s): {', '.join(unknown)}", field=unknown[0])
        if "id" in fields:
            raise ValidationError("id cannot be patched", field="id")

    @staticmethod
    def _patched(current: Entity, fields: dict[str, Any]) -> Entity:
        return type(current).model_validate({**current.model_dump(), **fields})

    @staticmethod
    def _payload(entity: Entity) -> dict[str, Any]:
        return entity.model_dump(exclude=_SERVER_MANAGED)

    def _forget(self, entities: Iterable[Entity]) -> None:
        for entity in entities:
            self._committed.pop((entity.entity_type, entity.id), None)

    def _remove_cascade(self, entity_type: str, entity_id: str) -> list[Entity]:
        """Remove a record and everything that only exists under it, leaves first."""
        if entity_type == PROJECT:
            features = [
                fid
                for root in self.hierarchy.roots(entity_id)
                for fid in [root, *self.hierarchy.descendants(root)]
            ]
        elif entity_type == FEATURE:
            features = [entity_id, *self.hierarchy.descendants(entity_id)]
        else:
            features = []
        scope = set(features)
        removed: list[Optional[Entity]] = []
        for task in self.store.list(TASK, lambda t: t.owner_id in scope):
            removed.append(self.store.remove(TASK, task.id))
        for fid in reversed(features):
            removed.append(self.store.remove(FEATURE, fid))
        if entity_type != FEATURE:
            removed.append(self.store.remove(entity_type, entity_id))
        return [entity for entity in removed if entity is not None]

    def _restore(self, entity: Entity) -> None:
        try:
            self.store.put(entity)
        except CycleError as exc:
            # Another mutation moved things around meanwhile; keep the current placement.
            current = self.store.get(FEATURE, entity.id)
            parent = getattr(current, "parent_feature_id", None)
            logger.warning("Restoring %s %s under its current parent: %s", entity.entity_type, entity.id, exc)
            self.store.put(entity.model_copy(update={"parent_feature_id": parent}))

    def _put_server(self, server: Entity) -> None:
        try:
            self.store.put(server)
        except CycleError as exc:
            current = self.store.get(FEATURE, server.id)
            parent = getattr(current, "parent_feature_id", None)
            logger.warning("Server placement of %s %s conflicts locally: %s", server.entity_type, server.id, exc)
            self.store.put(server.model_copy(update={"parent_feature_id": parent}))

    # ── validation ─────────────────────────────────────────────────

    def _validate_entity(self, entity: Entity) -> None:
        if entity.entity_type == PROJECT:
            if not str(getattr(entity, "name", "")).strip():
                raise ValidationError("project name is required", field="name")
        elif entity.entity_type == FEATURE:
            self._validate_feature(entity)  # type: ignore[arg-type]
        elif entity.entity_type == TASK:
            self._validate_task(entity)

    def _validate_feature(self, feature: Feature) -> None:
        if not feature.title.strip():
            raise ValidationError("feature title is required", field="title")
        if feature.status not in FEATURE_STATUSES:
            raise ValidationError(f"invalid status: {feature.status}", field="status")
        if feature.priority not in FEATURE_PRIORITIES:
            raise ValidationError(f"invalid priority: {feature.priority}", field="priority")
        if not feature.project_id:
            raise ValidationError("feature project_id is required", field="project_id")
        for child_id in self.hierarchy.children_of(feature.id):
            child = self.store.get(FEATURE, child_id)
            if child is not None and child.project_id != feature.project_id:
                raise ValidationError(
                    f"feature {feature.id} has sub-features in project {child.project_id}",
                    field="project_id",
                )
        parent_id = feature.parent_feature_id
        if parent_id is None:
            return
        parent = self.store.get(FEATURE, parent_id)
        if parent is None:
            raise ValidationError(f"parent feature {parent_id} is not loaded", field="parent_feature_id")
        if parent.project_id != feature.project_id:
            raise ValidationError(
                f"parent feature {parent_id} belongs to project {parent.project_id}",
                field="parent_feature_id",
            )
        self.hierarchy.ensure_can_attach(feature.id, parent_id)

    def _validate_task(self, task: Entity) -> None:
        if not str(getattr(task, "task_name", "")).strip():
            raise ValidationError("task name is required", field="task_name")
        owners = [ref for ref in (task.feature_id, task.sub_feature_id) if ref]  # type: ignore[attr-defined]
        if len(owners) != 1:
            raise ValidationError("a task needs exactly one owner", field="feature_id")
        owner = self.store.get(FEATURE, owners[0])
        if owner is None:
            raise ValidationError(f"owner feature {owners[0]} is not loaded", field="feature_id")
        allowed = self._task_types_for(owner.project_id)
        if task.task_type not in allowed:  # type: ignore[attr-defined]
            raise ValidationError(
                f"invalid task type {task.task_type!r}; expected one of {', '.join(allowed)}",  # type: ignore[attr-defined]
                field="task_type",
            )

    def _task_types_for(self, project_id: str) -> list[str]:
        project = self.store.get(PROJECT, project_id)
        types = getattr(project, "task_types", None)
        return list(types) if types else list(config.DEFAULT_TASK_TYPES)
