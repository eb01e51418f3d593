"""Mutation requests and the per-mutation state machine."""
from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, ClassVar, Optional, Union

from featureplus.errors import RecoverableError
from featureplus.models import Entity

CREATE = "create"
UPDATE = "update"
DELETE = "delete"
PATCH = "patch"


class MutationState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class CreateOp:
    entity: Entity
    kind: ClassVar[str] = CREATE

    @property
    def entity_type(self) -> str:
        return self.entity.entity_type

    @property
    def entity_id(self) -> str:
        return self.entity.id


@dataclass(frozen=True)
class UpdateOp:
    """Full replace of one record."""

    entity: Entity
    kind: ClassVar[str] = UPDATE

    @property
    def entity_type(self) -> str:
        return self.entity.entity_type

    @property
    def entity_id(self) -> str:
        return self.entity.id


@dataclass(frozen=True)
class DeleteOp:
    entity_type: str
    entity_id: str
    kind: ClassVar[str] = DELETE


@dataclass(frozen=True)
class PatchOp:
    """Field-level change.

    ``compute`` derives the fields from the record as it stands when the patch
    starts, which is how queued edits compose (tag unions, for one).
    Non-optimistic patches only reach the store from the server response.
    """

    entity_type: str
    entity_id: str
    fields: dict[str, Any] = field(default_factory=dict)
    compute: Optional[Callable[[Entity], dict[str, Any]]] = None
    optimistic: bool = True
    kind: ClassVar[str] = PATCH


Operation = Union[CreateOp, UpdateOp, DeleteOp, PatchOp]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Mutation:
    """Handle for one submitted operation.

    Await it to get the reconciled record; a rolled-back mutation raises
    ``RecoverableError``.
    """

    def __init__(
        self,
        op: Operation,
        entity_type: str,
        entity_id: str,
        *,
        on_settled: Optional[Callable[["Mutation"], None]] = None,
    ) -> None:
        self.id = f"MUT-{uuid.uuid4().hex[:10]}"
        self.op = op
        self.kind = op.kind
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.state = MutationState.IDLE
        self.stale = False
        self.on_settled = on_settled
        self.result: Optional[Entity] = None
        self.error: Optional[RecoverableError] = None
        self.submitted_at = _now_iso()
        self.started_at = ""
        self.finished_at = ""
        self.duration_ms = 0
        self.temp_id = ""
        self.noop = False
        self.applied = False
        self.entity: Optional[Entity] = None
        self.fields: dict[str, Any] = {}
        self.base_version: Optional[str] = None
        self.snapshots: list[Entity] = []
        self.depends_on: list[Mutation] = []
        self._started_clock = 0.0
        self._settled = asyncio.Event()

    @property
    def key(self) -> tuple[str, str]:
        return (self.entity_type, self.entity_id)

    @property
    def done(self) -> bool:
        return self.state in (MutationState.COMMITTED, MutationState.ROLLED_BACK)

    def mark_stale(self) -> None:
        """The originating view is gone; keep syncing the store but skip the callback."""
        self.stale = True

    def mark_started(self) -> None:
        self.state = MutationState.PENDING
        self.started_at = _now_iso()
        self._started_clock = time.monotonic()

    def mark_finished(self, state: MutationState) -> None:
        self.state = state
        self.finished_at = _now_iso()
        if self._started_clock:
            self.duration_ms = max(0, int((time.monotonic() - self._started_clock) * 1000))
        self._settled.set()

    async def settled(self) -> None:
        await self._settled.wait()

    async def wait(self) -> Optional[Entity]:
        await self._settled.wait()
        if self.error is not None:
            raise self.error
        return self.result

    def __await__(self):
        return self.wait().__await__()

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "temp_id": self.temp_id,
            "state": self.state.value,
            "stale": self.stale,
            "submitted_at": self.submitted_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "duration_ms": self.duration_ms,
            "error": str(self.error) if self.error else "",
            "error_kind": self.error.kind if self.error else "",
        }

    def __repr__(self) -> str:
        return f"<Mutation {self.id} {self.kind} {self.entity_type}:{self.entity_id} {self.state.value}>"
