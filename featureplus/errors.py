"""Error taxonomy shared by the store, indices, coordinator and gateways."""
from __future__ import annotations

from typing import Any


class FeaturePlusError(Exception):
    """Base class for every error raised by the data layer."""


class ValidationError(FeaturePlusError):
    """Command rejected before any optimistic mutation was applied."""

    def __init__(self, message: str, *, field: str = "") -> None:
        super().__init__(message)
        self.field = field


class CycleError(FeaturePlusError):
    """Attaching ``child_id`` under ``parent_id`` would make it its own ancestor."""

    def __init__(self, child_id: str, parent_id: str) -> None:
        super().__init__(f"feature {child_id} cannot be placed under {parent_id}: cycle")
        self.child_id = child_id
        self.parent_id = parent_id


class RemoteError(FeaturePlusError):
    """Typed failure reported by a RemoteGateway."""

    kind = "remote"

    def __init__(self, message: str = "", *, entity_type: str = "", entity_id: str = "") -> None:
        super().__init__(message or self.kind)
        self.entity_type = entity_type
        self.entity_id = entity_id


class RemoteValidationError(RemoteError):
    kind = "validation"


class NotFoundError(RemoteError):
    kind = "not_found"


class UnauthorizedError(RemoteError):
    kind = "unauthorized"


class ConflictError(RemoteError):
    """The remote rejected an update made against a stale version."""

    kind = "conflict"


class NetworkError(RemoteError):
    kind = "network"


class GatewayTimeout(NetworkError):
    kind = "timeout"


class RecoverableError(FeaturePlusError):
    """A mutation was rolled back; the store is back at its last committed state."""

    def __init__(self, message: str, *, cause: BaseException | None = None, mutation: Any = None) -> None:
        super().__init__(message)
        self.cause = cause
        self.mutation = mutation

    @property
    def kind(self) -> str:
        return getattr(self.cause, "kind", "unknown")
