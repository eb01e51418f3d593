"""Request/response contract with the authoritative store."""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class RemoteGateway(Protocol):
    """Per-entity CRUD against the remote.

    Every call either returns the canonical record (server-assigned id, server
    timestamps) or raises a ``featureplus.errors.RemoteError`` subclass.
    Timeouts and retries are the gateway's own business; the caller only sees
    the terminal outcome.
    """

    async def create(self, entity_type: str, payload: dict[str, Any]) -> dict[str, Any]: ...

    async def read(self, entity_type: str, entity_id: str) -> dict[str, Any]: ...

    async def update(
        self,
        entity_type: str,
        entity_id: str,
        payload: dict[str, Any],
        *,
        base_version: Optional[str] = None,
    ) -> dict[str, Any]: ...

    async def patch(
        self,
        entity_type: str,
        entity_id: str,
        fields: dict[str, Any],
        *,
        base_version: Optional[str] = None,
    ) -> dict[str, Any]: ...

    async def delete(self, entity_type: str, entity_id: str) -> None: ...

    async def list(self, entity_type: str, **filters: Any) -> list[dict[str, Any]]: ...

    async def set_feature_tags(self, feature_id: str, tags_input: str) -> dict[str, Any]: ...

    async def list_tags(self) -> list[dict[str, Any]]: ...
