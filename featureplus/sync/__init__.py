"""Optimistic mutation pipeline."""

from featureplus.sync.coordinator import SyncCoordinator
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

__all__ = [
    "SyncCoordinator",
    "CREATE",
    "DELETE",
    "PATCH",
    "UPDATE",
    "CreateOp",
    "DeleteOp",
    "Mutation",
    "MutationState",
    "Operation",
    "PatchOp",
    "UpdateOp",
]
