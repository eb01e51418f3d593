"""Remote gateway contract and the SQLite-backed implementation."""

from featureplus.gateway.base import RemoteGateway
from featureplus.gateway.sqlite import SqliteGateway

__all__ = ["RemoteGateway", "SqliteGateway"]
