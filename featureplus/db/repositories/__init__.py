"""Repository package for database access."""

from .projects import SqliteProjectRepository
from .features import SqliteFeatureRepository
from .tasks import SqliteTaskRepository
from .tags import SqliteFeatureTagRepository

__all__ = [
    "SqliteProjectRepository",
    "SqliteFeatureRepository",
    "SqliteTaskRepository",
    "SqliteFeatureTagRepository",
]
