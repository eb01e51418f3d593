"""Pydantic models matching the remote JSON contract."""
from __future__ import annotations

from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from featureplus import config
from featureplus.tagging import coerce_tag_list

PROJECT = "project"
FEATURE = "feature"
TASK = "task"
ENTITY_TYPES = (PROJECT, FEATURE, TASK)

FEATURE_STATUSES = ("todo", "in_progress", "done")
FEATURE_PRIORITIES = ("low", "medium", "high")


def default_project_config() -> dict[str, Any]:
    return {
        "task_types": list(config.DEFAULT_TASK_TYPES),
        "feature_category": list(config.DEFAULT_FEATURE_CATEGORIES),
    }


def _optional_ref(value: Any) -> Optional[str]:
    # The remote sends 0 for "no reference" on unsigned foreign keys.
    if value is None:
        return None
    token = str(value).strip()
    if not token or token == "0":
        return None
    return token


class Entity(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    entity_type: ClassVar[str] = ""

    id: str = ""
    created_at: str = ""
    updated_at: str = ""

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> str:
        return "" if value is None else str(value)


# ── Project ────────────────────────────────────────────────────────

class Project(Entity):
    entity_type: ClassVar[str] = PROJECT

    name: str
    description: str = ""
    status: str = "active"
    owner_id: str = ""
    config: dict[str, Any] = Field(default_factory=default_project_config)

    @field_validator("config", mode="before")
    @classmethod
    def _config(cls, value: Any) -> dict[str, Any]:
        if not value:
            return default_project_config()
        merged = default_project_config()
        merged.update(dict(value))
        return merged

    @property
    def task_types(self) -> list[str]:
        return [str(t) for t in self.config.get("task_types") or []]

    @property
    def feature_categories(self) -> list[str]:
        return [str(c) for c in self.config.get("feature_category") or []]


# ── Feature ────────────────────────────────────────────────────────

class Feature(Entity):
    entity_type: ClassVar[str] = FEATURE

    project_id: str
    parent_feature_id: Optional[str] = None
    title: str
    description: str = ""
    status: str = "todo"  # todo | in_progress | done
    priority: str = "medium"  # low | medium | high
    assignee_id: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)

    @field_validator("parent_feature_id", mode="before")
    @classmethod
    def _parent(cls, value: Any) -> Optional[str]:
        return _optional_ref(value)

    @field_validator("assignee_id", mode="before")
    @classmethod
    def _assignee(cls, value: Any) -> str:
        return _optional_ref(value) or ""

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value: Any) -> list[str]:
        return coerce_tag_list(value)

    @property
    def is_group(self) -> bool:
        return self.parent_feature_id is None


# ── Task ───────────────────────────────────────────────────────────

class TaskAttachment(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    id: str
    task_id: str = ""
    file_name: str = ""
    file_type: str = ""
    file_size: int = 0
    uploaded_by: str = ""
    created_at: str = ""


class Comment(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    id: str
    task_id: str = ""
    user_id: str = ""
    attachment_id: Optional[str] = None
    content: str = ""
    created_at: str = ""
    updated_at: str = ""

    @field_validator("attachment_id", mode="before")
    @classmethod
    def _attachment(cls, value: Any) -> Optional[str]:
        return _optional_ref(value)


class Task(Entity):
    entity_type: ClassVar[str] = TASK

    feature_id: Optional[str] = None
    sub_feature_id: Optional[str] = None
    task_type: str = "UI"
    task_name: str
    description: str = ""
    attachments: list[TaskAttachment] = Field(default_factory=list)
    comments: list[Comment] = Field(default_factory=list)
    created_by_user: str = ""

    @field_validator("feature_id", "sub_feature_id", mode="before")
    @classmethod
    def _owner(cls, value: Any) -> Optional[str]:
        return _optional_ref(value)

    @field_validator("attachments", "comments", mode="before")
    @classmethod
    def _rows(cls, value: Any) -> list[Any]:
        return list(value or [])

    @property
    def owner_id(self) -> Optional[str]:
        return self.sub_feature_id or self.feature_id


# ── Tags and read views ────────────────────────────────────────────

class TagMembership(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")

    feature_id: str
    tag_name: str
    created_by_user: str = ""


class FeatureCounts(BaseModel):
    feature_id: str
    title: str = ""
    child_features: int = 0
    descendant_features: int = 0
    tasks: int = 0
    subtree_tasks: int = 0
    task_types: dict[str, int] = Field(default_factory=dict)


MODEL_BY_TYPE: dict[str, type[Entity]] = {
    PROJECT: Project,
    FEATURE: Feature,
    TASK: Task,
}


def entity_type_of(entity: Entity) -> str:
    etype = getattr(entity, "entity_type", "")
    if etype not in MODEL_BY_TYPE:
        raise TypeError(f"not a stored entity: {type(entity).__name__}")
    return etype


def parse_entity(entity_type: str, data: dict[str, Any]) -> Entity:
    try:
        model = MODEL_BY_TYPE[entity_type]
    except KeyError:
        raise ValueError(f"unknown entity type: {entity_type}") from None
    return model.model_validate(data)
