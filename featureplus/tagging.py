"""Tag input normalization."""
from __future__ import annotations

import re
from typing import Any, Iterable

_TAG_SEPARATORS = re.compile(r"[ ,;]+")


def parse_tag_input(raw: str | None) -> list[str]:
    """Split free-text tag input into clean tag names.

    Separators are spaces, commas and semicolons. A single leading ``#`` is
    dropped, case is preserved, and exact duplicates keep their first position.
    """
    if not raw:
        return []
    tags: list[str] = []
    for part in _TAG_SEPARATORS.split(str(raw)):
        tag = part.strip()
        if tag.startswith("#"):
            tag = tag[1:]
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def dedupe_tags(tags: Iterable[str]) -> list[str]:
    result: list[str] = []
    for tag in tags:
        if tag and tag not in result:
            result.append(tag)
    return result


def merge_tags(existing: Iterable[str], raw: str | None) -> list[str]:
    """Union existing tags with parsed input, existing tags first."""
    return dedupe_tags([*existing, *parse_tag_input(raw)])


def canonical_tags(tags: Iterable[str]) -> str:
    return ",".join(dedupe_tags(tags))


def coerce_tag_list(value: Any) -> list[str]:
    """Accept the shapes the remote uses for feature tags.

    Either a comma/space separated string, a list of names, or a list of
    ``{"tag_name": ...}`` membership rows.
    """
    if value is None:
        return []
    if isinstance(value, str):
        return parse_tag_input(value)
    names: list[str] = []
    for item in value:
        if isinstance(item, dict):
            name = str(item.get("tag_name") or item.get("name") or "").strip()
        else:
            name = str(item or "").strip()
        if name:
            names.append(name)
    return dedupe_tags(names)
