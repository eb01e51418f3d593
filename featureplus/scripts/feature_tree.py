#!/usr/bin/env python3
"""Print a project's feature forest with counts and tags.

Usage:
  python -m featureplus.scripts.feature_tree --project 1
  python -m featureplus.scripts.feature_tree --project 1 --tag api
  python -m featureplus.scripts.feature_tree --project 1 --json
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any

from featureplus import config, observability
from featureplus.errors import NotFoundError
from featureplus.gateway.sqlite import SqliteGateway
from featureplus.models import FEATURE
from featureplus.session import FeatureSession, close_session, open_session


def _node(session: FeatureSession, feature_id: str) -> dict[str, Any]:
    feature = session.store.get(FEATURE, feature_id)
    counts = session.counts.summary(feature_id)
    return {
        "id": feature_id,
        "title": getattr(feature, "title", ""),
        "status": getattr(feature, "status", ""),
        "tags": session.tags.tags_of(feature_id),
        "counts": counts.model_dump(exclude={"feature_id", "title"}),
        "children": [_node(session, child) for child in session.hierarchy.children_of(feature_id)],
    }


def build_tree(session: FeatureSession, project_id: str, tag: str = "") -> list[dict[str, Any]]:
    roots = session.hierarchy.roots(project_id)
    if tag:
        tagged = session.tags.by_tag(tag)
        # Keep groups that carry the tag themselves or somewhere below.
        roots = [
            fid
            for fid in roots
            if fid in tagged or tagged.intersection(session.hierarchy.descendants(fid))
        ]
    return [_node(session, fid) for fid in roots]


def _print_node(node: dict[str, Any], indent: int = 0) -> None:
    counts = node["counts"]
    tags = f" [{', '.join(node['tags'])}]" if node["tags"] else ""
    print(
        f"{'  ' * indent}- {node['title']} (#{node['id']}, {node['status']})"
        f" sub={counts['child_features']} tasks={counts['tasks']}/{counts['subtree_tasks']}{tags}"
    )
    for child in node["children"]:
        _print_node(child, indent + 1)


async def _run(db_path: str, project_id: str, tag: str, as_json: bool) -> int:
    observability.initialize()
    gateway = await SqliteGateway.open(db_path)
    try:
        session = await open_session(gateway)
        try:
            await session.hydrate(project_id)
        except NotFoundError:
            print(f"Project not found: {project_id}")
            return 1
        tree = build_tree(session, project_id, tag)
        if as_json:
            print(json.dumps({"project_id": project_id, "features": tree}, indent=2))
            return 0
        print(f"DB: {db_path}")
        print(f"Project: {project_id}")
        if tag:
            print(f"Tag filter: {tag}")
        print(f"Feature groups: {len(tree)}")
        print("")
        for node in tree:
            _print_node(node)
        return 0
    finally:
        await close_session()
        await gateway.close()
        observability.shutdown()


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--db", default=str(config.DB_PATH))
    parser.add_argument("--project", required=True, help="Project ID to print")
    parser.add_argument("--tag", default="", help="Only show feature groups carrying this tag")
    parser.add_argument("--json", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    return asyncio.run(_run(args.db, args.project, args.tag, args.json))


if __name__ == "__main__":
    raise SystemExit(main())
