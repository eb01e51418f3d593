"""Database schema creation and versioning.

All CREATE TABLE statements for the local FeaturePlus store.
Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("featureplus.db")

SCHEMA_VERSION = 1

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── 1. Projects ────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS projects (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    name         TEXT NOT NULL,
    description  TEXT DEFAULT '',
    status       TEXT DEFAULT 'active',
    owner_id     TEXT DEFAULT '',
    config_json  TEXT DEFAULT '{}',
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);

-- ── 2. Features (groups and sub-features) ──────────────────────────
CREATE TABLE IF NOT EXISTS features (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id        INTEGER NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    parent_feature_id INTEGER REFERENCES features(id) ON DELETE CASCADE,
    title             TEXT NOT NULL,
    description       TEXT DEFAULT '',
    status            TEXT DEFAULT 'todo',
    priority          TEXT DEFAULT 'medium',
    assignee_id       TEXT DEFAULT '',
    category          TEXT DEFAULT '',
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_features_project ON features(project_id);
CREATE INDEX IF NOT EXISTS idx_features_parent  ON features(parent_feature_id);
CREATE INDEX IF NOT EXISTS idx_features_category ON features(project_id, category);

-- ── 3. Feature tags ────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS feature_tags (
    feature_id      INTEGER NOT NULL REFERENCES features(id) ON DELETE CASCADE,
    tag_name        TEXT NOT NULL,
    created_by_user TEXT DEFAULT '',
    sort_order      INTEGER DEFAULT 0,
    created_at      TEXT NOT NULL,
    PRIMARY KEY (feature_id, tag_name)
);

CREATE INDEX IF NOT EXISTS idx_feature_tags_name ON feature_tags(tag_name);

-- ── 4. Tasks ───────────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS tasks (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    feature_id       INTEGER REFERENCES features(id) ON DELETE CASCADE,
    sub_feature_id   INTEGER REFERENCES features(id) ON DELETE CASCADE,
    task_type        TEXT DEFAULT 'UI',
    task_name        TEXT NOT NULL,
    description      TEXT DEFAULT '',
    attachments_json TEXT DEFAULT '[]',
    comments_json    TEXT DEFAULT '[]',
    created_by_user  TEXT DEFAULT '',
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tasks_feature     ON tasks(feature_id);
CREATE INDEX IF NOT EXISTS idx_tasks_sub_feature ON tasks(sub_feature_id);
"""


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create all tables. Idempotent."""
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
            current_version = row[0] if row and row[0] else 0
    except aiosqlite.OperationalError:
        current_version = 0

    if current_version >= SCHEMA_VERSION:
        logger.info("Schema is up to date (version %s)", current_version)
        return

    logger.info("Running migrations: %s -> %s", current_version, SCHEMA_VERSION)

    await db.executescript(_TABLES)

    await db.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    await db.commit()
    logger.info("Migrations complete (version %s)", SCHEMA_VERSION)
