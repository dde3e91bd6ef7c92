"""
Console Database
================
SQLite persistence shared by every store module (aiosqlite, WAL mode).
"""

import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import aiosqlite

logger = logging.getLogger(__name__)

_db_path: Optional[str] = None


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        path TEXT NOT NULL UNIQUE,
        skip_permissions INTEGER NOT NULL DEFAULT 0,
        created_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tags (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        color TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS project_tags (
        project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
        tag_id TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
        PRIMARY KEY (project_id, tag_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS agents (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        trigger_type TEXT NOT NULL,
        trigger_config_json TEXT NOT NULL DEFAULT '{}',
        actions_json TEXT NOT NULL DEFAULT '[]',
        enabled INTEGER NOT NULL DEFAULT 1,
        project_id TEXT REFERENCES projects(id) ON DELETE SET NULL,
        last_run_at TEXT,
        created_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS agent_executions (
        id TEXT PRIMARY KEY,
        agent_id TEXT NOT NULL REFERENCES agents(id) ON DELETE CASCADE,
        status TEXT NOT NULL,
        trigger_context_json TEXT,
        output TEXT,
        error TEXT,
        started_at TEXT,
        completed_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_executions_agent ON agent_executions(agent_id, started_at)",
    """
    CREATE TABLE IF NOT EXISTS alert_rules (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        type TEXT NOT NULL,
        condition TEXT NOT NULL,
        threshold REAL NOT NULL,
        duration INTEGER NOT NULL DEFAULT 0,
        target TEXT,
        enabled INTEGER NOT NULL DEFAULT 1,
        notify_sound INTEGER NOT NULL DEFAULT 1,
        notify_desktop INTEGER NOT NULL DEFAULT 1,
        cooldown_mins INTEGER NOT NULL DEFAULT 5,
        trigger_count INTEGER NOT NULL DEFAULT 0,
        last_triggered TEXT,
        created_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS plan_sessions (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        goal TEXT,
        status TEXT NOT NULL DEFAULT 'PLANNING',
        project_id TEXT,
        session_id TEXT,
        metadata_json TEXT NOT NULL DEFAULT '{}',
        created_at TEXT,
        updated_at TEXT,
        completed_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS plan_steps (
        id TEXT PRIMARY KEY,
        plan_id TEXT NOT NULL REFERENCES plan_sessions(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'PENDING',
        step_order INTEGER NOT NULL,
        command TEXT,
        depends_on_json TEXT NOT NULL DEFAULT '[]',
        tags_json TEXT NOT NULL DEFAULT '[]',
        notes TEXT,
        estimated_mins INTEGER,
        output TEXT,
        error TEXT,
        started_at TEXT,
        completed_at TEXT,
        duration INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS themes (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        display_name TEXT NOT NULL,
        description TEXT,
        colors_json TEXT NOT NULL,
        is_built_in INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 0,
        created_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_settings (
        id TEXT PRIMARY KEY,
        settings_json TEXT NOT NULL DEFAULT '{}',
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS authentik_settings (
        id TEXT PRIMARY KEY,
        api_url TEXT NOT NULL,
        api_token TEXT,
        enabled INTEGER NOT NULL DEFAULT 0,
        configured INTEGER NOT NULL DEFAULT 0,
        last_validated TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS published_routes (
        id TEXT PRIMARY KEY,
        subdomain TEXT NOT NULL,
        local_port INTEGER NOT NULL,
        enabled INTEGER NOT NULL DEFAULT 1
    )
    """,
]


def configure(db_path) -> None:
    """Point the store modules at a database file."""
    global _db_path
    _db_path = str(db_path)


def get_db_path() -> str:
    if _db_path is None:
        raise RuntimeError("Database not configured - server startup may have failed")
    return _db_path


@asynccontextmanager
async def connect():
    """Open SQLite connection with WAL mode enabled for better concurrency."""
    async with aiosqlite.connect(get_db_path()) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA journal_mode=WAL")
        await db.execute("PRAGMA busy_timeout=5000")
        await db.execute("PRAGMA foreign_keys=ON")
        yield db


async def init_db(db_path=None) -> None:
    """Create all tables if they don't exist."""
    if db_path is not None:
        configure(db_path)
    Path(get_db_path()).parent.mkdir(parents=True, exist_ok=True)
    async with connect() as db:
        for statement in SCHEMA:
            await db.execute(statement)
        await db.commit()
    logger.info(f"✅ Database initialized (SQLite + WAL mode): {get_db_path()}")


async def ping() -> bool:
    """Round-trip a trivial query."""
    async with connect() as db:
        async with db.execute("SELECT 1") as cursor:
            row = await cursor.fetchone()
    return row is not None


async def fetch_all(sql: str, params: Iterable[Any] = ()) -> List[Dict[str, Any]]:
    async with connect() as db:
        async with db.execute(sql, tuple(params)) as cursor:
            rows = await cursor.fetchall()
    return [dict(row) for row in rows]


async def fetch_one(sql: str, params: Iterable[Any] = ()) -> Optional[Dict[str, Any]]:
    async with connect() as db:
        async with db.execute(sql, tuple(params)) as cursor:
            row = await cursor.fetchone()
    return dict(row) if row else None


async def execute(sql: str, params: Iterable[Any] = ()) -> int:
    """Run a write statement and return the affected row count."""
    async with connect() as db:
        cursor = await db.execute(sql, tuple(params))
        await db.commit()
        return cursor.rowcount


def new_id() -> str:
    return uuid.uuid4().hex


def now_iso() -> str:
    return datetime.now().isoformat()


def dumps(value: Any) -> str:
    return json.dumps(value)


def loads(value: Optional[str], default: Any = None) -> Any:
    if value is None or value == "":
        return default
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        logger.warning(f"Could not decode JSON column value: {value[:80]!r}")
        return default


def to_bool(row: Dict[str, Any], *keys: str) -> Dict[str, Any]:
    """Convert SQLite integer flags to bools in place."""
    for key in keys:
        if key in row and row[key] is not None:
            row[key] = bool(row[key])
    return row
