"""
Theme Persistence
=================
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional

from devconsole.persistence.database import connect, execute, fetch_all, fetch_one, dumps, loads, new_id, now_iso
from devconsole.theme_catalog import BUILT_IN_THEMES, DEFAULT_THEME

logger = logging.getLogger(__name__)


class ThemeExistsError(Exception):
    """A theme with that name already exists."""


def _theme(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not row:
        return None
    theme = dict(row)
    theme["colors"] = loads(theme.pop("colors_json"), {})
    theme["is_built_in"] = bool(theme["is_built_in"])
    theme["is_active"] = bool(theme["is_active"])
    return theme


async def seed_built_in_themes() -> None:
    """Upsert the built-in palettes; only a fresh install activates the default."""
    now = now_iso()
    async with connect() as db:
        async with db.execute("SELECT COUNT(*) FROM themes WHERE is_active = 1") as cursor:
            has_active = (await cursor.fetchone())[0] > 0
        for theme in BUILT_IN_THEMES:
            await db.execute(
                """
                INSERT INTO themes (id, name, display_name, colors_json, is_built_in, is_active, created_at, updated_at)
                VALUES (?, ?, ?, ?, 1, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    display_name = excluded.display_name, colors_json = excluded.colors_json,
                    is_built_in = 1, updated_at = excluded.updated_at
                """,
                (new_id(), theme["name"], theme["display_name"], dumps(theme["colors"]),
                 int(theme["name"] == DEFAULT_THEME and not has_active), now, now)
            )
        await db.commit()
    logger.info(f"🎨 Seeded {len(BUILT_IN_THEMES)} built-in themes")


async def list_themes() -> List[Dict[str, Any]]:
    rows = await fetch_all("SELECT * FROM themes ORDER BY is_built_in DESC, name ASC")
    return [_theme(r) for r in rows]


async def get_theme(name: str) -> Optional[Dict[str, Any]]:
    return _theme(await fetch_one("SELECT * FROM themes WHERE name = ?", (name,)))


async def get_active_theme() -> Optional[Dict[str, Any]]:
    return _theme(await fetch_one("SELECT * FROM themes WHERE is_active = 1 LIMIT 1"))


async def create_theme(name: str, display_name: str, colors: Dict[str, str]) -> Dict[str, Any]:
    now = now_iso()
    try:
        await execute(
            """
            INSERT INTO themes (id, name, display_name, colors_json, is_built_in, is_active, created_at, updated_at)
            VALUES (?, ?, ?, ?, 0, 0, ?, ?)
            """,
            (new_id(), name, display_name, dumps(colors), now, now)
        )
    except sqlite3.IntegrityError:
        raise ThemeExistsError(f"Theme name already exists: {name}")
    return await get_theme(name)


async def update_theme(name: str, display_name: Optional[str], colors: Optional[Dict[str, str]]) -> Dict[str, Any]:
    sets, params = ["updated_at = ?"], [now_iso()]
    if display_name is not None:
        sets.append("display_name = ?")
        params.append(display_name)
    if colors is not None:
        sets.append("colors_json = ?")
        params.append(dumps(colors))
    params.append(name)
    await execute(f"UPDATE themes SET {', '.join(sets)} WHERE name = ?", params)
    return await get_theme(name)


async def delete_theme(name: str) -> None:
    """Delete a theme; removing the active one hands activation back to the default."""
    async with connect() as db:
        async with db.execute("SELECT is_active FROM themes WHERE name = ?", (name,)) as cursor:
            row = await cursor.fetchone()
        await db.execute("DELETE FROM themes WHERE name = ?", (name,))
        if row and row[0]:
            await db.execute("UPDATE themes SET is_active = 1 WHERE name = ?", (DEFAULT_THEME,))
        await db.commit()


async def activate_theme(name: str) -> Dict[str, Any]:
    async with connect() as db:
        await db.execute("UPDATE themes SET is_active = 0")
        await db.execute("UPDATE themes SET is_active = 1, updated_at = ? WHERE name = ?", (now_iso(), name))
        await db.commit()
    return await get_theme(name)
