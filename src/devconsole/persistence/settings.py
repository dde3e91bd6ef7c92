"""
Settings Persistence
====================
User settings (UI preferences + scan resource controls) and the
Authentik connection row. Both live under the fixed id 'default'.
"""

import logging
from typing import Any, Dict, Optional

from devconsole.persistence.database import connect, fetch_one, dumps, loads, now_iso, to_bool

logger = logging.getLogger(__name__)

DEFAULT_ID = "default"


async def get_user_settings() -> Dict[str, Any]:
    row = await fetch_one("SELECT settings_json FROM user_settings WHERE id = ?", (DEFAULT_ID,))
    if not row:
        return {}
    return loads(row["settings_json"], {})


async def update_user_settings(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``changes`` into the stored settings and return the result."""
    async with connect() as db:
        async with db.execute("SELECT settings_json FROM user_settings WHERE id = ?", (DEFAULT_ID,)) as cursor:
            row = await cursor.fetchone()
        current = loads(row["settings_json"], {}) if row else {}
        current.update(changes)
        await db.execute(
            """
            INSERT INTO user_settings (id, settings_json, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET settings_json = excluded.settings_json,
                                          updated_at = excluded.updated_at
            """,
            (DEFAULT_ID, dumps(current), now_iso())
        )
        await db.commit()
    logger.info(f"Updated user settings: {sorted(changes)}")
    return current


# =============================================================================
# AUTHENTIK
# =============================================================================

async def get_authentik_settings() -> Optional[Dict[str, Any]]:
    row = await fetch_one("SELECT * FROM authentik_settings WHERE id = ?", (DEFAULT_ID,))
    if row:
        to_bool(row, "enabled", "configured")
    return row


async def save_authentik_settings(
    api_url: str,
    api_token: Optional[str],
    enabled: bool,
    configured: bool,
    last_validated: Optional[str] = None
) -> Dict[str, Any]:
    async with connect() as db:
        await db.execute(
            """
            INSERT INTO authentik_settings (id, api_url, api_token, enabled, configured, last_validated)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                api_url = excluded.api_url, api_token = excluded.api_token,
                enabled = excluded.enabled, configured = excluded.configured,
                last_validated = excluded.last_validated
            """,
            (DEFAULT_ID, api_url, api_token, int(enabled), int(configured), last_validated)
        )
        await db.commit()
    return await get_authentik_settings()
