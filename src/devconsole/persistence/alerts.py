"""
Alert Rule Persistence
======================
"""

import logging
from typing import Any, Dict, List, Optional

from devconsole.persistence.database import execute, fetch_all, fetch_one, new_id, now_iso, to_bool

logger = logging.getLogger(__name__)

_FLAGS = ("enabled", "notify_sound", "notify_desktop")

_COLUMNS = (
    "name", "description", "type", "condition", "threshold", "duration", "target",
    "enabled", "notify_sound", "notify_desktop", "cooldown_mins",
)


def _rule(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    return to_bool(row, *_FLAGS) if row else None


def _db_value(key: str, value: Any) -> Any:
    if key in _FLAGS:
        return int(bool(value))
    return value


async def list_rules(rule_type: Optional[str] = None, enabled: Optional[bool] = None) -> List[Dict[str, Any]]:
    clauses, params = [], []
    if rule_type:
        clauses.append("type = ?")
        params.append(rule_type)
    if enabled is not None:
        clauses.append("enabled = ?")
        params.append(int(enabled))
    sql = "SELECT * FROM alert_rules"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY enabled DESC, type ASC, name ASC"
    return [_rule(r) for r in await fetch_all(sql, params)]


async def get_rule(rule_id: str) -> Optional[Dict[str, Any]]:
    return _rule(await fetch_one("SELECT * FROM alert_rules WHERE id = ?", (rule_id,)))


async def create_rule(data: Dict[str, Any]) -> Dict[str, Any]:
    rule_id = new_id()
    now = now_iso()
    values = {key: _db_value(key, data.get(key)) for key in _COLUMNS}
    values["duration"] = values["duration"] or 0
    columns = ", ".join(_COLUMNS)
    placeholders = ", ".join("?" for _ in _COLUMNS)
    await execute(
        f"INSERT INTO alert_rules (id, {columns}, created_at, updated_at) VALUES (?, {placeholders}, ?, ?)",
        (rule_id, *[values[key] for key in _COLUMNS], now, now)
    )
    return await get_rule(rule_id)


async def update_rule(rule_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    sets, params = [], []
    for key in _COLUMNS:
        if key in changes:
            sets.append(f"{key} = ?")
            params.append(_db_value(key, changes[key]))
    sets.append("updated_at = ?")
    params.extend([now_iso(), rule_id])
    await execute(f"UPDATE alert_rules SET {', '.join(sets)} WHERE id = ?", params)
    return await get_rule(rule_id)


async def delete_rule(rule_id: str) -> bool:
    return await execute("DELETE FROM alert_rules WHERE id = ?", (rule_id,)) > 0


async def record_trigger(rule_id: str) -> Optional[Dict[str, Any]]:
    await execute(
        "UPDATE alert_rules SET trigger_count = trigger_count + 1, last_triggered = ?, updated_at = ? WHERE id = ?",
        (now_iso(), now_iso(), rule_id)
    )
    return await get_rule(rule_id)


async def reset_trigger(rule_id: str) -> Optional[Dict[str, Any]]:
    await execute(
        "UPDATE alert_rules SET trigger_count = 0, last_triggered = NULL, updated_at = ? WHERE id = ?",
        (now_iso(), rule_id)
    )
    return await get_rule(rule_id)
