"""
Agent Persistence
=================
Background agents and their execution history.
"""

import logging
from typing import Any, Dict, List, Optional

from devconsole.persistence.database import (
    connect, execute, fetch_all, fetch_one, dumps, loads, new_id, now_iso
)

logger = logging.getLogger(__name__)

_AGENT_SELECT = """
    SELECT a.*, p.name AS project_name, p.path AS project_path
    FROM agents a LEFT JOIN projects p ON p.id = a.project_id
"""


def _agent_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    agent = {
        "id": row["id"],
        "name": row["name"],
        "description": row["description"],
        "trigger_type": row["trigger_type"],
        "trigger_config": loads(row["trigger_config_json"], {}) or {},
        "actions": loads(row["actions_json"], []),
        "enabled": bool(row["enabled"]),
        "project_id": row["project_id"],
        "project": None,
        "last_run_at": row["last_run_at"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }
    if row.get("project_id") and row.get("project_path"):
        agent["project"] = {
            "id": row["project_id"],
            "name": row["project_name"],
            "path": row["project_path"],
        }
    return agent


def _execution_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    execution = dict(row)
    execution["trigger_context"] = loads(execution.pop("trigger_context_json", None), {})
    return execution


# =============================================================================
# AGENTS
# =============================================================================

async def list_agents(
    trigger_type: Optional[str] = None,
    enabled: Optional[bool] = None,
    project_id: Optional[str] = None
) -> List[Dict[str, Any]]:
    clauses, params = [], []
    if trigger_type:
        clauses.append("a.trigger_type = ?")
        params.append(trigger_type)
    if enabled is not None:
        clauses.append("a.enabled = ?")
        params.append(int(enabled))
    if project_id:
        clauses.append("a.project_id = ?")
        params.append(project_id)

    sql = _AGENT_SELECT
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY a.enabled DESC, a.updated_at DESC"
    return [_agent_from_row(r) for r in await fetch_all(sql, params)]


async def get_agent(agent_id: str) -> Optional[Dict[str, Any]]:
    row = await fetch_one(_AGENT_SELECT + " WHERE a.id = ?", (agent_id,))
    return _agent_from_row(row) if row else None


async def create_agent(data: Dict[str, Any]) -> Dict[str, Any]:
    agent_id = new_id()
    now = now_iso()
    await execute(
        """
        INSERT INTO agents (id, name, description, trigger_type, trigger_config_json,
                            actions_json, enabled, project_id, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            agent_id,
            data["name"],
            data.get("description"),
            data["trigger_type"],
            dumps(data.get("trigger_config") or {}),
            dumps(data["actions"]),
            int(data.get("enabled", True)),
            data.get("project_id"),
            now,
            now,
        )
    )
    return await get_agent(agent_id)


_UPDATABLE = {
    "name": "name",
    "description": "description",
    "trigger_type": "trigger_type",
    "trigger_config": "trigger_config_json",
    "actions": "actions_json",
    "enabled": "enabled",
    "project_id": "project_id",
}


async def update_agent(agent_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    sets, params = [], []
    for key, column in _UPDATABLE.items():
        if key not in changes:
            continue
        value = changes[key]
        if key in ("trigger_config", "actions"):
            value = dumps(value)
        elif key == "enabled":
            value = int(bool(value))
        sets.append(f"{column} = ?")
        params.append(value)
    sets.append("updated_at = ?")
    params.append(now_iso())
    params.append(agent_id)
    await execute(f"UPDATE agents SET {', '.join(sets)} WHERE id = ?", params)
    return await get_agent(agent_id)


async def delete_agent(agent_id: str) -> bool:
    return await execute("DELETE FROM agents WHERE id = ?", (agent_id,)) > 0


async def touch_last_run(agent_id: str) -> None:
    await execute("UPDATE agents SET last_run_at = ? WHERE id = ?", (now_iso(), agent_id))


# =============================================================================
# EXECUTIONS
# =============================================================================

async def create_execution(agent_id: str, trigger_context: Dict[str, Any]) -> Dict[str, Any]:
    execution_id = new_id()
    await execute(
        """
        INSERT INTO agent_executions (id, agent_id, status, trigger_context_json, started_at)
        VALUES (?, ?, 'RUNNING', ?, ?)
        """,
        (execution_id, agent_id, dumps(trigger_context), now_iso())
    )
    return await get_execution(execution_id)


async def finish_execution(
    execution_id: str,
    status: str,
    output: Optional[str] = None,
    error: Optional[str] = None,
    trigger_context: Optional[Dict[str, Any]] = None
) -> None:
    sets = ["status = ?", "output = ?", "error = ?", "completed_at = ?"]
    params: List[Any] = [status, output, error, now_iso()]
    if trigger_context is not None:
        sets.append("trigger_context_json = ?")
        params.append(dumps(trigger_context))
    params.append(execution_id)
    await execute(f"UPDATE agent_executions SET {', '.join(sets)} WHERE id = ?", params)


async def get_execution(execution_id: str) -> Optional[Dict[str, Any]]:
    row = await fetch_one(
        """
        SELECT e.*, a.name AS agent_name, a.trigger_type AS agent_trigger_type
        FROM agent_executions e LEFT JOIN agents a ON a.id = e.agent_id
        WHERE e.id = ?
        """,
        (execution_id,)
    )
    if not row:
        return None
    execution = _execution_from_row(row)
    execution["agent"] = {
        "id": execution["agent_id"],
        "name": execution.pop("agent_name"),
        "trigger_type": execution.pop("agent_trigger_type"),
    }
    return execution


async def list_executions(agent_id: str, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
    rows = await fetch_all(
        "SELECT * FROM agent_executions WHERE agent_id = ? ORDER BY started_at DESC LIMIT ? OFFSET ?",
        (agent_id, limit, offset)
    )
    return [_execution_from_row(r) for r in rows]


async def count_executions(agent_id: str) -> int:
    row = await fetch_one("SELECT COUNT(*) AS n FROM agent_executions WHERE agent_id = ?", (agent_id,))
    return row["n"] if row else 0


async def recent_executions(agent_ids: List[str], per_agent: int = 5) -> Dict[str, List[Dict[str, Any]]]:
    """Latest ``per_agent`` executions (summary columns only) for each agent."""
    if not agent_ids:
        return {}
    placeholders = ",".join("?" for _ in agent_ids)
    rows = await fetch_all(
        f"""
        SELECT id, agent_id, status, started_at, completed_at FROM (
            SELECT *, ROW_NUMBER() OVER (PARTITION BY agent_id ORDER BY started_at DESC) AS rn
            FROM agent_executions WHERE agent_id IN ({placeholders})
        ) WHERE rn <= ?
        ORDER BY started_at DESC
        """,
        [*agent_ids, per_agent]
    )
    grouped: Dict[str, List[Dict[str, Any]]] = {agent_id: [] for agent_id in agent_ids}
    for row in rows:
        grouped[row.pop("agent_id")].append(row)
    return grouped


async def delete_executions_before(cutoff_iso: str) -> int:
    """Delete finished executions that started before ``cutoff_iso``."""
    return await execute(
        "DELETE FROM agent_executions WHERE started_at < ? AND status != 'RUNNING'",
        (cutoff_iso,)
    )


async def mark_stale_executions() -> int:
    """Executions left RUNNING by a previous process can never finish."""
    async with connect() as db:
        cursor = await db.execute(
            "UPDATE agent_executions SET status = 'FAILED', error = ?, completed_at = ? WHERE status = 'RUNNING'",
            ("Interrupted by server restart", now_iso())
        )
        await db.commit()
        count = cursor.rowcount
    if count:
        logger.warning(f"Marked {count} stale agent execution(s) as FAILED")
    return count
