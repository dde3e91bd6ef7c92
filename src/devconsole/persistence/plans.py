"""
Plan Persistence
================
Plan sessions and their ordered steps.

Step order is 1-based and kept contiguous: inserts shift following steps
down, deletes close the gap.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from devconsole.persistence.database import (
    connect, execute, fetch_all, fetch_one, dumps, loads, new_id, now_iso
)

logger = logging.getLogger(__name__)

TERMINAL_STEP_STATUSES = ("COMPLETED", "FAILED", "SKIPPED")


def _step(row: Dict[str, Any]) -> Dict[str, Any]:
    step = dict(row)
    step["order"] = step.pop("step_order")
    step["depends_on"] = loads(step.pop("depends_on_json", None), [])
    step["tags"] = loads(step.pop("tags_json", None), [])
    return step


def _plan(row: Dict[str, Any]) -> Dict[str, Any]:
    plan = dict(row)
    plan["metadata"] = loads(plan.pop("metadata_json", None), {})
    return plan


async def _steps_for(plan_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
    if not plan_ids:
        return {}
    placeholders = ",".join("?" for _ in plan_ids)
    rows = await fetch_all(
        f"SELECT * FROM plan_steps WHERE plan_id IN ({placeholders}) ORDER BY step_order ASC",
        plan_ids
    )
    grouped: Dict[str, List[Dict[str, Any]]] = {plan_id: [] for plan_id in plan_ids}
    for row in rows:
        grouped[row["plan_id"]].append(_step(row))
    return grouped


# =============================================================================
# PLANS
# =============================================================================

async def list_plans(
    project_id: Optional[str] = None,
    session_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0
) -> Dict[str, Any]:
    clauses, params = [], []
    if project_id:
        clauses.append("project_id = ?")
        params.append(project_id)
    if session_id:
        clauses.append("session_id = ?")
        params.append(session_id)
    if status:
        clauses.append("status = ?")
        params.append(status.upper())
    where = (" WHERE " + " AND ".join(clauses)) if clauses else ""

    rows = await fetch_all(
        f"SELECT * FROM plan_sessions{where} ORDER BY created_at DESC LIMIT ? OFFSET ?",
        [*params, limit, offset]
    )
    plans = [_plan(r) for r in rows]
    total_row = await fetch_one(f"SELECT COUNT(*) AS n FROM plan_sessions{where}", params)

    steps = await _steps_for([p["id"] for p in plans])
    for plan in plans:
        plan["steps"] = steps.get(plan["id"], [])

    return {
        "plans": plans,
        "pagination": {"total": total_row["n"] if total_row else 0, "limit": limit, "offset": offset},
    }


async def get_plan(plan_id: str) -> Optional[Dict[str, Any]]:
    row = await fetch_one("SELECT * FROM plan_sessions WHERE id = ?", (plan_id,))
    if not row:
        return None
    plan = _plan(row)
    plan["steps"] = (await _steps_for([plan_id]))[plan_id]
    return plan


async def create_plan(data: Dict[str, Any]) -> Dict[str, Any]:
    plan_id = new_id()
    now = now_iso()
    async with connect() as db:
        await db.execute(
            """
            INSERT INTO plan_sessions (id, title, description, goal, status, project_id, session_id,
                                       metadata_json, created_at, updated_at)
            VALUES (?, ?, ?, ?, 'PLANNING', ?, ?, ?, ?, ?)
            """,
            (plan_id, data["title"], data.get("description"), data.get("goal"),
             data.get("project_id"), data.get("session_id"), dumps(data.get("metadata") or {}), now, now)
        )
        for index, step in enumerate(data.get("steps") or []):
            await db.execute(
                """
                INSERT INTO plan_steps (id, plan_id, title, description, command, status, step_order,
                                        depends_on_json, tags_json, estimated_mins)
                VALUES (?, ?, ?, ?, ?, 'PENDING', ?, ?, ?, ?)
                """,
                (new_id(), plan_id, step.get("title", ""), step.get("description"), step.get("command"),
                 index + 1, dumps(step.get("depends_on") or []), dumps(step.get("tags") or []),
                 step.get("estimated_mins"))
            )
        await db.commit()
    return await get_plan(plan_id)


async def update_plan(plan_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    existing = await fetch_one("SELECT status FROM plan_sessions WHERE id = ?", (plan_id,))
    if not existing:
        return None

    sets, params = [], []
    for key in ("title", "description", "goal", "status"):
        if key in changes:
            sets.append(f"{key} = ?")
            params.append(changes[key])
    if "metadata" in changes:
        sets.append("metadata_json = ?")
        params.append(dumps(changes["metadata"] or {}))
    if changes.get("status") == "COMPLETED" and existing["status"] != "COMPLETED":
        sets.append("completed_at = ?")
        params.append(now_iso())
    sets.append("updated_at = ?")
    params.extend([now_iso(), plan_id])
    await execute(f"UPDATE plan_sessions SET {', '.join(sets)} WHERE id = ?", params)
    return await get_plan(plan_id)


async def set_plan_status(plan_id: str, status: str, completed: bool = False) -> bool:
    sets = "status = ?, updated_at = ?"
    params: List[Any] = [status, now_iso()]
    if completed:
        sets += ", completed_at = ?"
        params.append(now_iso())
    params.append(plan_id)
    return await execute(f"UPDATE plan_sessions SET {sets} WHERE id = ?", params) > 0


async def delete_plan(plan_id: str) -> bool:
    return await execute("DELETE FROM plan_sessions WHERE id = ?", (plan_id,)) > 0


# =============================================================================
# STEPS
# =============================================================================

async def get_step(step_id: str) -> Optional[Dict[str, Any]]:
    row = await fetch_one("SELECT * FROM plan_steps WHERE id = ?", (step_id,))
    return _step(row) if row else None


async def add_step(plan_id: str, data: Dict[str, Any], insert_after: Optional[str] = None) -> Dict[str, Any]:
    """Append a step, or insert it right after ``insert_after`` when that step exists."""
    step_id = new_id()
    async with connect() as db:
        async with db.execute("SELECT COUNT(*) FROM plan_steps WHERE plan_id = ?", (plan_id,)) as cursor:
            count = (await cursor.fetchone())[0]
        new_order = count + 1

        if insert_after:
            async with db.execute(
                "SELECT step_order FROM plan_steps WHERE id = ? AND plan_id = ?", (insert_after, plan_id)
            ) as cursor:
                after = await cursor.fetchone()
            if after:
                new_order = after[0] + 1
                await db.execute(
                    "UPDATE plan_steps SET step_order = step_order + 1 WHERE plan_id = ? AND step_order >= ?",
                    (plan_id, new_order)
                )

        await db.execute(
            """
            INSERT INTO plan_steps (id, plan_id, title, description, command, status, step_order,
                                    depends_on_json, tags_json, estimated_mins)
            VALUES (?, ?, ?, ?, ?, 'PENDING', ?, ?, ?, ?)
            """,
            (step_id, plan_id, data["title"], data.get("description"), data.get("command"), new_order,
             dumps(data.get("depends_on") or []), dumps(data.get("tags") or []), data.get("estimated_mins"))
        )
        await db.commit()
    return await get_step(step_id)


async def reorder_steps(plan_id: str, step_ids: List[str]) -> Optional[Dict[str, Any]]:
    async with connect() as db:
        for index, step_id in enumerate(step_ids):
            await db.execute(
                "UPDATE plan_steps SET step_order = ? WHERE id = ? AND plan_id = ?",
                (index + 1, step_id, plan_id)
            )
        await db.commit()
    return await get_plan(plan_id)


async def update_step(step_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Apply field changes and derive started_at / completed_at / duration from status moves."""
    existing = await get_step(step_id)
    if not existing:
        return None

    sets, params = [], []
    for key in ("title", "description", "command", "status", "output", "error", "notes", "estimated_mins"):
        if key in changes:
            sets.append(f"{key} = ?")
            params.append(changes[key])
    if "depends_on" in changes:
        sets.append("depends_on_json = ?")
        params.append(dumps(changes["depends_on"] or []))
    if "tags" in changes:
        sets.append("tags_json = ?")
        params.append(dumps(changes["tags"] or []))

    status = changes.get("status")
    now = datetime.now()
    if status == "IN_PROGRESS" and existing["status"] == "PENDING":
        sets.append("started_at = ?")
        params.append(now.isoformat())
    if status in TERMINAL_STEP_STATUSES and existing.get("started_at"):
        started = datetime.fromisoformat(existing["started_at"])
        sets.append("completed_at = ?")
        params.append(now.isoformat())
        sets.append("duration = ?")
        params.append(int((now - started).total_seconds() * 1000))

    if sets:
        params.append(step_id)
        await execute(f"UPDATE plan_steps SET {', '.join(sets)} WHERE id = ?", params)
    return await get_step(step_id)


async def start_step(step_id: str) -> None:
    await execute(
        "UPDATE plan_steps SET status = 'IN_PROGRESS', started_at = ? WHERE id = ?",
        (now_iso(), step_id)
    )


async def skip_in_progress_steps(plan_id: str) -> int:
    return await execute(
        "UPDATE plan_steps SET status = 'SKIPPED' WHERE plan_id = ? AND status = 'IN_PROGRESS'",
        (plan_id,)
    )


async def delete_step(plan_id: str, step_id: str) -> bool:
    async with connect() as db:
        async with db.execute(
            "SELECT step_order FROM plan_steps WHERE id = ? AND plan_id = ?", (step_id, plan_id)
        ) as cursor:
            row = await cursor.fetchone()
        if not row:
            return False
        await db.execute("DELETE FROM plan_steps WHERE id = ?", (step_id,))
        await db.execute(
            "UPDATE plan_steps SET step_order = step_order - 1 WHERE plan_id = ? AND step_order > ?",
            (plan_id, row[0])
        )
        await db.commit()
    return True
