"""
Project Persistence
===================
Database-side project metadata (settings, tags) and published routes.
The project directories themselves live on disk under PROJECTS_DIR.
"""

import logging
from typing import Any, Dict, List, Optional

from devconsole.persistence.database import (
    execute, fetch_all, fetch_one, new_id, now_iso, to_bool
)

logger = logging.getLogger(__name__)


async def get_project(project_id: str) -> Optional[Dict[str, Any]]:
    row = await fetch_one("SELECT * FROM projects WHERE id = ?", (project_id,))
    return to_bool(row, "skip_permissions") if row else None


async def get_project_by_path(path: str) -> Optional[Dict[str, Any]]:
    row = await fetch_one("SELECT * FROM projects WHERE path = ?", (path,))
    return to_bool(row, "skip_permissions") if row else None


async def ensure_project(name: str, path: str) -> Dict[str, Any]:
    """Return the project row for ``path``, creating it when missing."""
    existing = await get_project_by_path(path)
    if existing:
        return existing
    now = now_iso()
    await execute(
        "INSERT INTO projects (id, name, path, skip_permissions, created_at, updated_at) VALUES (?, ?, ?, 0, ?, ?)",
        (new_id(), name, path, now, now)
    )
    return await get_project_by_path(path)


async def set_skip_permissions(name: str, path: str, skip_permissions: bool) -> Dict[str, Any]:
    project = await ensure_project(name, path)
    await execute(
        "UPDATE projects SET skip_permissions = ?, updated_at = ? WHERE id = ?",
        (int(skip_permissions), now_iso(), project["id"])
    )
    return await get_project(project["id"])


async def get_project_metadata(paths: List[str]) -> Dict[str, Dict[str, Any]]:
    """Map project path -> {skip_permissions, tags} for the given paths."""
    if not paths:
        return {}
    placeholders = ",".join("?" for _ in paths)
    projects = await fetch_all(
        f"SELECT id, path, skip_permissions FROM projects WHERE path IN ({placeholders})", paths
    )
    if not projects:
        return {}

    ids = [p["id"] for p in projects]
    id_placeholders = ",".join("?" for _ in ids)
    tag_rows = await fetch_all(
        f"""
        SELECT pt.project_id, t.id, t.name, t.color
        FROM project_tags pt JOIN tags t ON t.id = pt.tag_id
        WHERE pt.project_id IN ({id_placeholders})
        ORDER BY t.name
        """,
        ids
    )
    tags_by_project: Dict[str, List[Dict[str, Any]]] = {}
    for row in tag_rows:
        tags_by_project.setdefault(row["project_id"], []).append(
            {"id": row["id"], "name": row["name"], "color": row["color"]}
        )

    return {
        p["path"]: {
            "skip_permissions": bool(p["skip_permissions"]),
            "tags": tags_by_project.get(p["id"], []),
        }
        for p in projects
    }


# =============================================================================
# PUBLISHED ROUTES
# =============================================================================

async def list_published_routes(enabled_only: bool = True) -> List[Dict[str, Any]]:
    sql = "SELECT * FROM published_routes"
    if enabled_only:
        sql += " WHERE enabled = 1"
    rows = await fetch_all(sql + " ORDER BY local_port")
    return [to_bool(r, "enabled") for r in rows]


async def add_published_route(subdomain: str, local_port: int, enabled: bool = True) -> str:
    route_id = new_id()
    await execute(
        "INSERT INTO published_routes (id, subdomain, local_port, enabled) VALUES (?, ?, ?, ?)",
        (route_id, subdomain, local_port, int(enabled))
    )
    return route_id
