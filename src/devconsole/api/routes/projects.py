"""
Projects API Routes
===================
Project directories under PROJECTS_DIR, their console settings, and the
admin project stats lookup.
"""

import logging
import re
from datetime import datetime

import aiofiles
from fastapi import APIRouter, HTTPException, Query

import devconsole.api.state as api_state
from devconsole.api.paths import project_dir, resolve_in_projects
from devconsole.api.types import CreateProjectRequest, ProjectSettingsRequest
from devconsole.async_utils import run_subprocess
from devconsole.file_browser import count_files, directory_size
from devconsole.git_ops import project_git_info
from devconsole.persistence import projects as project_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["projects"])

NEW_PROJECT_NAME = re.compile(r"^[a-zA-Z0-9_-]+$")

CLAUDE_MD_TEMPLATE = """# {name}

{description}

## Project Overview

Describe the purpose of this project here.

## Development

- Install dependencies
- Run the development server
- Run the tests before pushing

## Conventions

Add project-specific coding conventions here.
"""


# =============================================================================
# PROJECTS
# =============================================================================

@router.get("/projects")
async def list_projects():
    """Every non-hidden directory in PROJECTS_DIR, merged with stored metadata."""
    base = api_state.config.projects_dir
    if not base.is_dir():
        return []

    dirs = sorted(
        (p for p in base.iterdir() if p.is_dir() and not p.name.startswith(".")),
        key=lambda p: p.name
    )
    metadata = await project_store.get_project_metadata([str(p) for p in dirs])

    projects = []
    for path in dirs:
        meta = metadata.get(str(path), {})
        projects.append({
            "id": path.name,
            "name": path.name,
            "path": str(path),
            "last_modified": datetime.fromtimestamp(path.stat().st_mtime).isoformat(),
            "skip_permissions": meta.get("skip_permissions", False),
            "tags": meta.get("tags", []),
        })
    return projects


@router.post("/projects", status_code=201)
async def create_project(request: CreateProjectRequest):
    name = (request.name or "").strip()
    if not name or not NEW_PROJECT_NAME.match(name):
        raise HTTPException(
            status_code=400,
            detail="Invalid project name. Use only letters, numbers, hyphens, and underscores."
        )

    path = project_dir(name, must_exist=False)
    if path.exists():
        raise HTTPException(status_code=409, detail="Project already exists")

    path.mkdir(parents=True)
    if request.template == "git":
        rc, _, stderr = await run_subprocess(["git", "init"], cwd=str(path), timeout=30)
        if rc != 0:
            logger.warning(f"git init failed for {name}: {stderr.strip()}")

    async with aiofiles.open(path / "CLAUDE.md", mode="w") as f:
        await f.write(CLAUDE_MD_TEMPLATE.format(
            name=name, description=request.description or "A new project."
        ))

    project = await project_store.ensure_project(name, str(path))
    logger.info(f"📁 Created project {name}")
    return {"success": True, "project": {**project, "path": str(path)}}


@router.get("/projects/{name}/settings")
async def get_project_settings(name: str):
    path = project_dir(name)
    metadata = await project_store.get_project_metadata([str(path)])
    meta = metadata.get(str(path), {})
    return {
        "name": name,
        "path": str(path),
        "skip_permissions": meta.get("skip_permissions", False),
        "tags": meta.get("tags", []),
    }


@router.patch("/projects/{name}/settings")
async def update_project_settings(name: str, request: ProjectSettingsRequest):
    path = project_dir(name)
    if request.skip_permissions is None:
        raise HTTPException(status_code=400, detail="No settings to update")
    project = await project_store.set_skip_permissions(name, str(path), request.skip_permissions)
    return {"success": True, "name": name, "skip_permissions": project["skip_permissions"]}


# =============================================================================
# ADMIN
# =============================================================================

@router.get("/admin/project-stats")
async def project_stats(path: str = Query(...)):
    """Git branch, last commit, file count and disk usage of a project."""
    project_path = resolve_in_projects(path)
    if not project_path.is_dir():
        raise HTTPException(status_code=404, detail="Project not found")

    git_info = None
    if (project_path / ".git").exists():
        git_info = await project_git_info(str(project_path))

    return {
        "path": str(project_path),
        "git": git_info,
        "file_count": await count_files(project_path),
        "size": await directory_size(project_path),
    }
