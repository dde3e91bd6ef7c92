"""
Backups API Routes
==================
Create, list, restore and delete project backups stored under
BACKUPS_DIR/<project>/.
"""

import logging
from pathlib import Path

from fastapi import APIRouter, HTTPException, Request

import devconsole.api.state as api_state
from devconsole import backups
from devconsole.api.paths import project_dir
from devconsole.api.types import CreateBackupRequest
from devconsole.backups import BackupError
from devconsole.path_security import PathSecurityError, safe_path

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/backups", tags=["backups"])

limiter = api_state.limiter


def _backup_dir(project: str) -> Path:
    try:
        return safe_path(api_state.config.backups_dir, project)
    except PathSecurityError:
        raise HTTPException(status_code=400, detail="Invalid project name")


@router.get("/{project}")
async def list_project_backups(project: str):
    project_dir(project, must_exist=False)
    return {"backups": backups.list_backups(_backup_dir(project))}


@router.post("/{project}", status_code=201)
@limiter.limit("5/minute")
async def create_project_backup(request: Request, project: str, body: CreateBackupRequest):
    if body.strategy not in backups.STRATEGIES:
        raise HTTPException(status_code=400, detail="Invalid strategy. Must be: full, incremental, or git")
    path = project_dir(project)
    if body.strategy == "git" and not (path / ".git").exists():
        raise HTTPException(status_code=400, detail="Project is not a git repository")

    try:
        backup = await backups.create_backup(path, _backup_dir(project), body.strategy, body.name)
    except BackupError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True, "backup": backup}


@router.post("/{project}/{backup_id}/restore")
@limiter.limit("5/minute")
async def restore_project_backup(request: Request, project: str, backup_id: str):
    path = project_dir(project, must_exist=False)
    if backup_id.endswith(".bundle") and not (path / ".git").exists():
        raise HTTPException(status_code=400, detail="Project is not a git repository")

    try:
        await backups.restore_backup(path, _backup_dir(project), backup_id)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Backup not found")
    except BackupError as e:
        status = 400 if str(e) == "Invalid backup id" else 500
        raise HTTPException(status_code=status, detail=str(e))
    return {"success": True, "message": f"Restored {backup_id}"}


@router.delete("/{project}/{backup_id}")
async def delete_project_backup(project: str, backup_id: str):
    project_dir(project, must_exist=False)
    try:
        backups.delete_backup(_backup_dir(project), backup_id)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Backup not found")
    except BackupError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "id": backup_id}
