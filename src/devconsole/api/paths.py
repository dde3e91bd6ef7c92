"""
Request Path Helpers
====================
Resolve user-supplied project names and paths against PROJECTS_DIR,
turning security failures into HTTP errors.
"""

from pathlib import Path
from typing import Optional

from fastapi import HTTPException

import devconsole.api.state as api_state
from devconsole.path_security import PathSecurityError, safe_project_path, validate_and_resolve_path


def project_dir(name: Optional[str], must_exist: bool = True) -> Path:
    """Directory of project ``name`` (400 on a bad name, 404 when missing)."""
    try:
        path = safe_project_path(api_state.config.projects_dir, name or "")
    except PathSecurityError:
        raise HTTPException(status_code=400, detail="Invalid project name")
    if must_exist and not path.is_dir():
        raise HTTPException(status_code=404, detail="Project not found")
    return path


def resolve_in_projects(path: Optional[str]) -> Path:
    """Absolute or PROJECTS_DIR-relative path that must stay inside PROJECTS_DIR."""
    if not path:
        raise HTTPException(status_code=400, detail="Path is required")
    try:
        return validate_and_resolve_path(path, [api_state.config.projects_dir])
    except PathSecurityError as e:
        raise HTTPException(status_code=403, detail=str(e))
