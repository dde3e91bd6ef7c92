"""
Files API Routes
================
Project tree listing, file preview and log tailing.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import PlainTextResponse

import devconsole.api.state as api_state
from devconsole.api.paths import project_dir, resolve_in_projects
from devconsole.file_browser import FileTooLargeError, build_tree_async, read_text_file, tail_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


@router.get("/tree")
async def get_tree(project: Optional[str] = None, path: Optional[str] = None):
    """Recursive tree of a project, by name or by path inside PROJECTS_DIR."""
    if project:
        root = project_dir(project)
    else:
        root = resolve_in_projects(path)
        if not root.is_dir():
            raise HTTPException(status_code=404, detail="Directory not found")

    tree = await build_tree_async(root, api_state.config.projects_dir, api_state.config.max_tree_depth)
    return {"root": str(root), "tree": tree}


@router.get("/content", response_class=PlainTextResponse)
async def get_content(path: str = Query(...)):
    file_path = resolve_in_projects(path)
    try:
        return await read_text_file(file_path, api_state.config.max_file_size)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="File not found")
    except FileTooLargeError:
        raise HTTPException(status_code=413, detail="File too large (max 5MB)")


@router.get("/logs")
async def get_log_tail(path: str = Query(...), lines: int = Query(500, ge=1, le=5000)):
    log_path = resolve_in_projects(path)
    try:
        tail = await tail_file(log_path, lines)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Log file not found")
    except OSError as e:
        logger.error(f"Error tailing {log_path}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"lines": tail, "total": len(tail)}
