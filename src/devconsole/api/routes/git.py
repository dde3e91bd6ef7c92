"""
Git API Routes
==============
Thin wrappers around the git CLI for repositories inside PROJECTS_DIR.
Every endpoint takes the repository as ``?path=`` (absolute, or relative
to PROJECTS_DIR).
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

import devconsole.api.state as api_state
from devconsole import git_ops
from devconsole.api.paths import resolve_in_projects
from devconsole.api.types import GitBranchRequest, GitCheckoutRequest, GitCommitRequest, GitStashRequest
from devconsole.git_ops import GitError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/git", tags=["git"])

limiter = api_state.limiter


def _repo(path: str) -> str:
    repo = resolve_in_projects(path)
    if not (repo / ".git").exists():
        raise HTTPException(status_code=400, detail="Not a git repository")
    return str(repo)


def _git_failure(action: str, error: GitError) -> HTTPException:
    logger.error(f"Git {action} failed: {error}")
    return HTTPException(status_code=500, detail=str(error))


@router.get("/status")
async def status(path: str = Query(...)):
    repo = _repo(path)
    try:
        return await git_ops.get_status(repo)
    except GitError as e:
        raise _git_failure("status", e)


@router.post("/pull")
@limiter.limit("10/minute")
async def pull(request: Request, path: str = Query(...)):
    repo = _repo(path)
    try:
        output = await git_ops.pull(repo)
    except GitError as e:
        raise _git_failure("pull", e)
    return {"success": True, "output": output}


@router.post("/push")
@limiter.limit("10/minute")
async def push(request: Request, path: str = Query(...)):
    repo = _repo(path)
    try:
        output = await git_ops.push(repo)
    except GitError as e:
        raise _git_failure("push", e)
    return {"success": True, "output": output}


@router.post("/commit")
async def commit(body: GitCommitRequest, path: str = Query(...)):
    if not body.message or not body.message.strip():
        raise HTTPException(status_code=400, detail="Commit message is required")
    repo = _repo(path)
    try:
        output = await git_ops.commit(repo, body.message, body.files, body.add_all)
    except GitError as e:
        raise _git_failure("commit", e)
    return {"success": True, "output": output}


@router.post("/stash")
async def stash(body: GitStashRequest, path: str = Query(...)):
    repo = _repo(path)
    try:
        output = await git_ops.stash(repo, body.message)
    except GitError as e:
        raise _git_failure("stash", e)
    return {"success": True, "output": output}


@router.post("/branch")
async def create_branch(body: GitBranchRequest, path: str = Query(...)):
    error = git_ops.validate_branch_name(body.name)
    if error:
        raise HTTPException(status_code=400, detail=error)
    if body.start_point and git_ops.validate_branch_name(body.start_point):
        raise HTTPException(status_code=400, detail="Invalid start point")
    repo = _repo(path)
    try:
        message = await git_ops.create_branch(repo, body.name, body.start_point)
    except GitError as e:
        raise _git_failure("branch", e)
    return {"success": True, "message": message}


@router.get("/log")
async def log(path: str = Query(...), limit: int = 10):
    repo = _repo(path)
    try:
        return {"commits": await git_ops.log(repo, limit)}
    except GitError as e:
        raise _git_failure("log", e)


@router.get("/branches")
async def branches(path: str = Query(...)):
    repo = _repo(path)
    try:
        return await git_ops.branches(repo)
    except GitError as e:
        raise _git_failure("branches", e)


@router.post("/checkout")
async def checkout(body: GitCheckoutRequest, path: str = Query(...)):
    error = git_ops.validate_branch_name(body.branch)
    if error:
        raise HTTPException(status_code=400, detail=error)
    repo = _repo(path)
    try:
        message = await git_ops.checkout(repo, body.branch)
    except GitError as e:
        raise _git_failure("checkout", e)
    return {"success": True, "message": message}


@router.get("/diff")
async def diff(path: str = Query(...), commit: Optional[str] = None):
    if commit and git_ops.validate_branch_name(commit):
        raise HTTPException(status_code=400, detail="Invalid commit reference")
    repo = _repo(path)
    try:
        return {"diff": await git_ops.diff(repo, commit)}
    except GitError as e:
        raise _git_failure("diff", e)
