"""
Agents API Routes
=================
CRUD for background agents, manual runs, execution history, trigger
catalogs and the git hook callback.
"""

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

import devconsole.api.state as api_state
from devconsole.agent_runner import (
    ACTION_TYPES, GIT_TRIGGERS, TRIGGER_TYPES,
    AgentBusyError, AgentValidationError,
    install_git_hook, normalize_git_event, remove_git_hook, validate_agent_payload,
)
from devconsole.api.types import AgentRequest, GitEventRequest
from devconsole.persistence import agents as agent_store
from devconsole.persistence import projects as project_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agents", tags=["agents"])

limiter = api_state.limiter

AGENT_FIELDS = ("name", "description", "trigger_type", "trigger_config", "actions", "enabled", "project_id")


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

async def _require_agent(agent_id: str) -> dict:
    agent = await agent_store.get_agent(agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent


async def _check_project(project_id: Optional[str]) -> None:
    if project_id and not await project_store.get_project(project_id):
        raise HTTPException(status_code=400, detail="Project not found")


def _validate(data: dict) -> dict:
    try:
        return validate_agent_payload(data)
    except AgentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _with_runtime(agent: dict) -> dict:
    runner = api_state.agent_runner
    return {**agent, "is_running": bool(runner and runner.is_running(agent["id"]))}


# =============================================================================
# CATALOGS & RUNNER STATUS
# =============================================================================

@router.get("/meta/triggers")
async def trigger_catalog():
    return {"triggers": TRIGGER_TYPES}


@router.get("/meta/actions")
async def action_catalog():
    return {"actions": ACTION_TYPES}


@router.get("/status/runner")
async def runner_status():
    return api_state.get_agent_runner().status()


# =============================================================================
# EXECUTIONS
# =============================================================================

@router.get("/executions/{execution_id}")
async def get_execution(execution_id: str):
    execution = await agent_store.get_execution(execution_id)
    if not execution:
        raise HTTPException(status_code=404, detail="Execution not found")
    return execution


@router.delete("/executions/cleanup")
async def cleanup_executions(days: int = Query(7, ge=0)):
    cutoff = (datetime.now() - timedelta(days=days)).isoformat()
    deleted = await agent_store.delete_executions_before(cutoff)
    logger.info(f"🧹 Deleted {deleted} agent executions older than {days} days")
    return {"success": True, "deleted": deleted, "cutoff_date": cutoff}


# =============================================================================
# GIT EVENTS
# =============================================================================

@router.post("/events/git")
async def git_event(body: GitEventRequest):
    """Callback target of the installed git hooks."""
    event = normalize_git_event(body.event or "")
    if event not in GIT_TRIGGERS:
        raise HTTPException(status_code=400, detail=f"Invalid git event: {body.event}")
    started = await api_state.get_agent_runner().handle_event(
        event, {"project_path": body.project_path} if body.project_path else {}
    )
    return {"success": True, "event": event, "triggered": len(started), "execution_ids": started}


# =============================================================================
# AGENTS
# =============================================================================

@router.get("")
async def list_agents(
    trigger: Optional[str] = None,
    enabled: Optional[bool] = None,
    project_id: Optional[str] = None
):
    agents = await agent_store.list_agents(
        trigger_type=trigger.upper() if trigger else None,
        enabled=enabled,
        project_id=project_id,
    )
    recent = await agent_store.recent_executions([a["id"] for a in agents], per_agent=5)
    return [{**_with_runtime(a), "executions": recent.get(a["id"], [])} for a in agents]


@router.post("", status_code=201)
async def create_agent(body: AgentRequest):
    data = _validate(body.model_dump(exclude_unset=True))
    await _check_project(data.get("project_id"))
    if data.get("enabled") is None:
        data["enabled"] = True

    agent = await agent_store.create_agent(data)
    if agent["enabled"] and api_state.agent_runner:
        await api_state.agent_runner.load_agent(agent)
    logger.info(f"🤖 Created agent {agent['name']} ({agent['trigger_type']})")
    return _with_runtime(agent)


@router.get("/{agent_id}")
async def get_agent(agent_id: str, page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=200)):
    agent = await _require_agent(agent_id)
    executions = await agent_store.list_executions(agent_id, limit=limit, offset=(page - 1) * limit)
    total = await agent_store.count_executions(agent_id)
    return {
        **_with_runtime(agent),
        "executions": executions,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": -(-total // limit),
        },
    }


@router.put("/{agent_id}")
async def update_agent(agent_id: str, body: AgentRequest):
    existing = await _require_agent(agent_id)
    changes = body.model_dump(exclude_unset=True)
    merged = {key: existing.get(key) for key in AGENT_FIELDS}
    merged.update(changes)
    cleaned = _validate(merged)
    await _check_project(cleaned.get("project_id"))

    agent = await agent_store.update_agent(agent_id, {key: cleaned[key] for key in changes})
    if api_state.agent_runner:
        await api_state.agent_runner.reload_agent(agent_id)
    return _with_runtime(agent)


@router.delete("/{agent_id}")
async def delete_agent(agent_id: str):
    await _require_agent(agent_id)
    runner = api_state.agent_runner
    if runner:
        if runner.is_running(agent_id):
            await runner.stop_agent(agent_id)
        runner.unload_agent(agent_id)
    await agent_store.delete_agent(agent_id)
    logger.info(f"🗑️ Deleted agent {agent_id}")
    return {"success": True, "id": agent_id}


@router.post("/{agent_id}/run")
@limiter.limit("30/minute")
async def run_agent(request: Request, agent_id: str):
    try:
        execution = await api_state.get_agent_runner().run_agent(agent_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Agent not found")
    except AgentBusyError as e:
        return JSONResponse(status_code=409, content={"error": "Agent cannot start", "reason": e.reason})
    return {"success": True, "execution": execution}


@router.post("/{agent_id}/stop")
async def stop_agent(agent_id: str):
    if not await api_state.get_agent_runner().stop_agent(agent_id):
        raise HTTPException(status_code=404, detail="Agent is not running")
    return {"success": True, "status": "CANCELLED"}


@router.post("/{agent_id}/toggle")
async def toggle_agent(agent_id: str):
    agent = await _require_agent(agent_id)
    updated = await agent_store.update_agent(agent_id, {"enabled": not agent["enabled"]})
    if api_state.agent_runner:
        await api_state.agent_runner.reload_agent(agent_id)
    return _with_runtime(updated)


@router.post("/{agent_id}/hooks/install")
async def install_hooks(agent_id: str):
    agent = await _require_agent(agent_id)
    if agent["trigger_type"] not in GIT_TRIGGERS:
        raise HTTPException(status_code=400, detail="Agent does not use a git trigger")
    if not agent.get("project"):
        raise HTTPException(status_code=400, detail="Agent has no project")

    try:
        hook = await install_git_hook(
            Path(agent["project"]["path"]), agent["trigger_type"], api_state.config.console_url
        )
    except AgentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "hook": str(hook)}


@router.delete("/{agent_id}/hooks")
async def remove_hooks(agent_id: str):
    agent = await _require_agent(agent_id)
    if agent["trigger_type"] not in GIT_TRIGGERS:
        raise HTTPException(status_code=400, detail="Agent does not use a git trigger")
    if not agent.get("project"):
        raise HTTPException(status_code=400, detail="Agent has no project")

    try:
        removed = await remove_git_hook(Path(agent["project"]["path"]), agent["trigger_type"])
    except AgentValidationError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if not removed:
        raise HTTPException(status_code=404, detail="Hook not installed")
    return {"success": True, "removed": True}
