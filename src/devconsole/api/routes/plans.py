"""
Plans API Routes
================
Plan sessions with ordered steps, simple execution state transitions and
a mermaid rendering of the step graph.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from devconsole.api.types import (
    CreatePlanRequest, ReorderStepsRequest, StepRequest, UpdatePlanRequest
)
from devconsole.persistence import plans as plan_store
from devconsole.plan_diagram import render_flowchart

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plans", tags=["plans"])

PLAN_STATUSES = ("PLANNING", "EXECUTING", "PAUSED", "CANCELLED", "COMPLETED")
STEP_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "FAILED", "SKIPPED", "BLOCKED")

# NOT NULL columns: an explicit null leaves the stored value alone
REQUIRED_FIELDS = ("title", "status")


async def _require_plan(plan_id: str) -> dict:
    plan = await plan_store.get_plan(plan_id)
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")
    return plan


async def _require_step(plan_id: str, step_id: str) -> dict:
    step = await plan_store.get_step(step_id)
    if not step or step["plan_id"] != plan_id:
        raise HTTPException(status_code=404, detail="Step not found")
    return step


def _without_nulls(changes: dict) -> dict:
    return {key: value for key, value in changes.items() if value is not None or key not in REQUIRED_FIELDS}


def _check_status(status: Optional[str], allowed) -> Optional[str]:
    if status is None:
        return None
    status = status.upper()
    if status not in allowed:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
    return status


# =============================================================================
# PLANS
# =============================================================================

@router.get("")
async def list_plans(
    project_id: Optional[str] = None,
    session_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0)
):
    result = await plan_store.list_plans(project_id, session_id, status, limit, offset)
    return {"plans": result["plans"], **result["pagination"]}


@router.get("/{plan_id}")
async def get_plan(plan_id: str):
    return await _require_plan(plan_id)


@router.post("", status_code=201)
async def create_plan(body: CreatePlanRequest):
    if not body.title or not body.title.strip():
        raise HTTPException(status_code=400, detail="Title is required")
    data = body.model_dump()
    data["title"] = body.title.strip()
    data["steps"] = [step.model_dump() for step in body.steps or []]
    plan = await plan_store.create_plan(data)
    logger.info(f"📝 Created plan {plan['title']} with {len(plan['steps'])} steps")
    return plan


@router.put("/{plan_id}")
async def update_plan(plan_id: str, body: UpdatePlanRequest):
    await _require_plan(plan_id)
    changes = _without_nulls(body.model_dump(exclude_unset=True))
    if "status" in changes:
        changes["status"] = _check_status(changes["status"], PLAN_STATUSES)
    if changes.get("title") is not None:
        changes["title"] = changes["title"].strip()
    return await plan_store.update_plan(plan_id, changes)


@router.delete("/{plan_id}")
async def delete_plan(plan_id: str):
    await _require_plan(plan_id)
    await plan_store.delete_plan(plan_id)
    return {"success": True, "id": plan_id}


# =============================================================================
# STEPS
# =============================================================================

@router.post("/{plan_id}/steps", status_code=201)
async def add_step(plan_id: str, body: StepRequest):
    await _require_plan(plan_id)
    if not body.title or not body.title.strip():
        raise HTTPException(status_code=400, detail="Step title is required")
    data = body.model_dump()
    data["title"] = body.title.strip()
    return await plan_store.add_step(plan_id, data, insert_after=body.insert_after)


@router.put("/{plan_id}/steps/reorder")
async def reorder_steps(plan_id: str, body: ReorderStepsRequest):
    await _require_plan(plan_id)
    return await plan_store.reorder_steps(plan_id, body.step_ids)


@router.put("/{plan_id}/steps/{step_id}")
async def update_step(plan_id: str, step_id: str, body: StepRequest):
    await _require_step(plan_id, step_id)
    changes = _without_nulls(body.model_dump(exclude_unset=True))
    changes.pop("insert_after", None)
    if "status" in changes:
        changes["status"] = _check_status(changes["status"], STEP_STATUSES)
    if changes.get("title") is not None:
        changes["title"] = changes["title"].strip()
    return await plan_store.update_step(step_id, changes)


@router.delete("/{plan_id}/steps/{step_id}")
async def delete_step(plan_id: str, step_id: str):
    await _require_step(plan_id, step_id)
    await plan_store.delete_step(plan_id, step_id)
    return {"success": True, "id": step_id}


# =============================================================================
# EXECUTION
# =============================================================================

@router.post("/{plan_id}/execute")
async def execute_plan(plan_id: str):
    plan = await _require_plan(plan_id)
    await plan_store.set_plan_status(plan_id, "EXECUTING")

    first = next((s for s in plan["steps"] if s["status"] == "PENDING" and not s["depends_on"]), None)
    if first:
        await plan_store.start_step(first["id"])
    logger.info(f"▶️ Executing plan {plan_id}")
    return await plan_store.get_plan(plan_id)


@router.post("/{plan_id}/pause")
async def pause_plan(plan_id: str):
    await _require_plan(plan_id)
    await plan_store.set_plan_status(plan_id, "PAUSED")
    return await plan_store.get_plan(plan_id)


@router.post("/{plan_id}/cancel")
async def cancel_plan(plan_id: str):
    await _require_plan(plan_id)
    await plan_store.set_plan_status(plan_id, "CANCELLED", completed=True)
    await plan_store.skip_in_progress_steps(plan_id)
    return await plan_store.get_plan(plan_id)


@router.get("/{plan_id}/diagram")
async def plan_diagram(plan_id: str):
    plan = await _require_plan(plan_id)
    return {"diagram": render_flowchart(plan["steps"]), "steps": plan["steps"]}
