"""
Firewall API Routes
===================
UFW status, rules, policies, logs and project port syncing.

SSH access is protected: enabling and resetting the firewall make sure an
SSH rule exists, and SSH rules cannot be deleted from here.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

import devconsole.api.state as api_state
from devconsole import firewall
from devconsole.api.types import FirewallDefaultRequest, FirewallLoggingRequest, FirewallRuleRequest
from devconsole.firewall import FirewallError, UfwResult
from devconsole.persistence import projects as project_store

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

router = APIRouter(prefix="/api/admin-users/firewall", tags=["admin-users"])

limiter = api_state.limiter


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _sudo_required(error: str):
    return JSONResponse(status_code=403, content={"success": False, "needs_sudo": True, "error": error})


async def _ufw(*args: str) -> UfwResult:
    try:
        return await firewall.run_ufw(*args)
    except FirewallError as e:
        logger.error(f"ufw {' '.join(args)} failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


def _reply(result: UfwResult, message: str) -> Any:
    if not result.success:
        return _sudo_required(result.error)
    return {"success": True, "message": message, "output": result.stdout.strip()}


async def _ensure_ssh() -> Dict[str, Any]:
    try:
        return await firewall.ensure_ssh()
    except FirewallError as e:
        raise HTTPException(status_code=500, detail=str(e))


def _sudo_failure(outcome: Dict[str, Any]) -> Any:
    if outcome.get("needs_sudo"):
        return _sudo_required(outcome.get("error"))
    return None


# =============================================================================
# STATUS
# =============================================================================

@router.get("/status")
async def status():
    try:
        return await firewall.get_status()
    except FirewallError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/enable")
async def enable():
    ssh = await _ensure_ssh()
    if not ssh["success"]:
        return _sudo_required(ssh.get("error"))
    result = await _ufw("--force", "enable")
    security_logger.warning("🛡️ firewall_enabled")
    return _reply(result, "Firewall enabled")


@router.post("/disable")
async def disable():
    result = await _ufw("disable")
    security_logger.warning("🛡️ firewall_disabled")
    return _reply(result, "Firewall disabled")


# =============================================================================
# RULES
# =============================================================================

@router.post("/rules")
@limiter.limit("30/minute")
async def add_rule(request: Request, body: FirewallRuleRequest):
    try:
        args = firewall.build_rule_args(
            body.action, body.port, body.direction, body.protocol, body.source, body.to, body.comment
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = await _ufw(*args)
    security_logger.warning(f"🛡️ firewall_rule_added args={args!r}")
    return _reply(result, "Rule added")


@router.delete("/rules/{number}")
async def delete_rule(number: str):
    if not number.isdigit():
        raise HTTPException(status_code=400, detail="Invalid rule number")

    try:
        rule = await firewall.find_rule(int(number))
    except FirewallError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    if firewall.is_ssh_rule(rule["port"]):
        security_logger.warning(f"🛡️ blocked_ssh_rule_delete number={number}")
        raise HTTPException(status_code=403, detail="Cannot delete SSH rule - this would lock you out")

    result = await _ufw("--force", "delete", number)
    security_logger.warning(f"🛡️ firewall_rule_deleted number={number} port={rule['port']!r}")
    return _reply(result, f"Rule {number} deleted")


@router.post("/default")
async def set_default(body: FirewallDefaultRequest):
    if body.direction not in firewall.VALID_DIRECTIONS:
        raise HTTPException(status_code=400, detail="Invalid direction. Must be: incoming, outgoing, or routed")
    if body.policy not in firewall.VALID_POLICIES:
        raise HTTPException(status_code=400, detail="Invalid policy. Must be: allow, deny, or reject")
    result = await _ufw("default", body.policy, body.direction)
    return _reply(result, f"Default {body.direction} policy set to {body.policy}")


@router.post("/reset")
async def reset():
    result = await _ufw("--force", "reset")
    if not result.success:
        return _sudo_required(result.error)
    security_logger.warning("🛡️ firewall_reset")
    await _ensure_ssh()
    return {"success": True, "message": "Firewall reset to defaults (SSH rule restored)"}


@router.post("/logging")
async def set_logging(body: FirewallLoggingRequest):
    if body.level not in firewall.VALID_LOGGING_LEVELS:
        raise HTTPException(status_code=400, detail="Invalid logging level. Must be: off, low, medium, high, or full")
    result = await _ufw("logging", body.level)
    return _reply(result, f"Logging set to {body.level}")


# =============================================================================
# APPLICATIONS & LOGS
# =============================================================================

@router.get("/apps")
async def list_apps():
    result = await _ufw("app", "list")
    if not result.success:
        return _sudo_required(result.error)
    return {"apps": firewall.parse_app_list(result.stdout)}


@router.get("/app/{name}")
async def app_info(name: str):
    if not firewall.APP_NAME_PATTERN.match(name):
        raise HTTPException(status_code=400, detail="Invalid application name")
    result = await _ufw("app", "info", name)
    if not result.success:
        return _sudo_required(result.error)
    return {"name": name, "info": result.stdout.strip()}


@router.get("/logs")
async def logs(lines: int = Query(100, ge=1), filter: str = ""):
    found = await firewall.read_logs(min(lines, firewall.MAX_LOG_LINES))
    entries = firewall.parse_logs(found["lines"], filter)
    return {"logs": entries, "total": len(entries), "source": found["source"]}


# =============================================================================
# SSH & PROJECT PORTS
# =============================================================================

@router.post("/ensure-ssh")
async def ensure_ssh():
    outcome = await _ensure_ssh()
    return _sudo_failure(outcome) or outcome


@router.post("/sync-projects")
@limiter.limit("5/minute")
async def sync_projects(request: Request):
    routes = await project_store.list_published_routes()
    try:
        outcome = await firewall.sync_ports(routes)
    except FirewallError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return _sudo_failure(outcome) or outcome


@router.get("/project-ports")
async def project_ports():
    routes = await project_store.list_published_routes()
    return await firewall.project_ports(routes)
