"""
Lifecycle API Routes
====================
Security / quality tooling: tool install status, the lifecycle agent
scripts, the throttled scan queue, scan reports and push sanitization.
"""

import asyncio
import json
import logging
import os
import re
import shlex
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

import devconsole.api.state as api_state
from devconsole.api.paths import project_dir
from devconsole.api.types import SanitizeRequest, ScanRequest, ToolInstallRequest
from devconsole.async_utils import run_shell_async
from devconsole.persistence import ping
from devconsole.path_security import PathSecurityError, validate_and_resolve_path
from devconsole.scan_manager import ScanCancelledError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lifecycle", tags=["lifecycle"])

limiter = api_state.limiter

TOOLS: Dict[str, Dict[str, str]] = {
    "semgrep": {"check": "semgrep --version", "install": "pip install semgrep"},
    "gitleaks": {"check": "gitleaks version", "install": "sudo snap install gitleaks"},
    "trivy": {"check": "trivy --version", "install": "sudo snap install trivy"},
    "license-checker": {"check": "npx license-checker --version", "install": "npm install -g license-checker"},
    "lighthouse": {"check": "npx lighthouse --version", "install": "npm install -g lighthouse"},
    "jscpd": {"check": "npx jscpd --version", "install": "npm install -g jscpd"},
}

AGENTS: Dict[str, str] = {
    "AGENT-016-LIFECYCLE-MANAGER": "Lifecycle Manager",
    "AGENT-017-CI-CD": "CI/CD Pipeline",
    "AGENT-018-SECURITY": "Security Scanner",
    "AGENT-019-QUALITY-GATE": "Quality Gate",
    "AGENT-020-OBSERVABILITY": "Observability",
    "AGENT-021-DEPENDENCY": "Dependency Manager",
    "AGENT-022-PERFORMANCE": "Performance Optimizer",
    "AGENT-023-PRECOMMIT": "Pre-commit Hooks",
}

COMMAND_PATTERN = re.compile(r"^[A-Za-z0-9_-]*$")
SUMMARY_PATTERN = re.compile(r"(?:SUMMARY|REPORT)[:\s]*\n([\s\S]*?)(?:\n\n|$)", re.IGNORECASE)

TOOL_CHECK_TIMEOUT = 5
TOOL_INSTALL_TIMEOUT = 300
SANITIZE_TIMEOUT = 120
DASHBOARD_TIMEOUT = 30
MAX_REPORTS = 50


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def extract_summary(output: str) -> Optional[str]:
    match = SUMMARY_PATTERN.search(output or "")
    return match.group(1).strip() if match else None


def agent_script(agent_id: str) -> Path:
    return api_state.config.agents_dir / f"{agent_id}.sh"


def _timestamp() -> str:
    return datetime.now().isoformat()


async def _check_tool(name: str, check: str) -> Dict[str, Any]:
    try:
        rc, stdout, _ = await run_shell_async(check, timeout=TOOL_CHECK_TIMEOUT)
    except asyncio.TimeoutError:
        return {"name": name, "status": "error", "error": "Check timed out"}
    except RuntimeError as e:
        return {"name": name, "status": "error", "error": str(e)}
    if rc != 0:
        return {"name": name, "status": "missing"}
    version = stdout.strip().split("\n")[0] if stdout.strip() else None
    return {"name": name, "status": "installed", "version": version}


# =============================================================================
# TOOLS
# =============================================================================

@router.get("/tools/status")
async def tools_status():
    results = await asyncio.gather(*(_check_tool(name, tool["check"]) for name, tool in TOOLS.items()))
    return {"tools": {r.pop("name"): r for r in results}}


@router.post("/tools/install")
@limiter.limit("5/minute")
async def install_tool(request: Request, body: ToolInstallRequest):
    if not body.tool or body.tool not in TOOLS:
        raise HTTPException(status_code=400, detail="Invalid tool")

    command = TOOLS[body.tool]["install"]
    logger.info(f"📦 Installing {body.tool}: {command}")
    try:
        rc, stdout, stderr = await run_shell_async(command, timeout=TOOL_INSTALL_TIMEOUT)
    except asyncio.TimeoutError:
        return {"success": False, "tool": body.tool, "error": "Install timed out after 5 minutes"}
    except RuntimeError as e:
        return {"success": False, "tool": body.tool, "error": str(e)}

    output = stdout + ("\n" + stderr if stderr else "")
    result = {"success": rc == 0, "tool": body.tool, "output": output}
    if rc != 0:
        result["error"] = f"Install exited with code {rc}"
    return result


# =============================================================================
# AGENTS & SCANS
# =============================================================================

@router.get("/agents")
async def list_lifecycle_agents():
    agents = []
    for agent_id, name in AGENTS.items():
        path = agent_script(agent_id)
        agents.append({
            "id": agent_id,
            "name": name,
            "file": path.name,
            "path": str(path),
            "available": path.is_file() and os.access(path, os.R_OK),
        })
    return {"agents": agents, "agents_dir": str(api_state.config.agents_dir)}


@router.post("/scan")
@limiter.limit("10/minute")
async def run_scan(request: Request, body: ScanRequest):
    """
    Run a lifecycle agent script through the scan queue.

    Waits for a free slot, so the response arrives once the scan finishes.
    """
    if not body.agent or body.agent not in AGENTS:
        raise HTTPException(status_code=400, detail="Invalid agent")
    command = body.command or ""
    if not COMMAND_PATTERN.match(command):
        raise HTTPException(status_code=400, detail="Invalid command")

    scans = api_state.get_scan_manager()
    if not scans.is_scan_enabled(body.agent):
        return {
            "success": True,
            "skipped": True,
            "reason": f"{AGENTS[body.agent]} scans are disabled in settings",
            "agent": AGENTS[body.agent],
        }

    script = agent_script(body.agent)
    if not script.is_file():
        raise HTTPException(status_code=404, detail=f"Agent script not found: {script}")
    project_path = project_dir(body.project) if body.project else Path.cwd()

    try:
        result = await scans.execute_scan(str(script), command, str(project_path))
    except ScanCancelledError as e:
        return JSONResponse(status_code=409, content={"success": False, "error": str(e), "cancelled": True})

    settings = scans.get_settings()
    return {
        **result,
        "summary": extract_summary(result.get("output", "")),
        "agent": AGENTS[body.agent],
        "project": str(project_path),
        "timestamp": _timestamp(),
        "resource_controls": {
            "nice_level": settings.scan_nice_level,
            "ionice_class": settings.scan_ionice_class,
            "memory_limit_mb": settings.scan_memory_limit_mb,
            "timeout_seconds": settings.scan_timeout_seconds,
        },
    }


@router.get("/queue")
async def queue_status():
    return api_state.get_scan_manager().queue_status()


@router.post("/queue/cancel")
async def cancel_queue():
    cancelled = api_state.get_scan_manager().cancel_pending()
    return {"success": True, "cancelled": cancelled}


@router.get("/settings")
async def scan_settings():
    return api_state.get_scan_manager().get_settings().to_dict()


@router.post("/settings/reload")
async def reload_settings():
    if not await ping():
        raise HTTPException(status_code=500, detail="Database unavailable")
    settings = await api_state.get_scan_manager().load_settings()
    return {"success": True, "settings": settings.to_dict()}


@router.get("/recommendations")
async def recommendations():
    return api_state.get_scan_manager().resource_recommendations()


# =============================================================================
# REPORTS
# =============================================================================

@router.get("/reports")
async def list_reports():
    reports = []
    for directory in api_state.config.report_dirs:
        if not directory.is_dir():
            continue
        for entry in directory.glob("*.json"):
            stat = entry.stat()
            reports.append({
                "name": entry.name,
                "path": str(entry),
                "directory": str(directory),
                "size": stat.st_size,
                "modified": datetime.fromtimestamp(stat.st_mtime).isoformat(),
            })
    reports.sort(key=lambda r: r["modified"], reverse=True)
    return {"reports": reports[:MAX_REPORTS]}


@router.get("/report")
async def get_report(path: str = Query(...)):
    allowed = [*api_state.config.report_dirs, api_state.config.sanitize_report_dir]
    try:
        report_path = validate_and_resolve_path(path, allowed)
    except PathSecurityError:
        raise HTTPException(status_code=403, detail="Access denied")
    if not report_path.is_file():
        raise HTTPException(status_code=404, detail="Report not found")

    async with aiofiles.open(report_path, mode="r", encoding="utf-8", errors="replace") as f:
        content = await f.read()
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        return {"content": content}


# =============================================================================
# SANITIZE & DASHBOARD
# =============================================================================

@router.post("/sanitize")
@limiter.limit("10/minute")
async def sanitize(request: Request, body: SanitizeRequest):
    project_path = project_dir(body.project) if body.project else Path.cwd()
    script = project_path / "scripts" / "sanitize-push.sh"
    if not script.is_file():
        raise HTTPException(status_code=404, detail="Sanitization script not found")

    command = f"bash {shlex.quote(str(script))}"
    if body.fix:
        command += " --fix"
    if body.verbose:
        command += " --verbose"

    try:
        rc, stdout, stderr = await run_shell_async(command, cwd=str(project_path), timeout=SANITIZE_TIMEOUT)
    except asyncio.TimeoutError:
        return {"success": False, "error": "Sanitization timed out", "output": "", "timestamp": _timestamp()}
    except RuntimeError as e:
        return {"success": False, "error": str(e), "output": "", "timestamp": _timestamp()}

    output = stdout + ("\n" + stderr if stderr else "")
    return {
        "success": "CLEAN" in output and "BLOCKED" not in output,
        "output": output,
        "timestamp": _timestamp(),
    }


@router.get("/dashboard")
async def dashboard():
    script = agent_script("AGENT-016-LIFECYCLE-MANAGER")
    try:
        rc, stdout, stderr = await run_shell_async(f"bash {shlex.quote(str(script))} dashboard", timeout=DASHBOARD_TIMEOUT)
    except (asyncio.TimeoutError, RuntimeError) as e:
        return {"success": False, "error": str(e), "output": ""}
    if rc != 0:
        return {"success": False, "error": f"Dashboard exited with code {rc}", "output": stdout or stderr}
    return {"success": True, "output": stdout, "timestamp": _timestamp()}
