"""
Alerts API Routes
=================
Alert rule CRUD plus trigger bookkeeping and the built-in rule templates.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException

from devconsole.api.types import AlertRuleRequest
from devconsole.persistence import alerts as alert_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/alerts", tags=["alerts"])

ALERT_TEMPLATES = [
    {
        "name": "High CPU Usage",
        "description": "Alert when CPU usage exceeds 80%",
        "type": "CPU",
        "condition": "GT",
        "threshold": 80,
        "duration": 60,
        "cooldown_mins": 5,
    },
    {
        "name": "High Memory Usage",
        "description": "Alert when memory usage exceeds 85%",
        "type": "MEMORY",
        "condition": "GT",
        "threshold": 85,
        "duration": 30,
        "cooldown_mins": 5,
    },
    {
        "name": "Disk Space Low",
        "description": "Alert when disk usage exceeds 90%",
        "type": "DISK",
        "condition": "GT",
        "threshold": 90,
        "duration": 0,
        "cooldown_mins": 60,
    },
    {
        "name": "Service Down",
        "description": "Alert when a monitored service goes down",
        "type": "SERVICE",
        "condition": "EQ",
        "threshold": 0,
        "duration": 10,
        "cooldown_mins": 2,
    },
    {
        "name": "Container Stopped",
        "description": "Alert when a container stops running",
        "type": "CONTAINER",
        "condition": "EQ",
        "threshold": 0,
        "duration": 5,
        "cooldown_mins": 2,
    },
]


# NOT NULL columns: an explicit null leaves the stored value alone
REQUIRED_FIELDS = (
    "name", "type", "condition", "threshold", "duration",
    "enabled", "notify_sound", "notify_desktop", "cooldown_mins",
)


def _threshold(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Alert threshold must be a number")


def _without_nulls(changes: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in changes.items() if value is not None or key not in REQUIRED_FIELDS}


def normalize_rule(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Trim names, uppercase enums and coerce the threshold."""
    cleaned = dict(changes)
    if cleaned.get("name") is not None:
        cleaned["name"] = cleaned["name"].strip()
    if "description" in cleaned:
        cleaned["description"] = (cleaned["description"] or "").strip() or None
    for key in ("type", "condition"):
        if cleaned.get(key) is not None:
            cleaned[key] = cleaned[key].upper()
    if cleaned.get("threshold") is not None:
        cleaned["threshold"] = _threshold(cleaned["threshold"])
    return cleaned


async def _require_rule(rule_id: str) -> Dict[str, Any]:
    rule = await alert_store.get_rule(rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Alert rule not found")
    return rule


# =============================================================================
# TEMPLATES
# =============================================================================

@router.get("/templates/defaults")
async def default_templates():
    return ALERT_TEMPLATES


# =============================================================================
# RULES
# =============================================================================

@router.get("")
async def list_rules(type: Optional[str] = None, enabled: Optional[bool] = None):
    return await alert_store.list_rules(type.upper() if type else None, enabled)


@router.get("/{rule_id}")
async def get_rule(rule_id: str):
    return await _require_rule(rule_id)


@router.post("", status_code=201)
async def create_rule(body: AlertRuleRequest):
    if not body.name or not body.name.strip():
        raise HTTPException(status_code=400, detail="Alert name is required")
    if not body.type:
        raise HTTPException(status_code=400, detail="Alert type is required")
    if not body.condition:
        raise HTTPException(status_code=400, detail="Alert condition is required")
    if body.threshold is None or body.threshold == "":
        raise HTTPException(status_code=400, detail="Alert threshold is required")

    data = normalize_rule(body.model_dump())
    for flag in ("enabled", "notify_sound", "notify_desktop"):
        if data[flag] is None:
            data[flag] = True
    if data["cooldown_mins"] is None:
        data["cooldown_mins"] = 5

    rule = await alert_store.create_rule(data)
    logger.info(f"🔔 Created alert rule {rule['name']} ({rule['type']} {rule['condition']} {rule['threshold']})")
    return rule


@router.put("/{rule_id}")
async def update_rule(rule_id: str, body: AlertRuleRequest):
    await _require_rule(rule_id)
    changes = _without_nulls(body.model_dump(exclude_unset=True))
    return await alert_store.update_rule(rule_id, normalize_rule(changes))


@router.delete("/{rule_id}")
async def delete_rule(rule_id: str):
    await _require_rule(rule_id)
    await alert_store.delete_rule(rule_id)
    return {"success": True, "id": rule_id}


@router.put("/{rule_id}/toggle")
async def toggle_rule(rule_id: str):
    rule = await _require_rule(rule_id)
    return await alert_store.update_rule(rule_id, {"enabled": not rule["enabled"]})


@router.post("/{rule_id}/test")
async def test_rule(rule_id: str):
    rule = await _require_rule(rule_id)
    return {
        "rule": rule,
        "test_triggered": True,
        "message": f'Alert "{rule["name"]}" test triggered',
    }


@router.post("/{rule_id}/trigger")
async def trigger_rule(rule_id: str):
    await _require_rule(rule_id)
    rule = await alert_store.record_trigger(rule_id)
    logger.warning(f"🚨 Alert triggered: {rule['name']} (count={rule['trigger_count']})")
    return rule


@router.get("/{rule_id}/history")
async def rule_history(rule_id: str):
    rule = await _require_rule(rule_id)
    return {
        "id": rule["id"],
        "name": rule["name"],
        "last_triggered": rule["last_triggered"],
        "trigger_count": rule["trigger_count"],
    }


@router.post("/{rule_id}/reset")
async def reset_rule(rule_id: str):
    await _require_rule(rule_id)
    return await alert_store.reset_trigger(rule_id)
