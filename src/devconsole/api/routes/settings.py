"""
Settings API Routes
===================
User settings: UI preferences and scan resource controls, stored as one
JSON document and merged on update.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, HTTPException

import devconsole.api.state as api_state
from devconsole.persistence import settings as settings_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("")
async def get_settings():
    return await settings_store.get_user_settings()


@router.put("")
async def update_settings(changes: Dict[str, Any] = Body(...)):
    if not changes:
        raise HTTPException(status_code=400, detail="No settings provided")
    merged = await settings_store.update_user_settings(changes)

    # Scan controls take effect without a restart
    if api_state.scan_manager and any(key.startswith("scan_") or key.startswith("skip_")
                                      or key.startswith("enable_") for key in changes):
        await api_state.scan_manager.load_settings()
    return merged
