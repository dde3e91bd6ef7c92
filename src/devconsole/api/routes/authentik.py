"""
Authentik Admin API Routes
==========================
Connection settings for the Authentik identity provider and a proxy for
its user and group administration.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

import devconsole.api.state as api_state
from devconsole.api.types import (
    AuthentikSettingsRequest, AuthentikUserCreate, AuthentikUserUpdate,
    PasswordRequest, ToggleActiveRequest,
)
from devconsole.authentik_client import AuthentikClient, AuthentikError, token_preview, validate_token
from devconsole.persistence import settings as settings_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin-users/authentik", tags=["admin-users"])

MIN_PASSWORD_LENGTH = 8


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

async def _settings() -> dict:
    row = await settings_store.get_authentik_settings()
    if row:
        return row
    return {
        "api_url": api_state.config.authentik_url,
        "api_token": None,
        "enabled": False,
        "configured": False,
        "last_validated": None,
    }


async def _client() -> AuthentikClient:
    settings = await _settings()
    return AuthentikClient(settings["api_url"], settings["api_token"], transport=api_state.http_transport)


def _http_error(error: AuthentikError) -> HTTPException:
    message = str(error)
    if message == "Authentik API token not configured":
        return HTTPException(status_code=400, detail=message)
    if error.status_code == 404:
        return HTTPException(status_code=404, detail=message)
    logger.error(f"Authentik request failed: {message}")
    return HTTPException(status_code=502, detail=message)


# =============================================================================
# SETTINGS
# =============================================================================

@router.get("/settings")
async def get_settings():
    settings = await _settings()
    return {
        "api_url": settings["api_url"],
        "token_preview": token_preview(settings["api_token"]),
        "has_token": bool(settings["api_token"]),
        "enabled": settings["enabled"],
        "configured": settings["configured"],
        "last_validated": settings["last_validated"],
    }


@router.put("/settings")
async def update_settings(body: AuthentikSettingsRequest):
    current = await _settings()
    api_url = (body.api_url or current["api_url"]).rstrip("/")
    api_token = body.api_token or current["api_token"]
    if not api_token:
        raise HTTPException(status_code=400, detail="API token is required")

    try:
        await validate_token(api_url, api_token, transport=api_state.http_transport)
    except AuthentikError as e:
        raise HTTPException(status_code=400, detail=str(e))

    saved = await settings_store.save_authentik_settings(
        api_url, api_token, enabled=True, configured=True, last_validated=datetime.now().isoformat()
    )
    logger.info(f"🔑 Authentik connection configured for {api_url}")
    return {
        "success": True,
        "api_url": saved["api_url"],
        "token_preview": token_preview(saved["api_token"]),
        "configured": saved["configured"],
        "last_validated": saved["last_validated"],
    }


@router.get("/status")
async def status():
    settings = await _settings()
    if not settings["api_token"]:
        return {"configured": False, "connected": False, "api_url": settings["api_url"]}
    try:
        me = await (await _client()).me()
    except AuthentikError as e:
        return {"configured": True, "connected": False, "api_url": settings["api_url"], "error": str(e)}
    user = me.get("user") or {}
    return {
        "configured": True,
        "connected": True,
        "api_url": settings["api_url"],
        "user": {"username": user.get("username"), "name": user.get("name")},
    }


# =============================================================================
# USERS
# =============================================================================

@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    ordering: str = "-last_login",
    search: Optional[str] = None
):
    try:
        return await (await _client()).list_users(page, page_size, ordering, search)
    except AuthentikError as e:
        raise _http_error(e)


@router.get("/users/{user_id}")
async def get_user(user_id: int):
    try:
        return await (await _client()).get_user(user_id)
    except AuthentikError as e:
        raise _http_error(e)


@router.post("/users", status_code=201)
async def create_user(body: AuthentikUserCreate):
    if not body.username or not body.username.strip():
        raise HTTPException(status_code=400, detail="Username is required")
    if body.password and len(body.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")
    try:
        return await (await _client()).create_user(
            body.username.strip(), body.name, body.email, body.password, body.is_active, body.groups
        )
    except AuthentikError as e:
        raise _http_error(e)


@router.patch("/users/{user_id}")
async def update_user(user_id: int, body: AuthentikUserUpdate):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No changes provided")
    try:
        return await (await _client()).update_user(user_id, changes)
    except AuthentikError as e:
        raise _http_error(e)


@router.post("/users/{user_id}/set-password")
async def set_password(user_id: int, body: PasswordRequest):
    if not body.password or len(body.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")
    try:
        await (await _client()).set_password(user_id, body.password)
    except AuthentikError as e:
        raise _http_error(e)
    return {"success": True}


@router.post("/users/{user_id}/toggle-active")
async def toggle_active(user_id: int, body: ToggleActiveRequest):
    try:
        return await (await _client()).update_user(user_id, {"is_active": body.is_active})
    except AuthentikError as e:
        raise _http_error(e)


@router.delete("/users/{user_id}")
async def delete_user(user_id: int):
    try:
        await (await _client()).delete_user(user_id)
    except AuthentikError as e:
        raise _http_error(e)
    return {"success": True, "id": user_id}


@router.get("/groups")
async def list_groups():
    try:
        return {"groups": await (await _client()).list_groups()}
    except AuthentikError as e:
        raise _http_error(e)
