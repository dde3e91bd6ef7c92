"""
Server Users API Routes
=======================
Local Linux accounts managed through useradd / usermod / userdel.
Privileged commands run with non-interactive sudo.
"""

import logging

from fastapi import APIRouter, HTTPException, Request

import devconsole.api.state as api_state
from devconsole import server_users
from devconsole.api.types import PasswordRequest, ServerUserCreate, ServerUserUpdate
from devconsole.server_users import UserCommandError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin-users/server", tags=["admin-users"])

limiter = api_state.limiter

MIN_PASSWORD_LENGTH = 8


def _command_failed(action: str, error: UserCommandError) -> HTTPException:
    logger.error(f"Failed to {action}: {error}")
    return HTTPException(status_code=500, detail=f"Failed to {action}: {error}")


async def _require_user(username: str) -> None:
    if not server_users.is_valid_username(username):
        raise HTTPException(status_code=400, detail="Invalid username format")
    if not await server_users.user_exists(username):
        raise HTTPException(status_code=404, detail="User not found")


@router.get("/users")
async def list_users(show_system: bool = False):
    try:
        return {"users": await server_users.list_users(show_system)}
    except UserCommandError as e:
        raise _command_failed("list users", e)


@router.get("/groups")
async def list_groups(show_system: bool = False):
    try:
        return {"groups": await server_users.list_groups(show_system)}
    except UserCommandError as e:
        raise _command_failed("list groups", e)


@router.get("/shells")
async def list_shells():
    return {"shells": server_users.list_shells()}


@router.post("/users", status_code=201)
@limiter.limit("10/minute")
async def create_user(request: Request, body: ServerUserCreate):
    if not server_users.is_valid_username(body.username):
        raise HTTPException(status_code=400, detail="Invalid username format")
    if await server_users.user_exists(body.username):
        raise HTTPException(status_code=409, detail="User already exists")

    try:
        await server_users.create_user(body.username, body.full_name, body.shell, body.create_home, body.groups)
    except UserCommandError as e:
        raise _command_failed("create user", e)
    return {"success": True, "username": body.username}


@router.put("/users/{username}")
async def update_user(username: str, body: ServerUserUpdate):
    if username in server_users.PROTECTED_FROM_UPDATE:
        raise HTTPException(status_code=403, detail="Cannot modify protected system user")
    await _require_user(username)

    try:
        await server_users.update_user(username, body.full_name, body.shell, body.groups, body.locked)
    except UserCommandError as e:
        raise _command_failed("update user", e)
    return {"success": True, "username": username}


@router.post("/users/{username}/set-password")
@limiter.limit("10/minute")
async def set_password(request: Request, username: str, body: PasswordRequest):
    if not body.password or len(body.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")
    await _require_user(username)

    try:
        await server_users.set_password(username, body.password)
    except UserCommandError as e:
        raise _command_failed("set password", e)
    return {"success": True}


@router.delete("/users/{username}")
async def delete_user(username: str, remove_home: bool = False):
    if username in server_users.protected_from_delete():
        raise HTTPException(status_code=403, detail="Cannot delete protected user")
    await _require_user(username)

    try:
        await server_users.delete_user(username, remove_home)
    except UserCommandError as e:
        raise _command_failed("delete user", e)
    return {"success": True, "username": username}
