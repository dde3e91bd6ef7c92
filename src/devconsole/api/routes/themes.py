"""
Themes API Routes
=================
Built-in and custom colour themes for the dashboard.
"""

import logging

from fastapi import APIRouter, HTTPException

from devconsole.api.types import CreateThemeRequest, DuplicateThemeRequest, UpdateThemeRequest
from devconsole.persistence import themes as theme_store
from devconsole.persistence.themes import ThemeExistsError
from devconsole.theme_catalog import BUILT_IN_THEMES, find_invalid_color, merge_colors, normalize_theme_name

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/themes", tags=["themes"])


async def _require_theme(name: str) -> dict:
    theme = await theme_store.get_theme(name)
    if not theme:
        raise HTTPException(status_code=404, detail="Theme not found")
    return theme


async def _create(name: str, display_name: str, colors: dict) -> dict:
    try:
        theme = await theme_store.create_theme(name, display_name, colors)
    except ThemeExistsError:
        raise HTTPException(status_code=409, detail="Theme name already exists")
    logger.info(f"🎨 Created theme {name}")
    return theme


def _check_colors(colors: dict) -> None:
    key = find_invalid_color(colors)
    if key is not None:
        raise HTTPException(status_code=400, detail=f"Invalid color for {key}: {colors[key]}")


@router.get("")
async def list_themes():
    return await theme_store.list_themes()


@router.get("/active")
async def active_theme():
    theme = await theme_store.get_active_theme()
    if theme:
        return theme
    fallback = await theme_store.get_theme(BUILT_IN_THEMES[0]["name"])
    return fallback or {**BUILT_IN_THEMES[0], "is_built_in": True, "is_active": True}


@router.get("/{name}")
async def get_theme(name: str):
    return await _require_theme(name)


@router.post("", status_code=201)
async def create_theme(body: CreateThemeRequest):
    if not body.name or not body.name.strip():
        raise HTTPException(status_code=400, detail="Theme name is required")
    if not body.display_name or not body.display_name.strip():
        raise HTTPException(status_code=400, detail="Display name is required")
    if not body.colors:
        raise HTTPException(status_code=400, detail="Colors are required")
    _check_colors(body.colors)
    return await _create(normalize_theme_name(body.name), body.display_name.strip(), merge_colors(body.colors))


@router.put("/{name}")
async def update_theme(name: str, body: UpdateThemeRequest):
    theme = await _require_theme(name)
    if theme["is_built_in"]:
        raise HTTPException(status_code=403, detail="Cannot modify built-in themes")
    if body.colors:
        _check_colors(body.colors)
    colors = {**theme["colors"], **body.colors} if body.colors else None
    return await theme_store.update_theme(name, body.display_name, colors)


@router.delete("/{name}")
async def delete_theme(name: str):
    theme = await _require_theme(name)
    if theme["is_built_in"]:
        raise HTTPException(status_code=403, detail="Cannot delete built-in themes")
    await theme_store.delete_theme(name)
    return {"success": True, "name": name}


@router.put("/{name}/activate")
async def activate_theme(name: str):
    await _require_theme(name)
    return await theme_store.activate_theme(name)


@router.post("/{name}/duplicate", status_code=201)
async def duplicate_theme(name: str, body: DuplicateThemeRequest):
    source = await _require_theme(name)
    new_name = normalize_theme_name(body.name) if body.name else f"{name}-custom"
    display_name = body.display_name or f"{source['display_name']} (Custom)"
    return await _create(new_name, display_name, dict(source["colors"]))
