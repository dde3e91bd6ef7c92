"""
Developer Console — Authentik Admin API Client
==============================================
Version 1.0 — October 2026

Minimal async client for the Authentik v3 admin API (users and groups).
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15.0


class AuthentikError(Exception):
    """Authentik is unreachable, unconfigured, or returned an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def token_preview(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    return f"{token[:8]}...{token[-4:]}"


def map_user(user: Dict[str, Any], detailed: bool = False) -> Dict[str, Any]:
    """Flatten an Authentik user object for the dashboard."""
    groups = user.get("groups_obj") or []
    mapped = {
        "pk": user.get("pk"),
        "username": user.get("username"),
        "name": user.get("name"),
        "email": user.get("email"),
        "is_active": user.get("is_active"),
        "is_superuser": user.get("is_superuser"),
        "last_login": user.get("last_login"),
        "date_joined": user.get("date_joined"),
        "avatar": user.get("avatar"),
        "uid": user.get("uid"),
        "path": user.get("path"),
    }
    if detailed:
        mapped["groups"] = [{"pk": g.get("pk"), "name": g.get("name")} for g in groups]
        mapped["attributes"] = user.get("attributes") or {}
    else:
        mapped["groups"] = [g.get("name") for g in groups]
    return mapped


def map_group(group: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "pk": group.get("pk"),
        "name": group.get("name"),
        "is_superuser": group.get("is_superuser"),
        "parent": group.get("parent"),
        "users": len(group.get("users") or []),
    }


class AuthentikClient:
    """Bearer-authenticated client rooted at ``<api_url>/api/v3``."""

    def __init__(
        self,
        api_url: str,
        api_token: Optional[str],
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_url = api_url.rstrip("/")
        self.api_token = api_token
        self.transport = transport

    async def request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Call ``/api/v3<endpoint>`` and return the decoded JSON body.

        Raises:
            AuthentikError: When no token is configured, the server is
                unreachable, or the response is not 2xx
        """
        if not self.api_token:
            raise AuthentikError("Authentik API token not configured")

        headers = {"Authorization": f"Bearer {self.api_token}", "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=REQUEST_TIMEOUT) as client:
                response = await client.request(
                    method, f"{self.api_url}/api/v3{endpoint}",
                    headers=headers, json=json, params=params
                )
        except httpx.HTTPError as e:
            raise AuthentikError(f"Cannot connect to Authentik: {e}")

        if response.is_error:
            raise AuthentikError(
                f"Authentik API error: {response.status_code} - {response.text}", status_code=response.status_code
            )
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise AuthentikError(f"Authentik returned a non-JSON response ({response.status_code})")

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def me(self) -> Dict[str, Any]:
        return await self.request("GET", "/core/users/me/")

    async def list_users(
        self,
        page: int = 1,
        page_size: int = 50,
        ordering: str = "-last_login",
        search: Optional[str] = None
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page, "page_size": page_size, "ordering": ordering}
        if search:
            params["search"] = search
        data = await self.request("GET", "/core/users/", params=params)
        count = data.get("count", 0)
        return {
            "users": [map_user(u) for u in data.get("results", [])],
            "pagination": {
                "count": count,
                "page": page,
                "page_size": page_size,
                "total_pages": -(-count // page_size) if page_size else 0,
            },
        }

    async def get_user(self, user_id: int) -> Dict[str, Any]:
        return map_user(await self.request("GET", f"/core/users/{user_id}/"), detailed=True)

    async def create_user(
        self,
        username: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
        is_active: bool = True,
        groups: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        user = await self.request("POST", "/core/users/", json={
            "username": username,
            "name": name or username,
            "email": email or "",
            "is_active": is_active,
            "groups": groups or [],
            "path": "users",
        })
        if password:
            await self.set_password(user["pk"], password)
        logger.info(f"👤 Created Authentik user {username}")
        return map_user(user)

    async def update_user(self, user_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        return map_user(await self.request("PATCH", f"/core/users/{user_id}/", json=changes))

    async def set_password(self, user_id: int, password: str) -> None:
        await self.request("POST", f"/core/users/{user_id}/set_password/", json={"password": password})

    async def delete_user(self, user_id: int) -> None:
        await self.request("DELETE", f"/core/users/{user_id}/")
        logger.info(f"👤 Deleted Authentik user {user_id}")

    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------

    async def list_groups(self) -> List[Dict[str, Any]]:
        data = await self.request("GET", "/core/groups/", params={"page_size": 100})
        return [map_group(g) for g in data.get("results", [])]


async def validate_token(
    api_url: str,
    api_token: str,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> None:
    """
    Check a token against ``/core/users/me/``.

    Raises:
        AuthentikError: With the user-facing reason the token was rejected
    """
    try:
        await AuthentikClient(api_url, api_token, transport).me()
    except AuthentikError as e:
        if str(e).startswith("Cannot connect"):
            raise
        raise AuthentikError("Invalid API token - authentication failed")
