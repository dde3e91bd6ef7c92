"""
Developer Console — Linux User Management
=========================================
Version 1.0 — October 2026

Local account administration via getent, useradd, usermod, chpasswd and
userdel. Mutating commands run through ``sudo -n`` so a missing sudoers
entry fails fast instead of hanging on a password prompt.
"""

import asyncio
import getpass
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from devconsole.async_utils import run_subprocess

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

USERNAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_-]*[$]?$")
PROTECTED_FROM_UPDATE = {"root", "nobody", "systemd-network"}
FALLBACK_SHELLS = ["/bin/bash", "/bin/sh", "/usr/bin/zsh", "/bin/false", "/usr/sbin/nologin"]
NOBODY_ID = 65534
COMMAND_TIMEOUT = 30


class UserCommandError(Exception):
    """A user-management command exited non-zero."""


def is_system_id(value: int) -> bool:
    return value < 1000 or value == NOBODY_ID


def is_valid_username(username: Optional[str]) -> bool:
    return bool(username) and USERNAME_PATTERN.match(username) is not None


def protected_from_delete() -> set:
    """Accounts that can never be deleted: root, nobody and whoever runs the console."""
    return {"root", "nobody", getpass.getuser()}


def parse_passwd(output: str) -> List[Dict[str, Any]]:
    users = []
    for line in output.strip().split("\n"):
        parts = line.split(":")
        if len(parts) < 7:
            continue
        username, _, uid, gid, gecos, home, shell = parts[:7]
        users.append({
            "username": username,
            "uid": int(uid),
            "gid": int(gid),
            "full_name": gecos.split(",")[0],
            "home": home,
            "shell": shell,
            "is_system": is_system_id(int(uid)),
        })
    return sorted(users, key=lambda u: u["username"])


def parse_group_db(output: str) -> List[Dict[str, Any]]:
    groups = []
    for line in output.strip().split("\n"):
        parts = line.split(":")
        if len(parts) < 3:
            continue
        name, _, gid = parts[:3]
        members = parts[3] if len(parts) > 3 else ""
        groups.append({
            "name": name,
            "gid": int(gid),
            "members": [m for m in members.split(",") if m],
            "is_system": is_system_id(int(gid)),
        })
    return sorted(groups, key=lambda g: g["name"])


def parse_groups_output(output: str) -> List[str]:
    """``groups alice`` prints ``alice : alice sudo docker``."""
    if ":" not in output:
        return output.split()
    return output.split(":", 1)[1].split()


def parse_shells(content: str) -> List[str]:
    return [line.strip() for line in content.split("\n") if line.strip() and not line.startswith("#")]


async def _run(cmd: List[str], input_text: Optional[str] = None) -> str:
    try:
        rc, stdout, stderr = await run_subprocess(cmd, timeout=COMMAND_TIMEOUT, input_text=input_text)
    except asyncio.TimeoutError:
        raise UserCommandError(f"{cmd[0]} timed out")
    except FileNotFoundError as e:
        raise UserCommandError(str(e))
    if rc != 0:
        raise UserCommandError(stderr.strip() or f"{cmd[0]} exited with code {rc}")
    return stdout


async def user_exists(username: str) -> bool:
    try:
        rc, _, _ = await run_subprocess(["id", username], timeout=5)
    except (asyncio.TimeoutError, FileNotFoundError):
        return False
    return rc == 0


async def user_groups(username: str) -> List[str]:
    try:
        return parse_groups_output(await _run(["groups", username]))
    except UserCommandError:
        return []


async def list_users(show_system: bool = False) -> List[Dict[str, Any]]:
    users = parse_passwd(await _run(["getent", "passwd"]))
    if not show_system:
        users = [u for u in users if not u["is_system"]]
    for user in users:
        user["groups"] = await user_groups(user["username"])
    return users


async def list_groups(show_system: bool = False) -> List[Dict[str, Any]]:
    groups = parse_group_db(await _run(["getent", "group"]))
    if not show_system:
        groups = [g for g in groups if not g["is_system"]]
    return groups


def list_shells(shells_file: Path = Path("/etc/shells")) -> List[str]:
    try:
        return parse_shells(shells_file.read_text())
    except OSError as e:
        logger.warning(f"⚠️ Could not read {shells_file}: {e}")
        return list(FALLBACK_SHELLS)


async def create_user(
    username: str,
    full_name: Optional[str] = None,
    shell: Optional[str] = "/bin/bash",
    create_home: bool = True,
    groups: Optional[List[str]] = None
) -> None:
    cmd = ["sudo", "-n", "useradd"]
    if create_home:
        cmd.append("-m")
    if full_name:
        cmd.extend(["-c", full_name])
    if shell:
        cmd.extend(["-s", shell])
    if groups:
        cmd.extend(["-G", ",".join(groups)])
    cmd.append(username)
    await _run(cmd)
    security_logger.warning(f"🛡️ user_created username={username!r}")


async def update_user(
    username: str,
    full_name: Optional[str] = None,
    shell: Optional[str] = None,
    groups: Optional[List[str]] = None,
    locked: Optional[bool] = None
) -> None:
    """Apply each given change with its own ``usermod`` call."""
    changes = []
    if full_name is not None:
        changes.append(["-c", full_name])
    if shell is not None:
        changes.append(["-s", shell])
    if groups is not None:
        changes.append(["-G", ",".join(groups)])
    if locked is not None:
        changes.append(["-L" if locked else "-U"])

    for flags in changes:
        await _run(["sudo", "-n", "usermod", *flags, username])
    security_logger.warning(f"🛡️ user_updated username={username!r} changes={len(changes)}")


async def set_password(username: str, password: str) -> None:
    # Fed on stdin so the password never shows up in the process list
    await _run(["sudo", "-n", "chpasswd"], input_text=f"{username}:{password}\n")
    security_logger.warning(f"🛡️ password_changed username={username!r}")


async def delete_user(username: str, remove_home: bool = False) -> None:
    cmd = ["sudo", "-n", "userdel"]
    if remove_home:
        cmd.append("-r")
    cmd.append(username)
    await _run(cmd)
    security_logger.warning(f"🛡️ user_deleted username={username!r} remove_home={remove_home}")
