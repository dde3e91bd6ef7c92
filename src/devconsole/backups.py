"""
Developer Console — Project Backups
===================================
Version 1.0 — October 2026

Tarball and git-bundle backups of projects, stored under
``BACKUPS_DIR/<project>/`` as

    <name>_<YYYY-MM-DDTHH-MM-SS>_<full|incremental|git>.<tar.gz|bundle>
"""

import asyncio
import logging
import re
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from devconsole.async_utils import run_subprocess
from devconsole.metrics import backup_metrics
from devconsole.path_security import is_valid_name

logger = logging.getLogger(__name__)

STRATEGIES = ("full", "incremental", "git")
TAR_EXCLUDES = ["node_modules", ".git", "dist", "build", ".next", "coverage"]
TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"
BACKUP_FILE_PATTERN = re.compile(
    r"^(.+?)_(\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2})_(full|incremental|git)\.(tar\.gz|bundle)$"
)
BACKUP_TIMEOUT = 600


class BackupError(Exception):
    """A backup, restore or delete could not be completed."""


def sanitize_backup_name(name: Optional[str]) -> str:
    return re.sub(r"[^a-zA-Z0-9_-]", "_", name or "backup")


def backup_filename(name: str, strategy: str, when: Optional[datetime] = None) -> str:
    stamp = (when or datetime.now()).strftime(TIMESTAMP_FORMAT)
    extension = "bundle" if strategy == "git" else "tar.gz"
    return f"{sanitize_backup_name(name)}_{stamp}_{strategy}.{extension}"


def parse_backup_filename(filename: str) -> Optional[Dict[str, Any]]:
    """Split a backup file name into name, created_at and strategy."""
    match = BACKUP_FILE_PATTERN.match(filename)
    if not match:
        return None
    created = datetime.strptime(match.group(2), TIMESTAMP_FORMAT)
    return {
        "name": match.group(1),
        "created_at": created.isoformat(),
        "strategy": match.group(3),
    }


def list_backups(backup_dir: Path) -> List[Dict[str, Any]]:
    """All backups in ``backup_dir``, newest first."""
    if not backup_dir.is_dir():
        return []

    backups = []
    for entry in backup_dir.iterdir():
        if not (entry.name.endswith(".tar.gz") or entry.name.endswith(".bundle")):
            continue
        stat = entry.stat()
        parsed = parse_backup_filename(entry.name) or {
            "name": entry.name,
            "created_at": datetime.fromtimestamp(stat.st_mtime).isoformat(),
            "strategy": "full",
        }
        backups.append({
            "id": entry.name,
            **parsed,
            "size": stat.st_size,
            "path": str(entry),
        })

    backups.sort(key=lambda b: b["created_at"], reverse=True)
    return backups


def _last_backup_time(backup_dir: Path) -> Optional[str]:
    tarballs = [b for b in list_backups(backup_dir) if b["id"].endswith(".tar.gz")]
    return tarballs[0]["created_at"] if tarballs else None


async def _run(cmd: List[str], cwd: Optional[str] = None, failure: str = "Backup failed") -> None:
    try:
        rc, _, stderr = await run_subprocess(cmd, cwd=cwd, timeout=BACKUP_TIMEOUT)
    except asyncio.TimeoutError:
        raise BackupError(f"{cmd[0]} timed out after {BACKUP_TIMEOUT}s")
    except FileNotFoundError as e:
        raise BackupError(str(e))
    if rc != 0:
        raise BackupError(stderr.strip() or failure)


async def create_backup(
    project_path: Path,
    backup_dir: Path,
    strategy: str = "full",
    name: Optional[str] = None
) -> Dict[str, Any]:
    """
    Create a backup of ``project_path``.

    ``full`` archives the whole project (minus build output and
    dependencies), ``incremental`` only files modified since the newest
    tarball, ``git`` writes a bundle of every ref.

    Raises:
        BackupError: On an unknown strategy or a failing tar/git command
    """
    if strategy not in STRATEGIES:
        raise BackupError(f"Invalid strategy: {strategy}")
    if not project_path.is_dir():
        raise BackupError("Project not found")

    backup_dir.mkdir(parents=True, exist_ok=True)
    filename = backup_filename(name or project_path.name, strategy)
    backup_file = backup_dir / filename

    start = time.time()
    try:
        if strategy == "git":
            await _run(["git", "bundle", "create", str(backup_file), "--all"], cwd=str(project_path))
        else:
            cmd = ["tar", "czf", str(backup_file)]
            cmd.extend(f"--exclude={pattern}" for pattern in TAR_EXCLUDES)
            if strategy == "incremental":
                since = _last_backup_time(backup_dir)
                if since:
                    cmd.append(f"--newer-mtime={since}")
            cmd.extend(["-C", str(project_path.parent), project_path.name])
            await _run(cmd)
    except BackupError:
        # tar and git leave a truncated file behind on failure
        backup_file.unlink(missing_ok=True)
        backup_metrics.backup_total.labels(operation="create", result="failed").inc()
        logger.error(f"❌ Backup of {project_path.name} ({strategy}) failed")
        raise

    backup_metrics.backup_duration.labels(strategy=strategy).observe(time.time() - start)
    backup_metrics.backup_total.labels(operation="create", result="success").inc()
    logger.info(f"💾 Backup created: {backup_file}")

    return {
        "id": filename,
        "name": sanitize_backup_name(name or project_path.name),
        "path": str(backup_file),
        "size": backup_file.stat().st_size,
        "strategy": strategy,
        "created_at": datetime.now().isoformat(),
    }


def _backup_file(backup_dir: Path, backup_id: str) -> Path:
    if not is_valid_name(backup_id) or not BACKUP_FILE_PATTERN.match(backup_id):
        raise BackupError("Invalid backup id")
    return backup_dir / backup_id


async def restore_backup(project_path: Path, backup_dir: Path, backup_id: str) -> None:
    backup_file = _backup_file(backup_dir, backup_id)
    if not backup_file.is_file():
        raise FileNotFoundError(backup_id)

    try:
        if backup_id.endswith(".bundle"):
            await _run(["git", "bundle", "verify", str(backup_file)], cwd=str(project_path),
                       failure="Invalid git bundle")
            await _run(["git", "fetch", str(backup_file), "refs/heads/*:refs/heads/*"],
                       cwd=str(project_path), failure="Fetch failed")
        else:
            # Archives contain the project directory itself
            project_path.parent.mkdir(parents=True, exist_ok=True)
            await _run(["tar", "xzf", str(backup_file), "-C", str(project_path.parent)],
                       failure="Extract failed")
    except BackupError:
        backup_metrics.backup_total.labels(operation="restore", result="failed").inc()
        raise

    backup_metrics.backup_total.labels(operation="restore", result="success").inc()
    logger.info(f"♻️ Restored {backup_id} into {project_path}")


def delete_backup(backup_dir: Path, backup_id: str) -> None:
    backup_file = _backup_file(backup_dir, backup_id)
    if not backup_file.is_file():
        raise FileNotFoundError(backup_id)
    backup_file.unlink()
    backup_metrics.backup_total.labels(operation="delete", result="success").inc()
    logger.info(f"🗑️ Deleted backup {backup_id}")
