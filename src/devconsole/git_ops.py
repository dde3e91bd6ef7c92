"""
Developer Console — Async Git Operations
========================================
Version 1.0 — October 2026

Async git wrappers used by the git routes and project stats.
"""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from devconsole.async_utils import run_subprocess

logger = logging.getLogger(__name__)

BRANCH_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_\-./]+$")
LOG_FORMAT = "%H|%h|%s|%an|%ar"


class GitError(Exception):
    """A git command exited non-zero (message is git's stderr)."""


async def run_git(args: List[str], cwd: str, timeout: int = 60) -> str:
    """
    Run ``git <args>`` in ``cwd`` and return trimmed stdout.

    Raises:
        GitError: If git exits non-zero, times out, or is not installed
    """
    try:
        rc, stdout, stderr = await run_subprocess(["git", *args], cwd=cwd, timeout=timeout)
    except asyncio.TimeoutError:
        raise GitError(f"git {args[0]} timed out after {timeout}s")
    except FileNotFoundError:
        raise GitError("git is not installed")

    if rc != 0:
        raise GitError((stderr or stdout).strip() or "Git command failed")
    return stdout.strip()


# =============================================================================
# PARSERS
# =============================================================================

def _lines(output: str) -> List[str]:
    return [line for line in output.split("\n") if line.strip()]


def parse_ahead_behind(output: str) -> Dict[str, int]:
    """Parse ``git rev-list --left-right --count`` output ('3\\t1')."""
    parts = output.split()
    try:
        ahead = int(parts[0]) if parts else 0
        behind = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        ahead, behind = 0, 0
    return {"ahead": ahead, "behind": behind}


def parse_log_output(output: str) -> List[Dict[str, str]]:
    commits = []
    for line in _lines(output):
        pieces = line.split("|")
        if len(pieces) < 5:
            continue
        # Subjects may contain '|', so author and date are taken from the end
        commits.append({
            "hash": pieces[0],
            "short": pieces[1],
            "message": "|".join(pieces[2:-2]),
            "author": pieces[-2],
            "date": pieces[-1],
        })
    return commits


def parse_branch_list(output: str) -> List[str]:
    branches = []
    for line in _lines(output):
        name = re.sub(r"^\*\s*", "", line.strip())
        if name.startswith("remotes/"):
            continue
        branches.append(name)
    return branches


def validate_branch_name(branch: Any) -> Optional[str]:
    """Return an error message, or None if the branch name is acceptable."""
    if not branch or not isinstance(branch, str) or len(branch) > 100:
        return "Valid branch name required"
    # a leading dash would be read by git as an option
    if branch.startswith("-") or not BRANCH_NAME_PATTERN.match(branch):
        return "Invalid branch name format"
    return None


# =============================================================================
# OPERATIONS
# =============================================================================

async def get_status(repo_path: str) -> Dict[str, Any]:
    branch = await run_git(["rev-parse", "--abbrev-ref", "HEAD"], repo_path)

    try:
        tracking = await run_git(["rev-list", "--left-right", "--count", "HEAD...@{upstream}"], repo_path)
        counts = parse_ahead_behind(tracking)
    except GitError:
        # No upstream configured
        counts = {"ahead": 0, "behind": 0}

    staged = _lines(await run_git(["diff", "--cached", "--name-only"], repo_path))
    unstaged = _lines(await run_git(["diff", "--name-only"], repo_path))
    untracked = _lines(await run_git(["ls-files", "--others", "--exclude-standard"], repo_path))

    return {
        "branch": branch,
        "ahead": counts["ahead"],
        "behind": counts["behind"],
        "staged": staged,
        "unstaged": unstaged,
        "untracked": untracked,
    }


async def pull(repo_path: str) -> str:
    return await run_git(["pull"], repo_path, timeout=120)


async def push(repo_path: str) -> str:
    return await run_git(["push"], repo_path, timeout=120)


async def commit(repo_path: str, message: str, files: Optional[List[str]] = None, add_all: bool = False) -> str:
    if add_all:
        await run_git(["add", "-A"], repo_path)
    elif files:
        await run_git(["add", "--", *files], repo_path)
    return await run_git(["commit", "-m", message], repo_path)


async def stash(repo_path: str, message: Optional[str] = None) -> str:
    args = ["stash", "push"]
    if message:
        args.extend(["-m", message])
    return await run_git(args, repo_path)


async def create_branch(repo_path: str, name: str, start_point: Optional[str] = None) -> str:
    args = ["checkout", "-b", name]
    if start_point:
        args.append(start_point)
    await run_git(args, repo_path)
    return f"Created and switched to branch: {name}"


async def log(repo_path: str, limit: int = 10) -> List[Dict[str, str]]:
    limit = min(max(limit, 1), 100)
    output = await run_git(["log", "-n", str(limit), f"--pretty=format:{LOG_FORMAT}"], repo_path)
    return parse_log_output(output)


async def branches(repo_path: str) -> Dict[str, Any]:
    current = await run_git(["rev-parse", "--abbrev-ref", "HEAD"], repo_path)
    listing = await run_git(["branch", "-a"], repo_path)
    return {"current": current.strip(), "branches": parse_branch_list(listing)}


async def checkout(repo_path: str, branch: str) -> str:
    await run_git(["checkout", branch], repo_path)
    return f"Switched to branch: {branch}"


async def diff(repo_path: str, commit_ref: Optional[str] = None) -> str:
    """Working-tree diff against HEAD, or the diff introduced by ``commit_ref``."""
    if commit_ref:
        return await run_git(["diff", f"{commit_ref}^..{commit_ref}"], repo_path)
    return await run_git(["diff", "HEAD"], repo_path)


async def project_git_info(repo_path: str) -> Optional[Dict[str, str]]:
    """Branch and last commit one-liner, or None when not a git repo."""
    try:
        branch = await run_git(["rev-parse", "--abbrev-ref", "HEAD"], repo_path)
        last_commit = await run_git(["log", "-1", "--oneline"], repo_path)
    except GitError:
        return None
    return {"branch": branch, "last_commit": last_commit}
