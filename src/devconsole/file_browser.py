"""
Developer Console — File Browser
================================
Version 1.0 — October 2026

Project file tree, file preview and log tailing. Paths handed in here have
already been resolved by path_security.
"""

import asyncio
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

import aiofiles

from devconsole.async_utils import run_subprocess

logger = logging.getLogger(__name__)

SKIPPED_NAMES = {"node_modules"}

FILE_CATEGORIES = {
    "code": {"js", "jsx", "ts", "tsx", "py", "rs", "go", "java", "c", "cpp", "h", "rb", "php"},
    "config": {"json", "yaml", "yml", "toml", "xml", "env", "ini", "conf"},
    "doc": {"md", "txt", "rst", "adoc"},
    "style": {"css", "scss", "sass", "less"},
    "image": {"png", "jpg", "jpeg", "gif", "svg", "webp", "ico"},
    "data": {"sql", "csv", "tsv"},
}


class FileTooLargeError(Exception):
    """File exceeds the preview size limit."""


def get_file_type(name: str) -> str:
    ext = name.rsplit(".", 1)[-1].lower()
    for category, extensions in FILE_CATEGORIES.items():
        if ext in extensions:
            return category
    return "other"


def build_tree(dir_path: Path, relative_to: Path, depth: int = 0, max_depth: int = 10) -> List[Dict[str, Any]]:
    """
    Recursive directory listing.

    Directories sort before files, then by name. Hidden entries and
    node_modules are skipped. Paths are reported relative to ``relative_to``.
    """
    if depth > max_depth:
        return []

    entries = sorted(os.scandir(dir_path), key=lambda e: (not e.is_dir(follow_symlinks=False), e.name.lower()))
    tree = []
    for entry in entries:
        if entry.name.startswith(".") or entry.name in SKIPPED_NAMES:
            continue

        entry_path = Path(entry.path)
        is_dir = entry.is_dir(follow_symlinks=False)
        node: Dict[str, Any] = {
            "name": entry.name,
            "path": os.path.relpath(entry_path, relative_to),
            "is_directory": is_dir,
        }
        if is_dir:
            node["children"] = build_tree(entry_path, relative_to, depth + 1, max_depth)
        else:
            try:
                stat = entry.stat()
                node["size"] = stat.st_size
                node["modified"] = datetime.fromtimestamp(stat.st_mtime).isoformat()
                node["type"] = get_file_type(entry.name)
            except OSError as e:
                logger.debug(f"Could not stat {entry_path}: {e}")
        tree.append(node)
    return tree


async def build_tree_async(dir_path: Path, relative_to: Path, max_depth: int = 10) -> List[Dict[str, Any]]:
    return await asyncio.to_thread(build_tree, dir_path, relative_to, 0, max_depth)


async def read_text_file(path: Path, max_size: int) -> str:
    """
    Read a file for preview.

    Raises:
        FileNotFoundError: If the file does not exist
        FileTooLargeError: If the file exceeds ``max_size`` bytes
    """
    if not path.is_file():
        raise FileNotFoundError(str(path))
    if path.stat().st_size > max_size:
        raise FileTooLargeError(f"{path} exceeds {max_size} bytes")
    async with aiofiles.open(path, mode="r", encoding="utf-8", errors="replace") as f:
        return await f.read()


async def tail_file(path: Path, lines: int = 500) -> List[str]:
    """Last ``lines`` non-blank lines of a log file."""
    if not path.is_file():
        raise FileNotFoundError(str(path))
    rc, stdout, stderr = await run_subprocess(["tail", "-n", str(lines), str(path)], timeout=10)
    if rc != 0:
        raise OSError(stderr or "tail command failed")
    return [line for line in stdout.split("\n") if line.strip()]


async def count_files(path: Path) -> int:
    """Non-hidden files, excluding node_modules and .git."""
    def _count() -> int:
        total = 0
        for root, dirs, files in os.walk(path):
            dirs[:] = [d for d in dirs if d not in SKIPPED_NAMES and d != ".git"]
            total += sum(1 for f in files if not f.startswith("."))
        return total
    return await asyncio.to_thread(_count)


async def directory_size(path: Path) -> str:
    """Human-readable size from ``du -sh`` ('Unknown' on failure)."""
    try:
        rc, stdout, _ = await run_subprocess(["du", "-sh", str(path)], timeout=30)
    except (asyncio.TimeoutError, FileNotFoundError):
        return "Unknown"
    if rc != 0 or not stdout.strip():
        return "Unknown"
    return stdout.split()[0]
