"""
Developer Console — Path Security
=================================
Version 1.0 — October 2026

Name and path validation for everything that turns user input into a
filesystem location. Rejections are logged to the ``security`` logger.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

PROJECT_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]*[a-zA-Z0-9]$|^[a-zA-Z0-9]$")

PathLike = Union[str, Path]


class PathSecurityError(ValueError):
    """Raised when a name or path fails validation or escapes its base."""


def log_security_event(event: str, **details) -> None:
    fields = " ".join(f"{key}={value!r}" for key, value in details.items())
    security_logger.warning(f"🛡️ {event} {fields}")


def is_valid_name(name: Optional[str]) -> bool:
    """A single path component with no traversal or NUL bytes."""
    if not name or not isinstance(name, str):
        return False
    if ".." in name or "/" in name or "\\" in name:
        return False
    if "\0" in name:
        return False
    return True


def is_valid_project_name(name: Optional[str]) -> bool:
    if not is_valid_name(name):
        return False
    if name.startswith(".") or name.endswith("."):
        return False
    return bool(PROJECT_NAME_PATTERN.match(name))


def _is_within(path: Path, base: Path) -> bool:
    return path == base or base in path.parents


def safe_path(base_dir: PathLike, *parts: str) -> Path:
    """
    Join ``parts`` onto ``base_dir`` and make sure the result stays inside it.

    Raises:
        PathSecurityError: If the resolved path escapes the base directory
    """
    base = Path(base_dir).resolve()
    target = base.joinpath(*parts).resolve()
    if not _is_within(target, base):
        log_security_event(
            "path_traversal_attempt",
            base_dir=str(base),
            attempted_path="/".join(parts),
            resolved_path=str(target),
        )
        raise PathSecurityError("Path escapes allowed directory")
    return target


def safe_project_path(projects_dir: PathLike, project_name: str, *parts: str) -> Path:
    if not is_valid_project_name(project_name):
        log_security_event("invalid_project_name", project_name=project_name)
        raise PathSecurityError("Invalid project name")
    return safe_path(projects_dir, project_name, *parts)


def validate_and_resolve_path(
    input_path: Optional[str],
    allowed_bases: Iterable[PathLike],
    relative_to: Optional[PathLike] = None
) -> Path:
    """
    Resolve ``input_path`` (absolute, or relative to ``relative_to``) and
    require it to sit inside one of ``allowed_bases``.
    """
    if not input_path or not isinstance(input_path, str):
        raise PathSecurityError("Path is required")

    if "\0" in input_path:
        log_security_event("null_byte_injection_attempt", input_path=input_path)
        raise PathSecurityError("Invalid path")

    bases = [Path(base).resolve() for base in allowed_bases]
    candidate = Path(input_path)
    if not candidate.is_absolute():
        anchor = Path(relative_to) if relative_to is not None else bases[0]
        candidate = anchor / candidate
    resolved = candidate.resolve()

    if not any(_is_within(resolved, base) for base in bases):
        log_security_event(
            "path_outside_allowed_bases",
            input_path=input_path,
            resolved_path=str(resolved),
            allowed_bases=[str(b) for b in bases],
        )
        raise PathSecurityError("Access denied")

    return resolved
