"""
Developer Console — UFW Firewall
================================
Version 1.0 — October 2026

Thin async wrapper over ``sudo ufw``. Requires passwordless sudo for the
ufw binary; when that is missing every call reports ``needs_sudo`` with a
sudoers hint instead of failing outright.

Parsers are plain functions so they can be exercised against captured
``ufw``/``ss``/kernel-log output.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from devconsole.async_utils import run_subprocess

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

UFW_TIMEOUT = 10

SUDO_HINT = (
    'Passwordless sudo required for UFW. Run: echo "$USER ALL=(ALL) NOPASSWD: /usr/sbin/ufw" '
    '| sudo tee /etc/sudoers.d/ufw-nopasswd'
)

RULE_PATTERN = re.compile(r"\[\s*(\d+)\]\s+(.+?)\s+(ALLOW|DENY|REJECT|LIMIT)\s+(IN|OUT)?\s*(.*)")
PORT_SPEC_PATTERN = re.compile(r"^[\d/\w,-]+$")
APP_NAME_PATTERN = re.compile(r"^[\w.-]+$")
SS_PORT_PATTERN = re.compile(r":(\d+)\s+")
SS_PROCESS_PATTERN = re.compile(r'users:\(\("([^"]+)"')
# "To" column of a rule that lets traffic in, numbered or plain status
OPEN_RULE_PATTERN = re.compile(r"^(?:\[\s*\d+\]\s*)?(.+?)\s+(?:ALLOW|LIMIT)\b(?!\s+OUT)")

VALID_ACTIONS = ("allow", "deny", "reject", "limit")
VALID_DIRECTIONS = ("incoming", "outgoing", "routed")
VALID_POLICIES = ("allow", "deny", "reject")
VALID_LOGGING_LEVELS = ("off", "low", "medium", "high", "full")

MAX_LOG_LINES = 500


class FirewallError(Exception):
    """ufw rejected a command (message is its stderr)."""


@dataclass
class UfwResult:
    success: bool
    stdout: str = ""
    stderr: str = ""
    needs_sudo: bool = False
    error: Optional[str] = None


async def run_ufw(*args: str) -> UfwResult:
    """
    Run ``sudo ufw <args>`` with a 10s timeout.

    Raises:
        FirewallError: If ufw exits non-zero for a reason other than sudo
    """
    cmd = ["sudo", "-n", "ufw", *args]
    try:
        rc, stdout, stderr = await run_subprocess(cmd, timeout=UFW_TIMEOUT)
    except asyncio.TimeoutError:
        raise FirewallError(f"ufw {args[0] if args else ''} timed out after {UFW_TIMEOUT}s")

    if rc == 0:
        return UfwResult(success=True, stdout=stdout, stderr=stderr)

    lowered = stderr.lower()
    if "password" in lowered or "terminal" in lowered:
        security_logger.warning("🛡️ ufw call refused: passwordless sudo is not configured")
        return UfwResult(success=False, stderr=stderr, needs_sudo=True, error=SUDO_HINT)

    raise FirewallError(stderr.strip() or f"ufw exited with code {rc}")


async def is_installed() -> bool:
    try:
        rc, _, _ = await run_subprocess(["which", "ufw"], timeout=5)
    except (asyncio.TimeoutError, FileNotFoundError):
        return False
    return rc == 0


# =============================================================================
# PARSERS
# =============================================================================

def parse_rules(output: str) -> List[Dict[str, Any]]:
    """Parse ``ufw status numbered`` into rule dicts."""
    rules = []
    for line in output.strip().split("\n"):
        match = RULE_PATTERN.search(line)
        if not match:
            continue
        rules.append({
            "number": int(match.group(1)),
            "port": match.group(2).strip(),
            "action": match.group(3),
            "direction": match.group(4) or "IN",
            "from": (match.group(5) or "").strip() or "Anywhere",
        })
    return rules


def parse_status(output: str) -> Dict[str, Any]:
    """Parse ``ufw status verbose``."""
    lines = output.strip().split("\n")
    status_line = next((l for l in lines if l.startswith("Status:")), "")
    active = status_line.split(":", 1)[1].strip() == "active" if status_line else False

    default_line = next((l for l in lines if "Default:" in l), "")
    incoming = re.search(r"(\w+)\s*\(incoming\)", default_line)
    outgoing = re.search(r"(\w+)\s*\(outgoing\)", default_line)
    routed = re.search(r"(\w+)\s*\(routed\)", default_line)

    logging_line = next((l for l in lines if l.startswith("Logging:")), "")
    logging_level = logging_line.split(":", 1)[1].strip() if logging_line else "off"

    return {
        "active": active,
        "default_incoming": incoming.group(1) if incoming else "deny",
        "default_outgoing": outgoing.group(1) if outgoing else "allow",
        "default_routed": routed.group(1) if routed else "disabled",
        "logging": logging_level,
    }


def is_ssh_rule(port_spec: str) -> bool:
    port = port_spec.strip().lower()
    if "ssh" in port:
        return True
    return re.match(r"^22(/(tcp|udp))?(\s|$)", port) is not None


def parse_log_line(line: str) -> Dict[str, str]:
    """Pull the interesting fields out of a ``[UFW BLOCK]`` kernel log line."""
    def field(pattern: str) -> str:
        match = re.search(pattern, line)
        return match.group(1) if match else ""

    action = re.search(r"\[UFW\s+(BLOCK|ALLOW|AUDIT)\]", line, re.IGNORECASE)
    timestamp = re.search(r"^(\w+\s+\d+\s+[\d:]+)|(\d{4}-\d{2}-\d{2}T[\d:.]+)", line)
    return {
        "raw": line,
        "action": action.group(1).upper() if action else "UNKNOWN",
        "src": field(r"SRC=(\S+)"),
        "dst": field(r"DST=(\S+)"),
        "proto": field(r"PROTO=(\S+)"),
        "src_port": field(r"SPT=(\d+)"),
        "dst_port": field(r"DPT=(\d+)"),
        "in": field(r"IN=(\S*)"),
        "out": field(r"OUT=(\S*)"),
        "timestamp": timestamp.group(0) if timestamp else "",
    }


def parse_logs(lines: Iterable[str], text_filter: str = "") -> List[Dict[str, str]]:
    """Parsed log entries, newest first."""
    needle = text_filter.lower()
    entries = [
        parse_log_line(line) for line in lines
        if line.strip() and (not needle or needle in line.lower())
    ]
    entries.reverse()
    return entries


def parse_listening_ports(output: str) -> List[Dict[str, Any]]:
    """Unprivileged listening TCP ports from ``ss -tlnp``."""
    ports = []
    seen: Set[int] = set()
    for line in output.strip().split("\n"):
        if "LISTEN" not in line:
            continue
        port_match = SS_PORT_PATTERN.search(line)
        if not port_match:
            continue
        port = int(port_match.group(1))
        if port < 1024 or port > 65535 or port in seen:
            continue
        seen.add(port)
        process = SS_PROCESS_PATTERN.search(line)
        ports.append({"port": port, "process": process.group(1) if process else "unknown"})
    return ports


def parse_app_list(output: str) -> List[str]:
    """Application profile names from ``ufw app list``."""
    apps = []
    listing = False
    for line in output.split("\n"):
        if line.strip().startswith("Available applications"):
            listing = True
            continue
        if listing and line.strip():
            apps.append(line.strip())
    return apps


def parse_rule_ports(output: str) -> Set[int]:
    """Every port number mentioned in ``ufw status numbered`` rules."""
    ports = set()
    for rule in parse_rules(output):
        for match in re.findall(r"(\d+)(?:/(?:tcp|udp))?", rule["port"].replace("(v6)", "")):
            port = int(match)
            if 1 <= port <= 65535:
                ports.add(port)
    return ports


def build_rule_args(
    action: str,
    port: Optional[str] = None,
    direction: str = "in",
    protocol: Optional[str] = None,
    source: Optional[str] = None,
    destination: Optional[str] = None,
    comment: Optional[str] = None
) -> List[str]:
    """
    Build the ufw argument list for a new rule.

    Raises:
        ValueError: On an invalid action or port specification
    """
    action = (action or "").lower()
    if action not in VALID_ACTIONS:
        raise ValueError("Invalid action. Must be: allow, deny, reject, or limit")

    args = [action]
    if direction == "out":
        args.append("out")
    if source and source != "any":
        args.extend(["from", source])
    if destination and destination != "any":
        args.extend(["to", destination])
    if port:
        if not PORT_SPEC_PATTERN.match(port):
            raise ValueError("Invalid port specification")
        args.append(f"{port}/{protocol}" if protocol else port)
    if comment:
        args.extend(["comment", comment])
    return args


# =============================================================================
# OPERATIONS
# =============================================================================

async def get_status() -> Dict[str, Any]:
    if not await is_installed():
        return {"installed": False, "message": "UFW is not installed. Install with: sudo apt install ufw"}

    verbose = await run_ufw("status", "verbose")
    if not verbose.success:
        return {"installed": True, "active": False, "needs_sudo": True, "sudo_setup": verbose.error}

    numbered = await run_ufw("status", "numbered")
    return {
        "installed": True,
        **parse_status(verbose.stdout),
        "rules": parse_rules(numbered.stdout) if numbered.success else [],
        "raw": verbose.stdout,
    }


async def find_rule(number: int) -> Optional[Dict[str, Any]]:
    result = await run_ufw("status", "numbered")
    if not result.success:
        return None
    return next((r for r in parse_rules(result.stdout) if r["number"] == number), None)


async def plain_status() -> UfwResult:
    """Unnumbered ``ufw status``."""
    return await run_ufw("status")


def mentions_ssh(status_output: str) -> bool:
    """True when some ALLOW or LIMIT rule targets port 22 or an SSH profile."""
    for line in status_output.split("\n"):
        match = OPEN_RULE_PATTERN.match(line.strip())
        if match and is_ssh_rule(match.group(1)):
            return True
    return False


async def ensure_ssh() -> Dict[str, Any]:
    status = await plain_status()
    if not status.success:
        return {"success": False, "needs_sudo": True, "error": status.error}
    if mentions_ssh(status.stdout):
        return {"success": True, "message": "SSH rule already exists", "created": False}

    added = await run_ufw("allow", "ssh")
    if not added.success:
        return {"success": False, "needs_sudo": True, "error": added.error}
    logger.info("🔐 Added UFW rule for SSH")
    return {"success": True, "message": "SSH rule added", "created": True}


async def read_logs(lines: int = 100) -> Dict[str, Any]:
    """
    Recent ``[UFW ...]`` kernel log lines.

    Sources are tried in order: journalctl, dmesg, /var/log/ufw.log,
    /var/log/kern.log. The first one yielding lines wins.
    """
    count = min(max(lines, 1), MAX_LOG_LINES)
    sources = [
        ("journalctl", ["journalctl", "-k", "--no-pager", "-n", str(count)], True),
        ("dmesg", ["dmesg"], True),
        ("/var/log/ufw.log", ["tail", "-n", str(count), "/var/log/ufw.log"], False),
        ("/var/log/kern.log", ["grep", "-i", "[UFW", "/var/log/kern.log"], False),
    ]
    for source, cmd, needs_filter in sources:
        try:
            rc, stdout, _ = await run_subprocess(cmd, timeout=UFW_TIMEOUT)
        except (asyncio.TimeoutError, FileNotFoundError) as e:
            logger.debug(f"Firewall log source {source} unavailable: {e}")
            continue
        if rc != 0:
            continue
        found = [l for l in stdout.strip().split("\n") if l.strip()]
        if needs_filter:
            found = [l for l in found if "[ufw" in l.lower()]
        if found:
            return {"lines": found[-count:], "source": source}
    return {"lines": [], "source": "none"}


async def listening_ports() -> List[Dict[str, Any]]:
    try:
        rc, stdout, _ = await run_subprocess(["ss", "-tlnp"], timeout=5)
    except (asyncio.TimeoutError, FileNotFoundError) as e:
        logger.warning(f"⚠️ Could not scan listening ports: {e}")
        return []
    return parse_listening_ports(stdout) if rc == 0 else []


async def sync_ports(published_routes: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Open firewall ports for published routes and listening dev servers.

    SSH is always ensured first and never touched by the port loop.
    """
    status = await plain_status()
    if not status.success:
        return {"success": False, "needs_sudo": True, "error": status.error}

    details: Dict[str, Any] = {"ssh": {}, "added": [], "skipped": [], "errors": [], "existing_ports": []}

    if mentions_ssh(status.stdout):
        details["ssh"] = {"status": "exists", "message": "SSH (port 22) already enabled"}
    else:
        added = await run_ufw("allow", "ssh")
        details["ssh"] = (
            {"status": "added", "message": "SSH (port 22) rule added"} if added.success
            else {"status": "error", "message": added.error}
        )

    listening = await listening_ports()
    route_ports = {r["local_port"]: r for r in published_routes}
    all_ports = sorted(set(route_ports) | {p["port"] for p in listening})

    numbered = await run_ufw("status", "numbered")
    existing = parse_rule_ports(numbered.stdout) if numbered.success else set()
    details["existing_ports"] = sorted(existing)

    for port in all_ports:
        route = route_ports.get(port)
        if port == 22:
            details["skipped"].append({"port": port, "reason": "SSH handled separately"})
            continue
        if port in existing:
            details["skipped"].append({
                "port": port,
                "reason": "Already exists",
                "subdomain": route["subdomain"] if route else "listening process",
            })
            continue

        comment = f"Project: {route['subdomain']}" if route else "Auto-imported listening port"
        try:
            result = await run_ufw("allow", f"{port}/tcp", "comment", comment)
        except FirewallError as e:
            details["errors"].append({"port": port, "error": str(e)})
            continue
        if result.success:
            details["added"].append({"port": port, "comment": comment})
        else:
            details["errors"].append({"port": port, "error": result.error})

    logger.info(f"🔥 Firewall sync: {len(details['added'])} added, {len(details['skipped'])} skipped")
    return {
        "success": True,
        "summary": {
            "ssh_status": details["ssh"]["status"],
            "ports_added": len(details["added"]),
            "ports_skipped": len(details["skipped"]),
            "errors": len(details["errors"]),
            "total_project_ports": len(route_ports),
            "total_listening_ports": len(listening),
        },
        "details": details,
    }


async def project_ports(published_routes: List[Dict[str, Any]]) -> Dict[str, Any]:
    listening = await listening_ports()
    try:
        status = await run_ufw("status")
        current = status.stdout.lower() if status.success else ""
    except FirewallError:
        current = ""

    ports: Dict[int, Dict[str, Any]] = {}
    for route in published_routes:
        ports[route["local_port"]] = {
            "port": route["local_port"],
            "subdomain": route["subdomain"],
            "in_firewall": str(route["local_port"]) in current,
            "source": "published_route",
        }
    for entry in listening:
        if entry["port"] in ports:
            ports[entry["port"]].update(process=entry["process"], source="both")
        else:
            ports[entry["port"]] = {
                "port": entry["port"],
                "process": entry["process"],
                "subdomain": None,
                "in_firewall": str(entry["port"]) in current,
                "source": "listening",
            }

    all_ports = sorted(ports.values(), key=lambda p: p["port"])
    in_firewall = sum(1 for p in all_ports if p["in_firewall"])
    return {
        "ports": all_ports,
        "counts": {
            "total": len(all_ports),
            "in_firewall": in_firewall,
            "not_in_firewall": len(all_ports) - in_firewall,
            "from_routes": len(published_routes),
            "from_listening": len(listening),
        },
    }
