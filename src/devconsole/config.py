"""
Developer Console — Configuration
=================================
Version 1.0 — October 2026

Configuration classes for the console. Values come from the environment
(optionally a .env file loaded by python-dotenv).
"""

import os
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ScanSettings:
    """Resource controls applied to lifecycle scans."""
    scan_concurrency: int = 1
    scan_nice_level: int = 15
    scan_ionice_class: int = 3  # 3 = idle I/O class
    scan_memory_limit_mb: int = 2048
    scan_timeout_seconds: int = 600
    scan_cpu_limit: int = 50  # percent, only honoured when cpulimit is installed

    # Feature flags
    enable_security_scans: bool = True
    enable_quality_scans: bool = True
    enable_pre_push_pipeline: bool = True

    # Heavy steps skipped by default
    skip_container_scan: bool = True
    skip_sast_scan: bool = False
    skip_e2e_tests: bool = True
    skip_coverage_report: bool = False

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "ScanSettings":
        """Build settings from a stored mapping; unknown or null keys use defaults."""
        settings = cls()
        if not data:
            return settings
        for f in fields(cls):
            value = data.get(f.name)
            if value is None:
                continue
            if f.type in (bool, "bool"):
                value = bool(value)
            elif f.type in (int, "int"):
                value = int(value)
            setattr(settings, f.name, value)
        return settings

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ConsoleConfig:
    """Main console configuration."""

    projects_dir: Path = field(default_factory=lambda: Path.home() / "Projects")
    agents_dir: Path = field(default_factory=lambda: Path.home() / "Projects" / "agents" / "lifecycle")
    backups_dir: Path = field(default_factory=lambda: Path.home() / ".backups")
    db_path: Path = field(default_factory=lambda: Path.cwd() / "devconsole.db")

    # Report directories written by the lifecycle agent scripts
    report_dirs: List[Path] = field(default_factory=lambda: [
        Path("/tmp/security-reports"),
        Path("/tmp/observability-metrics"),
        Path("/tmp/quality-reports"),
        Path("/tmp/performance-reports"),
    ])
    sanitize_report_dir: Path = Path("/tmp/sanitize-reports")

    authentik_url: str = "http://localhost:9000"

    # Base URL installed git hooks call back into
    console_url: str = "http://localhost:8085"

    host: str = "0.0.0.0"
    port: int = 8085
    frontend_url: str = "*"
    rate_limit_enabled: bool = True

    # Execution limits
    max_concurrent_agents: int = 5
    agent_shell_timeout: int = 300  # 5 minutes
    max_file_size: int = 5 * 1024 * 1024
    max_tree_depth: int = 10

    @classmethod
    def from_env(cls) -> "ConsoleConfig":
        """Load configuration from environment variables (and .env)."""
        load_dotenv()
        config = cls()

        if os.getenv("PROJECTS_DIR"):
            config.projects_dir = Path(os.environ["PROJECTS_DIR"]).expanduser()
        if os.getenv("AGENTS_DIR"):
            config.agents_dir = Path(os.environ["AGENTS_DIR"]).expanduser()
        else:
            config.agents_dir = config.projects_dir / "agents" / "lifecycle"
        if os.getenv("BACKUPS_DIR"):
            config.backups_dir = Path(os.environ["BACKUPS_DIR"]).expanduser()
        if os.getenv("DEVCONSOLE_DB"):
            config.db_path = Path(os.environ["DEVCONSOLE_DB"]).expanduser()

        config.authentik_url = os.getenv("AUTHENTIK_URL", config.authentik_url)
        config.host = os.getenv("SERVER_HOST", config.host)
        config.port = int(os.getenv("SERVER_PORT", str(config.port)))
        config.console_url = os.getenv("CONSOLE_URL", f"http://localhost:{config.port}")
        config.frontend_url = os.getenv("FRONTEND_URL", config.frontend_url)
        config.rate_limit_enabled = _env_bool("RATE_LIMIT_ENABLED", config.rate_limit_enabled)
        return config

    @property
    def cors_origins(self) -> List[str]:
        if self.frontend_url == "*":
            return ["*"]
        return [origin.strip() for origin in self.frontend_url.split(",") if origin.strip()]
