"""
Shared fixtures: an isolated console (temp projects dir + SQLite file)
and a TestClient running the full app lifespan against it.
"""
import os
import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

# Must be set before the limiter singleton is built
os.environ["RATE_LIMIT_ENABLED"] = "false"

from fastapi.testclient import TestClient

import devconsole.api.state as api_state
from devconsole.config import ConsoleConfig


@pytest.fixture
def console_config(tmp_path, monkeypatch):
    tmp_path = tmp_path.resolve()
    config = ConsoleConfig(
        projects_dir=tmp_path / "projects",
        agents_dir=tmp_path / "agents",
        backups_dir=tmp_path / "backups",
        db_path=tmp_path / "console.db",
        report_dirs=[tmp_path / "reports"],
        sanitize_report_dir=tmp_path / "sanitize-reports",
        console_url="http://console.test",
    )
    config.projects_dir.mkdir()
    config.agents_dir.mkdir()
    monkeypatch.setattr(api_state, "config", config)
    return config


@pytest.fixture
def client(console_config):
    from devconsole.server import app

    with TestClient(app) as test_client:
        yield test_client
