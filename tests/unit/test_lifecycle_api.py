"""
Tests for the lifecycle API: tools, agent scripts, the scan queue,
reports and sanitization.
"""

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

import pytest

from devconsole.api.routes import lifecycle
from devconsole.api.routes.lifecycle import extract_summary

NO_THROTTLE = {"scan_nice_level": 0, "scan_ionice_class": 0, "scan_cpu_limit": 0}

AGENT_SCRIPT = """#!/bin/bash
echo "Running $1 on $2"
echo "SUMMARY:"
echo "0 issues found"
echo ""
echo "done"
"""


class TestExtractSummary:
    """Summary block extraction from agent output."""

    def test_summary_block(self):
        output = "start\nSUMMARY:\n3 files checked\n2 passed\n\ntrailer"
        assert extract_summary(output) == "3 files checked\n2 passed"

    def test_report_block_case_insensitive(self):
        assert extract_summary("report:\nall good") == "all good"

    def test_no_summary(self):
        assert extract_summary("nothing here") is None
        assert extract_summary("") is None


class TestTools:

    def test_status_reports_each_tool(self, client, monkeypatch):
        async def fake_shell(command, **kwargs):
            if command.startswith("semgrep"):
                return 0, "1.50.0\nextra\n", ""
            return 127, "", "not found"

        monkeypatch.setattr(lifecycle, "run_shell_async", fake_shell)
        tools = client.get("/api/lifecycle/tools/status").json()["tools"]
        assert set(tools) == set(lifecycle.TOOLS)
        assert tools["semgrep"] == {"status": "installed", "version": "1.50.0"}
        assert tools["gitleaks"] == {"status": "missing"}

    def test_install_rejects_unknown_tool(self, client):
        response = client.post("/api/lifecycle/tools/install", json={"tool": "rm -rf /"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid tool"

    def test_install_reports_exit_code(self, client, monkeypatch):
        async def fake_shell(command, **kwargs):
            return 1, "partial", "boom"

        monkeypatch.setattr(lifecycle, "run_shell_async", fake_shell)
        body = client.post("/api/lifecycle/tools/install", json={"tool": "jscpd"}).json()
        assert body["success"] is False
        assert body["output"] == "partial\nboom"
        assert body["error"] == "Install exited with code 1"


class TestAgentsAndScans:

    def test_agents_report_script_availability(self, client, console_config):
        (console_config.agents_dir / "AGENT-018-SECURITY.sh").write_text(AGENT_SCRIPT)
        body = client.get("/api/lifecycle/agents").json()
        assert len(body["agents"]) == 8
        available = {a["id"]: a["available"] for a in body["agents"]}
        assert available["AGENT-018-SECURITY"] is True
        assert available["AGENT-017-CI-CD"] is False

    @pytest.mark.parametrize("payload,detail", [
        ({"agent": "AGENT-999-NOPE", "command": "scan"}, "Invalid agent"),
        ({"agent": "AGENT-018-SECURITY", "command": "scan; rm -rf /"}, "Invalid command"),
    ])
    def test_scan_validation(self, client, payload, detail):
        response = client.post("/api/lifecycle/scan", json=payload)
        assert response.status_code == 400
        assert response.json()["detail"] == detail

    def test_scan_missing_script(self, client):
        response = client.post("/api/lifecycle/scan", json={"agent": "AGENT-021-DEPENDENCY", "command": "audit"})
        assert response.status_code == 404
        assert response.json()["detail"].startswith("Agent script not found")

    def test_disabled_scan_is_skipped(self, client):
        client.put("/api/settings", json={"enable_security_scans": False})
        body = client.post("/api/lifecycle/scan", json={"agent": "AGENT-018-SECURITY", "command": "scan"}).json()
        assert body["skipped"] is True
        assert body["agent"] == "Security Scanner"

    def test_scan_runs_script_in_project(self, client, console_config):
        (console_config.agents_dir / "AGENT-021-DEPENDENCY.sh").write_text(AGENT_SCRIPT)
        project = console_config.projects_dir / "demo"
        project.mkdir()
        client.put("/api/settings", json=NO_THROTTLE)

        response = client.post("/api/lifecycle/scan", json={
            "agent": "AGENT-021-DEPENDENCY", "command": "audit", "project": "demo"
        })
        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert f"Running audit on {project}" in body["output"]
        assert body["summary"] == "0 issues found"
        assert body["agent"] == "Dependency Manager"
        assert body["project"] == str(project)
        assert body["resource_controls"]["nice_level"] == 0
        assert body["scan_id"].startswith("scan-")

    def test_queue_and_cancel_when_idle(self, client):
        status = client.get("/api/lifecycle/queue").json()
        assert status["queue_length"] == 0
        assert status["active_scans"] == 0
        assert client.post("/api/lifecycle/queue/cancel").json() == {"success": True, "cancelled": 0}

    def test_settings_follow_user_settings(self, client):
        client.put("/api/settings", json={"scan_concurrency": 3})
        assert client.get("/api/lifecycle/settings").json()["scan_concurrency"] == 3

        reloaded = client.post("/api/lifecycle/settings/reload").json()
        assert reloaded["success"] is True
        assert reloaded["settings"]["scan_concurrency"] == 3

    def test_recommendations(self, client):
        body = client.get("/api/lifecycle/recommendations").json()
        assert body["recommended"]["scan_concurrency"] == 1
        assert body["system_specs"]["cpu_cores"] >= 1


class TestReports:

    def test_list_and_read_report(self, client, console_config):
        reports = console_config.report_dirs[0]
        reports.mkdir(parents=True)
        (reports / "security.json").write_text(json.dumps({"findings": 2}))
        (reports / "notes.txt").write_text("ignored")

        listed = client.get("/api/lifecycle/reports").json()["reports"]
        assert [r["name"] for r in listed] == ["security.json"]

        body = client.get("/api/lifecycle/report", params={"path": listed[0]["path"]}).json()
        assert body == {"findings": 2}

    def test_non_json_report_returned_as_content(self, client, console_config):
        reports = console_config.report_dirs[0]
        reports.mkdir(parents=True)
        (reports / "broken.json").write_text("not json")
        body = client.get("/api/lifecycle/report", params={"path": str(reports / "broken.json")}).json()
        assert body == {"content": "not json"}

    def test_report_outside_dirs_denied(self, client):
        response = client.get("/api/lifecycle/report", params={"path": "/etc/passwd"})
        assert response.status_code == 403

    def test_missing_report(self, client, console_config):
        reports = console_config.report_dirs[0]
        reports.mkdir(parents=True)
        response = client.get("/api/lifecycle/report", params={"path": str(reports / "gone.json")})
        assert response.status_code == 404


class TestSanitize:

    def test_missing_script(self, client, console_config):
        (console_config.projects_dir / "demo").mkdir()
        response = client.post("/api/lifecycle/sanitize", json={"project": "demo"})
        assert response.status_code == 404
        assert response.json()["detail"] == "Sanitization script not found"

    def test_clean_output_is_success(self, client, console_config, monkeypatch):
        project = console_config.projects_dir / "demo"
        (project / "scripts").mkdir(parents=True)
        (project / "scripts" / "sanitize-push.sh").write_text("#!/bin/bash\n")
        commands = []

        async def fake_shell(command, **kwargs):
            commands.append(command)
            return 0, "Checked 12 files\nCLEAN\n", ""

        monkeypatch.setattr(lifecycle, "run_shell_async", fake_shell)
        body = client.post("/api/lifecycle/sanitize", json={"project": "demo", "fix": True}).json()
        assert body["success"] is True
        assert commands[0].endswith("sanitize-push.sh --fix")
