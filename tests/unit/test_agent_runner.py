"""
Unit tests for agent validation helpers and the agent runner.
"""
import asyncio
import json
import pytest
import sys
from pathlib import Path

import httpx

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from devconsole.agent_runner import (
    AgentBusyError,
    AgentRunner,
    AgentValidationError,
    hook_name,
    install_git_hook,
    matches_glob,
    normalize_git_event,
    remove_git_hook,
    render_hook_script,
    sanitize_config,
    validate_agent_payload,
)
from devconsole.persistence import agents as agent_store
from devconsole.persistence import init_db
from devconsole.persistence import projects as project_store

MCP_ACTION = {"type": "mcp", "config": {"server_id": "srv", "tool_name": "lint"}}


def payload(**overrides):
    data = {"name": "Lint on commit", "trigger_type": "manual", "actions": [MCP_ACTION]}
    data.update(overrides)
    return data


class TestValidatePayload:
    """Test agent create/update validation."""

    def test_normalizes_name_and_trigger(self):
        cleaned = validate_agent_payload(payload(name="  Lint  ", trigger_type="git_pre_commit"))

        assert cleaned["name"] == "Lint"
        assert cleaned["trigger_type"] == "GIT_PRE_COMMIT"

    def test_required_fields(self):
        with pytest.raises(AgentValidationError, match="Agent name is required"):
            validate_agent_payload(payload(name=" "))
        with pytest.raises(AgentValidationError, match="Trigger type is required"):
            validate_agent_payload(payload(trigger_type=None))
        with pytest.raises(AgentValidationError, match="at least one action"):
            validate_agent_payload(payload(actions=[]))

    def test_unknown_trigger_and_action(self):
        with pytest.raises(AgentValidationError, match="Invalid trigger type: ON_FIRE"):
            validate_agent_payload(payload(trigger_type="on_fire"))
        with pytest.raises(AgentValidationError, match="Invalid action type: ftp"):
            validate_agent_payload(payload(actions=[{"type": "ftp", "config": {"host": "x"}}]))

    def test_action_config_required(self):
        with pytest.raises(AgentValidationError, match="Action config is required"):
            validate_agent_payload(payload(actions=[{"type": "shell", "config": {}}]))

    def test_schedule_needs_valid_cron(self):
        with pytest.raises(AgentValidationError, match="requires a cron expression"):
            validate_agent_payload(payload(trigger_type="SCHEDULE", trigger_config={}))
        with pytest.raises(AgentValidationError, match="Invalid cron expression"):
            validate_agent_payload(payload(trigger_type="SCHEDULE", trigger_config={"cron": "every day"}))
        cleaned = validate_agent_payload(payload(trigger_type="SCHEDULE", trigger_config={"cron": "0 * * * *"}))
        assert cleaned["trigger_type"] == "SCHEDULE"

    def test_partial_only_checks_present_keys(self):
        assert validate_agent_payload({"description": "x"}, partial=True) == {"description": "x"}


class TestHelpers:
    """Test glob matching, config masking and git hook helpers."""

    def test_sanitize_config_masks_nested_secrets(self):
        config = {"url": "http://x", "token": "abc", "headers": {"Auth": "Bearer z", "Accept": "json"}}

        assert sanitize_config(config) == {
            "url": "http://x",
            "token": "***",
            "headers": {"Auth": "***", "Accept": "json"},
        }
        assert sanitize_config(None) == {}

    def test_matches_glob(self):
        base = "/projects/app"
        assert matches_glob("/projects/app/src/main.py", "**/*", base)
        assert matches_glob("/projects/app/src/main.py", "*.py", base)
        assert not matches_glob("/projects/app/src/main.ts", "*.py", base)
        assert matches_glob("/projects/app/src/main.py", "src/*.py", base)
        assert not matches_glob("/projects/app/docs/a.md", "src/*", base)

    def test_git_event_names(self):
        assert normalize_git_event("pre-commit") == "GIT_PRE_COMMIT"
        assert normalize_git_event("POST_MERGE") == "GIT_POST_MERGE"
        assert normalize_git_event("GIT_PRE_PUSH") == "GIT_PRE_PUSH"
        assert hook_name("GIT_POST_CHECKOUT") == "post-checkout"

    def test_hook_script_posts_back_to_console(self):
        script = render_hook_script("GIT_PRE_PUSH", "/projects/app", "http://console.test/")

        assert script.startswith("#!/bin/sh\n")
        assert "http://console.test/api/agents/events/git" in script
        assert '"event": "GIT_PRE_PUSH"' in script
        assert script.rstrip().endswith("exit 0")

    def test_install_git_hook(self, tmp_path):
        (tmp_path / ".git").mkdir()

        hook = asyncio.run(install_git_hook(tmp_path, "GIT_POST_COMMIT", "http://console.test"))

        assert hook == tmp_path / ".git" / "hooks" / "post-commit"
        assert hook.stat().st_mode & 0o111
        assert "GIT_POST_COMMIT" in hook.read_text()

    def test_install_git_hook_requires_repo(self, tmp_path):
        with pytest.raises(AgentValidationError, match="not a git repository"):
            asyncio.run(install_git_hook(tmp_path, "GIT_POST_COMMIT", "http://console.test"))

    def test_remove_git_hook(self, tmp_path):
        (tmp_path / ".git").mkdir()
        hook = asyncio.run(install_git_hook(tmp_path, "GIT_PRE_COMMIT", "http://console.test"))

        assert asyncio.run(remove_git_hook(tmp_path, "GIT_PRE_COMMIT")) is True
        assert not hook.exists()
        assert asyncio.run(remove_git_hook(tmp_path, "GIT_PRE_COMMIT")) is False

    def test_remove_leaves_foreign_hooks_alone(self, tmp_path):
        hooks_dir = tmp_path / ".git" / "hooks"
        hooks_dir.mkdir(parents=True)
        (hooks_dir / "pre-commit").write_text("#!/bin/sh\nnpx lint-staged\n")

        with pytest.raises(AgentValidationError, match="not installed by devconsole"):
            asyncio.run(remove_git_hook(tmp_path, "GIT_PRE_COMMIT"))
        assert (hooks_dir / "pre-commit").read_text() == "#!/bin/sh\nnpx lint-staged\n"


class TestRunner:
    """Test executions against a real SQLite file."""

    def run_agent(self, tmp_path, actions, transport=None):
        events = []

        async def broadcaster(message):
            events.append(message)

        async def run():
            await init_db(tmp_path / "agents.db")
            agent = await agent_store.create_agent(payload(trigger_type="MANUAL", actions=actions))
            runner = AgentRunner(broadcaster=broadcaster, http_transport=transport)

            execution = await runner.start_execution(agent, {"event": "MANUAL"})
            with pytest.raises(AgentBusyError, match="already running"):
                await runner.start_execution(agent, {"event": "MANUAL"})

            await runner.running[agent["id"]].task
            finished = await agent_store.get_execution(execution["id"])
            return runner, agent, finished

        runner, agent, finished = asyncio.run(run())
        return runner, agent, finished, events

    def test_mcp_action_completes(self, tmp_path):
        runner, agent, execution, events = self.run_agent(tmp_path, [MCP_ACTION])

        assert execution["status"] == "COMPLETED"
        assert "MCP Tool: lint on server srv" in execution["output"]
        assert not runner.is_running(agent["id"])

        types = [e["type"] for e in events]
        assert types[0] == "agent:status"
        assert "agent:action-start" in types
        assert "agent:action-output" in types
        assert "agent:action-complete" in types
        assert events[-1]["payload"]["status"] == "COMPLETED"

    def test_failed_action_does_not_stop_the_next(self, tmp_path):
        actions = [{"type": "shell", "config": {"cwd": "/tmp"}}, MCP_ACTION]

        _, _, execution, events = self.run_agent(tmp_path, actions)

        assert execution["status"] == "COMPLETED"
        assert "Error in action 0: Shell action has no command" in execution["output"]
        results = execution["trigger_context"]["action_results"]
        assert [r["status"] for r in results] == ["FAILED", "COMPLETED"]
        assert any(e["type"] == "agent:action-error" for e in events)

    def test_api_action_uses_transport(self, tmp_path):
        seen = []

        def handler(request):
            seen.append((request.method, str(request.url), json.loads(request.content)))
            return httpx.Response(200, text="ok")

        action = {"type": "api", "config": {"url": "http://hooks.test/deploy", "method": "post", "body": {"ref": "main"}}}
        _, _, execution, _ = self.run_agent(tmp_path, [action], transport=httpx.MockTransport(handler))

        assert seen == [("POST", "http://hooks.test/deploy", {"ref": "main"})]
        assert execution["output"] == "200 OK\nok"

    def test_concurrency_limit(self, tmp_path):
        async def run():
            await init_db(tmp_path / "agents.db")
            agent = await agent_store.create_agent(payload(trigger_type="MANUAL"))
            runner = AgentRunner(max_concurrent=0)
            with pytest.raises(AgentBusyError, match="Maximum concurrent agents reached"):
                await runner.start_execution(agent, {"event": "MANUAL"})

        asyncio.run(run())

    def test_git_events_only_fire_for_matching_project(self, tmp_path):
        app_dir = tmp_path / "app"
        app_dir.mkdir()

        async def run():
            await init_db(tmp_path / "agents.db")
            project = await project_store.ensure_project("app", str(app_dir))
            agent = await agent_store.create_agent(payload(
                trigger_type="GIT_POST_COMMIT", project_id=project["id"]
            ))
            runner = AgentRunner()
            await runner.initialize()

            other = await runner.handle_event("GIT_POST_COMMIT", {"project_path": str(tmp_path / "other")})
            matched = await runner.handle_event("GIT_POST_COMMIT", {"project_path": str(app_dir)})
            await runner.running[agent["id"]].task
            await runner.shutdown()
            return other, matched

        other, matched = asyncio.run(run())

        assert other == []
        assert len(matched) == 1

    def test_stop_agent_records_cancellation(self, tmp_path):
        async def run():
            await init_db(tmp_path / "agents.db")
            agent = await agent_store.create_agent(payload(trigger_type="MANUAL"))
            runner = AgentRunner()
            execution = await runner.start_execution(agent, {"event": "MANUAL"})

            stopped = await runner.stop_agent(agent["id"])
            again = await runner.stop_agent(agent["id"])
            await asyncio.sleep(0)
            return stopped, again, await agent_store.get_execution(execution["id"])

        stopped, again, execution = asyncio.run(run())

        assert stopped is True
        assert again is False
        assert execution["status"] == "CANCELLED"
