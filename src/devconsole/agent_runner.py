"""
Developer Console — Agent Runner
================================
Version 1.0 — October 2026

Runs background agents: canned lists of shell / api / mcp actions fired by
git hooks, file changes, session and system events, cron schedules, or by
hand. At most ``max_concurrent`` executions are in flight; each one is an
asyncio task that ``stop_agent`` can cancel.

Progress is pushed to dashboard clients through the broadcaster
(``ConnectionManager.broadcast``) as ``agent:*`` events.
"""

import asyncio
import fnmatch
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import aiofiles
import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from watchfiles import awatch

from devconsole.async_utils import stream_shell_async
from devconsole.metrics import agent_metrics
from devconsole.persistence import agents as agent_store

logger = logging.getLogger(__name__)

Broadcaster = Callable[[Dict[str, Any]], Awaitable[None]]


# =============================================================================
# CATALOGS
# =============================================================================

GIT_TRIGGERS = ["GIT_PRE_COMMIT", "GIT_POST_COMMIT", "GIT_PRE_PUSH", "GIT_POST_MERGE", "GIT_POST_CHECKOUT"]
SESSION_TRIGGERS = [
    "SESSION_START", "SESSION_END", "SESSION_ERROR",
    "SESSION_IDLE", "SESSION_RECONNECT", "SESSION_COMMAND_COMPLETE",
]
SYSTEM_TRIGGERS = ["SYSTEM_RESOURCE", "SYSTEM_SERVICE", "SYSTEM_ALERT", "SYSTEM_UPTIME"]

TRIGGER_TYPES: List[Dict[str, Any]] = [
    {"value": "GIT_PRE_COMMIT", "label": "Git: Pre-Commit", "category": "git"},
    {"value": "GIT_POST_COMMIT", "label": "Git: Post-Commit", "category": "git"},
    {"value": "GIT_PRE_PUSH", "label": "Git: Pre-Push", "category": "git"},
    {"value": "GIT_POST_MERGE", "label": "Git: Post-Merge", "category": "git"},
    {"value": "GIT_POST_CHECKOUT", "label": "Git: Post-Checkout", "category": "git"},
    {"value": "FILE_CHANGE", "label": "File: Change", "category": "file", "has_config": True,
     "config_fields": [{"name": "pattern", "type": "text", "label": "Glob pattern", "default": "**/*"}]},
    {"value": "SESSION_START", "label": "Session: Start", "category": "session"},
    {"value": "SESSION_END", "label": "Session: End", "category": "session"},
    {"value": "SESSION_ERROR", "label": "Session: Error", "category": "session"},
    {"value": "SESSION_IDLE", "label": "Session: Idle", "category": "session"},
    {"value": "SESSION_RECONNECT", "label": "Session: Reconnect", "category": "session"},
    {"value": "SESSION_COMMAND_COMPLETE", "label": "Session: Command Complete", "category": "session"},
    {"value": "SYSTEM_RESOURCE", "label": "System: Resource Alert", "category": "system"},
    {"value": "SYSTEM_SERVICE", "label": "System: Service Change", "category": "system"},
    {"value": "SYSTEM_ALERT", "label": "System: Alert Triggered", "category": "system"},
    {"value": "SYSTEM_UPTIME", "label": "System: Uptime Change", "category": "system"},
    {"value": "SCHEDULE", "label": "Schedule (cron)", "category": "schedule", "has_config": True,
     "config_fields": [{"name": "cron", "type": "text", "label": "Cron expression", "required": True}]},
    {"value": "MANUAL", "label": "Manual Trigger", "category": "manual"},
]
TRIGGER_VALUES = {t["value"] for t in TRIGGER_TYPES}

ACTION_TYPES: List[Dict[str, Any]] = [
    {
        "value": "shell",
        "label": "Shell Command",
        "description": "Execute a shell command in the project directory",
        "fields": [{"name": "command", "type": "text", "label": "Command", "required": True}],
    },
    {
        "value": "api",
        "label": "API Call",
        "description": "Make an HTTP request to an API endpoint",
        "fields": [
            {"name": "url", "type": "url", "label": "URL", "required": True},
            {"name": "method", "type": "select", "label": "Method",
             "options": ["GET", "POST", "PUT", "DELETE"], "default": "GET"},
            {"name": "headers", "type": "json", "label": "Headers"},
            {"name": "body", "type": "json", "label": "Body"},
        ],
    },
    {
        "value": "mcp",
        "label": "MCP Tool",
        "description": "Invoke an MCP server tool",
        "fields": [
            {"name": "server_id", "type": "select", "label": "MCP Server", "required": True},
            {"name": "tool_name", "type": "select", "label": "Tool", "required": True},
            {"name": "args", "type": "json", "label": "Arguments"},
        ],
    },
]
ACTION_VALUES = {a["value"] for a in ACTION_TYPES}

SENSITIVE_KEYS = {"password", "secret", "token", "api_key", "apikey", "auth"}
IGNORED_DIRS = {"node_modules", ".git"}
TIMEOUT_NOTICE = "\n[Process killed: timeout after 5 minutes]"
HOOK_MARKER = "hook installed by devconsole"


# =============================================================================
# ERRORS
# =============================================================================

class AgentValidationError(ValueError):
    """Agent payload rejected; the message is shown to the user."""


class AgentBusyError(Exception):
    """The agent cannot start right now (already running, or no free slot)."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ActionError(Exception):
    """A single action failed; the execution carries on with the next one."""


# =============================================================================
# HELPERS
# =============================================================================

def validate_agent_payload(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validate and normalize an agent create/update payload.

    With ``partial`` only the keys present are checked (updates).

    Raises:
        AgentValidationError: With the first problem found
    """
    cleaned = dict(data)

    if not partial or "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise AgentValidationError("Agent name is required")
        cleaned["name"] = name

    if not partial or "trigger_type" in data:
        trigger = (data.get("trigger_type") or "").strip().upper()
        if not trigger:
            raise AgentValidationError("Trigger type is required")
        if trigger not in TRIGGER_VALUES:
            raise AgentValidationError(f"Invalid trigger type: {trigger}")
        cleaned["trigger_type"] = trigger

    if not partial or "actions" in data:
        actions = data.get("actions")
        if not actions or not isinstance(actions, list):
            raise AgentValidationError("Agent must have at least one action")
        for action in actions:
            if not isinstance(action, dict) or action.get("type") not in ACTION_VALUES:
                action_type = action.get("type") if isinstance(action, dict) else action
                raise AgentValidationError(f"Invalid action type: {action_type}")
            if not action.get("config"):
                raise AgentValidationError("Action config is required")

    if cleaned.get("trigger_type") == "SCHEDULE":
        cron = (cleaned.get("trigger_config") or {}).get("cron")
        if not cron:
            raise AgentValidationError("Schedule trigger requires a cron expression")
        try:
            CronTrigger.from_crontab(cron)
        except ValueError:
            raise AgentValidationError(f"Invalid cron expression: {cron}")

    return cleaned


def sanitize_config(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Copy of an action config with credential-looking values masked."""
    if not config:
        return {}
    sanitized = {}
    for key, value in config.items():
        if key.lower() in SENSITIVE_KEYS and value:
            sanitized[key] = "***"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_config(value)
        else:
            sanitized[key] = value
    return sanitized


def matches_glob(file_path: str, pattern: str, base_path: str) -> bool:
    """Match a changed file (absolute) against a FILE_CHANGE glob."""
    relative = os.path.relpath(file_path, base_path) if os.path.isabs(file_path) else file_path
    relative = relative.replace(os.sep, "/")

    if pattern == "**/*":
        return True
    if pattern.startswith("*.") and "/" not in pattern:
        return relative.endswith(pattern[1:])
    if "**" in pattern:
        return all(not part or part.replace("*", "") in relative for part in pattern.split("**"))
    return fnmatch.fnmatch(relative, pattern)


def watch_filter(_change: Any, path: str) -> bool:
    """watchfiles filter: skip dotfiles, node_modules and .git."""
    return not any(part.startswith(".") or part in IGNORED_DIRS for part in Path(path).parts)


def hook_name(trigger_type: str) -> str:
    """GIT_PRE_COMMIT -> pre-commit"""
    return trigger_type[len("GIT_"):].lower().replace("_", "-")


def normalize_git_event(event: str) -> str:
    """Accept 'pre-commit', 'PRE_COMMIT' or 'GIT_PRE_COMMIT'."""
    value = (event or "").strip().upper().replace("-", "_")
    if value and not value.startswith("GIT_"):
        value = f"GIT_{value}"
    return value


def render_hook_script(trigger_type: str, project_path: str, console_url: str) -> str:
    payload = f'{{"event": "{trigger_type}", "project_path": "{project_path}"}}'
    return (
        "#!/bin/sh\n"
        f"# {hook_name(trigger_type)} {HOOK_MARKER}\n"
        "curl -s -X POST -H 'Content-Type: application/json' "
        f"-d '{payload}' {console_url.rstrip('/')}/api/agents/events/git >/dev/null 2>&1 || true\n"
        "exit 0\n"
    )


async def install_git_hook(project_path: Path, trigger_type: str, console_url: str) -> Path:
    """
    Write an executable ``.git/hooks/<hook>`` that reports back to the console.

    Raises:
        AgentValidationError: When the project is not a git repository
    """
    hooks_dir = project_path / ".git" / "hooks"
    if not (project_path / ".git").is_dir():
        raise AgentValidationError("Project is not a git repository")
    hooks_dir.mkdir(parents=True, exist_ok=True)

    hook_path = hooks_dir / hook_name(trigger_type)
    async with aiofiles.open(hook_path, mode="w") as f:
        await f.write(render_hook_script(trigger_type, str(project_path), console_url))
    hook_path.chmod(0o755)
    logger.info(f"🪝 Installed {hook_path}")
    return hook_path


async def remove_git_hook(project_path: Path, trigger_type: str) -> bool:
    """
    Delete a hook written by ``install_git_hook``.

    Returns False when there is no hook to remove.

    Raises:
        AgentValidationError: When the hook exists but was written by someone else
    """
    hook_path = project_path / ".git" / "hooks" / hook_name(trigger_type)
    if not hook_path.is_file():
        return False

    async with aiofiles.open(hook_path, mode="r") as f:
        content = await f.read()
    if HOOK_MARKER not in content:
        raise AgentValidationError(f"{hook_path.name} hook was not installed by devconsole")

    hook_path.unlink()
    logger.info(f"🪝 Removed {hook_path}")
    return True


# =============================================================================
# RUNNER
# =============================================================================

@dataclass
class RunningAgent:
    execution_id: str
    started_at: str
    total_actions: int
    current_action_index: int = 0
    task: Optional[asyncio.Task] = None


@dataclass
class ProjectWatcher:
    stop_event: asyncio.Event
    task: Optional[asyncio.Task] = None
    agents: Set[str] = field(default_factory=set)


class AgentRunner:
    """Triggers and executes background agents."""

    def __init__(
        self,
        broadcaster: Optional[Broadcaster] = None,
        max_concurrent: int = 5,
        shell_timeout: int = 300,
        http_transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.broadcaster = broadcaster
        self.max_concurrent = max_concurrent
        self.shell_timeout = shell_timeout
        self.http_transport = http_transport

        self.running: Dict[str, RunningAgent] = {}
        self.subscriptions: Dict[str, Set[str]] = {}
        self.watchers: Dict[str, ProjectWatcher] = {}
        self.scheduler: Optional[AsyncIOScheduler] = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> int:
        """Register triggers for every enabled agent."""
        agents = await agent_store.list_agents(enabled=True)
        for agent in agents:
            await self.load_agent(agent)
        logger.info(f"🤖 Agent runner initialized with {len(agents)} enabled agent(s)")
        return len(agents)

    async def load_agent(self, agent: Dict[str, Any]) -> None:
        if not agent.get("enabled"):
            return
        agent_id = agent["id"]
        trigger = agent["trigger_type"]
        self.subscriptions.setdefault(trigger, set()).add(agent_id)

        project = agent.get("project")
        if trigger == "FILE_CHANGE" and project:
            self._watch_project(project["path"], agent_id)
        elif trigger == "SCHEDULE":
            self._schedule(agent)

    def unload_agent(self, agent_id: str) -> None:
        for agent_ids in self.subscriptions.values():
            agent_ids.discard(agent_id)

        for path in list(self.watchers):
            watcher = self.watchers[path]
            watcher.agents.discard(agent_id)
            if not watcher.agents:
                watcher.stop_event.set()
                del self.watchers[path]

        if self.scheduler and self.scheduler.get_job(self._job_id(agent_id)):
            self.scheduler.remove_job(self._job_id(agent_id))

    async def reload_agent(self, agent_id: str) -> None:
        self.unload_agent(agent_id)
        agent = await agent_store.get_agent(agent_id)
        if agent and agent["enabled"]:
            await self.load_agent(agent)

    async def shutdown(self) -> None:
        for watcher in self.watchers.values():
            watcher.stop_event.set()
            if watcher.task:
                watcher.task.cancel()
        self.watchers.clear()
        self.subscriptions.clear()

        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.scheduler = None

        for agent_id in list(self.running):
            await self.stop_agent(agent_id)
        logger.info("🛑 Agent runner shutdown complete")

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    def _watch_project(self, project_path: str, agent_id: str) -> None:
        watcher = self.watchers.get(project_path)
        if watcher is None:
            watcher = ProjectWatcher(stop_event=asyncio.Event())
            watcher.task = asyncio.create_task(self._watch_loop(project_path, watcher))
            self.watchers[project_path] = watcher
            logger.info(f"👀 Watching {project_path}")
        watcher.agents.add(agent_id)

    async def _watch_loop(self, project_path: str, watcher: ProjectWatcher) -> None:
        try:
            async for changes in awatch(project_path, watch_filter=watch_filter, stop_event=watcher.stop_event):
                for change, path in changes:
                    await self.handle_file_event(project_path, change.name, path)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ File watcher for {project_path} stopped: {e}")

    async def handle_file_event(self, project_path: str, file_event: str, file_path: str) -> List[str]:
        watcher = self.watchers.get(project_path)
        if not watcher:
            return []

        started = []
        for agent_id in list(watcher.agents):
            agent = await agent_store.get_agent(agent_id)
            if not agent or not agent["enabled"]:
                continue
            pattern = agent["trigger_config"].get("pattern") or "**/*"
            if not matches_glob(file_path, pattern, project_path):
                continue
            execution_id = await self._trigger(agent, {
                "event": "FILE_CHANGE",
                "file_event": file_event,
                "file_path": file_path,
                "project_path": project_path,
            })
            if execution_id:
                started.append(execution_id)
        return started

    @staticmethod
    def _job_id(agent_id: str) -> str:
        return f"agent-{agent_id}"

    def _schedule(self, agent: Dict[str, Any]) -> None:
        cron = agent["trigger_config"].get("cron")
        if not cron:
            logger.warning(f"⚠️ Scheduled agent {agent['name']} has no cron expression")
            return
        if self.scheduler is None:
            self.scheduler = AsyncIOScheduler()
        if not self.scheduler.running:
            self.scheduler.start()
        self.scheduler.add_job(
            self._run_scheduled,
            CronTrigger.from_crontab(cron),
            id=self._job_id(agent["id"]),
            args=[agent["id"]],
            replace_existing=True,
        )
        logger.info(f"⏰ Scheduled agent {agent['name']} ({cron})")

    async def _run_scheduled(self, agent_id: str) -> None:
        agent = await agent_store.get_agent(agent_id)
        if agent and agent["enabled"]:
            await self._trigger(agent, {"event": "SCHEDULE"})

    async def handle_event(self, event_type: str, context: Optional[Dict[str, Any]] = None) -> List[str]:
        """
        Fire every enabled agent subscribed to ``event_type``.

        When the context names a ``project_path`` only agents bound to that
        project run. Busy agents are skipped. Returns started execution ids.
        """
        context = context or {}
        project_path = context.get("project_path")
        started = []
        for agent_id in list(self.subscriptions.get(event_type, ())):
            agent = await agent_store.get_agent(agent_id)
            if not agent or not agent["enabled"]:
                continue
            if project_path:
                project = agent.get("project")
                if not project or os.path.realpath(project["path"]) != os.path.realpath(project_path):
                    continue
            execution_id = await self._trigger(agent, {"event": event_type, **context})
            if execution_id:
                started.append(execution_id)
        return started

    async def _trigger(self, agent: Dict[str, Any], context: Dict[str, Any]) -> Optional[str]:
        try:
            execution = await self.start_execution(agent, context)
        except AgentBusyError as e:
            logger.info(f"Agent {agent['name']} skipped: {e.reason}")
            return None
        return execution["id"]

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def is_running(self, agent_id: str) -> bool:
        return agent_id in self.running

    def status(self) -> Dict[str, Any]:
        return {
            "running": [
                {
                    "agent_id": agent_id,
                    "execution_id": entry.execution_id,
                    "started_at": entry.started_at,
                    "current_action_index": entry.current_action_index,
                    "total_actions": entry.total_actions,
                }
                for agent_id, entry in self.running.items()
            ],
            "max_concurrent": self.max_concurrent,
            "available": self.max_concurrent - len(self.running),
        }

    async def run_agent(self, agent_id: str) -> Dict[str, Any]:
        """
        Manually start an agent.

        Raises:
            LookupError: If the agent does not exist
            AgentBusyError: If it is already running or no slot is free
        """
        agent = await agent_store.get_agent(agent_id)
        if not agent:
            raise LookupError("Agent not found")
        return await self.start_execution(agent, {"event": "MANUAL"})

    async def start_execution(self, agent: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
        if agent["id"] in self.running:
            raise AgentBusyError("Agent is already running")
        if len(self.running) >= self.max_concurrent:
            raise AgentBusyError("Maximum concurrent agents reached")

        # Claim the slot before the first await so a concurrent trigger sees it
        entry = RunningAgent(execution_id="", started_at="", total_actions=len(agent["actions"]))
        self.running[agent["id"]] = entry
        try:
            execution = await agent_store.create_execution(agent["id"], context)
        except Exception:
            self.running.pop(agent["id"], None)
            raise
        entry.execution_id = execution["id"]
        entry.started_at = execution["started_at"]

        await agent_store.touch_last_run(agent["id"])
        logger.info(f"🚀 Triggered agent {agent['name']} ({context.get('event')})")
        await self._emit("agent:status", {
            "agent_id": agent["id"],
            "execution_id": execution["id"],
            "status": "RUNNING",
            "started_at": execution["started_at"],
        })
        if self.running.get(agent["id"]) is entry:
            entry.task = asyncio.create_task(self._execute(agent, execution["id"], context))
        return execution

    async def stop_agent(self, agent_id: str) -> bool:
        entry = self.running.pop(agent_id, None)
        if entry is None:
            return False

        if entry.task and not entry.task.done():
            entry.task.cancel()
        await agent_store.finish_execution(entry.execution_id, "CANCELLED")
        agent_metrics.executions_total.labels(trigger_type="any", status="CANCELLED").inc()
        await self._emit("agent:status", {
            "agent_id": agent_id,
            "execution_id": entry.execution_id,
            "status": "CANCELLED",
            "ended_at": datetime.now().isoformat(),
        })
        logger.info(f"⏹️ Stopped agent {agent_id}")
        return True

    async def _execute(self, agent: Dict[str, Any], execution_id: str, context: Dict[str, Any]) -> None:
        agent_id = agent["id"]
        trigger_type = agent["trigger_type"]
        start = time.time()
        agent_metrics.running_agents.inc()
        try:
            try:
                output, action_results = await self._run_actions(agent, execution_id)
            except asyncio.CancelledError:
                # stop_agent already recorded the cancellation
                raise
            except Exception as e:
                logger.error(f"❌ Agent {agent['name']} failed: {e}")
                if self.running.pop(agent_id, None) is None:
                    return
                await agent_store.finish_execution(execution_id, "FAILED", error=str(e))
                agent_metrics.executions_total.labels(trigger_type=trigger_type, status="FAILED").inc()
                await self._emit("agent:status", {
                    "agent_id": agent_id,
                    "execution_id": execution_id,
                    "status": "FAILED",
                    "error": str(e),
                    "ended_at": datetime.now().isoformat(),
                })
                return

            if self.running.pop(agent_id, None) is None:
                return
            await agent_store.finish_execution(
                execution_id, "COMPLETED", output=output,
                trigger_context={**context, "action_results": action_results}
            )
            agent_metrics.executions_total.labels(trigger_type=trigger_type, status="COMPLETED").inc()
            await self._emit("agent:status", {
                "agent_id": agent_id,
                "execution_id": execution_id,
                "status": "COMPLETED",
                "ended_at": datetime.now().isoformat(),
            })
        finally:
            agent_metrics.running_agents.dec()
            agent_metrics.execution_duration.labels(trigger_type=trigger_type).observe(time.time() - start)

    async def _run_actions(self, agent: Dict[str, Any], execution_id: str):
        actions = agent["actions"]
        project = agent.get("project")
        cwd = project["path"] if project else str(Path.home())
        outputs: List[str] = []
        results: List[Dict[str, Any]] = []

        for index, action in enumerate(actions):
            entry = self.running.get(agent["id"])
            if entry:
                entry.current_action_index = index
            action_id = f"{execution_id}-action-{index}"
            base = {"agent_id": agent["id"], "execution_id": execution_id, "action_id": action_id, "action_index": index}
            started_at = datetime.now()

            await self._emit("agent:action-start", {
                **base,
                "action_type": action["type"],
                "action_config": sanitize_config(action.get("config")),
                "total_actions": len(actions),
                "started_at": started_at.isoformat(),
            })

            async def on_chunk(chunk: str, base=base) -> None:
                await self._emit("agent:action-output", {**base, "chunk": chunk})

            try:
                output = await self.execute_action(action, cwd, on_chunk)
            except ActionError as e:
                ended_at = datetime.now()
                duration = int((ended_at - started_at).total_seconds() * 1000)
                agent_metrics.action_errors_total.labels(action_type=action["type"]).inc()
                logger.warning(f"⚠️ Action {index} of {agent['name']} failed: {e}")
                outputs.append(f"Error in action {index}: {e}")
                results.append({
                    "action_id": action_id, "action_index": index, "action_type": action["type"],
                    "status": "FAILED", "error": str(e), "started_at": started_at.isoformat(),
                    "ended_at": ended_at.isoformat(), "duration": duration,
                })
                await self._emit("agent:action-error", {
                    **base, "action_type": action["type"], "status": "FAILED",
                    "error": str(e), "duration": duration,
                })
                continue

            ended_at = datetime.now()
            duration = int((ended_at - started_at).total_seconds() * 1000)
            outputs.append(output)
            results.append({
                "action_id": action_id, "action_index": index, "action_type": action["type"],
                "status": "COMPLETED", "output": output, "started_at": started_at.isoformat(),
                "ended_at": ended_at.isoformat(), "duration": duration,
            })
            await self._emit("agent:action-complete", {
                **base, "action_type": action["type"], "status": "COMPLETED",
                "output": output, "duration": duration,
            })

        return "\n\n".join(outputs), results

    async def execute_action(
        self,
        action: Dict[str, Any],
        cwd: str,
        on_chunk: Callable[[str], Awaitable[None]]
    ) -> str:
        action_type = action.get("type")
        config = action.get("config") or {}
        if action_type == "shell":
            return await self._shell_action(config, cwd, on_chunk)
        if action_type == "api":
            return await self._api_action(config, on_chunk)
        if action_type == "mcp":
            return await self._mcp_action(config, on_chunk)
        raise ActionError(f"Unknown action type: {action_type}")

    async def _shell_action(self, config: Dict[str, Any], cwd: str, on_chunk) -> str:
        command = config.get("command")
        if not command:
            raise ActionError("Shell action has no command")
        try:
            rc, output, timed_out = await stream_shell_async(
                command, on_chunk, cwd=cwd, timeout=self.shell_timeout, env=dict(os.environ)
            )
        except OSError as e:
            raise ActionError(str(e))

        if timed_out:
            await on_chunk(TIMEOUT_NOTICE)
            return output + TIMEOUT_NOTICE
        if rc != 0:
            raise ActionError(f"Command exited with code {rc}" + (f"\n{output}" if output else ""))
        return output or f"(Process exited with code {rc})"

    async def _api_action(self, config: Dict[str, Any], on_chunk) -> str:
        url = config.get("url")
        if not url:
            raise ActionError("API action has no url")
        method = (config.get("method") or "GET").upper()
        headers = dict(config.get("headers") or {})
        body = config.get("body")

        request_kwargs: Dict[str, Any] = {"headers": headers}
        if body is not None and method != "GET":
            if isinstance(body, str):
                request_kwargs["content"] = body
            else:
                request_kwargs["json"] = body

        await on_chunk(f"Calling {method} {url}...\n")
        try:
            async with httpx.AsyncClient(transport=self.http_transport, timeout=30.0) as client:
                response = await client.request(method, url, **request_kwargs)
        except httpx.HTTPError as e:
            raise ActionError(f"Request failed: {e}")

        output = f"{response.status_code} {response.reason_phrase}\n{response.text}"
        await on_chunk(output)
        return output

    async def _mcp_action(self, config: Dict[str, Any], on_chunk) -> str:
        server_id = config.get("server_id") or config.get("serverId")
        tool_name = config.get("tool_name") or config.get("toolName")
        await on_chunk(f"Invoking MCP tool: {tool_name}\n")
        output = f"MCP Tool: {tool_name} on server {server_id} (not yet implemented)"
        await on_chunk(output)
        return output

    async def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        if self.broadcaster is None:
            return
        try:
            await self.broadcaster({"type": event, "payload": payload})
        except Exception as e:
            logger.error(f"Error broadcasting {event}: {e}")
