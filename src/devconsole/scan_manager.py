"""
Developer Console — Scan Manager
================================
Version 1.0 — October 2026

Bounded queue for lifecycle scans. Scans are external tools (Semgrep,
Trivy, license-checker, ...) driven by the lifecycle agent scripts, so
they are throttled with nice/ionice, capped by a timeout, and never run
more than ``scan_concurrency`` at once. Excess requests wait in FIFO order
and can be cancelled while still queued.
"""

import asyncio
import logging
import os
import random
import shlex
import string
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Tuple

import psutil

from devconsole.async_utils import CommandTimeoutError, command_exists, run_shell_async
from devconsole.config import ScanSettings
from devconsole.metrics import scan_metrics

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., Awaitable[Tuple[int, str, str]]]

SECURITY_SCAN_TYPES = ("security", "AGENT-018-SECURITY")
QUALITY_SCAN_TYPES = ("quality", "AGENT-019-QUALITY-GATE")


class ScanCancelledError(Exception):
    """Raised to callers whose queued scan was cancelled before it started."""


@dataclass
class ScanJob:
    """A scan waiting for (or holding) a slot."""
    id: str
    agent_script: str
    command: str
    project_path: str
    future: asyncio.Future
    queued_at: float = field(default_factory=time.time)


def new_scan_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"scan-{int(time.time() * 1000)}-{suffix}"


def classify_output(output: str) -> Tuple[bool, bool]:
    """
    Return (has_errors, has_warnings) for a scan's combined output.

    Severity words are matched case-insensitively; the FAILED / BLOCKED
    markers printed by the agent scripts are matched exactly.
    """
    lowered = output.lower()
    has_errors = (
        "critical" in lowered
        or "high vulnerability" in lowered
        or "FAILED" in output
        or "✗ BLOCKED" in output
    )
    has_warnings = (
        "warning" in lowered
        or "medium" in lowered
        or "⚠" in output
    )
    return has_errors, has_warnings


class ScanManager:
    """
    Runs lifecycle scans with resource controls.

    Usage:
        manager = ScanManager(projects_dir="/home/me/Projects")
        await manager.load_settings()
        result = await manager.execute_scan(script, "scan", project_path)
    """

    def __init__(
        self,
        projects_dir: Optional[str] = None,
        settings_loader: Optional[Callable[[], Awaitable[Dict[str, Any]]]] = None,
        command_runner: CommandRunner = run_shell_async
    ):
        self._projects_dir = str(projects_dir) if projects_dir else os.path.join(os.path.expanduser("~"), "Projects")
        self._settings_loader = settings_loader
        self._runner = command_runner
        self._settings: Optional[ScanSettings] = None
        self._queue: Deque[ScanJob] = deque()
        self._running: Dict[str, asyncio.Task] = {}
        self._cpulimit_available = False

    # =========================================================================
    # SETTINGS
    # =========================================================================

    async def load_settings(self) -> ScanSettings:
        """Reload settings from the store, falling back to defaults on any error."""
        try:
            data = await self._settings_loader() if self._settings_loader else {}
            self._settings = ScanSettings.from_mapping(data)
        except Exception as e:
            logger.error(f"Error loading scan settings, using defaults: {e}")
            self._settings = ScanSettings()

        self._cpulimit_available = self.check_cpulimit_available()
        logger.info(f"🔧 Loaded scan settings: {self._settings.to_dict()}")
        return self._settings

    def get_settings(self) -> ScanSettings:
        return self._settings or ScanSettings()

    def is_scan_enabled(self, scan_type: str) -> bool:
        settings = self.get_settings()
        if scan_type in SECURITY_SCAN_TYPES:
            return settings.enable_security_scans
        if scan_type in QUALITY_SCAN_TYPES:
            return settings.enable_quality_scans
        return True

    # =========================================================================
    # COMMAND CONSTRUCTION
    # =========================================================================

    def build_command(self, agent_script: str, command: str, project_path: str) -> str:
        """Wrap ``bash <script> <command> <project>`` with priority controls."""
        settings = self.get_settings()
        parts = []

        if self._cpulimit_available and 0 < settings.scan_cpu_limit < 100:
            parts.append(f"cpulimit -l {settings.scan_cpu_limit} -i --")
        if settings.scan_nice_level > 0:
            parts.append(f"nice -n {settings.scan_nice_level}")
        if settings.scan_ionice_class > 0:
            parts.append(f"ionice -c {settings.scan_ionice_class}")

        base = ["bash", shlex.quote(agent_script)]
        if command:
            base.append(shlex.quote(command))
        base.append(shlex.quote(project_path))
        parts.append(" ".join(base))
        return " ".join(parts)

    def build_environment(self, project_path: str) -> Dict[str, str]:
        settings = self.get_settings()
        env = dict(os.environ)
        env.update({
            "SKIP_CONTAINER_SCAN": "1" if settings.skip_container_scan else "0",
            "SKIP_SAST_SCAN": "1" if settings.skip_sast_scan else "0",
            "SKIP_E2E_TESTS": "1" if settings.skip_e2e_tests else "0",
            "SKIP_COVERAGE": "1" if settings.skip_coverage_report else "0",
            "NODE_OPTIONS": f"--max-old-space-size={settings.scan_memory_limit_mb}",
            "PROJECT_PATH": project_path,
            "PROJECTS_DIR": self._projects_dir,
        })
        return env

    # =========================================================================
    # QUEUE
    # =========================================================================

    async def execute_scan(self, agent_script: str, command: str, project_path: str) -> Dict[str, Any]:
        """
        Queue a scan and wait for its result.

        Raises:
            ScanCancelledError: If the scan is cancelled while still queued
        """
        job = ScanJob(
            id=new_scan_id(),
            agent_script=agent_script,
            command=command,
            project_path=project_path,
            future=asyncio.get_running_loop().create_future(),
        )
        logger.info(f"📥 Queueing scan {job.id}: {os.path.basename(agent_script)} {command}")

        self._queue.append(job)
        self._update_gauges()
        logger.info(f"Queue length: {len(self._queue)}, active scans: {len(self._running)}")

        self._process_queue()
        return await job.future

    def _process_queue(self) -> None:
        """Start queued jobs while there are free slots."""
        limit = max(1, self.get_settings().scan_concurrency)
        while len(self._running) < limit and self._queue:
            job = self._queue.popleft()
            self._running[job.id] = asyncio.create_task(self._wrap(job))
            logger.info(f"🚀 Starting scan {job.id} ({len(self._running)}/{limit} active)")
        self._update_gauges()

    async def _wrap(self, job: ScanJob) -> None:
        """Run a job, hand its outcome to the waiter, then free the slot."""
        try:
            result = await self._run_scan(job)
            if not job.future.done():
                job.future.set_result(result)
        except asyncio.CancelledError:
            if not job.future.done():
                job.future.set_exception(ScanCancelledError("Scan cancelled"))
            raise
        except Exception as e:
            logger.error(f"❌ Scan {job.id} crashed: {e}", exc_info=True)
            if not job.future.done():
                job.future.set_exception(e)
        finally:
            self._running.pop(job.id, None)
            self._process_queue()

    async def _run_scan(self, job: ScanJob) -> Dict[str, Any]:
        settings = self.get_settings()
        agent = os.path.splitext(os.path.basename(job.agent_script))[0]
        full_cmd = self.build_command(job.agent_script, job.command, job.project_path)
        logger.info(f"Executing: {full_cmd[:100]}...")

        start = time.monotonic()
        with scan_metrics.track_scan(agent) as outcome:
            try:
                rc, stdout, stderr = await self._runner(
                    full_cmd,
                    cwd=job.project_path,
                    timeout=settings.scan_timeout_seconds,
                    env=self.build_environment(job.project_path),
                )
            except asyncio.TimeoutError as e:
                duration = int((time.monotonic() - start) * 1000)
                logger.error(f"⏱️ Scan {job.id} timed out after {duration}ms")
                outcome["result"] = "timeout"
                partial = ""
                if isinstance(e, CommandTimeoutError):
                    partial = e.stdout + ("\n" + e.stderr if e.stderr else "")
                return {
                    "success": False,
                    "error": f"Scan timed out after {settings.scan_timeout_seconds} seconds",
                    "output": partial,
                    "duration": duration,
                    "timed_out": True,
                    "scan_id": job.id,
                }
            except (OSError, RuntimeError) as e:
                duration = int((time.monotonic() - start) * 1000)
                logger.error(f"Scan {job.id} failed after {duration}ms: {e}")
                outcome["result"] = "error"
                return {
                    "success": False,
                    "error": str(e),
                    "output": "",
                    "duration": duration,
                    "scan_id": job.id,
                }

            duration = int((time.monotonic() - start) * 1000)
            output = stdout + ("\n" + stderr if stderr else "")
            has_errors, has_warnings = classify_output(output)
            result = {
                "success": not has_errors and rc == 0,
                "output": output,
                "duration": duration,
                "has_errors": has_errors,
                "has_warnings": has_warnings,
                "scan_id": job.id,
            }
            if rc != 0:
                result["error"] = f"Scan exited with code {rc}"
            outcome["result"] = "success" if result["success"] else "failed"

        logger.info(f"✅ Scan {job.id} completed in {duration}ms")
        return result

    def queue_status(self) -> Dict[str, Any]:
        settings = self.get_settings()
        return {
            "queue_length": len(self._queue),
            "active_scans": len(self._running),
            "max_concurrency": settings.scan_concurrency,
            "settings": settings.to_dict(),
        }

    @property
    def active_count(self) -> int:
        return len(self._running)

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    def cancel_pending(self) -> int:
        """Fail every queued (not yet running) scan. Returns how many were cancelled."""
        cancelled = 0
        while self._queue:
            job = self._queue.popleft()
            if not job.future.done():
                job.future.set_exception(ScanCancelledError("Scan cancelled"))
            cancelled += 1
        if cancelled:
            scan_metrics.scans_cancelled_total.inc(cancelled)
        self._update_gauges()
        logger.info(f"🛑 Cancelled {cancelled} pending scans")
        return cancelled

    async def shutdown(self) -> None:
        """Cancel queued and running scans (for server shutdown)."""
        self.cancel_pending()
        for job_id, task in list(self._running.items()):
            logger.info(f"  ⚠️ Cancelling scan {job_id}")
            task.cancel()
        if self._running:
            await asyncio.gather(*self._running.values(), return_exceptions=True)
        self._running.clear()

    def _update_gauges(self) -> None:
        scan_metrics.queue_length.set(len(self._queue))
        scan_metrics.active_scans.set(len(self._running))

    # =========================================================================
    # SYSTEM INFO
    # =========================================================================

    @staticmethod
    def check_cpulimit_available() -> bool:
        return command_exists("cpulimit")

    def resource_recommendations(self) -> Dict[str, Any]:
        """Suggest resource controls from this machine's memory and CPU count."""
        try:
            total_mem_mb = psutil.virtual_memory().total // (1024 * 1024)
            cpu_count = psutil.cpu_count() or 1
        except Exception as e:
            logger.error(f"Error getting recommendations: {e}")
            return {"error": str(e), "recommended": ScanSettings().to_dict()}

        quarter = int(total_mem_mb * 0.25)
        return {
            "system_specs": {
                "total_memory_mb": total_mem_mb,
                "cpu_cores": cpu_count,
            },
            "recommended": {
                "scan_memory_limit_mb": min(2048, quarter),
                "scan_nice_level": 15,
                "scan_ionice_class": 3,
                "scan_cpu_limit": 50,
                "scan_concurrency": 1,
                "scan_timeout_seconds": 600,
                "skip_container_scan": True,
                "skip_e2e_tests": True,
            },
            "notes": [
                f"Your system has {total_mem_mb}MB RAM and {cpu_count} CPU cores.",
                f"Recommended memory limit for scans: {quarter}MB (25% of total)",
                "Container scanning (Trivy) builds Docker images - very resource intensive, disabled by default.",
                "E2E tests (Playwright/Cypress) spawn browser instances - also resource intensive.",
                "SAST scanning (Semgrep) analyzes all code - can use significant CPU/memory on large codebases.",
                "Run scans sequentially (concurrency=1) to prevent system overload.",
            ],
        }
