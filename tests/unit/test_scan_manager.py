"""
Unit tests for the lifecycle scan queue.
Commands never reach a shell: a fake runner records what would have run.
"""
import asyncio
import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from devconsole.async_utils import CommandTimeoutError
from devconsole.scan_manager import ScanCancelledError, ScanManager, classify_output


class FakeRunner:
    def __init__(self, rc=0, stdout="All checks passed", stderr="", gate=None, error=None):
        self.rc = rc
        self.stdout = stdout
        self.stderr = stderr
        self.gate = gate
        self.error = error
        self.commands = []

    async def __call__(self, command, cwd=None, timeout=None, env=None):
        self.commands.append({"command": command, "cwd": cwd, "timeout": timeout, "env": env})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.rc, self.stdout, self.stderr


def settings_loader(**values):
    async def load():
        return values
    return load


class TestClassifyOutput:
    """Test severity detection in scan output."""

    def test_clean(self):
        assert classify_output("0 issues found") == (False, False)

    def test_errors(self):
        assert classify_output("Found 2 CRITICAL issues")[0] is True
        assert classify_output("Pipeline FAILED")[0] is True
        assert classify_output("✗ BLOCKED by policy")[0] is True

    def test_failed_marker_is_case_sensitive(self):
        assert classify_output("0 failed")[0] is False

    def test_warnings(self):
        assert classify_output("1 Medium finding") == (False, True)
        assert classify_output("⚠ outdated") == (False, True)


class TestBuildCommand:
    """Test priority wrapping of agent script invocations."""

    def test_default_controls(self):
        manager = ScanManager("/projects", command_runner=FakeRunner())
        command = manager.build_command("/agents/AGENT-018-SECURITY.sh", "scan", "/projects/my app")

        assert command.startswith("nice -n 15 ionice -c 3 ")
        assert command.endswith("bash /agents/AGENT-018-SECURITY.sh scan '/projects/my app'")

    def test_controls_disabled(self):
        async def run():
            manager = ScanManager(
                "/projects",
                settings_loader=settings_loader(scan_nice_level=0, scan_ionice_class=0, scan_cpu_limit=0),
                command_runner=FakeRunner(),
            )
            await manager.load_settings()
            return manager.build_command("/a.sh", "", "/p")

        assert asyncio.run(run()) == "bash /a.sh /p"

    def test_environment(self):
        manager = ScanManager("/projects", command_runner=FakeRunner())
        env = manager.build_environment("/projects/app")

        assert env["SKIP_CONTAINER_SCAN"] == "1"
        assert env["SKIP_SAST_SCAN"] == "0"
        assert env["NODE_OPTIONS"] == "--max-old-space-size=2048"
        assert env["PROJECT_PATH"] == "/projects/app"


class TestSettings:
    """Test loading and scan-type gating."""

    def test_disabled_security_scans(self):
        async def run():
            manager = ScanManager(
                "/projects",
                settings_loader=settings_loader(enable_security_scans=False),
                command_runner=FakeRunner(),
            )
            await manager.load_settings()
            return manager

        manager = asyncio.run(run())
        assert manager.is_scan_enabled("AGENT-018-SECURITY") is False
        assert manager.is_scan_enabled("AGENT-019-QUALITY-GATE") is True
        assert manager.is_scan_enabled("AGENT-021-DEPENDENCY") is True

    def test_broken_loader_falls_back_to_defaults(self):
        async def broken():
            raise RuntimeError("database is locked")

        async def run():
            manager = ScanManager("/projects", settings_loader=broken, command_runner=FakeRunner())
            return await manager.load_settings()

        settings = asyncio.run(run())
        assert settings.scan_concurrency == 1
        assert settings.scan_timeout_seconds == 600


class TestExecuteScan:
    """Test running scans through the queue."""

    def test_successful_scan(self):
        runner = FakeRunner()
        manager = ScanManager("/projects", command_runner=runner)

        result = asyncio.run(manager.execute_scan("/agents/a.sh", "scan", "/projects/app"))

        assert result["success"] is True
        assert result["has_errors"] is False
        assert result["output"] == "All checks passed"
        assert result["scan_id"].startswith("scan-")
        assert runner.commands[0]["cwd"] == "/projects/app"
        assert runner.commands[0]["timeout"] == 600

    def test_findings_mark_failure(self):
        manager = ScanManager("/projects", command_runner=FakeRunner(stdout="1 CRITICAL vulnerability"))

        result = asyncio.run(manager.execute_scan("/agents/a.sh", "scan", "/projects/app"))

        assert result["success"] is False
        assert result["has_errors"] is True

    def test_non_zero_exit(self):
        manager = ScanManager("/projects", command_runner=FakeRunner(rc=2, stdout="", stderr="boom"))

        result = asyncio.run(manager.execute_scan("/agents/a.sh", "", "/projects/app"))

        assert result["success"] is False
        assert result["error"] == "Scan exited with code 2"
        assert result["output"] == "\nboom"

    def test_timeout(self):
        manager = ScanManager("/projects", command_runner=FakeRunner(error=asyncio.TimeoutError()))

        result = asyncio.run(manager.execute_scan("/agents/a.sh", "scan", "/projects/app"))

        assert result["success"] is False
        assert result["timed_out"] is True
        assert result["error"] == "Scan timed out after 600 seconds"

    def test_timeout_keeps_partial_output(self):
        error = CommandTimeoutError("Command timed out after 600s", stdout="Checking deps...\n", stderr="slow mirror")
        manager = ScanManager("/projects", command_runner=FakeRunner(error=error))

        result = asyncio.run(manager.execute_scan("/agents/a.sh", "scan", "/projects/app"))

        assert result["timed_out"] is True
        assert result["output"] == "Checking deps...\n\nslow mirror"

    def test_queued_scans_wait_and_can_be_cancelled(self):
        async def run():
            gate = asyncio.Event()
            manager = ScanManager("/projects", command_runner=FakeRunner(gate=gate))

            first = asyncio.create_task(manager.execute_scan("/agents/a.sh", "scan", "/p1"))
            second = asyncio.create_task(manager.execute_scan("/agents/a.sh", "scan", "/p2"))
            await asyncio.sleep(0.01)

            status = manager.queue_status()
            cancelled = manager.cancel_pending()
            gate.set()

            first_result = await first
            with pytest.raises(ScanCancelledError):
                await second
            return status, cancelled, first_result, manager

        status, cancelled, first_result, manager = asyncio.run(run())

        assert status["active_scans"] == 1
        assert status["queue_length"] == 1
        assert cancelled == 1
        assert first_result["success"] is True
        assert manager.active_count == 0
        assert manager.queue_length == 0

    def test_concurrency_setting_allows_parallel_scans(self):
        async def run():
            gate = asyncio.Event()
            manager = ScanManager(
                "/projects",
                settings_loader=settings_loader(scan_concurrency=2),
                command_runner=FakeRunner(gate=gate),
            )
            await manager.load_settings()
            tasks = [
                asyncio.create_task(manager.execute_scan("/agents/a.sh", "scan", f"/p{i}"))
                for i in range(3)
            ]
            await asyncio.sleep(0.01)
            snapshot = (manager.active_count, manager.queue_length)
            gate.set()
            await asyncio.gather(*tasks)
            return snapshot

        assert asyncio.run(run()) == (2, 1)

    def test_queued_scans_start_in_submission_order(self):
        async def run():
            gate = asyncio.Event()
            runner = FakeRunner(gate=gate)
            manager = ScanManager("/projects", command_runner=runner)
            tasks = [
                asyncio.create_task(manager.execute_scan("/agents/a.sh", "scan", path))
                for path in ("/pA", "/pB", "/pC")
            ]
            await asyncio.sleep(0.01)
            started_before_release = [c["cwd"] for c in runner.commands]
            gate.set()
            await asyncio.gather(*tasks)
            return started_before_release, [c["cwd"] for c in runner.commands]

        started_before_release, order = asyncio.run(run())

        assert started_before_release == ["/pA"]
        assert order == ["/pA", "/pB", "/pC"]

    def test_crashing_runner_frees_its_slot(self):
        class CrashOnce:
            def __init__(self):
                self.calls = 0

            async def __call__(self, command, cwd=None, timeout=None, env=None):
                self.calls += 1
                if self.calls == 1:
                    raise ValueError("runner bug")
                return 0, "All checks passed", ""

        async def run():
            manager = ScanManager("/projects", command_runner=CrashOnce())
            first = asyncio.create_task(manager.execute_scan("/agents/a.sh", "scan", "/p1"))
            second = asyncio.create_task(manager.execute_scan("/agents/a.sh", "scan", "/p2"))
            with pytest.raises(ValueError, match="runner bug"):
                await first
            return await second, manager

        second_result, manager = asyncio.run(run())

        assert second_result["success"] is True
        assert manager.active_count == 0
        assert manager.queue_length == 0
