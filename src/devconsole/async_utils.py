"""
Developer Console — Async Utilities
===================================
Version 1.0 — October 2026

Async subprocess utilities. Every external tool the console drives
(git, tar, ufw, useradd, lifecycle scripts) goes through these helpers so
timeouts and kills are handled in one place.
"""

import asyncio
import os
import shutil
import signal
import subprocess
from typing import Awaitable, Callable, Dict, List, Optional, Tuple


async def run_subprocess(
    cmd: List[str],
    cwd: Optional[str] = None,
    timeout: int = 30,
    capture_output: bool = True,
    check: bool = False,
    env: Optional[Dict[str, str]] = None,
    input_text: Optional[str] = None
) -> Tuple[int, str, str]:
    """
    Async replacement for subprocess.run with command list.

    Args:
        cmd: Command as list of strings (e.g., ["git", "status"])
        cwd: Working directory
        timeout: Timeout in seconds
        capture_output: Whether to capture stdout/stderr
        check: If True, raise exception on non-zero exit code
        env: Full environment for the child (None inherits ours)
        input_text: Text written to the child's stdin

    Returns:
        Tuple of (return_code, stdout, stderr)

    Raises:
        asyncio.TimeoutError: If command times out
        subprocess.CalledProcessError: If check=True and command fails
        FileNotFoundError: If the executable does not exist
    """
    kwargs = {
        'stdout': asyncio.subprocess.PIPE if capture_output else None,
        'stderr': asyncio.subprocess.PIPE if capture_output else None,
        'stdin': asyncio.subprocess.PIPE if input_text is not None else None,
        'cwd': cwd,
        'env': env,
    }

    try:
        process = await asyncio.create_subprocess_exec(*cmd, **kwargs)
    except FileNotFoundError:
        raise FileNotFoundError(f"Command not found: {cmd[0]}")

    stdin_bytes = input_text.encode("utf-8") if input_text is not None else None
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(stdin_bytes),
            timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise asyncio.TimeoutError(f"Command timed out after {timeout}s: {' '.join(cmd)}")

    stdout = stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else ""
    stderr = stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else ""

    if check and process.returncode != 0:
        raise subprocess.CalledProcessError(
            process.returncode, cmd, stdout, stderr
        )

    return process.returncode, stdout, stderr


class CommandTimeoutError(asyncio.TimeoutError):
    """Timeout that keeps whatever the command printed before it was killed."""

    def __init__(self, message: str, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


async def run_shell_async(
    command: str,
    cwd: Optional[str] = None,
    timeout: int = 30,
    capture_output: bool = True,
    check: bool = False,
    env: Optional[Dict[str, str]] = None
) -> Tuple[int, str, str]:
    """
    Async shell command execution.

    The shell runs in its own session so a timeout kills everything it
    started, not just the ``sh`` wrapper.

    Args:
        command: Shell command string
        cwd: Working directory
        timeout: Timeout in seconds
        capture_output: Whether to capture stdout/stderr
        check: If True, raise exception on non-zero exit code
        env: Full environment for the child (None inherits ours)

    Returns:
        Tuple of (return_code, stdout, stderr)

    Raises:
        CommandTimeoutError: If command times out (carries partial output)
    """
    try:
        kwargs = {
            'stdout': asyncio.subprocess.PIPE if capture_output else None,
            'stderr': asyncio.subprocess.PIPE if capture_output else None,
            'cwd': cwd,
            'env': env,
            'start_new_session': True,
        }
        process = await asyncio.create_subprocess_shell(command, **kwargs)

        stdout_buffer, stderr_buffer = bytearray(), bytearray()
        waiters = [process.wait()]
        if capture_output:
            waiters += [_drain(process.stdout, stdout_buffer), _drain(process.stderr, stderr_buffer)]

        try:
            await asyncio.wait_for(asyncio.gather(*waiters), timeout=timeout)
        except asyncio.TimeoutError:
            _kill(process, group=True)
            await process.wait()
            raise CommandTimeoutError(
                f"Command timed out after {timeout}s: {command}",
                stdout_buffer.decode("utf-8", errors="replace"),
                stderr_buffer.decode("utf-8", errors="replace"),
            )
        except asyncio.CancelledError:
            _kill(process, group=True)
            await process.wait()
            raise

        stdout = stdout_buffer.decode("utf-8", errors="replace")
        stderr = stderr_buffer.decode("utf-8", errors="replace")

        if check and process.returncode != 0:
            raise subprocess.CalledProcessError(
                process.returncode, command, stdout, stderr
            )

        return process.returncode, stdout, stderr

    except (asyncio.TimeoutError, subprocess.CalledProcessError):
        raise
    except Exception as e:
        raise RuntimeError(f"Shell command failed: {e}")


async def _drain(stream: asyncio.StreamReader, buffer: bytearray) -> None:
    while True:
        data = await stream.read(4096)
        if not data:
            break
        buffer.extend(data)


async def stream_shell_async(
    command: str,
    on_output: Callable[[str], Awaitable[None]],
    cwd: Optional[str] = None,
    timeout: int = 300,
    env: Optional[Dict[str, str]] = None
) -> Tuple[int, str, bool]:
    """
    Run a shell command and hand each output chunk to ``on_output`` as it arrives.

    stderr is merged into stdout. On timeout the process is killed and the
    output collected so far is returned.

    Returns:
        Tuple of (return_code, combined_output, timed_out)
    """
    process = await asyncio.create_subprocess_exec(
        "sh", "-c", command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        cwd=cwd,
        env=env,
        start_new_session=True
    )
    chunks: List[str] = []

    async def _pump():
        while True:
            data = await process.stdout.read(4096)
            if not data:
                break
            text = data.decode("utf-8", errors="replace")
            chunks.append(text)
            await on_output(text)
        await process.wait()

    try:
        await asyncio.wait_for(_pump(), timeout=timeout)
    except asyncio.TimeoutError:
        _kill(process, group=True)
        await process.wait()
        return process.returncode, "".join(chunks), True
    except asyncio.CancelledError:
        _kill(process, group=True)
        await process.wait()
        raise

    return process.returncode, "".join(chunks), False


def _kill(process, group: bool = False) -> None:
    """SIGKILL the child, or its whole process group when it leads one."""
    try:
        if group:
            # the group outlives its leader while any member is still running
            os.killpg(process.pid, signal.SIGKILL)
        elif process.returncode is None:
            process.kill()
    except ProcessLookupError:
        pass


def command_exists(name: str) -> bool:
    """True if ``name`` resolves on PATH."""
    return shutil.which(name) is not None
