"""Run external commands with a wall-clock timeout."""

from __future__ import annotations

import asyncio
import os
import signal
from dataclasses import dataclass
from typing import Awaitable, Callable

from loguru import logger


@dataclass
class CommandResult:
    """Outcome of a finished command."""

    stdout: str
    stderr: str
    code: int | None
    signal: str | None = None
    killed: bool = False


class CommandTimeoutError(RuntimeError):
    """Raised when a command is killed; carries whatever output was buffered."""

    def __init__(
        self,
        message: str,
        *,
        stdout: str = "",
        stderr: str = "",
        code: int | None = None,
        signal: str | None = "SIGKILL",
        killed: bool = True,
    ):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr
        self.code = code
        self.signal = signal
        self.killed = killed


CommandRunner = Callable[[list[str], int], Awaitable[CommandResult]]


async def _drain(stream: asyncio.StreamReader | None, buffer: bytearray) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            return
        buffer.extend(chunk)


def _signal_name(code: int | None) -> str | None:
    if code is None or code >= 0:
        return None
    try:
        return signal.Signals(-code).name
    except ValueError:
        return None


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        pass


async def run_command_with_timeout(
    argv: list[str],
    timeout_ms: int,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """
    Run argv (no shell) and collect its output.

    Args:
        argv: Program and arguments.
        timeout_ms: Wall-clock limit; the process is killed when it elapses.
        cwd: Optional working directory.
        env: Extra environment variables layered over the current environment.

    Returns:
        The finished command's output and exit status.

    Raises:
        CommandTimeoutError: The timeout elapsed. Partial output is attached.
    """
    if not argv:
        raise ValueError("argv must not be empty")

    proc_env = os.environ.copy()
    if env:
        proc_env.update(env)

    proc = await asyncio.create_subprocess_exec(
        *argv,
        cwd=cwd,
        env=proc_env,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout_buf = bytearray()
    stderr_buf = bytearray()
    timeout_s = max(0.001, timeout_ms / 1000.0)

    async def _finish() -> int:
        await asyncio.gather(_drain(proc.stdout, stdout_buf), _drain(proc.stderr, stderr_buf))
        return await proc.wait()

    # One deadline covers both the pipes and the exit; a child may close its
    # output early and keep running.
    completion = asyncio.ensure_future(_finish())
    try:
        code = await asyncio.wait_for(asyncio.shield(completion), timeout=timeout_s)
    except asyncio.TimeoutError:
        _kill(proc)
        try:
            await asyncio.wait_for(completion, timeout=1.0)
        except asyncio.TimeoutError:
            pass
        await proc.wait()
        logger.warning(f"Command timed out after {timeout_ms}ms: {argv[0]}")
        raise CommandTimeoutError(
            f"command timed out after {timeout_ms}ms",
            stdout=stdout_buf.decode(errors="replace"),
            stderr=stderr_buf.decode(errors="replace"),
            code=proc.returncode,
        ) from None
    except asyncio.CancelledError:
        _kill(proc)
        completion.cancel()
        raise

    return CommandResult(
        stdout=stdout_buf.decode(errors="replace"),
        stderr=stderr_buf.decode(errors="replace"),
        code=code,
        signal=_signal_name(code),
        killed=False,
    )
