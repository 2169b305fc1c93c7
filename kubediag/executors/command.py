"""Command executor embedded in the stage engines.

Runs ``spec.command`` directly (no shell), captures stdout and stderr and
reports any failure through ``CommandExecutorStatus.error`` instead of
raising, so one broken command never stops a stage.
"""

from __future__ import annotations

import asyncio

import structlog

from kubediag.models.abnormal import CommandExecutorSpec, CommandExecutorStatus
from kubediag.models.processor import DEFAULT_TIMEOUT_SECONDS

_log = structlog.get_logger(component="executors.command")


class CommandExecutor:
    """Runs command executor specs as subprocesses.

    Args:
        default_timeout: Seconds allowed when the spec declares no timeout.
    """

    def __init__(self, default_timeout: int = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._default_timeout = default_timeout

    async def run(self, spec: CommandExecutorSpec) -> CommandExecutorStatus:
        status = CommandExecutorStatus(command=list(spec.command), type=spec.type)
        if not spec.command:
            status.error = "command must not be empty"
            return status

        timeout = spec.timeout_seconds if spec.timeout_seconds > 0 else self._default_timeout
        try:
            proc = await asyncio.create_subprocess_exec(
                *spec.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            status.error = f"unable to start command: {exc}"
            return status

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            status.error = f"command timed out after {timeout}s"
            _log.warning("command_timed_out", command=spec.command, timeout=timeout)
            return status

        status.stdout = stdout.decode(errors="replace")
        status.stderr = stderr.decode(errors="replace")
        if proc.returncode != 0:
            status.error = f"command exited with status {proc.returncode}"
        _log.debug("command_finished", command=spec.command, returncode=proc.returncode)
        return status
